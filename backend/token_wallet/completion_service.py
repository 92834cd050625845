"""
Completion Execution Service - metered completion calls

Single entry point for completion requests:
1. Authorize and debit through the access gate
2. Forward the prompt through the proxy dispatcher
3. Keep the debit on success, refund it on any upstream failure

Usage:
    service = CompletionService(gate, dispatcher)
    result = await service.execute(session, "Summarize this paragraph")
    print(result.response, result.remaining_balance)
"""

import asyncio
import logging
from typing import Optional

from .dispatcher import ProxyDispatcher
from .errors import InsufficientBalance, Unauthenticated
from .guard import AccessGate
from .models import CompletionResult, GateDecision, Session

logger = logging.getLogger(__name__)


def _observe(task: asyncio.Future):
    # Settlement may finish after the caller went away; nobody awaits it then
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Completion settled with {type(task.exception()).__name__}")


class CompletionService:

    def __init__(self, gate: AccessGate, dispatcher: ProxyDispatcher):
        self.gate = gate
        self.dispatcher = dispatcher

    async def execute(
        self,
        session: Optional[Session],
        prompt: str,
        operation: str = "completion"
    ) -> CompletionResult:
        """
        Run a metered completion.

        Raises:
            Unauthenticated: no active session; nothing debited, no upstream call
            InsufficientBalance: balance below cost; nothing debited, no upstream call
            CompletionProviderError: upstream failed; the debit was refunded
        """
        decision = await self.gate.authorize(session, operation)

        if not decision.allowed:
            if decision.reason == "UNAUTHENTICATED":
                raise Unauthenticated()
            raise InsufficientBalance(
                balance=decision.remaining_balance,
                required=self.gate.cost_of(operation)
            )

        # Shielded so a client disconnect cannot cancel settlement: the debit
        # always ends as kept or refunded once the upstream call settles
        settle = asyncio.ensure_future(self._dispatch_and_settle(session.identity, decision, prompt))
        settle.add_done_callback(_observe)
        return await asyncio.shield(settle)

    async def _dispatch_and_settle(
        self,
        identity: str,
        decision: GateDecision,
        prompt: str
    ) -> CompletionResult:
        try:
            text = await self.dispatcher.complete(prompt)
        except (Exception, asyncio.CancelledError) as e:
            logger.error(f"Completion failed for {identity} (request={decision.request_id}): {e!r}")
            try:
                await self.gate.refund(identity, decision, reason=f"Completion error: {e!r}")
            except Exception:
                logger.exception(f"Refund failed for request {decision.request_id}")
            raise

        return CompletionResult(
            response=text,
            tokens_used=decision.debit,
            remaining_balance=decision.remaining_balance,
            request_id=decision.request_id
        )
