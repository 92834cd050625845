"""
Access Gate - per-request authorization and spend decision

Enforces:
- Active session before any metered operation
- Token balance check and debit as one atomic step
- Refund of a debit whose upstream call produced nothing usable

IMPORTANT: This gate is the ONLY place where metered operations are debited.
All completion call sites must go through it.
"""

import logging
import uuid
from typing import Optional

from .account_store import AccountStore
from .config import OPERATION_COSTS
from .errors import AccountNotFound, AlreadyConsumed, InsufficientBalance
from .models import Account, GateDecision, Session

logger = logging.getLogger(__name__)


class AccessGate:
    """
    Usage:
        gate = AccessGate(account_store)
        decision = await gate.authorize(session, "completion")
        if not decision.allowed:
            ...  # decision.reason is UNAUTHENTICATED or INSUFFICIENT_BALANCE

        try:
            text = await dispatcher.complete(prompt)
        except ProviderError:
            await gate.refund(session.identity, decision, "provider failure")
            raise
    """

    def __init__(self, account_store: AccountStore):
        self.accounts = account_store

    def cost_of(self, operation: str) -> int:
        """Token cost of an operation. Unknown operations are not metered here."""
        if operation not in OPERATION_COSTS:
            raise ValueError(f"Unknown operation: {operation}")
        return OPERATION_COSTS[operation]

    async def authorize(self, session: Optional[Session], operation: str) -> GateDecision:
        """
        Decide allow/deny and debit the cost on allow.

        The balance check is the guard of the conditional debit itself, so two
        concurrent requests can never both pass against the same tokens.
        """
        request_id = str(uuid.uuid4())

        if session is None or session.is_expired():
            return GateDecision(allowed=False, reason="UNAUTHENTICATED", request_id=request_id)

        cost = self.cost_of(operation)

        if cost == 0:
            account = await self.accounts.get(session.identity)
            if account is None:
                return GateDecision(allowed=False, reason="UNAUTHENTICATED", request_id=request_id)
            return GateDecision(
                allowed=True,
                request_id=request_id,
                remaining_balance=account.token_balance
            )

        try:
            account = await self.accounts.apply_delta(
                session.identity,
                -cost,
                source="usage",
                request_id=request_id,
                details={"operation": operation}
            )
        except InsufficientBalance as e:
            logger.info(f"Denied {operation} for {session.identity}: insufficient balance")
            return GateDecision(
                allowed=False,
                reason="INSUFFICIENT_BALANCE",
                request_id=request_id,
                remaining_balance=e.details.get("balance", 0)
            )
        except AccountNotFound:
            logger.warning(f"Session bound to missing account {session.identity}")
            return GateDecision(allowed=False, reason="UNAUTHENTICATED", request_id=request_id)

        return GateDecision(
            allowed=True,
            debit=cost,
            request_id=request_id,
            remaining_balance=account.token_balance
        )

    async def refund(
        self,
        identity: str,
        decision: GateDecision,
        reason: str = "Provider failure"
    ) -> Optional[Account]:
        """
        Return the debit of an allowed decision.

        Keyed on the decision's request id, so refunding twice credits once.
        """
        if not decision.allowed or decision.debit == 0:
            return None

        try:
            account = await self.accounts.apply_delta(
                identity,
                decision.debit,
                source="refund",
                idempotency_key=f"refund:{decision.request_id}",
                details={"original_request_id": decision.request_id, "reason": reason}
            )
        except AlreadyConsumed:
            logger.info(f"Refund for request {decision.request_id} already applied")
            return await self.accounts.get(identity)

        logger.info(f"Refunded {decision.debit} tokens to {identity}: {reason}")
        return account
