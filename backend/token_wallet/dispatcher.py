"""
Proxy Dispatcher

Forwards an authorized prompt to the completion provider. No retry policy:
the caller decides whether to refund and whether to retry. A timeout or an
empty answer counts as a provider failure.
"""

import asyncio
import logging

from .config import COMPLETION_TIMEOUT_SECONDS
from .errors import CompletionProviderError

logger = logging.getLogger(__name__)


class ProxyDispatcher:

    def __init__(self, provider, timeout_seconds: float = COMPLETION_TIMEOUT_SECONDS):
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    async def complete(self, prompt: str) -> str:
        try:
            text = await asyncio.wait_for(self.provider.complete(prompt), self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Completion provider timed out after {self.timeout_seconds}s")
            raise CompletionProviderError("Completion provider timed out")

        if not text or not text.strip():
            raise CompletionProviderError("Completion provider returned no output")
        return text
