"""
OpenAI completion provider.

Single-turn chat completion: prompt in, text out. Errors surface as
CompletionProviderError; retries are left to the caller.
"""

import logging
import os
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from ..config import OPENAI_MODEL
from ..errors import CompletionProviderError

logger = logging.getLogger(__name__)


class OpenAICompletionProvider:

    def __init__(self, api_key: Optional[str] = None, model: str = OPENAI_MODEL):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model
        self._client = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise CompletionProviderError("OPENAI_API_KEY is not set")
            # Retries belong to the caller
            self._client = AsyncOpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    async def complete(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as e:
            logger.error(f"OpenAI completion failed: {e}")
            raise CompletionProviderError(str(e))

        if not response.choices:
            raise CompletionProviderError("Provider returned no choices")
        return response.choices[0].message.content or ""
