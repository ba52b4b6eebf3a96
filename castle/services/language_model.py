"""Hosted language model access. One prompt in, one trimmed text reply out."""

import logging
from typing import AsyncIterator, Protocol, Self

from openai import AsyncOpenAI, OpenAIError

from castle.core.config import Settings
from castle.core.exceptions import LanguageModelError

logger = logging.getLogger(__name__)


class LanguageModel(Protocol):
    """Just the part of a chat model the services need"""

    async def complete(self, prompt: str) -> str: ...

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Start the completion; the returned iterator yields the reply piece by piece."""
        ...


class OpenAIChatModel:
    """Chat completion with a single user message, as the browser client used to send it."""

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self.client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> Self:
        client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.llm_timeout)
        return cls(client, settings.llm_model)

    async def complete(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as exc:
            logger.warning("Language model call failed: %s", exc)
            raise LanguageModelError(f"Language model call failed: {exc}") from exc

        if not response.choices:
            raise LanguageModelError("Language model returned no choices.")
        return (response.choices[0].message.content or "").strip()

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        try:
            chunks = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                stream=True,
            )
        except OpenAIError as exc:
            logger.warning("Language model stream failed to start: %s", exc)
            raise LanguageModelError(f"Language model call failed: {exc}") from exc
        return self._deltas(chunks)

    async def _deltas(self, chunks: AsyncIterator) -> AsyncIterator[str]:
        try:
            async for chunk in chunks:
                content = chunk.choices[0].delta.content if chunk.choices else None
                if content:
                    yield content
        except OpenAIError as exc:
            # headers are already sent, the reply just ends early
            logger.warning("Language model stream broke off: %s", exc)
