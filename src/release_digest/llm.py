"""OpenAI chat client used to write the weekly recap.

All model interaction goes through LLMClient.generate(): one system prompt,
one user message, plain text back. Transient API failures are retried with
exponential backoff (3 attempts); the last failure propagates so the caller
can fall back to its canned message.
"""

from __future__ import annotations

from typing import Protocol

from openai import AsyncOpenAI
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from release_digest.logging_config import get_logger

logger = get_logger(__name__)


class LLMConfig(BaseModel):
    """Configuration for the LLM client.

    Attributes:
        model: OpenAI model identifier (e.g., "gpt-4o", "gpt-4o-mini")
        temperature: Sampling temperature; the recap wants some personality
        max_tokens: Maximum tokens in the response
        api_key: OpenAI API key (the SDK reads OPENAI_API_KEY if None)
    """

    model: str = "gpt-4o-mini"
    temperature: float = 0.8
    max_tokens: int = 1024
    api_key: str | None = None


class TextGenerator(Protocol):
    async def generate(self, system_prompt: str, user_message: str) -> str:
        ...


class LLMClient:
    """Async wrapper around OpenAI chat completions.

    Usage:
        client = LLMClient(LLMConfig(model="gpt-4o-mini"))
        text = await client.generate(SYSTEM_PROMPT, "Here are the releases ...")
    """

    def __init__(self, config: LLMConfig | None = None) -> None:
        self.config = config or LLMConfig()
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        # created lazily: AsyncOpenAI refuses to construct without a key
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.config.api_key)
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def generate(self, system_prompt: str, user_message: str) -> str:
        """Run one chat completion and return the stripped text.

        Raises:
            openai.OpenAIError: If the API call fails after retries
        """
        response = await self._get_client().chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        content = (response.choices[0].message.content or "").strip()
        logger.info(
            "llm_completion",
            model=self.config.model,
            chars=len(content),
            total_tokens=getattr(response.usage, "total_tokens", None),
        )
        return content
