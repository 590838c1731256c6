# llm.py
# LLM collaborator. The core only needs complete(messages) -> text;
# streaming and tool-calling transports belong to the UI layer.

import logging
from typing import Protocol

from openai import AsyncOpenAI

from plan_agent.config import AgentConfig

logger = logging.getLogger(__name__)


class Completion(Protocol):
    async def complete(self, messages: list[dict[str, str]]) -> str: ...


class OpenAICompletion:
    """
    Chat completion against any OpenAI-compatible endpoint.

    Example:
        llm = OpenAICompletion(model="gpt-4o", api_key="sk-...")
        text = await llm.complete([{"role": "user", "content": "hello"}])
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.7,
        max_tokens: int = 4000,
        timeout: float = 120.0,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    @classmethod
    def from_config(cls, cfg: AgentConfig) -> "OpenAICompletion":
        return cls(
            cfg.model,
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            timeout=cfg.request_timeout,
        )

    async def complete(self, messages: list[dict[str, str]]) -> str:
        logger.debug("Requesting completion from %s (%d messages)", self._model, len(messages))
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        return (response.choices[0].message.content or "").strip()
