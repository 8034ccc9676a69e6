from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Protocol

from openai import APIError, AsyncOpenAI

from tubedoc.errors import ErrorCode, TubedocError

logger = logging.getLogger(__name__)


class LLMRequestError(RuntimeError):
    """A chat-completion request failed at the transport or API level."""


@dataclass(slots=True)
class ChatCompletion:
    content: str
    total_tokens: int = 0


class ChatClient(Protocol):
    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> ChatCompletion: ...


class OpenAIChatClient:
    """Chat-completion client backed by ``openai.AsyncOpenAI``."""

    def __init__(self, model: str, api_key: str | None = None, *, client: AsyncOpenAI | None = None) -> None:
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key)

    @classmethod
    def from_env(cls, model: str, api_key_env: str = "OPENAI_API_KEY") -> OpenAIChatClient:
        api_key = os.getenv(api_key_env)
        if not api_key:
            raise TubedocError(
                ErrorCode.API_KEY_MISSING,
                f"An OpenAI API key is required. Set the {api_key_env} environment variable.",
            )
        return cls(model=model, api_key=api_key)

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> ChatCompletion:
        request: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**request)
        except APIError as exc:
            raise LLMRequestError(f"{type(exc).__name__}: {exc}") from exc

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        total_tokens = response.usage.total_tokens if response.usage else 0
        logger.debug("LLM call used %d tokens (model=%s)", total_tokens, self.model)
        return ChatCompletion(content=content, total_tokens=total_tokens)
