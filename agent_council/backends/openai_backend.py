"""OpenAI-compatible backend using openai SDK with native async.

Covers OpenAI itself and any server speaking the same API through
`base_url`: Ollama (`/v1`), xAI, DeepSeek, vLLM.
"""

import logging
import os
import time
import uuid
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from agent_council.backends.base import BackendUnavailable, InferenceClient, call_with_timeout_retry
from agent_council.models import ChatChunk, ChatResponse, ToolInvocation
from config.config_loader import BackendConfig

logger = logging.getLogger(__name__)

# Local servers ignore the key but the SDK insists on one
_LOCAL_API_KEY = "not-needed"


def _chunk_text(chunk: Any) -> str | None:
    """Text carried by a stream chunk, or None for chunks to skip."""
    try:
        content = chunk.choices[0].delta.content
    except (AttributeError, IndexError, TypeError):
        logger.debug("Skipping malformed stream chunk: %r", chunk)
        return None
    return content if isinstance(content, str) and content else None


class OpenAIChatClient(InferenceClient):
    """Chat client for OpenAI-compatible endpoints."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip() if config.api_key_env else ""
        if not api_key:
            if not config.base_url:
                raise BackendUnavailable(config.name, f"Missing API key: {config.api_key_env}")
            api_key = _LOCAL_API_KEY
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url, max_retries=config.max_retries)

    def name(self) -> str:
        return self._config.name

    async def list_models(self) -> list[str]:
        page = await call_with_timeout_retry(
            self._config.name, self._config.timeout_sec, lambda: self._client.models.list()
        )
        return [m.id for m in page.data]

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> ChatResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        if tools:
            kwargs["tools"] = tools

        start = time.monotonic()
        response = await call_with_timeout_retry(
            self._config.name,
            self._config.timeout_sec,
            lambda: self._client.chat.completions.create(**kwargs),
        )
        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if choice is None:
            raise BackendUnavailable(self._config.name, "Empty response choices")

        tool_calls = tuple(
            ToolInvocation(
                id=call.id or f"call_{uuid.uuid4().hex[:12]}",
                name=call.function.name,
                arguments=call.function.arguments or "",
            )
            for call in (choice.message.tool_calls or [])
        )

        prompt_tokens = completion_tokens = 0
        if response.usage:
            prompt_tokens = response.usage.prompt_tokens or 0
            completion_tokens = response.usage.completion_tokens or 0

        logger.info(
            "%s %s: %.2fs, %d tool calls, %d tokens",
            self._config.name, model, latency, len(tool_calls), prompt_tokens + completion_tokens,
        )

        return ChatResponse(
            model=model,
            content=choice.message.content or "",
            tool_calls=tool_calls,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            duration_ms=latency * 1000,
        )

    async def chat_stream(self, model: str, messages: list[dict[str, Any]]) -> AsyncIterator[ChatChunk]:
        stream = await call_with_timeout_retry(
            self._config.name,
            self._config.timeout_sec,
            lambda: self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                stream=True,
            ),
        )
        try:
            async for chunk in stream:
                text = _chunk_text(chunk)
                if text is not None:
                    yield ChatChunk(content=text)
        except Exception as exc:
            raise BackendUnavailable(self._config.name, f"Stream failed: {exc}") from exc
        yield ChatChunk(content="", done=True)
