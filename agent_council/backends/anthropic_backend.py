"""Anthropic Claude backend using anthropic SDK with native async.

The runner speaks OpenAI-style messages; this module translates them to
the Messages API shape (system prompt split out, tool calls as tool_use
blocks, tool results as user tool_result blocks) and back.
"""

import json
import logging
import os
import time
from collections.abc import AsyncIterator
from typing import Any

import anthropic as anthropic_sdk

from agent_council.backends.base import BackendUnavailable, InferenceClient, call_with_timeout_retry
from agent_council.models import ChatChunk, ChatResponse, ToolInvocation
from config.config_loader import BackendConfig

logger = logging.getLogger(__name__)


def _arguments_object(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def convert_messages(messages: list[dict[str, Any]]) -> tuple[str, list[dict[str, Any]]]:
    """Split OpenAI-style history into (system, anthropic_messages)."""
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for msg in messages:
        role = msg.get("role")
        if role == "system":
            system_parts.append(msg.get("content") or "")
        elif role == "assistant" and msg.get("tool_calls"):
            blocks: list[dict[str, Any]] = []
            if msg.get("content"):
                blocks.append({"type": "text", "text": msg["content"]})
            for call in msg["tool_calls"]:
                blocks.append({
                    "type": "tool_use",
                    "id": call["id"],
                    "name": call["function"]["name"],
                    "input": _arguments_object(call["function"].get("arguments", "")),
                })
            converted.append({"role": "assistant", "content": blocks})
        elif role == "tool":
            block = {"type": "tool_result", "tool_use_id": msg["tool_call_id"], "content": msg.get("content", "")}
            # Consecutive tool results belong to a single user turn
            if converted and converted[-1]["role"] == "user" and isinstance(converted[-1]["content"], list):
                converted[-1]["content"].append(block)
            else:
                converted.append({"role": "user", "content": [block]})
        else:
            converted.append({"role": role, "content": msg.get("content") or ""})

    return "\n\n".join(system_parts), converted


def convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "name": t["function"]["name"],
            "description": t["function"].get("description", ""),
            "input_schema": t["function"]["parameters"],
        }
        for t in tools
    ]


class AnthropicChatClient(InferenceClient):
    """Chat client for the Anthropic Messages API."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        key_env = config.api_key_env or "ANTHROPIC_API_KEY"
        api_key = os.environ.get(key_env, "").strip()
        if not api_key:
            raise BackendUnavailable(config.name, f"Missing API key: {key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(
            api_key=api_key, base_url=config.base_url, max_retries=config.max_retries
        )

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
        system, converted = convert_messages(messages)
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
            "messages": converted,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = convert_tools(tools)

        start = time.monotonic()
        response = await call_with_timeout_retry(
            self._config.name,
            self._config.timeout_sec,
            lambda: self._client.messages.create(**kwargs),
        )
        latency = time.monotonic() - start

        if not response.content:
            raise BackendUnavailable(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        tool_calls = tuple(
            ToolInvocation(id=b.id, name=b.name, arguments=json.dumps(b.input))
            for b in response.content
            if b.type == "tool_use"
        )

        prompt_tokens = completion_tokens = 0
        if response.usage:
            prompt_tokens = response.usage.input_tokens
            completion_tokens = response.usage.output_tokens

        logger.info(
            "Anthropic %s: %.2fs, %d tool calls, %d tokens",
            model, latency, len(tool_calls), prompt_tokens + completion_tokens,
        )

        return ChatResponse(
            model=model,
            content="\n".join(text_blocks),
            tool_calls=tool_calls,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            duration_ms=latency * 1000,
        )

    async def chat_stream(self, model: str, messages: list[dict[str, Any]]) -> AsyncIterator[ChatChunk]:
        system, converted = convert_messages(messages)
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
            "messages": converted,
        }
        if system:
            kwargs["system"] = system

        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield ChatChunk(content=text)
        except Exception as exc:
            raise BackendUnavailable(self._config.name, f"Stream failed: {exc}") from exc
        yield ChatChunk(content="", done=True)
