"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from agent_council.backends.base import BackendUnavailable, InferenceClient
from agent_council.capabilities.registry import CapabilityRegistry
from agent_council.capabilities.tickets import TicketsProvider
from agent_council.capabilities.wiki import WikiProvider
from agent_council.models import ChatChunk, ChatResponse, RoleConfig, ToolInvocation
from config.config_loader import AgentConfig, AppConfig, BackendConfig, CouncilConfig, PromptsConfig

ROLE_MODELS = {
    "moderator": "mod-model",
    "architect": "arch-model",
    "sentinel": "sent-model",
    "optimizer": "opt-model",
    "maintainer": "maint-model",
    "verifier": "verif-model",
}


def text_response(content: str, tokens: int = 10) -> ChatResponse:
    return ChatResponse(model="mock-model", content=content, prompt_tokens=tokens, completion_tokens=tokens)


def tool_response(*calls: tuple[str, str], tokens: int = 10) -> ChatResponse:
    """ChatResponse invoking each (qualified_name, raw_arguments) in order."""
    return ChatResponse(
        model="mock-model",
        content="",
        tool_calls=tuple(ToolInvocation(id=f"call_{i}", name=n, arguments=a) for i, (n, a) in enumerate(calls)),
        prompt_tokens=tokens,
        completion_tokens=tokens,
    )


class MockClient(InferenceClient):
    """Test double InferenceClient.

    `chat` is an AsyncMock; tests set `return_value` or `side_effect`.
    `stream_replies` maps model -> reply for `chat_stream`. A reply is a str
    (same every call), a list consumed one per call, or an Exception to raise
    mid-stream.
    """

    def __init__(
        self,
        models: list[str] | None = None,
        stream_replies: dict[str, Any] | None = None,
        client_name: str = "mock",
    ) -> None:
        self._name = client_name
        self.models = list(models or [])
        self.stream_replies = dict(stream_replies or {})
        self.stream_calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        # Shadow the class method with an AsyncMock at the instance level.
        self.chat = AsyncMock(return_value=text_response("Mock answer"))  # type: ignore[method-assign]

    def name(self) -> str:
        return self._name

    async def list_models(self) -> list[str]:
        return list(self.models)

    async def chat(self, model, messages, tools=None) -> ChatResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return text_response("Mock answer")

    def _next_reply(self, model: str) -> Any:
        reply = self.stream_replies.get(model, "")
        if isinstance(reply, list):
            return reply.pop(0) if reply else ""
        return reply

    async def chat_stream(self, model: str, messages: list[dict[str, Any]]) -> AsyncIterator[ChatChunk]:
        self.stream_calls.append((model, messages))
        reply = self._next_reply(model)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if isinstance(reply, Exception):
                yield ChatChunk(content="partial ")
                raise reply
            for word in reply.split(" "):
                await asyncio.sleep(0)
                yield ChatChunk(content=word + " ")
            yield ChatChunk(content="", done=True)
        finally:
            self.in_flight -= 1


class UnreachableClient(MockClient):
    async def list_models(self) -> list[str]:
        raise BackendUnavailable(self._name, "Connection refused")


@pytest.fixture
def mock_client() -> MockClient:
    return MockClient(models=list(ROLE_MODELS.values()))


@pytest.fixture
def registry() -> CapabilityRegistry:
    return CapabilityRegistry([TicketsProvider(), WikiProvider()])


@pytest.fixture
def sample_backend_config() -> BackendConfig:
    return BackendConfig(
        name="test_backend",
        sdk="openai",
        timeout_sec=30,
        max_tokens=1024,
        api_key_env="TEST_API_KEY",
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        intake="Summary:\n{summary}\n\nMap this code:\n{code}",
        review="Review:\n{code}",
        debate="CODE:\n{code}\n\nFINDINGS TO VERIFY:\n{findings}",
        verdict="CODE MAP:\n{code_map}\n\nFINDINGS:\n{findings}",
    )


@pytest.fixture
def sample_council_config(tmp_path: Path, sample_prompts_config: PromptsConfig) -> CouncilConfig:
    roles = {
        role: RoleConfig(role=role, preferred_model=model, fallback_models=("shared-fallback",),
                         system_prompt=f"You are the {role}.")
        for role, model in ROLE_MODELS.items()
    }
    return CouncilConfig(
        roles=roles,
        prompts=sample_prompts_config,
        max_parallel_reviews=4,
        output_dir=tmp_path / "reviews",
    )


@pytest.fixture
def sample_app_config(sample_backend_config: BackendConfig, sample_council_config: CouncilConfig) -> AppConfig:
    return AppConfig(
        backend=sample_backend_config,
        agent=AgentConfig(model="mock-model", max_iterations=5, system_prompt="Tools:\n{capabilities}"),
        council=sample_council_config,
    )


SAMPLE_CODE = '''import os

def load(path):
    return open(path).read()

class Cache:
    def get(self, key):
        return eval(key)
'''


@pytest.fixture
def sample_code() -> str:
    return SAMPLE_CODE
