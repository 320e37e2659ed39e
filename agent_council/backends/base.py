"""Abstract base for chat-completion backends."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

from agent_council.models import ChatChunk, ChatResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackendUnavailable(Exception):
    """Raised when a backend cannot be reached or a call fails."""

    def __init__(self, backend_name: str, message: str) -> None:
        self.backend_name = backend_name
        super().__init__(f"[{backend_name}] {message}")


async def call_with_timeout_retry(
    backend_name: str,
    timeout_sec: float,
    make_call: Callable[[], Awaitable[T]],
) -> T:
    """Await make_call() under a timeout, retrying once with 1.5x the timeout.

    Any other failure is wrapped in BackendUnavailable without retrying;
    transport-level retries are left to the SDK client.
    """
    timeout = timeout_sec
    for attempt in (1, 2):
        try:
            return await asyncio.wait_for(make_call(), timeout=timeout)
        except TimeoutError as exc:
            if attempt == 2:
                raise BackendUnavailable(backend_name, f"Request timed out after {timeout:g}s") from exc
            timeout = timeout * 1.5
            logger.warning("Backend %s timed out, retrying with %gs (1.5x)", backend_name, timeout)
        except BackendUnavailable:
            raise
        except Exception as exc:
            raise BackendUnavailable(backend_name, f"API call failed: {exc}") from exc
    raise AssertionError("unreachable")


class InferenceClient(ABC):
    """Chat-completion boundary used by the runner and the council."""

    @abstractmethod
    def name(self) -> str:
        """Return the short backend name (e.g. 'ollama', 'claude')."""
        ...

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the model identifiers the backend currently serves.

        Raises:
            BackendUnavailable: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> ChatResponse:
        """Single-shot chat completion.

        Args:
            model: Model identifier.
            messages: OpenAI-style message history (system/user/assistant/tool).
            tools: Function-calling tool schema from the capability registry.

        Returns:
            ChatResponse with either final content or tool invocations.

        Raises:
            BackendUnavailable: On API failure, timeout, or invalid response.
        """
        ...

    @abstractmethod
    def chat_stream(self, model: str, messages: list[dict[str, Any]]) -> AsyncIterator[ChatChunk]:
        """Stream a completion as text chunks.

        Chunks without usable text are skipped, never raised.

        Raises:
            BackendUnavailable: If the stream cannot be opened or breaks.
        """
        ...
