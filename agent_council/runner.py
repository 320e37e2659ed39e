"""Tool-calling loop: drive one query to a final answer through the registry."""

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from agent_council.backends.base import InferenceClient
from agent_council.capabilities.base import CapabilityError
from agent_council.capabilities.registry import CapabilityRegistry
from agent_council.models import ChatResponse, ToolInvocation
from agent_council.trace import Step, StepType, Trace

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
MAX_ITERATIONS_MESSAGE = "Maximum iterations reached. Stopping execution."
CANCELLED_MESSAGE = "Run cancelled"


@dataclass
class RunnerCallbacks:
    """Progress hooks. Each is called synchronously as the run advances.

    `on_tokens_used` receives the token count of each inference call, not
    the running total (that is `Trace.total_tokens`).
    """

    on_step_added: Callable[[Step], None] | None = None
    on_tokens_used: Callable[[int], None] | None = None
    on_complete: Callable[[Trace], None] | None = None
    on_error: Callable[[Exception], None] | None = None


def decode_arguments(raw: str | None) -> dict[str, Any]:
    """Decode a tool-call argument payload, degrading to {} on anything malformed."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Malformed tool arguments, using {}: %.200s", raw)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Tool arguments are not an object, using {}: %.200s", raw)
        return {}
    return parsed


def build_system_prompt(template: str, registry: CapabilityRegistry) -> str:
    return template.replace("{capabilities}", registry.describe())


def _assistant_message(response: ChatResponse) -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": response.content or None,
        "tool_calls": [
            {"id": call.id, "type": "function", "function": {"name": call.name, "arguments": call.arguments}}
            for call in response.tool_calls
        ],
    }


def _tool_message(call: ToolInvocation, payload: Any) -> dict[str, Any]:
    return {"role": "tool", "tool_call_id": call.id, "content": json.dumps(payload, default=str)}


class AgentRunner:
    """Bounded conversation between one model and a capability registry.

    A runner holds no per-query state, so one instance can serve many
    sequential runs. Capability failures are fed back to the model and the
    loop continues; inference failures end the run.
    """

    def __init__(
        self,
        client: InferenceClient,
        registry: CapabilityRegistry,
        model: str,
        system_prompt: str = "",
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self._client = client
        self._registry = registry
        self._model = model
        self._system_prompt = system_prompt
        self._max_iterations = max_iterations

    async def run(
        self,
        query: str,
        callbacks: RunnerCallbacks | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Trace:
        """Run the query to a terminal step and return the sealed Trace."""
        callbacks = callbacks or RunnerCallbacks()
        trace = Trace(query=query, model=self._model)

        def emit(step: Step) -> None:
            trace.append(step)
            if callbacks.on_step_added:
                callbacks.on_step_added(step)

        def finish(success: bool) -> Trace:
            trace.seal(success)
            logger.info(
                "Run %s finished: success=%s, %d steps, %d tokens",
                trace.id, success, len(trace.steps), trace.total_tokens,
            )
            if callbacks.on_complete:
                callbacks.on_complete(trace)
            return trace

        def cancelled() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                emit(Step(type=StepType.ERROR, content=CANCELLED_MESSAGE))
                return True
            return False

        emit(Step(type=StepType.USER, content=query))

        messages: list[dict[str, Any]] = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": query})
        tools = self._registry.list_capabilities()

        for iteration in range(1, self._max_iterations + 1):
            if cancelled():
                return finish(False)

            emit(Step(type=StepType.PLANNING, content=f"Thinking... (iteration {iteration})"))

            start = time.monotonic()
            try:
                response = await self._client.chat(self._model, messages, tools=tools or None)
            except Exception as exc:
                logger.error("Inference failed on iteration %d: %s", iteration, exc)
                emit(Step(type=StepType.ERROR, content=f"Agent error: {exc}"))
                if callbacks.on_error:
                    callbacks.on_error(exc)
                return finish(False)
            elapsed_ms = (time.monotonic() - start) * 1000

            if response.total_tokens:
                trace.add_tokens(response.total_tokens)
                if callbacks.on_tokens_used:
                    callbacks.on_tokens_used(response.total_tokens)

            if cancelled():
                return finish(False)

            if not response.tool_calls:
                emit(Step(
                    type=StepType.RESPONSE,
                    content=response.content,
                    tokens=response.total_tokens,
                    duration_ms=response.duration_ms if response.duration_ms is not None else elapsed_ms,
                ))
                return finish(True)

            messages.append(_assistant_message(response))
            for call in response.tool_calls:
                if cancelled():
                    return finish(False)
                messages.append(self._invoke(call, emit))

        emit(Step(type=StepType.ERROR, content=MAX_ITERATIONS_MESSAGE))
        return finish(False)

    def _invoke(self, call: ToolInvocation, emit: Callable[[Step], None]) -> dict[str, Any]:
        """Execute one invocation, emitting its steps. Returns the tool message."""
        args = decode_arguments(call.arguments)
        emit(Step(type=StepType.TOOL_CALL, content=f"Calling {call.name}", tool_name=call.name, tool_args=args))

        start = time.monotonic()
        try:
            result = self._registry.execute(call.name, args)
        except CapabilityError as exc:
            logger.info("Capability %s failed: %s", call.name, exc)
            emit(Step(type=StepType.ERROR, content=f"Tool error: {exc}", tool_name=call.name))
            return _tool_message(call, {"error": str(exc)})
        except Exception as exc:
            logger.exception("Capability %s raised unexpectedly", call.name)
            emit(Step(type=StepType.ERROR, content=f"Tool error: {exc}", tool_name=call.name))
            return _tool_message(call, {"error": str(exc)})

        emit(Step(
            type=StepType.TOOL_RESULT,
            content=f"Result from {call.name}",
            tool_name=call.name,
            tool_result=result,
            duration_ms=(time.monotonic() - start) * 1000,
        ))
        return _tool_message(call, result)
