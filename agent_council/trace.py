"""Step/Trace model plus the read-only tooling built on sealed traces.

A Trace is appended to by the runner until it is sealed. Everything else in
this module (replay, profiling, evaluation, the history store) only reads.
"""

import logging
import time
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

MAX_STORED_TRACES = 50


class StepType(str, Enum):
    USER = "user"
    PLANNING = "planning"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    RESPONSE = "response"
    ERROR = "error"


TERMINAL_STEP_TYPES = frozenset({StepType.RESPONSE, StepType.ERROR})


class TraceSealedError(RuntimeError):
    """Raised when something tries to modify a sealed Trace."""


def new_step_id() -> str:
    return f"step_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Step:
    type: StepType
    content: str
    id: str = field(default_factory=new_step_id)
    timestamp: float = field(default_factory=time.time)
    tool_name: str | None = None
    tool_args: dict[str, Any] | None = None
    tool_result: Any = None
    tokens: int | None = None
    duration_ms: float | None = None


class Trace:
    """Ordered history of Steps for one runner execution."""

    def __init__(self, query: str, model: str, trace_id: str | None = None) -> None:
        self.id = trace_id or f"trace_{uuid.uuid4().hex[:12]}"
        self.query = query
        self.model = model
        self.start_time = time.time()
        self.end_time: float | None = None
        self.total_tokens = 0
        self.success = False
        self._steps: list[Step] = []

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(self._steps)

    @property
    def sealed(self) -> bool:
        return self.end_time is not None

    def append(self, step: Step) -> None:
        if self.sealed:
            raise TraceSealedError(f"Trace {self.id} is sealed")
        self._steps.append(step)

    def add_tokens(self, count: int) -> None:
        if self.sealed:
            raise TraceSealedError(f"Trace {self.id} is sealed")
        self.total_tokens += count

    def seal(self, success: bool) -> None:
        if self.sealed:
            raise TraceSealedError(f"Trace {self.id} is already sealed")
        self.success = success
        self.end_time = time.time()

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    def to_dict(self) -> dict[str, Any]:
        steps = []
        for step in self._steps:
            data = asdict(step)
            data["type"] = step.type.value
            steps.append(data)
        return {
            "id": self.id,
            "query": self.query,
            "model": self.model,
            "steps": steps,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "total_tokens": self.total_tokens,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trace":
        trace = cls(query=data["query"], model=data["model"], trace_id=data["id"])
        trace.start_time = data["start_time"]
        trace.total_tokens = data.get("total_tokens", 0)
        for raw in data.get("steps", []):
            trace._steps.append(Step(**{**raw, "type": StepType(raw["type"])}))
        if data.get("end_time") is not None:
            trace.success = bool(data.get("success", False))
            trace.end_time = data["end_time"]
        return trace

    def __repr__(self) -> str:
        return f"Trace(id={self.id!r}, steps={len(self._steps)}, sealed={self.sealed}, success={self.success})"


# --- Replay ---

def replay(trace: Trace, k: int) -> tuple[Step, ...]:
    """Return the first k steps, i.e. the state of the run after step k."""
    if k < 0:
        raise ValueError("k must be >= 0")
    return trace.steps[:k]


# --- Profiling ---

@dataclass(frozen=True)
class TraceProfile:
    step_counts: dict[str, int]
    tool_calls: int
    unique_tools: int
    tool_usage: dict[str, int]
    total_tokens: int
    response_tokens: int
    duration_ms: float | None
    tokens_per_step: float


def profile(trace: Trace) -> TraceProfile:
    steps = trace.steps
    step_counts = Counter(s.type.value for s in steps)
    tool_usage = Counter(s.tool_name for s in steps if s.type is StepType.TOOL_CALL and s.tool_name)
    response_tokens = sum(s.tokens or 0 for s in steps if s.type is StepType.RESPONSE)
    return TraceProfile(
        step_counts=dict(step_counts),
        tool_calls=step_counts.get(StepType.TOOL_CALL.value, 0),
        unique_tools=len(tool_usage),
        tool_usage=dict(tool_usage),
        total_tokens=trace.total_tokens,
        response_tokens=response_tokens,
        duration_ms=trace.duration_ms,
        tokens_per_step=trace.total_tokens / len(steps) if steps else 0.0,
    )


# --- Evaluation ---

@dataclass(frozen=True)
class EvaluationResult:
    criterion: str
    passed: bool
    score: int
    message: str


def _goal_achieved(trace: Trace) -> EvaluationResult:
    has_response = any(s.type is StepType.RESPONSE for s in trace.steps)
    has_error = any(s.type is StepType.ERROR for s in trace.steps)
    ok = has_response and not has_error
    return EvaluationResult(
        "goal_achieved", ok, 100 if ok else 0,
        "Completed successfully" if ok else "Failed with errors",
    )


def _tool_efficiency(trace: Trace) -> EvaluationResult:
    tool_names = [s.tool_name for s in trace.steps if s.type is StepType.TOOL_CALL]
    unique = len(set(tool_names))
    ratio = unique / len(tool_names) if tool_names else 1.0
    score = round(ratio * 100)
    return EvaluationResult(
        "tool_efficiency", score >= 70, score,
        f"{len(tool_names)} calls, {unique} unique tools",
    )


def _response_quality(trace: Trace) -> EvaluationResult:
    response = next((s for s in trace.steps if s.type is StepType.RESPONSE), None)
    if response is None:
        return EvaluationResult("response_quality", False, 0, "No response generated")
    length = len(response.content)
    score = min(100, round(length / 500 * 100))
    return EvaluationResult("response_quality", score >= 50, score, f"{length} characters")


def _token_efficiency(trace: Trace) -> EvaluationResult:
    steps = trace.steps
    per_step = trace.total_tokens / len(steps) if steps else 0.0
    # ~200 tokens per step is the target
    score = round(max(0.0, 100 - abs(per_step - 200) / 10))
    return EvaluationResult("token_efficiency", score >= 50, score, f"{round(per_step)} tokens/step avg")


def _error_handling(trace: Trace) -> EvaluationResult:
    errors = [s for s in trace.steps if s.type is StepType.ERROR]
    if not errors:
        return EvaluationResult("error_handling", True, 100, "No errors encountered")
    recovered = any(s.type is StepType.RESPONSE for s in trace.steps)
    return EvaluationResult(
        "error_handling", recovered, 70 if recovered else 30,
        "Recovered from errors" if recovered else f"{len(errors)} unhandled errors",
    )


_CRITERIA = (_goal_achieved, _tool_efficiency, _response_quality, _token_efficiency, _error_handling)


def evaluate(trace: Trace) -> list[EvaluationResult]:
    if not trace.sealed:
        raise ValueError(f"Trace {trace.id} is not sealed yet")
    return [check(trace) for check in _CRITERIA]


def overall_score(results: list[EvaluationResult]) -> int:
    if not results:
        return 0
    return round(sum(r.score for r in results) / len(results))


# --- History ---

class TraceStore:
    """In-memory trace history, newest first."""

    def __init__(self, max_traces: int = MAX_STORED_TRACES) -> None:
        self._max = max_traces
        self._traces: list[Trace] = []

    def add(self, trace: Trace) -> None:
        if not trace.sealed:
            raise ValueError(f"Only sealed traces can be stored, got {trace.id}")
        self._traces.insert(0, trace)
        if len(self._traces) > self._max:
            dropped = self._traces.pop()
            logger.debug("Trace store full, dropped %s", dropped.id)

    def get(self, trace_id: str) -> Trace | None:
        return next((t for t in self._traces if t.id == trace_id), None)

    def delete(self, trace_id: str) -> None:
        self._traces = [t for t in self._traces if t.id != trace_id]

    def clear(self) -> None:
        self._traces.clear()

    def recent(self) -> list[Trace]:
        return list(self._traces)

    def __len__(self) -> int:
        return len(self._traces)
