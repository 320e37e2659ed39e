"""Pure dataclasses shared by the runner and the council. No logic, no deps."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# --- Inference boundary ---

@dataclass(frozen=True)
class ToolInvocation:
    id: str
    name: str              # qualified capability name, e.g. "tickets_searchTickets"
    arguments: str         # raw argument payload, decoded by the runner


@dataclass(frozen=True)
class ChatResponse:
    model: str
    content: str
    tool_calls: tuple[ToolInvocation, ...] = ()
    prompt_tokens: int = 0
    completion_tokens: int = 0
    duration_ms: float | None = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class ChatChunk:
    content: str
    done: bool = False


# --- Council ---

class SessionStatus(str, Enum):
    IDLE = "idle"
    INTAKE = "intake"
    REVIEWING = "reviewing"
    DEBATING = "debating"
    COMPLETE = "complete"


class Phase(str, Enum):
    INTAKE = "intake"
    REVIEW = "review"
    DEBATE = "debate"
    VERDICT = "verdict"


SEVERITIES = ("P0", "P1", "P2", "P3")


@dataclass(frozen=True)
class RoleConfig:
    role: str
    preferred_model: str
    fallback_models: tuple[str, ...] = ()
    system_prompt: str = ""

    @property
    def candidates(self) -> tuple[str, ...]:
        return (self.preferred_model, *self.fallback_models)


@dataclass(frozen=True)
class CouncilMessage:
    id: str
    agent_role: str
    content: str
    phase: Phase
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Finding:
    id: str
    agent_role: str
    category: str
    severity: str          # "P0".."P3"
    confidence: float
    claim: str
    evidence: str = ""
    impact: str = ""
    fix: str = ""
    where: dict[str, Any] | None = None
    patch_snippet: str | None = None
    tradeoff: str | None = None


@dataclass(frozen=True)
class Verification:
    finding_id: str
    verdict: str           # "VERIFIED", "WEAK" or "SPECULATION"
    notes: str = ""
    required_evidence: str = ""


@dataclass(frozen=True)
class CouncilVerdict:
    summary: str
    ranked_actions: tuple[tuple[str, tuple[Finding, ...]], ...]
    synthesized_by: str | None = None    # model name, None when built locally


@dataclass
class CouncilSession:
    id: str
    input_artifact: str
    status: SessionStatus = SessionStatus.IDLE
    code_map: str | None = None
    findings: list[Finding] = field(default_factory=list)
    messages: list[CouncilMessage] = field(default_factory=list)
    verifications: list[Verification] = field(default_factory=list)
    role_models: dict[str, str] = field(default_factory=dict)
    verdict: CouncilVerdict | None = None
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None
