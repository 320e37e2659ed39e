"""Council orchestration: resolve role models, then intake, review, debate, verdict."""

import asyncio
import dataclasses
import logging
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from agent_council.backends.base import InferenceClient
from agent_council.findings import extract_findings, extract_verifications
from agent_council.models import (
    CouncilMessage,
    CouncilSession,
    Finding,
    Phase,
    RoleConfig,
    SessionStatus,
)
from agent_council.preprocessor import preprocess_code
from agent_council.verdict import build_verdict_prompt, format_findings_summary, local_verdict, model_verdict
from config.config_loader import CouncilConfig

logger = logging.getLogger(__name__)

NO_MODELS_MESSAGE = (
    "No council role could be matched to an available model. "
    "Check that the backend is reachable and the configured models are installed."
)
CANCELLED_MESSAGE = "Council run cancelled."
PHASE_ROLES = ("moderator", "verifier")


def _model_matches(candidate: str, available: str) -> bool:
    """Exact match, or an untagged name matching any tag (`llama3` ~ `llama3:latest`)."""
    if candidate == available:
        return True
    return ":" not in candidate and available.split(":", 1)[0] == candidate


def resolve_roles(role_configs: Iterable[RoleConfig], available: list[str]) -> Mapping[str, str]:
    """Map each role to the first of its candidate models that is available.

    Roles with no available candidate are left out. The result is read-only.
    """
    resolved: dict[str, str] = {}
    for config in role_configs:
        for candidate in config.candidates:
            match = next((name for name in available if _model_matches(candidate, name)), None)
            if match is not None:
                resolved[config.role] = match
                break
        else:
            logger.warning("No available model for role %s (tried %s)", config.role, ", ".join(config.candidates))
    return MappingProxyType(resolved)


class CouncilOrchestrator:
    """Runs one code artifact through the phased council review.

    Every role invocation is fault-isolated: a failing role emits an error
    message and contributes nothing, and the session moves on. Only an empty
    role resolution or cancellation ends the session early, back in `idle`.
    """

    def __init__(
        self,
        client: InferenceClient,
        config: CouncilConfig,
        on_update: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._on_update = on_update
        self._session = CouncilSession(id="", input_artifact="")
        self._role_models: Mapping[str, str] = MappingProxyType({})

    # --- session bookkeeping ---

    def _update(self, **changes: Any) -> None:
        if self._on_update:
            self._on_update(changes)

    def _set_status(self, status: SessionStatus) -> None:
        self._session.status = status
        self._update(status=status)

    def _add_message(self, role: str, content: str, phase: Phase) -> str:
        message = CouncilMessage(id=f"{role}-{uuid.uuid4().hex[:8]}", agent_role=role, content=content, phase=phase)
        self._session.messages.append(message)
        self._update(messages=list(self._session.messages))
        return message.id

    def _replace_message(self, message_id: str, content: str) -> None:
        messages = self._session.messages
        for index, message in enumerate(messages):
            if message.id == message_id:
                messages[index] = dataclasses.replace(message, content=content)
                self._update(messages=list(messages))
                return
        raise KeyError(message_id)

    def _cancelled(self, cancel_event: asyncio.Event | None, phase: Phase) -> bool:
        if cancel_event is None or not cancel_event.is_set():
            return False
        logger.info("Council session %s cancelled before %s", self._session.id, phase.value)
        self._add_message("moderator", CANCELLED_MESSAGE, phase)
        self._set_status(SessionStatus.IDLE)
        return True

    # --- role invocation ---

    async def _call_role(self, role: str, prompt: str, phase: Phase) -> str | None:
        """Stream one role's answer into a single growing message.

        Never raises. Returns None when the role is unavailable or fails.
        """
        model = self._role_models.get(role)
        if model is None:
            return None

        messages = [
            {"role": "system", "content": self._config.roles[role].system_prompt},
            {"role": "user", "content": prompt},
        ]
        message_id: str | None = None
        content = ""
        start = time.monotonic()
        try:
            async for chunk in self._client.chat_stream(model, messages):
                if not chunk.content:
                    continue
                content += chunk.content
                if message_id is None:
                    message_id = self._add_message(role, content, phase)
                else:
                    self._replace_message(message_id, content)
        except Exception as exc:
            logger.warning("Role %s (%s) failed in %s: %s", role, model, phase.value, exc)
            self._add_message(role, f"{role} failed: {exc}. Continuing without it.", phase)
            return None

        logger.info("Role %s (%s) answered in %.2fs, %d chars", role, model, time.monotonic() - start, len(content))
        if not content:
            self._add_message(role, f"{role} returned an empty answer.", phase)
        return content

    async def _review(self, role: str, prompt: str, limit: asyncio.Semaphore) -> list[Finding]:
        async with limit:
            raw = await self._call_role(role, prompt, Phase.REVIEW)
        if not raw:
            return []
        return extract_findings(raw, role)

    # --- phases ---

    async def run(self, code: str, cancel_event: asyncio.Event | None = None) -> CouncilSession:
        """Review `code` and return the finished (or aborted) session."""
        session = CouncilSession(id=f"council_{uuid.uuid4().hex[:12]}", input_artifact=code)
        self._session = session
        self._update(id=session.id, input_artifact=code, status=session.status)

        try:
            available = await self._client.list_models()
        except Exception as exc:
            logger.warning("Could not list models from %s: %s", self._client.name(), exc)
            available = []

        self._role_models = resolve_roles(self._config.roles.values(), available)
        if not self._role_models:
            self._add_message("moderator", NO_MODELS_MESSAGE, Phase.INTAKE)
            self._set_status(SessionStatus.IDLE)
            return session
        session.role_models = dict(self._role_models)
        self._update(role_models=dict(self._role_models))
        logger.info("Council roles: %s", ", ".join(f"{r}={m}" for r, m in self._role_models.items()))

        # Intake
        if self._cancelled(cancel_event, Phase.INTAKE):
            return session
        self._set_status(SessionStatus.INTAKE)
        preprocessed = preprocess_code(code)
        self._add_message("moderator", "Analyzing code structure...", Phase.INTAKE)
        code_map = await self._call_role(
            "moderator",
            self._config.prompts.intake.format(summary=preprocessed.summary, code=code),
            Phase.INTAKE,
        )
        session.code_map = code_map or preprocessed.summary
        self._update(code_map=session.code_map)

        # Review
        if self._cancelled(cancel_event, Phase.REVIEW):
            return session
        self._set_status(SessionStatus.REVIEWING)
        reviewers = [role for role in self._config.roles if role not in PHASE_ROLES and role in self._role_models]
        self._add_message("moderator", f"Dispatching {len(reviewers)} review agents...", Phase.REVIEW)
        review_prompt = self._config.prompts.review.format(code=code)
        limit = asyncio.Semaphore(max(1, self._config.max_parallel_reviews))
        results = await asyncio.gather(*(self._review(role, review_prompt, limit) for role in reviewers))
        for findings in results:
            session.findings.extend(findings)
        self._update(findings=list(session.findings))
        if not session.findings:
            self._add_message("moderator", "No findings collected. The review may be incomplete.", Phase.REVIEW)

        # Debate
        if self._cancelled(cancel_event, Phase.DEBATE):
            return session
        self._set_status(SessionStatus.DEBATING)
        self._add_message("moderator", "Cross-examining findings...", Phase.DEBATE)
        verification = await self._call_role(
            "verifier",
            self._config.prompts.debate.format(code=code, findings=format_findings_summary(session.findings)),
            Phase.DEBATE,
        )
        if verification:
            session.verifications.extend(extract_verifications(verification))
            self._update(verifications=list(session.verifications))
        else:
            self._add_message("verifier", "Skipping verification, using unverified findings.", Phase.DEBATE)

        # Verdict
        if self._cancelled(cancel_event, Phase.VERDICT):
            return session
        self._set_status(SessionStatus.COMPLETE)
        self._add_message("moderator", "Producing final verdict...", Phase.VERDICT)
        synthesis = await self._call_role(
            "moderator",
            build_verdict_prompt(self._config.prompts, session.code_map, session.findings),
            Phase.VERDICT,
        )
        if synthesis:
            session.verdict = model_verdict(synthesis, self._role_models["moderator"], session.findings)
        else:
            self._add_message("moderator", "Verdict synthesis unavailable. Showing raw findings instead.", Phase.VERDICT)
            session.verdict = local_verdict(session.findings)

        session.completed_at = time.time()
        self._update(verdict=session.verdict, completed_at=session.completed_at)
        logger.info(
            "Council session %s complete: %d findings, %d verifications",
            session.id, len(session.findings), len(session.verifications),
        )
        return session
