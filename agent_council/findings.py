"""Tolerant extraction of structured findings from free-form model output."""

import json
import logging
from collections.abc import Callable
from typing import Any

from agent_council.models import SEVERITIES, Finding, Verification

logger = logging.getLogger(__name__)

DEFAULT_SEVERITY = "P2"
DEFAULT_CONFIDENCE = 0.5
VERIFICATION_VERDICTS = ("VERIFIED", "WEAK", "SPECULATION")


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the bracket closing text[start], or None if never closed."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json_array(text: str, accept: Callable[[list[Any]], bool] | None = None) -> list[Any] | None:
    """Return the first well-formed JSON array embedded in text.

    Each '[' is tried in order; a candidate is its balanced span (nesting
    depth with string and escape state tracked). The first span that decodes
    to a list, and passes `accept` when given, wins. Returns None when no
    candidate qualifies.
    """
    start = text.find("[")
    while start != -1:
        end = _balanced_end(text, start)
        if end is not None:
            try:
                parsed = json.loads(text[start:end])
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list) and (accept is None or accept(parsed)):
                return parsed
        start = text.find("[", start + 1)
    return None


def _has_object(items: list[Any]) -> bool:
    return any(isinstance(item, dict) for item in items)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _severity(value: Any) -> str:
    severity = _text(value).strip().upper()
    return severity if severity in SEVERITIES else DEFAULT_SEVERITY


def _confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if confidence != confidence:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, confidence))


def _where(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, str) and value:
        return {"location": value}
    return None


def extract_findings(raw: str, role: str) -> list[Finding]:
    """Extract the findings a reviewer role produced.

    Never raises. The first well-formed array holding at least one object is
    used, so bracketed prose like `[1]` is skipped; without one there are no
    findings.
    Ids are `<ROLE>-NNN` by position among the object elements, so any
    `id` or `agentRole` the model wrote is ignored.
    """
    items = extract_json_array(raw, accept=_has_object)
    if items is None:
        logger.info("No findings array in %s output", role)
        return []

    findings: list[Finding] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        patch = item.get("patch_snippet", item.get("patchSnippet"))
        findings.append(Finding(
            id=f"{role.upper()}-{len(findings) + 1:03d}",
            agent_role=role,
            category=_text(item.get("category"), "general"),
            severity=_severity(item.get("severity")),
            confidence=_confidence(item.get("confidence", DEFAULT_CONFIDENCE)),
            claim=_text(item.get("claim")),
            evidence=_text(item.get("evidence")),
            impact=_text(item.get("impact")),
            fix=_text(item.get("fix")),
            where=_where(item.get("where")),
            patch_snippet=_text(patch) if patch is not None else None,
            tradeoff=_text(item["tradeoff"]) if item.get("tradeoff") is not None else None,
        ))
    logger.debug("Extracted %d findings from %s output", len(findings), role)
    return findings


def extract_verifications(raw: str) -> list[Verification]:
    """Parse the verifier's verdicts. Entries without a finding id are skipped."""
    items = extract_json_array(raw, accept=_has_object) or []
    verifications: list[Verification] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        finding_id = _text(item.get("finding_id", item.get("findingId"))).strip()
        if not finding_id:
            continue
        verdict = _text(item.get("verdict")).strip().upper()
        verifications.append(Verification(
            finding_id=finding_id,
            verdict=verdict if verdict in VERIFICATION_VERDICTS else "SPECULATION",
            notes=_text(item.get("notes")),
            required_evidence=_text(item.get("required_evidence", item.get("requiredEvidence"))),
        ))
    return verifications
