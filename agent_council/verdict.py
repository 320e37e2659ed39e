"""Verdict synthesis helpers: finding summaries, ranking, prompt building."""

import json
import logging
from dataclasses import asdict

from agent_council.models import SEVERITIES, CouncilVerdict, Finding
from config.config_loader import PromptsConfig

logger = logging.getLogger(__name__)


def format_findings_summary(findings: list[Finding]) -> str:
    """One `[id] claim (severity)` line per finding, as given to the verifier."""
    return "\n".join(f"[{f.id}] {f.claim} ({f.severity})" for f in findings)


def rank_findings(findings: list[Finding]) -> tuple[tuple[str, tuple[Finding, ...]], ...]:
    """Group findings by severity (P0 first), most confident first within a group.

    Severities with no findings are omitted.
    """
    ranked = []
    for severity in SEVERITIES:
        group = sorted((f for f in findings if f.severity == severity), key=lambda f: -f.confidence)
        if group:
            ranked.append((severity, tuple(group)))
    return tuple(ranked)


def build_verdict_prompt(prompts: PromptsConfig, code_map: str, findings: list[Finding]) -> str:
    findings_json = json.dumps([asdict(f) for f in findings], indent=2)
    return prompts.verdict.format(code_map=code_map, findings=findings_json)


def local_verdict(findings: list[Finding]) -> CouncilVerdict:
    """Verdict built without a model, used when the moderator cannot synthesize."""
    ranked = rank_findings(findings)
    logger.info("Building local verdict from %d findings", len(findings))
    if not findings:
        summary = "No findings were collected."
    else:
        counts = ", ".join(f"{len(group)} {severity}" for severity, group in ranked)
        summary = f"{len(findings)} findings ({counts}). Showing raw findings ranked by severity."
    return CouncilVerdict(summary=summary, ranked_actions=ranked, synthesized_by=None)


def model_verdict(content: str, model: str, findings: list[Finding]) -> CouncilVerdict:
    return CouncilVerdict(summary=content, ranked_actions=rank_findings(findings), synthesized_by=model)
