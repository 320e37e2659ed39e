"""Tests for agent_council/verdict.py."""

import json

from agent_council.models import Finding
from agent_council.verdict import (
    build_verdict_prompt,
    format_findings_summary,
    local_verdict,
    model_verdict,
    rank_findings,
)


def _finding(fid: str, severity: str, confidence: float = 0.5, claim: str = "claim") -> Finding:
    return Finding(id=fid, agent_role="sentinel", category="security",
                   severity=severity, confidence=confidence, claim=claim)


def test_format_findings_summary():
    findings = [_finding("SENTINEL-001", "P0", claim="eval on input"), _finding("SENTINEL-002", "P3", claim="typo")]

    assert format_findings_summary(findings) == "[SENTINEL-001] eval on input (P0)\n[SENTINEL-002] typo (P3)"
    assert format_findings_summary([]) == ""


def test_rank_groups_by_severity_then_confidence():
    findings = [
        _finding("A", "P2", 0.9),
        _finding("B", "P0", 0.4),
        _finding("C", "P0", 0.8),
        _finding("D", "P2", 0.1),
    ]

    ranked = rank_findings(findings)

    assert [sev for sev, _ in ranked] == ["P0", "P2"]
    assert [f.id for f in ranked[0][1]] == ["C", "B"]
    assert [f.id for f in ranked[1][1]] == ["A", "D"]


def test_rank_empty():
    assert rank_findings([]) == ()


def test_build_verdict_prompt(sample_prompts_config):
    findings = [_finding("SENTINEL-001", "P1", claim="race in cache")]

    prompt = build_verdict_prompt(sample_prompts_config, "one module", findings)

    assert prompt.startswith("CODE MAP:\none module\n\nFINDINGS:\n")
    payload = json.loads(prompt.split("FINDINGS:\n", 1)[1])
    assert payload[0]["id"] == "SENTINEL-001"
    assert payload[0]["claim"] == "race in cache"


def test_local_verdict_counts():
    findings = [_finding("A", "P1"), _finding("B", "P1"), _finding("C", "P3")]

    verdict = local_verdict(findings)

    assert verdict.synthesized_by is None
    assert verdict.summary == "3 findings (2 P1, 1 P3). Showing raw findings ranked by severity."
    assert [sev for sev, _ in verdict.ranked_actions] == ["P1", "P3"]


def test_local_verdict_without_findings():
    verdict = local_verdict([])

    assert verdict.summary == "No findings were collected."
    assert verdict.ranked_actions == ()


def test_model_verdict_keeps_text_and_model():
    findings = [_finding("A", "P0")]

    verdict = model_verdict("Fix A now.", "llama3:8b", findings)

    assert verdict.summary == "Fix A now."
    assert verdict.synthesized_by == "llama3:8b"
    assert verdict.ranked_actions == (("P0", (findings[0],)),)
