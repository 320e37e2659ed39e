"""Tests for agent_council/council.py."""

import asyncio
import dataclasses
import json

import pytest

from agent_council.backends.base import BackendUnavailable
from agent_council.council import CANCELLED_MESSAGE, NO_MODELS_MESSAGE, CouncilOrchestrator, resolve_roles
from agent_council.models import Phase, RoleConfig, SessionStatus
from tests.conftest import ROLE_MODELS, MockClient, UnreachableClient


def _findings_json(*claims: str, severity: str = "P1") -> str:
    return json.dumps([{"claim": c, "severity": severity, "confidence": 0.7} for c in claims])


def _full_replies() -> dict:
    return {
        "mod-model": ["Code map: one loader, one cache.", "Fix eval first."],
        "arch-model": _findings_json("Cache mixes concerns"),
        "sent-model": f"Found these: {_findings_json('eval on user input', severity='P0')}",
        "opt-model": "Nothing to report.",
        "maint-model": _findings_json("No tests", "No logging", severity="P2"),
        "verif-model": '[{"finding_id": "SENTINEL-001", "verdict": "VERIFIED", "notes": "eval(key)"}]',
    }


# --- resolve_roles ---

def test_resolve_prefers_first_available():
    roles = [RoleConfig("architect", "big-model", ("mid-model", "small-model"))]

    resolved = resolve_roles(roles, ["small-model", "mid-model"])

    assert resolved == {"architect": "mid-model"}


def test_resolve_untagged_name_matches_tagged_model():
    roles = [RoleConfig("sentinel", "llama3", ())]

    assert resolve_roles(roles, ["llama3:latest"]) == {"sentinel": "llama3:latest"}


def test_resolve_tagged_name_requires_exact_tag():
    roles = [RoleConfig("sentinel", "phi4:14b", ())]

    assert resolve_roles(roles, ["phi4:latest"]) == {}


def test_resolve_no_prefix_overreach():
    roles = [RoleConfig("optimizer", "phi3", ())]

    assert resolve_roles(roles, ["phi3.5:latest"]) == {}


def test_resolve_skips_unavailable_roles():
    roles = [RoleConfig("architect", "a"), RoleConfig("verifier", "v")]

    assert resolve_roles(roles, ["v"]) == {"verifier": "v"}


def test_resolved_mapping_is_read_only():
    resolved = resolve_roles([RoleConfig("architect", "a")], ["a"])

    with pytest.raises(TypeError):
        resolved["architect"] = "b"  # type: ignore[index]


# --- full session ---

async def test_full_session(sample_council_config, sample_code):
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())
    updates: list[dict] = []

    session = await CouncilOrchestrator(client, sample_council_config, on_update=updates.append).run(sample_code)

    assert session.status is SessionStatus.COMPLETE
    assert session.code_map.startswith("Code map:")
    assert [f.id for f in session.findings] == [
        "ARCHITECT-001", "SENTINEL-001", "MAINTAINER-001", "MAINTAINER-002",
    ]
    assert [v.finding_id for v in session.verifications] == ["SENTINEL-001"]
    assert session.verdict.synthesized_by == "mod-model"
    assert session.verdict.summary.startswith("Fix eval first.")
    assert session.verdict.ranked_actions[0][0] == "P0"
    assert session.completed_at is not None
    assert session.role_models == ROLE_MODELS

    statuses = [u["status"] for u in updates if "status" in u]
    assert statuses == [
        SessionStatus.IDLE, SessionStatus.INTAKE, SessionStatus.REVIEWING,
        SessionStatus.DEBATING, SessionStatus.COMPLETE,
    ]


async def test_prompts_reach_each_role(sample_council_config, sample_code):
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())

    await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    calls = {}
    for model, messages in client.stream_calls:
        calls.setdefault(model, []).append(messages)
    intake, verdict = calls["mod-model"]
    assert intake[0] == {"role": "system", "content": "You are the moderator."}
    assert "Language: python" in intake[1]["content"]
    assert sample_code in calls["arch-model"][0][1]["content"]
    debate_prompt = calls["verif-model"][0][1]["content"]
    assert "[SENTINEL-001] eval on user input (P0)" in debate_prompt
    assert "MAINTAINER-002" in verdict[1]["content"]


async def test_all_roles_unresolved_aborts_to_idle(sample_council_config, sample_code):
    client = UnreachableClient(stream_replies=_full_replies())

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert session.status is SessionStatus.IDLE
    assert len(session.messages) == 1
    assert session.messages[0].content == NO_MODELS_MESSAGE
    assert session.code_map is None
    assert session.findings == []
    assert client.stream_calls == []


async def test_no_matching_models_aborts_to_idle(sample_council_config, sample_code):
    client = MockClient(models=["something-else"])

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert session.status is SessionStatus.IDLE
    assert [m.content for m in session.messages] == [NO_MODELS_MESSAGE]


async def test_fallback_model_serves_several_roles(sample_council_config, sample_code):
    client = MockClient(models=["shared-fallback"], stream_replies={"shared-fallback": "[]"})

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert set(session.role_models.values()) == {"shared-fallback"}
    assert session.status is SessionStatus.COMPLETE


async def test_role_without_array_contributes_nothing(sample_council_config, sample_code):
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert not any(f.agent_role == "optimizer" for f in session.findings)


async def test_custom_named_review_role_is_dispatched(sample_council_config, sample_code):
    roles = {
        role: RoleConfig(role=role, preferred_model=f"{role}-m", system_prompt=f"You are the {role}.")
        for role in ("moderator", "security_auditor", "verifier")
    }
    config = dataclasses.replace(sample_council_config, roles=roles)
    client = MockClient(
        models=[f"{role}-m" for role in roles],
        stream_replies={
            "moderator-m": ["Code map.", "Verdict."],
            "security_auditor-m": _findings_json("Secrets in logs", severity="P0"),
            "verifier-m": "[]",
        },
    )

    session = await CouncilOrchestrator(client, config).run(sample_code)

    called = [model for model, _ in client.stream_calls]
    assert called.count("security_auditor-m") == 1
    assert [f.id for f in session.findings] == ["SECURITY_AUDITOR-001"]
    assert any(m.content == "Dispatching 1 review agents..." for m in session.messages)


async def test_review_roles_run_in_parallel(sample_council_config, sample_code):
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())

    await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert client.max_in_flight == 4


async def test_review_parallelism_is_bounded(sample_council_config, sample_code):
    config = dataclasses.replace(sample_council_config, max_parallel_reviews=2)
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())

    session = await CouncilOrchestrator(client, config).run(sample_code)

    assert client.max_in_flight == 2
    assert session.status is SessionStatus.COMPLETE


async def test_findings_merge_in_role_order(sample_council_config, sample_code):
    replies = _full_replies()
    replies["arch-model"] = " ".join(["slow"] * 50) + " " + _findings_json("late architect")
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=replies)

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert session.findings[0].id == "ARCHITECT-001"


async def test_failing_reviewer_is_isolated(sample_council_config, sample_code):
    replies = _full_replies()
    replies["sent-model"] = BackendUnavailable("mock", "stream reset")
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=replies)

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert session.status is SessionStatus.COMPLETE
    assert {f.agent_role for f in session.findings} == {"architect", "maintainer"}
    failure = [m for m in session.messages if m.agent_role == "sentinel" and "failed" in m.content]
    assert len(failure) == 1
    assert failure[0].phase is Phase.REVIEW


async def test_intake_failure_uses_preprocessor_summary(sample_council_config, sample_code):
    replies = _full_replies()
    replies["mod-model"] = [BackendUnavailable("mock", "down"), "Verdict text"]
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=replies)

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert session.code_map.startswith("Language: python")
    assert session.status is SessionStatus.COMPLETE


async def test_missing_moderator_builds_local_verdict(sample_council_config, sample_code):
    models = [m for r, m in ROLE_MODELS.items() if r != "moderator"]
    client = MockClient(models=models, stream_replies=_full_replies())
    config = dataclasses.replace(
        sample_council_config,
        roles={r: dataclasses.replace(c, fallback_models=()) for r, c in sample_council_config.roles.items()},
    )

    session = await CouncilOrchestrator(client, config).run(sample_code)

    assert "moderator" not in session.role_models
    assert session.code_map.startswith("Language: python")
    assert session.verdict.synthesized_by is None
    assert [sev for sev, _ in session.verdict.ranked_actions] == ["P0", "P1", "P2"]
    assert any("raw findings" in m.content for m in session.messages)


async def test_verifier_failure_keeps_unverified_findings(sample_council_config, sample_code):
    replies = _full_replies()
    replies["verif-model"] = BackendUnavailable("mock", "overloaded")
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=replies)

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code)

    assert session.verifications == []
    assert len(session.findings) == 4
    assert session.status is SessionStatus.COMPLETE


async def test_streaming_replaces_message_in_place(sample_council_config, sample_code):
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())
    snapshots: list[list] = []

    def on_update(changes: dict) -> None:
        if "messages" in changes:
            snapshots.append(changes["messages"])

    session = await CouncilOrchestrator(client, sample_council_config, on_update=on_update).run(sample_code)

    architect = [m for m in session.messages if m.agent_role == "architect"]
    assert len(architect) == 1
    final = architect[0]
    assert final.content.strip() == _findings_json("Cache mixes concerns")

    versions = [m.content for snap in snapshots for m in snap if m.id == final.id]
    assert len(versions) > 1
    assert all(final.content.startswith(v) for v in versions)
    lengths = [len(v) for v in versions]
    assert lengths == sorted(lengths)


async def test_cancel_before_review(sample_council_config, sample_code):
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())
    cancel = asyncio.Event()

    def on_update(changes: dict) -> None:
        if "code_map" in changes:
            cancel.set()

    session = await CouncilOrchestrator(client, sample_council_config, on_update=on_update).run(sample_code, cancel)

    assert session.status is SessionStatus.IDLE
    assert session.messages[-1].content == CANCELLED_MESSAGE
    assert session.findings == []
    assert session.completed_at is None
    assert [model for model, _ in client.stream_calls] == ["mod-model"]


async def test_cancel_before_start_runs_nothing(sample_council_config, sample_code):
    client = MockClient(models=list(ROLE_MODELS.values()), stream_replies=_full_replies())
    cancel = asyncio.Event()
    cancel.set()

    session = await CouncilOrchestrator(client, sample_council_config).run(sample_code, cancel)

    assert session.status is SessionStatus.IDLE
    assert client.stream_calls == []
