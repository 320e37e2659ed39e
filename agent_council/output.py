"""Rich console output and markdown file save for traces and council reviews."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from agent_council.models import CouncilSession, CouncilVerdict, Finding, Verification
from agent_council.trace import EvaluationResult, Step, StepType, Trace, TraceProfile, overall_score

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STEP_STYLES = {
    StepType.USER: "bold cyan",
    StepType.PLANNING: "dim",
    StepType.TOOL_CALL: "yellow",
    StepType.TOOL_RESULT: "green",
    StepType.RESPONSE: "bold green",
    StepType.ERROR: "bold red",
}

_SEVERITY_STYLES = {"P0": "bold red", "P1": "red", "P2": "yellow", "P3": "dim"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(value: object, limit: int = 200) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


def print_step(step: Step) -> None:
    """Print one step as it is emitted by the runner."""
    if step.type is StepType.RESPONSE:
        console.print(Rule("[bold green]Response[/bold green]"))
        console.print(Markdown(step.content))
        return
    line = Text(f"[{step.type.value}] ", style=_STEP_STYLES[step.type])
    line.append(step.content)
    if step.type is StepType.TOOL_CALL and step.tool_args:
        line.append(f" {_preview(step.tool_args)}", style="dim")
    elif step.type is StepType.TOOL_RESULT:
        line.append(f" {_preview(step.tool_result)}", style="dim")
    console.print(line)


def print_trace_summary(trace: Trace, profile: TraceProfile) -> None:
    status = "[green]success[/green]" if trace.success else "[red]failed[/red]"
    duration = f"{profile.duration_ms / 1000:.1f}s" if profile.duration_ms is not None else "-"
    console.print(
        f"[dim]Trace {trace.id}[/dim] | {status} | [dim]{len(trace.steps)} steps | "
        f"{profile.tool_calls} tool calls ({profile.unique_tools} unique) | "
        f"{profile.total_tokens} tokens | {duration}[/dim]"
    )


def print_evaluation(results: list[EvaluationResult]) -> None:
    table = Table(title=f"Evaluation (overall {overall_score(results)}/100)")
    table.add_column("Criterion")
    table.add_column("Score", justify="right")
    table.add_column("Result")
    table.add_column("Details", style="dim")
    for result in results:
        verdict = "[green]pass[/green]" if result.passed else "[red]fail[/red]"
        table.add_row(result.criterion, str(result.score), verdict, result.message)
    console.print(table)


def print_findings(findings: list[Finding], verifications: list[Verification] | None = None) -> None:
    if not findings:
        console.print("[yellow]No findings.[/yellow]")
        return
    checked = {v.finding_id: v.verdict for v in verifications or []}
    table = Table(title=f"Findings ({len(findings)})")
    table.add_column("ID")
    table.add_column("Sev")
    table.add_column("Conf", justify="right")
    table.add_column("Category")
    table.add_column("Claim")
    table.add_column("Verifier", style="dim")
    for f in findings:
        severity = Text(f.severity, style=_SEVERITY_STYLES.get(f.severity, ""))
        table.add_row(f.id, severity, f"{f.confidence:.2f}", Text(f.category), Text(f.claim), checked.get(f.id, "-"))
    console.print(table)


def print_verdict(verdict: CouncilVerdict) -> None:
    console.print(Rule("[bold green]Council Verdict[/bold green]"))
    by = verdict.synthesized_by or "local ranking"
    console.print(Text(f"Synthesized by: {by}", style="dim"))
    console.print(Markdown(verdict.summary))
    for severity, group in verdict.ranked_actions:
        body = "\n".join(f"[{f.id}] {f.claim}" + (f"\n  fix: {f.fix}" if f.fix else "") for f in group)
        console.print(Panel(Text(body), title=f"[bold]{severity}[/bold]", border_style=_SEVERITY_STYLES.get(severity, "dim")))


def _finding_markdown(f: Finding) -> list[str]:
    lines = [f"### [{f.id}] {f.claim}", ""]
    lines.append(f"*{f.severity} | {f.category} | confidence {f.confidence:.2f} | by {f.agent_role}*")
    lines.append("")
    if f.where:
        lines.append(f"**Where:** {', '.join(f'{k}: {v}' for k, v in f.where.items())}")
    for label, value in (("Evidence", f.evidence), ("Impact", f.impact), ("Fix", f.fix), ("Tradeoff", f.tradeoff)):
        if value:
            lines.append(f"**{label}:** {value}")
    if f.patch_snippet:
        lines += ["", "```", f.patch_snippet, "```"]
    lines.append("")
    return lines


def save_review(session: CouncilSession, output_dir: Path, name: str = "review") -> Path:
    """Save a completed council session as a markdown report.

    Args:
        session: The session returned by the orchestrator.
        output_dir: Directory to save the file in (created if missing).
        name: Filename stem, usually the reviewed file's name.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(name)}.md"

    duration = ""
    if session.completed_at is not None:
        duration = f"{session.completed_at - session.started_at:.1f}s"

    lines: list[str] = [
        f"# Council Review: {name}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Session:** {session.id}",
        f"**Status:** {session.status.value}",
        f"**Roles:** {', '.join(f'{r} ({m})' for r, m in session.role_models.items()) or 'none'}",
        f"**Duration:** {duration or '-'}",
        "",
        "---",
        "",
        "## Code Map",
        "",
        session.code_map or "_not produced_",
        "",
        f"## Findings ({len(session.findings)})",
        "",
    ]
    for finding in session.findings:
        lines += _finding_markdown(finding)

    if session.verifications:
        lines += ["## Verification", "", "| Finding | Verdict | Notes |", "|---|---|---|"]
        for v in session.verifications:
            lines.append(f"| {v.finding_id} | {v.verdict} | {v.notes.replace('|', '/')} |")
        lines.append("")

    if session.verdict is not None:
        by = session.verdict.synthesized_by or "local ranking"
        lines += [f"## Verdict (by {by})", "", session.verdict.summary, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Review saved to: %s", filepath)
    return filepath
