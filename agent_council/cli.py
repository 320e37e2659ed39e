"""Click CLI: config loading, backend selection, agent runs and council reviews."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from agent_council.backends.anthropic_backend import AnthropicChatClient
from agent_council.backends.base import BackendUnavailable, InferenceClient
from agent_council.backends.openai_backend import OpenAIChatClient
from agent_council.capabilities.registry import CapabilityRegistry
from agent_council.capabilities.tickets import TicketsProvider
from agent_council.capabilities.wiki import WikiProvider
from agent_council.council import CouncilOrchestrator, resolve_roles
from agent_council.healthcheck import check_backend, run_health_checks
from agent_council.inputs import load_code_artifact, parse_query_file
from agent_council.models import CouncilSession, SessionStatus
from agent_council.output import (
    print_evaluation,
    print_findings,
    print_step,
    print_trace_summary,
    print_verdict,
    save_review,
)
from agent_council.runner import AgentRunner, RunnerCallbacks, build_system_prompt
from agent_council.trace import Trace, evaluate, profile
from config.config_loader import AppConfig, BackendConfig, load_config

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

BACKEND_CLASSES: dict[str, type[InferenceClient]] = {
    "openai": OpenAIChatClient,
    "anthropic": AnthropicChatClient,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # SDK transport logs drown out ours at DEBUG
    for noisy in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    sys.exit(1)


def build_client(config: BackendConfig) -> InferenceClient:
    """Instantiate the backend named by `backend.sdk`.

    Raises:
        BackendUnavailable: If the sdk is unknown or the client cannot be built.
    """
    client_class = BACKEND_CLASSES.get(config.sdk)
    if client_class is None:
        raise BackendUnavailable(config.name, f"Unknown sdk '{config.sdk}', expected one of {sorted(BACKEND_CLASSES)}")
    return client_class(config)


def build_registry() -> CapabilityRegistry:
    return CapabilityRegistry([TicketsProvider(), WikiProvider()])


def _client_or_exit(config: AppConfig) -> InferenceClient:
    try:
        return build_client(config.backend)
    except BackendUnavailable as exc:
        _fail(str(exc))


async def _run_ask(
    client: InferenceClient,
    registry: CapabilityRegistry,
    config: AppConfig,
    query: str,
    model: str,
    max_iterations: int,
) -> Trace:
    runner = AgentRunner(
        client=client,
        registry=registry,
        model=model,
        system_prompt=build_system_prompt(config.agent.system_prompt, registry),
        max_iterations=max_iterations,
    )
    callbacks = RunnerCallbacks(
        on_step_added=print_step,
        on_error=lambda exc: logger.debug("Run failed: %s", exc),
    )
    return await runner.run(query, callbacks=callbacks)


async def _run_review(client: InferenceClient, config: AppConfig, code: str) -> CouncilSession:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Resolving council models...", total=None)
        findings_seen = 0

        def on_update(changes: dict[str, Any]) -> None:
            nonlocal findings_seen
            status = changes.get("status")
            if isinstance(status, SessionStatus) and status is not SessionStatus.IDLE:
                progress.update(task, description=f"Council phase: {status.value}...")
            if "role_models" in changes:
                roles = ", ".join(f"{r}={m}" for r, m in changes["role_models"].items())
                progress.print(f"[dim]Roles: {roles}[/dim]")
            if "findings" in changes and len(changes["findings"]) != findings_seen:
                findings_seen = len(changes["findings"])
                progress.print(f"[green]OK[/green] Review complete ({findings_seen} findings)")

        orchestrator = CouncilOrchestrator(client, config.council, on_update=on_update)
        return await orchestrator.run(code)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--settings", "settings_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Path to settings.yaml (default: bundled config)")
@click.pass_context
def main(ctx: click.Context, verbose: bool, settings_path: str | None) -> None:
    """Agent Council -- tool-calling agent runs and multi-role code review.

    \b
    Examples:
      agent-council ask "What tickets are open?"
      agent-council ask --file query.md --evaluate
      agent-council review src/app.py
      agent-council models --ping
      agent-council capabilities
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model responses containing
    # Unicode chars don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        ctx.obj = load_config(Path(settings_path)) if settings_path else load_config()
    except (FileNotFoundError, KeyError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


@main.command()
@click.argument("query", required=False)
@click.option("--file", "query_file", type=click.Path(exists=True, dir_okay=False), help="Read query from .md file")
@click.option("--model", default=None, help="Model to run (default: from file frontmatter, then config)")
@click.option("--max-iterations", type=click.IntRange(min=1), default=None,
              help="Tool-calling iteration cap (default: from file frontmatter, then config)")
@click.option("--evaluate", "show_evaluation", is_flag=True, help="Print trace profile and evaluation scores")
@click.pass_obj
def ask(
    config: AppConfig,
    query: str | None,
    query_file: str | None,
    model: str | None,
    max_iterations: int | None,
    show_evaluation: bool,
) -> None:
    """Answer a query with the tool-calling agent.

    Precedence for model and max_iterations: CLI flag > frontmatter > config.
    """
    file_model: str | None = None
    file_iterations: int | None = None
    if query_file:
        try:
            parsed = parse_query_file(Path(query_file))
        except ValueError as exc:
            _fail(str(exc))
        query = parsed.text
        file_model, file_iterations = parsed.model, parsed.max_iterations
    if not query:
        _fail("Provide a QUERY argument or --file.")

    effective_model = model or file_model or config.agent.model
    effective_iterations = max_iterations or file_iterations or config.agent.max_iterations

    client = _client_or_exit(config)
    registry = build_registry()

    console.print(f"\n[bold cyan]Agent Council[/bold cyan] -- {client.name()} / {effective_model}")
    console.print(f"Query: [italic]{escape(query[:80])}{'...' if len(query) > 80 else ''}[/italic]\n")

    trace = asyncio.run(_run_ask(client, registry, config, query, effective_model, effective_iterations))

    console.print()
    print_trace_summary(trace, profile(trace))
    if show_evaluation:
        print_evaluation(evaluate(trace))
    if not trace.success:
        sys.exit(1)


@main.command()
@click.argument("code_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "output_path", default=None, help="Report directory (default: from config)")
@click.option("--no-save", is_flag=True, default=False, help="Do not write a markdown report")
@click.pass_obj
def review(config: AppConfig, code_file: str, output_path: str | None, no_save: bool) -> None:
    """Run the council review over CODE_FILE."""
    path = Path(code_file)
    try:
        code = load_code_artifact(path)
    except ValueError as exc:
        _fail(str(exc))

    client = _client_or_exit(config)
    console.print(f"\n[bold cyan]Agent Council[/bold cyan] -- reviewing {path.name} via {client.name()}\n")

    session = asyncio.run(_run_review(client, config, code))

    if session.status is not SessionStatus.COMPLETE:
        for message in session.messages[-1:]:
            console.print(f"[bold red]Council aborted:[/bold red] {escape(message.content)}")
        sys.exit(1)

    print_findings(session.findings, session.verifications)
    if session.verdict is not None:
        print_verdict(session.verdict)

    if not no_save:
        saved = save_review(session, Path(output_path) if output_path else config.council.output_dir, name=path.name)
        console.print(f"\n[dim]Saved to: {saved}[/dim]")


@main.command()
@click.option("--ping", is_flag=True, default=False, help="Send a short prompt to every resolved role model")
@click.pass_obj
def models(config: AppConfig, ping: bool) -> None:
    """Check the backend and show which model serves each council role."""
    client = _client_or_exit(config)

    console.print(f"\n[bold]Checking backend {client.name()}...[/bold]")
    ok, err, available = asyncio.run(check_backend(client))
    if not ok:
        short_err = err.splitlines()[0][:120] if err else "unknown error"
        console.print(f"  [red]FAIL[/red] {client.name()}: {escape(short_err)}")
        sys.exit(1)
    console.print(f"  [green]OK  [/green] {client.name()} ({len(available)} models)")

    resolved = resolve_roles(config.council.roles.values(), available)
    table = Table(title="Council roles")
    table.add_column("Role")
    table.add_column("Model")
    table.add_column("Candidates", style="dim")
    for role, role_config in config.council.roles.items():
        table.add_row(role, resolved.get(role, "[red]unavailable[/red]"), ", ".join(role_config.candidates))
    console.print(table)

    if ping and resolved:
        results = asyncio.run(run_health_checks(client, list(resolved.values())))
        for name in sorted(results):
            passed, error = results[name]
            if passed:
                console.print(f"  [green]OK  [/green] {name}")
            else:
                short_err = error.splitlines()[0][:120] if error else "unknown error"
                console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}")

    if not resolved:
        sys.exit(1)


@main.command()
@click.option("--resources", "show_resources", is_flag=True, help="Also list resources and prompt templates")
def capabilities(show_resources: bool) -> None:
    """List the capabilities exposed to the model."""
    registry = build_registry()

    table = Table(title="Capabilities")
    table.add_column("Name")
    table.add_column("Required", style="dim")
    table.add_column("Description")
    for tool in registry.list_capabilities():
        function = tool["function"]
        table.add_row(function["name"], ", ".join(function["parameters"]["required"]), Text(function["description"]))
    console.print(table)

    if show_resources:
        for provider_id, resource in registry.list_resources():
            console.print(f"  [cyan]{resource.uri}[/cyan] {resource.name} [dim]({provider_id})[/dim]")
        for provider_id, template in registry.list_prompts():
            console.print(f"  [magenta]{provider_id}/{template.name}[/magenta] {template.description}")


if __name__ == "__main__":
    main()
