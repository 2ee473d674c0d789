"""Click CLI — config loading, gateway selection, deliberation, and output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from deliberation.agents import build_agents
from deliberation.errors import InferenceError, NoQuorumError
from deliberation.healthcheck import run_health_checks
from deliberation.inbox import archive_file, ensure_dirs, parse_case, scan_inbox
from deliberation.models import AuditEvent, Case
from deliberation.network import AgentNetwork
from deliberation.orchestrator import DeliberationOrchestrator
from deliberation.output import print_result, save_to_file
from deliberation.providers.anthropic import AnthropicGateway
from deliberation.providers.base import InferenceGateway
from deliberation.providers.gemini import GeminiGateway
from deliberation.providers.openai_provider import OpenAIGateway

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

GATEWAY_CLASSES: dict[str, type[InferenceGateway]] = {
    "anthropic": AnthropicGateway,
    "openai": OpenAIGateway,
    "gemini": GeminiGateway,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_gateways(config: AppConfig) -> dict[str, InferenceGateway]:
    """Build a gateway for every model with an API key. Returns dict keyed by model name."""
    gateways: dict[str, InferenceGateway] = {}
    for name in sorted(config.available_models):
        model_cfg = config.models[name]
        gateway_cls = GATEWAY_CLASSES.get(model_cfg.sdk)
        if gateway_cls is None:
            logger.warning("Model '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            gateways[name] = gateway_cls(model_cfg)
        except InferenceError as exc:
            logger.warning("Failed to instantiate gateway '%s': %s", name, exc)
    return gateways


def _fallback_gateway(config: AppConfig, gateways: dict[str, InferenceGateway]) -> InferenceGateway | None:
    if config.defaults.default_model in gateways:
        return gateways[config.defaults.default_model]
    return next(iter(gateways.values()), None)


def _check_and_filter_gateways(gateways: dict[str, InferenceGateway]) -> dict[str, InferenceGateway]:
    """Run health checks, print results, and ask the user what to do on failures.

    Returns the filtered dict of working gateways. Exits if the user declines
    to continue or no gateway passes.
    """
    console.print("\n[bold]Checking model APIs...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(gateways))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return gateways

    working = {n: g for n, g in gateways.items() if n not in failed_names}
    if not working:
        console.print("\n[bold red]Error:[/bold red] No model API passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} model(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Working models: {', '.join(sorted(working))}")

    if not click.confirm("Continue with working models only?", default=True):
        sys.exit(0)

    console.print()
    return working


def _build_orchestrator(
    config: AppConfig,
    gateways: dict[str, InferenceGateway],
    network: AgentNetwork,
    rounds: int,
    threshold: float,
    event_sinks: list,
) -> DeliberationOrchestrator:
    agents = build_agents(
        config.roles,
        gateways,
        config.prompts,
        temperature=config.defaults.temperature,
        fallback=_fallback_gateway(config, gateways),
    )
    return DeliberationOrchestrator(
        agents,
        network,
        analysis_roles=config.defaults.analysis_roles,
        debate_panel=config.defaults.debate_panel,
        max_rounds=rounds,
        consensus_threshold=threshold,
        minimum_support=config.defaults.minimum_support,
        escalation_threshold=config.defaults.escalation_threshold,
        event_sinks=event_sinks,
    )


async def _run_single(
    case: Case,
    config: AppConfig,
    gateways: dict[str, InferenceGateway],
    network: AgentNetwork,
    rounds: int,
    threshold: float,
    output_dir: Path,
    slug_override: str | None = None,
    satisfaction: int | None = None,
) -> Path:
    """Deliberate one case and return the saved report path.

    A satisfaction score marks the case resolved; otherwise it is recorded
    as escalated or pending.
    """
    console.print(f"\n[bold cyan]Support Panel[/bold cyan] — case {case.id}, up to {rounds} debate rounds")
    console.print(f"Customer: {case.subject} | Category: {case.category} | Priority: {case.priority}")
    console.print(f"Title: [italic]{case.title[:80]}{'...' if len(case.title) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Running independent analyses...", total=None)

        def on_event(event: AuditEvent) -> None:
            if event.kind == "phase_started":
                progress.update(task, description=f"Running {event.payload.get('phase')}...")
            elif event.kind == "phase_completed":
                progress.print(f"[green]OK[/green] {event.payload.get('phase')} complete")
            elif event.kind == "round_completed":
                responded = event.payload.get("responded", [])
                progress.print(f"[green]OK[/green] Debate round {event.payload.get('round')} "
                               f"({len(responded)} positions)")

        orchestrator = _build_orchestrator(config, gateways, network, rounds, threshold, [on_event])
        result = await orchestrator.run(case)

    print_result(result)
    # Persist an in-process memory so later cases for this customer see it.
    if satisfaction is not None:
        insight = orchestrator.record_resolution(case, result, outcome="resolved", satisfaction=satisfaction)
        if insight is not None:
            console.print(f"[green]Resolution pattern recorded[/green] for {case.subject}")
    else:
        orchestrator.record_resolution(case, result, outcome="escalated" if result.should_escalate else "pending")

    saved_path = save_to_file(result, case, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_inbox(
    config: AppConfig,
    gateways: dict[str, InferenceGateway],
    inbox_dir: Path,
    archive_dir: Path,
    rounds_cli: int | None,
    threshold: float,
    output_dir: Path,
    satisfaction_cli: int | None = None,
) -> None:
    """Process all .md case files in the inbox folder.

    Precedence for per-file rounds: CLI flag > frontmatter > config default.
    A `satisfaction` frontmatter key marks that case resolved unless --satisfaction overrides it.
    One AgentNetwork is shared by every case in the batch.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    network = AgentNetwork()
    for file_path in files:
        try:
            case, meta = parse_case(file_path)
            effective_rounds = (
                rounds_cli if rounds_cli is not None
                else int(meta["rounds"]) if "rounds" in meta
                else config.defaults.max_rounds
            )
            satisfaction = (
                satisfaction_cli if satisfaction_cli is not None
                else int(meta["satisfaction"]) if meta.get("satisfaction") is not None
                else None
            )
            saved = await _run_single(
                case=case,
                config=config,
                gateways=gateways,
                network=network,
                rounds=effective_rounds,
                threshold=threshold,
                output_dir=output_dir,
                slug_override=file_path.stem,
                satisfaction=satisfaction,
            )
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


@click.command(name="deliberate")
@click.argument("description", required=False)
@click.option("--file", "case_file", type=click.Path(exists=True), help="Read the case from a .md file")
@click.option("--subject", default="unknown", help="Customer/account id for an ad-hoc case")
@click.option("--rounds", default=None, type=int, help="Maximum debate rounds (default: from config)")
@click.option("--threshold", default=None, type=click.FloatRange(0.0, 1.0),
              help="Consensus threshold (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--inbox", "use_inbox", is_flag=True, default=False,
              help="Process all .md case files in the inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--satisfaction", default=None, type=click.IntRange(1, 5),
              help="Customer satisfaction (1-5); records the case as resolved")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    description: str | None,
    case_file: str | None,
    subject: str,
    rounds: int | None,
    threshold: float | None,
    output_path: str | None,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    satisfaction: int | None,
    skip_health_check: bool,
) -> None:
    """Support Panel -- multi-agent deliberation over support cases.

    \b
    Examples:
      python -m deliberation.cli "Customer charged twice for March" --subject cust-42
      python -m deliberation.cli --file case.md --rounds 2
      python -m deliberation.cli --file case.md --satisfaction 5
      python -m deliberation.cli --inbox
      python -m deliberation.cli --inbox --inbox-dir ./my_queue
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    effective_rounds = rounds if rounds is not None else config.defaults.max_rounds
    if effective_rounds < 1:
        console.print("[bold red]Error:[/bold red] --rounds must be >= 1.")
        sys.exit(1)
    effective_threshold = threshold if threshold is not None else config.defaults.consensus_threshold
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    gateways = _build_all_gateways(config)
    if not gateways:
        console.print("[bold red]Error:[/bold red] No model APIs available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        gateways = _check_and_filter_gateways(gateways)

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        asyncio.run(
            _run_inbox(
                config=config,
                gateways=gateways,
                inbox_dir=inbox_dir,
                archive_dir=config.inbox.archive_dir,
                rounds_cli=rounds,
                threshold=effective_threshold,
                output_dir=effective_output,
                satisfaction_cli=satisfaction,
            )
        )
        return

    if case_file:
        case, _ = parse_case(Path(case_file))
    elif description:
        case = Case(
            id="adhoc",
            title=description.splitlines()[0][:120],
            description=description,
            subject=subject,
        )
    else:
        console.print("[bold red]Error:[/bold red] Provide a DESCRIPTION argument, --file, or --inbox.")
        sys.exit(1)

    try:
        asyncio.run(
            _run_single(
                case=case,
                config=config,
                gateways=gateways,
                network=AgentNetwork(),
                rounds=effective_rounds,
                threshold=effective_threshold,
                output_dir=effective_output,
                satisfaction=satisfaction,
            )
        )
    except NoQuorumError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
