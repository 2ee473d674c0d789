"""Rich console output and markdown report save for deliberation results."""

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

from deliberation.models import AgentResult, Case, ConsensusResult, DebateOutcome, DeliberationResult, Round
from deliberation.synthesis import format_debate_transcript

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_round_summary(rnd: Round) -> None:
    """Print a brief summary of one debate round to the console."""
    console.print(Rule(f"[bold cyan]Debate Round {rnd.number}[/bold cyan]"))
    if not rnd.positions:
        console.print(Text("(no responses)", style="dim"))
    for pos in rnd.positions:
        console.print(
            Panel(
                _preview(pos.stance + " " + " ".join(pos.arguments)),
                title=f"[bold]{pos.agent}[/bold]",
                subtitle=f"confidence {pos.confidence:.2f}",
                border_style="dim",
            )
        )


def print_agent_results(results: list[AgentResult]) -> None:
    """Print one table row per agent result."""
    table = Table(title="Agent results", show_lines=False)
    table.add_column("Phase", style="dim")
    table.add_column("Agent", style="bold")
    table.add_column("Confidence", justify="right")
    table.add_column("Escalate")
    table.add_column("Summary")
    for r in results:
        status = f"{r.confidence:.2f}" if r.succeeded else "[red]failed[/red]"
        table.add_row(
            r.phase,
            r.agent,
            status,
            "yes" if r.should_escalate else "no",
            _preview(r.error if r.error else r.content, words=20),
        )
    console.print(table)


def print_result(result: DeliberationResult) -> None:
    """Print the agent table, debate summary and recommendation."""
    print_agent_results(result.agent_results)
    if result.debate is not None:
        for rnd in result.debate.rounds:
            print_round_summary(rnd)
        console.print(Text(f"Debate outcome: {result.debate.decision_path}", style="bold"))

    console.print(Rule("[bold green]Recommendation[/bold green]"))
    escalate = "[bold red]ESCALATE[/bold red]" if result.should_escalate else "[green]handle in tier[/green]"
    console.print(
        Text.from_markup(
            f"[dim]Case {result.case_id} | Confidence: {result.overall_confidence:.2f} | "
            f"Duration: {result.metrics.get('total_processing_time_sec', 0.0):.1f}s[/dim] | {escalate}"
        )
    )
    console.print(Markdown(result.recommendation))


def _debate_section(debate: DebateOutcome, consensus: ConsensusResult | None) -> list[str]:
    lines = [
        "## Panel Debate",
        "",
        f"**Participants:** {', '.join(debate.participants)}",
        f"**Rounds:** {len(debate.rounds)}"
        + (" (early consensus)" if debate.early_consensus else "")
        + (" (no quorum)" if debate.no_quorum else ""),
        f"**Outcome:** {debate.decision_path}",
        f"**Confidence:** {debate.confidence:.2f}",
        "",
        format_debate_transcript(debate.rounds),
    ]
    if debate.dissent:
        lines += ["### Dissent", ""] + [f"- {d}" for d in debate.dissent] + [""]
    if consensus is not None:
        lines += ["### Consensus", "", consensus.reasoning, ""]
        for alt in consensus.alternative_options:
            lines.append(f"- Alternative: {alt.description} (confidence {alt.confidence:.2f})")
        lines.append("")
    return lines


def save_to_file(
    result: DeliberationResult,
    case: Case,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Save the deliberation report as a markdown file.

    Args:
        result: The completed DeliberationResult.
        case: The case that was deliberated.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the case title. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(f"{case.id} {case.title}")
    filepath = output_dir / f"{timestamp}_{slug}.md"

    lines: list[str] = [
        f"# Case {case.id}: {case.title[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Subject:** {case.subject}",
        f"**Category:** {case.category} | **Priority:** {case.priority}",
        f"**Confidence:** {result.overall_confidence:.2f}",
        f"**Escalate:** {'yes' if result.should_escalate else 'no'}",
        f"**Duration:** {result.metrics.get('total_processing_time_sec', 0.0):.1f}s",
        "",
        "---",
        "",
        "## Recommendation",
        "",
        result.recommendation,
        "",
        "## Agent Analyses",
        "",
    ]

    for r in result.agent_results:
        lines.append(f"### {r.agent} ({r.phase})")
        lines.append("")
        if r.succeeded:
            lines.append(r.content)
            if r.evidence:
                lines += ["", "Evidence:"] + [f"- {e}" for e in r.evidence]
            if r.next_actions:
                lines += ["", "Next actions:"] + [f"- {a}" for a in r.next_actions]
        else:
            lines.append(f"*Failed: {r.error}*")
        lines.append("")
        lines.append(f"*Confidence: {r.confidence:.2f} | Escalate: {'yes' if r.should_escalate else 'no'}*")
        lines.append("")

    if result.debate is not None:
        lines += _debate_section(result.debate, result.consensus)

    lines += ["## Metrics", ""]
    lines += [f"- {key}: {value:.2f}" for key, value in result.metrics.items()]
    lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
