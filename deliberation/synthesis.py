"""Final synthesis: merge phase outputs into one recommendation text."""

import logging

from deliberation.models import AgentResult, CaseMemory, ConsensusResult, DebateOutcome, Round

logger = logging.getLogger(__name__)

_MAX_NEXT_STEPS = 3


def format_debate_transcript(rounds: list[Round]) -> str:
    """Format all debate rounds into a single transcript string."""
    parts: list[str] = []
    for rnd in rounds:
        parts.append(f"### Round {rnd.number}")
        if not rnd.positions:
            parts.append("(no responses)")
        for pos in rnd.positions:
            args = "\n".join(f"- {a}" for a in pos.arguments)
            parts.append(f"**{pos.agent}** ({pos.confidence:.2f}): {pos.stance}\n{args}".rstrip())
        parts.append("")  # blank line between rounds
    return "\n\n".join(parts)


def format_findings(results: list[AgentResult]) -> str:
    """Render succeeded results as context for a dependent phase."""
    lines = [
        f"[{r.agent}, confidence {r.confidence:.2f}] {r.content}"
        for r in results
        if r.succeeded
    ]
    return "\n\n".join(lines)


def format_history(memories: list[CaseMemory]) -> str:
    return "\n".join(
        f"- case {m.case_id} ({m.outcome}): {m.issue} -> {m.resolution}"
        for m in memories
    )


def format_debate_context(debate: DebateOutcome | None, consensus: ConsensusResult | None) -> str:
    if debate is None:
        return ""
    lines = [f"Panel debate ({len(debate.rounds)} round(s)): {debate.decision_path}"]
    if debate.dissent:
        lines.append("Dissent: " + "; ".join(debate.dissent))
    if consensus is not None:
        lines.append(consensus.reasoning)
    return "\n".join(lines)


def synthesize_recommendation(
    results: list[AgentResult],
    debate: DebateOutcome | None = None,
    consensus: ConsensusResult | None = None,
) -> str:
    """Compile the final recommendation from every phase.

    The solution design leads; panel consensus, patterns and the proactive
    plan's next steps follow.
    """
    by_agent = {r.agent: r for r in results if r.succeeded}
    solution = by_agent.get("SolutionArchitect")

    if solution is not None:
        parts = [solution.content]
    elif consensus is not None and consensus.reached and consensus.option is not None:
        parts = [consensus.option.description]
    elif debate is not None and debate.consensus:
        parts = [debate.consensus]
    elif by_agent:
        best = max(by_agent.values(), key=lambda r: r.confidence)
        parts = [best.content]
    else:
        parts = ["Unable to generate a recommendation: no agent produced a result."]

    if debate is not None:
        if debate.consensus:
            parts.append(f"Panel consensus: {debate.consensus}")
        else:
            parts.append(f"Panel did not converge ({len(debate.dissent)} dissenting view(s)).")

    pattern = by_agent.get("PatternAnalyst")
    if pattern is not None and pattern.stance:
        parts.append(f"Pattern detected: {pattern.stance}")

    proactive = by_agent.get("ProactiveAgent")
    if proactive is not None and proactive.next_actions:
        steps = "\n".join(f"- {a}" for a in proactive.next_actions[:_MAX_NEXT_STEPS])
        parts.append(f"Next steps:\n{steps}")

    logger.debug("Synthesized recommendation from %d results", len(by_agent))
    return "\n\n".join(parts)
