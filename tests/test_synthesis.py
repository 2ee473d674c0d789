"""Tests for deliberation/synthesis.py."""

from deliberation.models import (
    AgentResult,
    CaseMemory,
    ConsensusOption,
    ConsensusResult,
    DebateOutcome,
    Position,
    Round,
)
from deliberation.synthesis import (
    format_debate_context,
    format_debate_transcript,
    format_findings,
    format_history,
    synthesize_recommendation,
)


def _result(agent: str, content: str, confidence: float = 0.8, succeeded: bool = True, **kwargs) -> AgentResult:
    return AgentResult(
        agent=agent, role=agent, phase="p", content=content, confidence=confidence,
        should_escalate=False, succeeded=succeeded, **kwargs,
    )


def _debate(consensus: str | None, dissent: list[str] | None = None) -> DebateOutcome:
    return DebateOutcome(
        topic="t", participants=["a", "b"], rounds=[Round(1, [Position("a", "Refund")])],
        consensus=consensus, dissent=dissent or [], decision_path=consensus or "No consensus reached",
        confidence=0.8,
    )


def test_format_debate_transcript():
    rounds = [
        Round(number=1, positions=[Position("a", "Refund", ("Fast",), (), 0.9), Position("b", "Escalate")]),
        Round(number=2, positions=[]),
    ]
    transcript = format_debate_transcript(rounds)
    assert "### Round 1" in transcript
    assert "**a** (0.90): Refund" in transcript
    assert "- Fast" in transcript
    assert "### Round 2" in transcript
    assert "(no responses)" in transcript


def test_format_findings_skips_failures():
    text = format_findings([_result("Router", "Route to billing"), _result("PatternAnalyst", "x", succeeded=False)])
    assert text == "[Router, confidence 0.80] Route to billing"


def test_format_history():
    memory = CaseMemory("c1", "cust", "Login loop", "Reset session", "resolved")
    assert format_history([memory]) == "- case c1 (resolved): Login loop -> Reset session"
    assert format_history([]) == ""


def test_format_debate_context():
    assert format_debate_context(None, None) == ""
    consensus = ConsensusResult(reached=False, reasoning="No option achieved the required support threshold")
    text = format_debate_context(_debate(None, ["a: Refund"]), consensus)
    assert "Panel debate (1 round(s)): No consensus reached" in text
    assert "Dissent: a: Refund" in text
    assert "required support threshold" in text


def test_recommendation_leads_with_solution_design():
    results = [
        _result("PatternAnalyst", "Pattern", stance="Recurring gateway retries"),
        _result("SolutionArchitect", "Refund and patch retry logic"),
        _result("ProactiveAgent", "Plan", next_actions=["Call customer", "Monitor", "Send survey", "Close"]),
    ]
    text = synthesize_recommendation(results, _debate("Refund"))
    parts = text.split("\n\n")
    assert parts[0] == "Refund and patch retry logic"
    assert "Panel consensus: Refund" in parts
    assert "Pattern detected: Recurring gateway retries" in parts
    assert parts[-1] == "Next steps:\n- Call customer\n- Monitor\n- Send survey"


def test_recommendation_falls_back_to_consensus_option():
    consensus = ConsensusResult(reached=True, reasoning="r", option=ConsensusOption("option_1", "Refund"))
    text = synthesize_recommendation([_result("Router", "Route")], consensus=consensus)
    assert text.startswith("Refund")


def test_recommendation_falls_back_to_best_result():
    results = [_result("Router", "Low", confidence=0.3), _result("PatternAnalyst", "High", confidence=0.9)]
    assert synthesize_recommendation(results).startswith("High")


def test_recommendation_without_results():
    text = synthesize_recommendation([_result("Router", "x", succeeded=False)], _debate(None, ["a: Refund"]))
    assert text.startswith("Unable to generate a recommendation")
    assert "Panel did not converge (1 dissenting view(s))." in text
