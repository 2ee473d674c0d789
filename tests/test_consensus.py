"""Tests for deliberation/consensus.py."""

import pytest

from deliberation.consensus import (
    COMPROMISE_CONFIDENCE,
    ConsensusBuilder,
    group_by_stance,
    keyword_classifier,
    normalize_stance,
)
from deliberation.models import Position


def _pos(agent: str, stance: str, confidence: float = 0.8, arguments: tuple[str, ...] = ()) -> Position:
    return Position(agent, stance, arguments, (), confidence)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Refund the charge.", "refund the charge"),
        ("  REFUND   the\tcharge!! ", "refund the charge"),
        ("", ""),
    ],
)
def test_normalize_stance(raw, expected):
    assert normalize_stance(raw) == expected


def test_normalize_stance_is_idempotent():
    for s in ["Escalate to Tier-2!", "  a   b  ", "Ünïcode Stance?", "x"]:
        once = normalize_stance(s)
        assert normalize_stance(once) == once


def test_keyword_classifier_benefit_wins_over_risk():
    assert keyword_classifier("Improves retention despite the risk") == "benefit"
    assert keyword_classifier("Compliance concern with refunds") == "risk"
    assert keyword_classifier("Takes two days") is None


def test_group_by_stance_merges_normalized_and_keeps_first_seen_order():
    groups = group_by_stance([
        _pos("a", "Escalate."),
        _pos("b", "Refund"),
        _pos("c", "escalate"),
    ])
    assert list(groups) == ["escalate", "refund"]
    assert [p.agent for p in groups["escalate"]] == ["a", "c"]


def test_options_partition_every_participant():
    builder = ConsensusBuilder()
    positions = [_pos("a", "Refund"), _pos("b", "Refund"), _pos("c", "Escalate")]
    options = builder.extract_options(positions, participants=["a", "b", "c", "d"])

    for option in options:
        assert set(option.supporting_agents).isdisjoint(option.opposing_agents)
        assert set(option.supporting_agents) | set(option.opposing_agents) == {"a", "b", "c", "d"}
        assert 0.0 <= option.support_ratio <= 1.0
    refund = options[0]
    assert refund.support_ratio == pytest.approx(0.5)


def test_absent_participant_counts_as_opposition():
    builder = ConsensusBuilder(minimum_support=0.66)
    positions = [_pos("a", "Refund"), _pos("b", "Refund")]

    assert builder.build("t", positions).reached is True
    result = builder.build("t", positions, participants=["a", "b", "c", "d"])
    assert result.reached is False


def test_scenario_split_panel_does_not_reach_consensus():
    builder = ConsensusBuilder(minimum_support=0.66)
    positions = [
        _pos("PatternAnalyst", "Refund", 0.9),
        _pos("CustomerInsightAgent", "Refund", 0.7),
        _pos("SolutionArchitect", "Escalate", 0.8),
        _pos("ComplianceGuardian", "Escalate", 0.6),
    ]
    result = builder.build("billing dispute", positions)

    assert result.reached is False
    assert result.option is None
    assert result.confidence_level == pytest.approx(0.3)
    assert result.reasoning == "No option achieved the required support threshold for consensus"
    assert len(result.alternative_options) == 2
    assert "PatternAnalyst: Refund (confidence: 90%)" in result.dissent_reasons


def test_reached_consensus_scores_best_option():
    builder = ConsensusBuilder(minimum_support=0.66)
    positions = [
        _pos("a", "Refund", 0.9, ("Improves satisfaction",)),
        _pos("b", "refund.", 0.6, ("Risk of abuse",)),
        _pos("c", "Refund", 0.5),
        _pos("d", "Escalate", 0.7, ("Needs manager approval",)),
    ]
    result = builder.build("billing dispute", positions)

    assert result.reached is True
    assert result.option.description == "Refund"
    assert result.option.support_ratio == pytest.approx(0.75)
    assert result.option.confidence == pytest.approx(0.9 * 0.75)
    assert result.confidence_level == pytest.approx(result.option.confidence)
    assert result.option.benefits == ["Improves satisfaction"]
    assert result.option.risks == ["Risk of abuse"]
    assert "75% support" in result.reasoning
    assert result.dissent_reasons == ['d: Prefers "Escalate" due to Needs manager approval']
    assert [o.description for o in result.alternative_options] == ["Escalate"]


def test_support_is_monotone_in_added_supporters():
    builder = ConsensusBuilder()
    base = [_pos("a", "Refund"), _pos("b", "Escalate"), _pos("c", "Escalate")]
    everyone = ["a", "b", "c", "d", "e"]
    before = builder.extract_options(base, everyone)[0].support_ratio
    after = builder.extract_options(base + [_pos("d", "Refund")], everyone)[0].support_ratio
    assert after >= before


def test_build_with_no_positions_is_not_reached():
    result = ConsensusBuilder().build("empty", [])
    assert result.reached is False
    assert result.alternative_options == []
    assert result.confidence_level == 0.0


def test_find_best_option_ignores_zero_agent_options():
    builder = ConsensusBuilder(minimum_support=0.0)
    assert builder.find_best_option([]) is None


def test_custom_classifier_is_used():
    builder = ConsensusBuilder(classifier=lambda arg: "risk")
    result = builder.build("t", [_pos("a", "Refund", arguments=("Improves trust",))])
    assert result.option.risks == ["Improves trust"]
    assert result.option.benefits == []


def test_tie_prefers_higher_confidence_then_first_seen():
    builder = ConsensusBuilder(minimum_support=0.5)
    positions = [_pos("a", "Refund", 0.6), _pos("b", "Escalate", 0.9)]
    result = builder.build("t", positions)
    assert result.option.description == "Escalate"


def test_find_compromise_keeps_shared_arguments():
    builder = ConsensusBuilder()
    positions = [
        _pos("a", "Refund", arguments=("Customer is a VIP", "Fast resolution")),
        _pos("b", "Credit", arguments=("customer is a vip", "Lower cost")),
        _pos("c", "Escalate", arguments=("Fast resolution", "Customer is a VIP")),
    ]
    option = builder.find_compromise(positions, constraints=["Refunds above $500 need approval"])

    assert option.id == "compromise_option"
    assert option.confidence == COMPROMISE_CONFIDENCE
    assert option.benefits == ["customer is a vip", "fast resolution"]
    assert option.description.startswith("Hybrid approach combining: ")
    assert option.supporting_agents == ["a", "b", "c"]
    assert option.opposing_agents == []
    assert option.risks == ["Refunds above $500 need approval"]
