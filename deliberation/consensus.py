"""Consensus building: group positions into options, score them, pick a winner."""

import logging
import re
from collections.abc import Callable
from typing import Literal

from deliberation.models import ConsensusOption, ConsensusResult, Position

logger = logging.getLogger(__name__)

ArgumentKind = Literal["benefit", "risk"]
# Maps one argument string to "benefit", "risk" or None (unclassified).
ArgumentClassifier = Callable[[str], ArgumentKind | None]

DEFAULT_MINIMUM_SUPPORT = 0.66
COMPROMISE_CONFIDENCE = 0.6
_MAX_COMMON_ELEMENTS = 5

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")

_BENEFIT_WORDS = ("benefit", "advantage", "improve")
_RISK_WORDS = ("risk", "concern", "issue")


def normalize_stance(stance: str) -> str:
    """Case-fold, drop punctuation and collapse whitespace.

    normalize_stance(normalize_stance(s)) == normalize_stance(s).
    """
    text = _PUNCT_RE.sub("", stance.casefold())
    return _SPACE_RE.sub(" ", text).strip()


def keyword_classifier(argument: str) -> ArgumentKind | None:
    """Substring match: benefit words win over risk words."""
    lowered = argument.lower()
    if any(word in lowered for word in _BENEFIT_WORDS):
        return "benefit"
    if any(word in lowered for word in _RISK_WORDS):
        return "risk"
    return None


def group_by_stance(positions: list[Position]) -> dict[str, list[Position]]:
    """Group positions by normalized stance, preserving first-seen order."""
    groups: dict[str, list[Position]] = {}
    for pos in positions:
        groups.setdefault(normalize_stance(pos.stance), []).append(pos)
    return groups


class ConsensusBuilder:
    """Stateless scorer over a single snapshot of positions.

    An agent outside an option's group counts as opposing it, including
    participants that never took a stance.
    """

    def __init__(
        self,
        minimum_support: float = DEFAULT_MINIMUM_SUPPORT,
        classifier: ArgumentClassifier = keyword_classifier,
    ) -> None:
        self.minimum_support = minimum_support
        self._classify = classifier

    def extract_options(
        self,
        positions: list[Position],
        participants: list[str] | None = None,
    ) -> list[ConsensusOption]:
        """Build one option per normalized stance.

        Args:
            positions: One snapshot of positions (e.g. the final debate round).
            participants: Full participant set. Defaults to the agents that
                hold a position; pass it to count absent agents as opposing.
        """
        everyone = list(participants) if participants is not None else []
        for pos in positions:
            if pos.agent not in everyone:
                everyone.append(pos.agent)

        options: list[ConsensusOption] = []
        for index, group in enumerate(group_by_stance(positions).values(), start=1):
            supporters: list[str] = []
            for pos in group:
                if pos.agent not in supporters:
                    supporters.append(pos.agent)
            option = ConsensusOption(
                id=f"option_{index}",
                description=group[0].stance,
                supporting_agents=supporters,
                opposing_agents=[a for a in everyone if a not in supporters],
                evidence=[e for pos in group for e in pos.evidence],
                confidence=max(pos.confidence for pos in group),
            )
            options.append(option)
        return options

    def evaluate_options(self, options: list[ConsensusOption], positions: list[Position]) -> list[ConsensusOption]:
        """Classify supporter arguments and discount confidence by support ratio."""
        for option in options:
            for pos in positions:
                if pos.agent not in option.supporting_agents:
                    continue
                if normalize_stance(pos.stance) != normalize_stance(option.description):
                    continue
                for arg in pos.arguments:
                    kind = self._classify(arg)
                    if kind == "benefit":
                        option.benefits.append(arg)
                    elif kind == "risk":
                        option.risks.append(arg)
            option.confidence = option.confidence * option.support_ratio
            logger.debug(
                "Option %s '%s': support %.0f%%, confidence %.2f, %d benefits, %d risks",
                option.id, option.description, option.support_ratio * 100,
                option.confidence, len(option.benefits), len(option.risks),
            )
        return options

    def find_best_option(self, options: list[ConsensusOption]) -> ConsensusOption | None:
        """Return the top option if it clears minimum_support, else None."""
        ranked = sorted(options, key=lambda o: (-o.support_ratio, -o.confidence))
        if ranked and ranked[0].total_agents and ranked[0].support_ratio >= self.minimum_support:
            return ranked[0]
        return None

    def build(
        self,
        topic: str,
        positions: list[Position],
        participants: list[str] | None = None,
    ) -> ConsensusResult:
        """Build consensus over one snapshot of positions.

        A result with reached=False is a normal outcome, not an error.
        """
        logger.info("Building consensus for '%s' over %d positions", topic, len(positions))
        options = self.evaluate_options(self.extract_options(positions, participants), positions)
        options.sort(key=lambda o: (-o.support_ratio, -o.confidence))
        best = self.find_best_option(options)

        if best is None:
            logger.info("No option met minimum support %.2f (%d options)", self.minimum_support, len(options))
            return ConsensusResult(
                reached=False,
                reasoning="No option achieved the required support threshold for consensus",
                alternative_options=options,
                dissent_reasons=[
                    f"{pos.agent}: {pos.stance} (confidence: {pos.confidence * 100:.0f}%)"
                    for pos in positions
                ],
                confidence_level=0.3 if options else 0.0,
            )

        logger.info("Consensus reached: %s (%.0f%% support)", best.description, best.support_ratio * 100)
        return ConsensusResult(
            reached=True,
            option=best,
            reasoning=self._reasoning(best),
            alternative_options=[o for o in options if o is not best],
            dissent_reasons=self._dissent_reasons(best, positions),
            confidence_level=best.confidence,
        )

    def find_compromise(
        self,
        positions: list[Position],
        constraints: list[str] | None = None,
    ) -> ConsensusOption:
        """Blend the arguments shared by two or more agents into one option."""
        common = self._common_elements(positions)
        agents: list[str] = []
        for pos in positions:
            if pos.agent not in agents:
                agents.append(pos.agent)
        description = (
            f"Hybrid approach combining: {', '.join(common)}" if common
            else "Hybrid approach with no shared arguments"
        )
        logger.info("Compromise built from %d positions, %d shared arguments", len(positions), len(common))
        return ConsensusOption(
            id="compromise_option",
            description=description,
            supporting_agents=agents,
            opposing_agents=[],
            evidence=[e for pos in positions for e in pos.evidence],
            risks=list(constraints or []),
            benefits=common,
            confidence=COMPROMISE_CONFIDENCE,
        )

    @staticmethod
    def _common_elements(positions: list[Position]) -> list[str]:
        """Arguments repeated (case-insensitively) by at least two agents, most frequent first."""
        holders: dict[str, set[str]] = {}
        for pos in positions:
            for arg in pos.arguments:
                holders.setdefault(arg.lower(), set()).add(pos.agent)
        shared = [(arg, len(agents)) for arg, agents in holders.items() if len(agents) > 1]
        # sorted() is stable: equal counts keep first-seen order
        shared.sort(key=lambda item: -item[1])
        return [arg for arg, _ in shared[:_MAX_COMMON_ELEMENTS]]

    @staticmethod
    def _reasoning(option: ConsensusOption) -> str:
        benefits = "; ".join(option.benefits[:3]) or "none recorded"
        risks = f" Key considerations: {'; '.join(option.risks[:2])}." if option.risks else ""
        return (
            f"This option received {option.support_ratio * 100:.0f}% support from the team. "
            f"Key benefits: {benefits}.{risks} "
            f"Supported by: {', '.join(option.supporting_agents)}."
        )

    @staticmethod
    def _dissent_reasons(option: ConsensusOption, positions: list[Position]) -> list[str]:
        reasons: list[str] = []
        for agent in option.opposing_agents:
            pos = next((p for p in positions if p.agent == agent), None)
            if pos is None:
                reasons.append(f"{agent}: no position recorded")
                continue
            why = pos.arguments[0] if pos.arguments else "unspecified reasons"
            reasons.append(f'{agent}: Prefers "{pos.stance}" due to {why}')
        return reasons
