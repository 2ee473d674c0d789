"""Debate coordination: concurrent position rounds, early consensus, final vote."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from deliberation.agents import Debater
from deliberation.consensus import group_by_stance, normalize_stance
from deliberation.errors import InferenceError
from deliberation.events import AuditTrail
from deliberation.models import ConsensusVote, DebateOutcome, Position, Round
from deliberation.network import AgentNetwork

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTOR = "DebateCoordinator"
NO_CONSENSUS = "No consensus reached"

DEFAULT_MAX_ROUNDS = 3
DEFAULT_CONSENSUS_THRESHOLD = 0.75


def _render(agent: str, text: str) -> str:
    return f"{agent}: {text}"


async def _call_agent(
    agent: Debater,
    call: Callable[[], Awaitable[T]],
    label: str,
) -> T | InferenceError:
    """Run one adapter call. Never raises; returns InferenceError on failure."""
    try:
        return await call()
    except InferenceError as exc:
        logger.warning("Agent %s failed in %s: %s", agent.agent_id, label, exc)
        return exc
    except Exception as exc:
        err = InferenceError(agent.agent_id, f"Unexpected error: {exc}")
        logger.warning("Agent %s unexpected failure in %s: %s", agent.agent_id, label, exc)
        return err


class DebateCoordinator:
    """Runs the bounded multi-round deliberation for one topic.

    Gathering → Round(k) → EarlyConsensusCheck → [Round(k+1) | FinalConsensus]
    → Finalized. A participant that fails in a round is absent from that
    round only and is invited again in the next one.
    """

    def __init__(
        self,
        network: AgentNetwork | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        consensus_threshold: float = DEFAULT_CONSENSUS_THRESHOLD,
        audit: AuditTrail | None = None,
        on_round_complete: Callable[[Round], None] | None = None,
    ) -> None:
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be >= 1, got {max_rounds}")
        self.network = network
        self.max_rounds = max_rounds
        self.consensus_threshold = consensus_threshold
        self.audit = audit if audit is not None else AuditTrail()
        self._on_round_complete = on_round_complete

    async def run(self, topic: str, participants: list[Debater]) -> DebateOutcome:
        """Run the debate and return its outcome. Never raises on agent failure."""
        participant_ids = [p.agent_id for p in participants]
        self.audit.emit(ACTOR, "debate_started", topic=topic, participants=participant_ids,
                        max_rounds=self.max_rounds, threshold=self.consensus_threshold)
        logger.info("Debate on '%s' with %d participants", topic, len(participants))

        rounds: list[Round] = []
        last_known: dict[str, Position] = {}

        for round_num in range(1, self.max_rounds + 1):
            if round_num == 1:
                positions = await self._gather(participants, lambda p: p.state_position(topic), "round 1")
            else:
                prior = rounds[-1].positions
                positions = await self._gather(
                    participants,
                    lambda p, _prior=prior, _k=round_num: p.respond_to_positions(list(_prior), _k),
                    f"round {round_num}",
                )

            current = Round(number=round_num, positions=positions)
            rounds.append(current)
            self._track_changes(last_known, positions, round_num)

            logger.info("Round %d complete: %d/%d participants responded",
                        round_num, len(positions), len(participants))
            self.audit.emit(
                ACTOR, "round_completed", round=round_num,
                responded=[p.agent for p in positions],
                absent=[a for a in participant_ids if a not in {p.agent for p in positions}],
                stances={p.agent: p.stance for p in positions},
            )
            if self._on_round_complete:
                self._on_round_complete(current)

            if not positions:
                logger.warning("No participant responded in round %d; ending debate", round_num)
                dissent = [_render(a, last_known[a].stance) for a in participant_ids if a in last_known]
                return self._finalize(topic, participant_ids, rounds, None, dissent,
                                      early=False, no_quorum=True)

            for pos in positions:
                last_known[pos.agent] = pos

            early = self.check_early_consensus(positions, len(participants))
            if early is not None:
                stance, dissent = early
                self.audit.emit(ACTOR, "early_consensus", round=round_num, stance=stance, dissent=dissent)
                return self._finalize(topic, participant_ids, rounds, stance, dissent, early=True)

        stance, dissent = await self.seek_final_consensus(participants, rounds[-1].positions)
        return self._finalize(topic, participant_ids, rounds, stance, dissent, early=False)

    async def _gather(
        self,
        participants: list[Debater],
        invoke: Callable[[Debater], Awaitable[Position]],
        label: str,
    ) -> list[Position]:
        """Wait-all join over every participant; positions kept in completion order."""
        completed: list[Position] = []

        async def _one(agent: Debater) -> None:
            result = await _call_agent(agent, lambda: invoke(agent), label)
            if isinstance(result, Position):
                completed.append(result)

        await asyncio.gather(*(_one(p) for p in participants))
        return completed

    def check_early_consensus(
        self,
        positions: list[Position],
        total_participants: int,
    ) -> tuple[str, list[str]] | None:
        """Return (stance, dissent) if the largest stance group clears the threshold."""
        if not positions or total_participants <= 0:
            return None
        groups = group_by_stance(positions)
        # max() keeps the first-seen group on ties
        leading = max(groups.values(), key=len)
        ratio = len(leading) / total_participants
        if ratio < self.consensus_threshold:
            return None
        key = normalize_stance(leading[0].stance)
        dissent = [_render(p.agent, p.stance) for p in positions if normalize_stance(p.stance) != key]
        logger.info("Early consensus on '%s' (%.0f%% agreement)", leading[0].stance, ratio * 100)
        return leading[0].stance, dissent

    async def seek_final_consensus(
        self,
        participants: list[Debater],
        final_positions: list[Position],
    ) -> tuple[str | None, list[str]]:
        """Ask every participant whether it accepts the leading stance."""
        self.audit.emit(ACTOR, "final_consensus_started", positions=len(final_positions))
        votes = await asyncio.gather(*(
            _call_agent(p, lambda p=p: p.evaluate_consensus(list(final_positions)), "consensus evaluation")
            for p in participants
        ))

        agreements = 0
        dissent: list[str] = []
        for agent, vote in zip(participants, votes):
            if isinstance(vote, ConsensusVote):
                if vote.agrees:
                    agreements += 1
                else:
                    dissent.append(_render(agent.agent_id, vote.reason))

        reached = bool(participants) and agreements / len(participants) >= self.consensus_threshold
        self.audit.emit(ACTOR, "final_consensus", agreements=agreements,
                        participants=len(participants), reached=reached)

        if reached and final_positions:
            groups = group_by_stance(final_positions)
            stance = max(groups.values(), key=len)[0].stance
            logger.info("Final consensus on '%s' (%d/%d agree)", stance, agreements, len(participants))
            return stance, dissent

        logger.info("No final consensus (%d/%d agree)", agreements, len(participants))
        return None, [_render(p.agent, p.stance) for p in final_positions]

    def _track_changes(self, last_known: dict[str, Position], positions: list[Position], round_num: int) -> None:
        for pos in positions:
            previous = last_known.get(pos.agent)
            if previous and normalize_stance(previous.stance) != normalize_stance(pos.stance):
                self.audit.emit(pos.agent, "position_changed", round=round_num,
                                previous=previous.stance, current=pos.stance)
                if self.network is not None:
                    self.network.send_message(
                        pos.agent, ACTOR, "insight",
                        f'Changed position from "{previous.stance}" to "{pos.stance}"',
                        {"round": round_num},
                    )

    def _finalize(
        self,
        topic: str,
        participant_ids: list[str],
        rounds: list[Round],
        stance: str | None,
        dissent: list[str],
        early: bool,
        no_quorum: bool = False,
    ) -> DebateOutcome:
        final = rounds[-1].positions if rounds else []
        confidence = sum(p.confidence for p in final) / len(final) if final else 0.0
        if not final:
            stance = None
        outcome = DebateOutcome(
            topic=topic,
            participants=participant_ids,
            rounds=rounds,
            consensus=stance,
            dissent=dissent,
            decision_path=stance or NO_CONSENSUS,
            confidence=confidence,
            early_consensus=early,
            no_quorum=no_quorum,
        )
        self.audit.emit(
            ACTOR, "debate_finalized", topic=topic, rounds=len(rounds), consensus=stance,
            confidence=confidence, dissent=list(dissent), no_quorum=no_quorum,
        )
        logger.info("Debate concluded after %d round(s): %s (confidence %.2f)",
                    len(rounds), outcome.decision_path, confidence)
        return outcome
