"""Agent adapters: one specialist role wrapped around an inference gateway."""

import logging
import random
from typing import Protocol, get_args

from config.config_loader import PromptsConfig, RoleConfig
from deliberation.errors import InferenceError
from deliberation.models import AgentResult, AgentRole, Case, ConsensusVote, Judgment, Position
from deliberation.providers.base import InferenceGateway

logger = logging.getLogger(__name__)

ROLES: tuple[str, ...] = get_args(AgentRole)


class Debater(Protocol):
    """Capability set the debate coordinator needs from a participant."""

    @property
    def agent_id(self) -> str: ...

    async def state_position(self, topic: str) -> Position: ...

    async def respond_to_positions(self, positions: list[Position], round_number: int) -> Position: ...

    async def evaluate_consensus(self, positions: list[Position]) -> ConsensusVote: ...


class Analyst(Debater, Protocol):
    """A debater that can also analyze a whole case for the orchestrator."""

    async def analyze_case(self, case: Case, context: str, history: str, phase: str) -> AgentResult: ...


def _anonymize_positions(positions: list[Position]) -> tuple[str, dict[str, str]]:
    """Shuffle positions and label them anonymously.

    Returns:
        (anonymized_block, label→agent mapping)
    """
    shuffled = list(positions)
    random.shuffle(shuffled)
    labels = [chr(ord("A") + i) for i in range(len(shuffled))]
    parts = []
    for label, pos in zip(labels, shuffled):
        args = "\n".join(f"  - {a}" for a in pos.arguments)
        parts.append(
            f"--- Position {label} (confidence {pos.confidence:.2f}) ---\n"
            f"Stance: {pos.stance}\n{args}".rstrip()
        )
    mapping = {label: pos.agent for label, pos in zip(labels, shuffled)}
    return "\n\n".join(parts), mapping


def _leading_stance(positions: list[Position]) -> str:
    counts: dict[str, int] = {}
    for pos in positions:
        counts[pos.stance] = counts.get(pos.stance, 0) + 1
    # max() keeps the first-seen stance on ties
    return max(counts, key=counts.get) if counts else "(none)"


class SpecialistAgent:
    """A specialist role (PatternAnalyst, SolutionArchitect, ...) backed by a gateway.

    Each call is independent: nothing is carried between calls except what
    is passed in. Every failure surfaces as InferenceError tagged with the
    agent id, never as a partial value.
    """

    def __init__(
        self,
        role: RoleConfig,
        gateway: InferenceGateway,
        prompts: PromptsConfig,
        temperature: float = 0.3,
    ) -> None:
        if role.name not in ROLES:
            raise ValueError(f"Unknown agent role: {role.name}")
        self._role = role
        self._gateway = gateway
        self._prompts = prompts
        self._temperature = temperature

    @property
    def agent_id(self) -> str:
        return self._role.name

    @property
    def role(self) -> RoleConfig:
        return self._role

    @property
    def expertise(self) -> list[str]:
        return list(self._role.expertise)

    @property
    def specialties(self) -> list[str]:
        return list(self._role.specialties)

    def _system_context(self) -> str:
        return f"{self._role.persona}\n\n{self._prompts.output_format}".strip()

    async def _judge(self, user_context: str) -> Judgment:
        try:
            return await self._gateway.analyze(self._system_context(), user_context, self._temperature)
        except InferenceError as exc:
            raise InferenceError(self.agent_id, str(exc)) from exc
        except Exception as exc:
            raise InferenceError(self.agent_id, f"Unexpected error: {exc}") from exc

    def _position(self, judgment: Judgment) -> Position:
        return Position(
            agent=self.agent_id,
            stance=judgment.stance,
            arguments=judgment.arguments,
            evidence=judgment.evidence,
            confidence=judgment.confidence,
        )

    async def state_position(self, topic: str) -> Position:
        judgment = await self._judge(self._prompts.position.format(topic=topic))
        return self._position(judgment)

    async def respond_to_positions(self, positions: list[Position], round_number: int) -> Position:
        block, label_map = _anonymize_positions(positions)
        logger.debug("%s round %d anonymization map: %s", self.agent_id, round_number, label_map)
        judgment = await self._judge(
            self._prompts.respond.format(round=round_number, positions=block)
        )
        return self._position(judgment)

    async def evaluate_consensus(self, positions: list[Position]) -> ConsensusVote:
        block, _ = _anonymize_positions(positions)
        judgment = await self._judge(
            self._prompts.evaluate.format(positions=block, leading_stance=_leading_stance(positions))
        )
        agrees = judgment.agrees
        if agrees is None:
            agrees = judgment.stance.strip().lower().startswith("agree")
        reason = judgment.arguments[0] if judgment.arguments else judgment.stance
        return ConsensusVote(agrees=agrees, reason=reason)

    async def analyze_case(self, case: Case, context: str, history: str, phase: str) -> AgentResult:
        """Analyze a case for the orchestrator.

        Args:
            case: The support case under deliberation.
            context: Findings of earlier phases ("" for independent analyses).
            history: Rendered memories for the case subject.
            phase: Phase name recorded on the result.

        Raises:
            InferenceError: If the underlying judgment fails.
        """
        user_context = self._prompts.analyze.format(
            case_id=case.id,
            title=case.title,
            category=case.category,
            priority=case.priority,
            subject=case.subject,
            description=case.description,
            messages="\n".join(case.prior_messages) or "(none)",
            history=history or "(none)",
            context=context or "(none)",
        )
        judgment = await self._judge(user_context)
        content = judgment.stance
        if judgment.arguments:
            content += "\n" + "\n".join(f"- {a}" for a in judgment.arguments)
        return AgentResult(
            agent=self.agent_id,
            role=self._role.name,
            phase=phase,
            content=content,
            confidence=judgment.confidence,
            should_escalate=judgment.should_escalate,
            succeeded=True,
            stance=judgment.stance,
            evidence=list(judgment.evidence),
            next_actions=list(judgment.next_actions),
        )


def build_agents(
    roles: dict[str, RoleConfig],
    gateways: dict[str, InferenceGateway],
    prompts: PromptsConfig,
    temperature: float = 0.3,
    fallback: InferenceGateway | None = None,
) -> dict[str, SpecialistAgent]:
    """Build one SpecialistAgent per configured role whose gateway is available.

    Roles whose model has no gateway use `fallback` when given, else are skipped.
    """
    agents: dict[str, SpecialistAgent] = {}
    for name, role in roles.items():
        gateway = gateways.get(role.model, fallback)
        if gateway is None:
            logger.warning("Role %s skipped: model '%s' unavailable", name, role.model)
            continue
        agents[name] = SpecialistAgent(role, gateway, prompts, temperature)
    return agents
