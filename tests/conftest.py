"""Shared pytest fixtures."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DefaultsConfig, InboxConfig, ModelConfig, PromptsConfig, RoleConfig
from deliberation.errors import InferenceError
from deliberation.models import AgentResult, Case, ConsensusVote, Judgment, Position
from deliberation.network import AgentNetwork
from deliberation.providers.base import InferenceGateway


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        output_format='Reply with JSON: {"stance": "..."}',
        position="Topic: {topic}",
        respond="Round {round}. Positions:\n{positions}",
        evaluate="Positions:\n{positions}\nLeading: {leading_stance}",
        analyze=(
            "Case {case_id}: {title} [{category}/{priority}] for {subject}\n{description}\n"
            "Messages: {messages}\nHistory: {history}\nContext: {context}"
        ),
    )


@pytest.fixture
def sample_role_config() -> RoleConfig:
    return RoleConfig(
        name="PatternAnalyst",
        model="claude",
        persona="You are a pattern analyst.",
        expertise=["trend_analysis"],
        specialties=["issue_clustering"],
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        max_rounds=2,
        output_dir=tmp_path / "output",
        default_model="claude",
        analysis_roles=["Router", "PatternAnalyst", "CustomerInsightAgent"],
        debate_panel=["PatternAnalyst", "CustomerInsightAgent", "SolutionArchitect", "ComplianceGuardian"],
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
    sample_role_config: RoleConfig,
    tmp_path: Path,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=4096,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        models={"claude": model_cfg},
        roles={"PatternAnalyst": sample_role_config},
        prompts=sample_prompts_config,
        inbox=InboxConfig(dir=tmp_path / "inbox", archive_dir=tmp_path / "inbox" / "archive"),
        available_models={"claude"},
    )


@pytest.fixture
def sample_case() -> Case:
    return Case(
        id="case-1",
        title="Charged twice for March invoice",
        description="The customer was billed twice and wants a refund.",
        subject="cust-42",
        prior_messages=["I see two charges on my card."],
        category="billing",
        priority="high",
    )


@pytest.fixture
def network() -> AgentNetwork:
    return AgentNetwork()


def make_judgment(stance: str = "Refund the duplicate charge", confidence: float = 0.8, **kwargs) -> Judgment:
    return Judgment(
        text=kwargs.pop("text", f'{{"stance": "{stance}"}}'),
        stance=stance,
        confidence=confidence,
        **kwargs,
    )


class MockGateway(InferenceGateway):
    """Test double InferenceGateway."""

    def __init__(self, gateway_name: str = "mock", judgment: Judgment | None = None) -> None:
        self._name = gateway_name
        self._judgment = judgment or make_judgment()
        # Shadow the class method with an AsyncMock at the instance level.
        self.analyze = AsyncMock(return_value=self._judgment)  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def analyze(self, system_context: str, user_context: str, temperature: float) -> Judgment:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return self._judgment


class ScriptedDebater:
    """Debater whose stance per round is scripted.

    Each script entry is a stance string, a (stance, confidence) tuple, or an
    Exception to raise in that round. The last entry repeats once the script
    runs out. `delay` (per round, seconds) controls completion order.
    """

    def __init__(
        self,
        agent_id: str,
        script: list,
        agrees: bool | Exception = True,
        delay: float | list[float] = 0.0,
        arguments: tuple[str, ...] = (),
    ) -> None:
        self.agent_id = agent_id
        self.script = script
        self.agrees = agrees
        self.delay = delay
        self.arguments = arguments
        self.calls: list[tuple[str, int]] = []

    async def _step(self, round_number: int) -> Position:
        delay = self.delay[round_number - 1] if isinstance(self.delay, list) else self.delay
        if delay:
            await asyncio.sleep(delay)
        entry = self.script[min(round_number, len(self.script)) - 1]
        if isinstance(entry, Exception):
            raise entry
        stance, confidence = entry if isinstance(entry, tuple) else (entry, 0.8)
        return Position(self.agent_id, stance, self.arguments, (), confidence)

    async def state_position(self, topic: str) -> Position:
        self.calls.append(("state_position", 1))
        return await self._step(1)

    async def respond_to_positions(self, positions: list[Position], round_number: int) -> Position:
        self.calls.append(("respond_to_positions", round_number))
        return await self._step(round_number)

    async def evaluate_consensus(self, positions: list[Position]) -> ConsensusVote:
        self.calls.append(("evaluate_consensus", 0))
        if isinstance(self.agrees, Exception):
            raise self.agrees
        return ConsensusVote(agrees=self.agrees, reason=f"{self.agent_id} reason")


class FakeAnalyst(ScriptedDebater):
    """ScriptedDebater that can also analyze cases for the orchestrator."""

    def __init__(
        self,
        agent_id: str,
        stance: str = "Refund the duplicate charge",
        confidence: float = 0.8,
        should_escalate: bool = False,
        fail: bool = False,
        next_actions: list[str] | None = None,
        debate_script: list | None = None,
        analyze_delay: float = 0.0,
    ) -> None:
        super().__init__(agent_id, debate_script or [stance])
        self.stance = stance
        self.confidence = confidence
        self.should_escalate = should_escalate
        self.fail = fail
        self.next_actions = next_actions or []
        self.analyze_delay = analyze_delay
        self.contexts: list[str] = []
        self.histories: list[str] = []

    async def analyze_case(self, case: Case, context: str, history: str, phase: str) -> AgentResult:
        self.contexts.append(context)
        self.histories.append(history)
        if self.analyze_delay:
            await asyncio.sleep(self.analyze_delay)
        if self.fail:
            raise InferenceError(self.agent_id, "model unavailable")
        return AgentResult(
            agent=self.agent_id,
            role=self.agent_id,
            phase=phase,
            content=f"{self.stance} ({self.agent_id})",
            confidence=self.confidence,
            should_escalate=self.should_escalate,
            succeeded=True,
            stance=self.stance,
            evidence=[f"{self.agent_id} evidence"],
            next_actions=list(self.next_actions),
        )


@pytest.fixture
def mock_gateway() -> MockGateway:
    return MockGateway()


@pytest.fixture
def agreeing_panel() -> dict[str, FakeAnalyst]:
    """Six agents that all recommend the same course of action."""
    return {
        "Router": FakeAnalyst("Router"),
        "PatternAnalyst": FakeAnalyst("PatternAnalyst"),
        "CustomerInsightAgent": FakeAnalyst("CustomerInsightAgent"),
        "SolutionArchitect": FakeAnalyst("SolutionArchitect"),
        "ProactiveAgent": FakeAnalyst("ProactiveAgent", next_actions=["Follow up in 3 days"]),
        "ComplianceGuardian": FakeAnalyst("ComplianceGuardian"),
    }
