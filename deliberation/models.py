"""Dataclasses for the deliberation pipeline. No logic beyond derived fields."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

AgentRole = Literal[
    "Router",
    "PatternAnalyst",
    "CustomerInsightAgent",
    "SolutionArchitect",
    "ProactiveAgent",
    "ComplianceGuardian",
]
InsightKind = Literal["pattern", "anomaly", "recommendation", "warning", "opportunity"]
Impact = Literal["low", "medium", "high", "critical"]
MessageType = Literal["query", "insight", "request", "response", "alert"]
CaseOutcome = Literal["resolved", "escalated", "pending"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


# --- inference boundary ---

@dataclass
class Judgment:
    text: str
    stance: str
    arguments: list[str] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    confidence: float = 0.0
    should_escalate: bool = False
    next_actions: list[str] = field(default_factory=list)
    agrees: bool | None = None     # only set by consensus evaluations


# --- debate session (request-scoped) ---

@dataclass(frozen=True)
class Position:
    agent: str
    stance: str
    arguments: tuple[str, ...] = ()
    evidence: tuple[str, ...] = ()
    confidence: float = 0.0

    def __post_init__(self) -> None:
        # frozen: write through object.__setattr__
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "evidence", tuple(self.evidence))
        object.__setattr__(self, "confidence", _clamp(self.confidence))


@dataclass
class Round:
    number: int
    positions: list[Position] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_now)


@dataclass
class ConsensusVote:
    agrees: bool
    reason: str


@dataclass
class DebateOutcome:
    topic: str
    participants: list[str]
    rounds: list[Round]
    consensus: str | None          # None when no stance cleared the threshold
    dissent: list[str]
    decision_path: str
    confidence: float
    early_consensus: bool = False
    no_quorum: bool = False

    @property
    def final_positions(self) -> list[Position]:
        return self.rounds[-1].positions if self.rounds else []


@dataclass
class ConsensusOption:
    id: str
    description: str
    supporting_agents: list[str] = field(default_factory=list)
    opposing_agents: list[str] = field(default_factory=list)
    evidence: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    benefits: list[str] = field(default_factory=list)
    confidence: float = 0.0

    @property
    def total_agents(self) -> int:
        return len(self.supporting_agents) + len(self.opposing_agents)

    @property
    def support_ratio(self) -> float:
        total = self.total_agents
        return len(self.supporting_agents) / total if total else 0.0


@dataclass
class ConsensusResult:
    reached: bool
    reasoning: str
    option: ConsensusOption | None = None
    alternative_options: list[ConsensusOption] = field(default_factory=list)
    dissent_reasons: list[str] = field(default_factory=list)
    confidence_level: float = 0.0


# --- network state (process-wide) ---

@dataclass
class Insight:
    agent: str
    kind: InsightKind
    content: str
    confidence: float
    evidence: list[str] = field(default_factory=list)
    impact: Impact = "medium"
    related_data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)


@dataclass
class Communication:
    from_agent: str
    to_agent: str
    message_type: MessageType
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)


@dataclass
class SuccessMetrics:
    resolution_time_sec: float = 0.0
    customer_satisfaction: int | None = None   # 1-5
    effort_score: float | None = None


@dataclass
class CaseMemory:
    case_id: str
    subject_id: str
    issue: str
    resolution: str
    outcome: CaseOutcome
    learnings: list[str] = field(default_factory=list)
    metrics: SuccessMetrics = field(default_factory=SuccessMetrics)


@dataclass
class PerformanceStats:
    success_rate: float = 1.0
    avg_response_time_sec: float = 0.0
    specialties: list[str] = field(default_factory=list)
    tasks_completed: int = 0
    tasks_failed: int = 0


@dataclass
class AgentStatus:
    agent_id: str
    busy: bool = False
    current_task: str | None = None
    last_active_at: datetime = field(default_factory=_now)
    expertise: list[str] = field(default_factory=list)
    performance: PerformanceStats = field(default_factory=PerformanceStats)


@dataclass
class DecisionOption:
    option: str
    supporting_agents: list[str]
    pros: list[str] = field(default_factory=list)
    cons: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class CollaborativeDecision:
    id: str
    initiating_agent: str
    participating_agents: list[str]
    topic: str
    options: list[DecisionOption] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)
    final_decision: str = ""
    reasoning: str = ""
    dissent: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)


# --- orchestration ---

@dataclass
class Case:
    id: str
    title: str
    description: str
    subject: str                   # customer / account the case belongs to
    prior_messages: list[str] = field(default_factory=list)
    category: str = "general"
    priority: str = "normal"


@dataclass
class AgentResult:
    agent: str
    role: str
    phase: str
    content: str
    confidence: float
    should_escalate: bool
    succeeded: bool
    stance: str = ""
    evidence: list[str] = field(default_factory=list)
    next_actions: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class AuditEvent:
    actor: str
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)


@dataclass
class DeliberationResult:
    case_id: str
    recommendation: str
    agent_results: list[AgentResult]
    overall_confidence: float
    should_escalate: bool
    metrics: dict[str, float]
    events: list[AuditEvent] = field(default_factory=list)
    debate: DebateOutcome | None = None
    consensus: ConsensusResult | None = None
    insights: list[Insight] = field(default_factory=list)
    communications: list[Communication] = field(default_factory=list)
