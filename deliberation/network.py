"""Agent network: insight pub/sub, communication log, case memory and agent status.

One AgentNetwork instance is shared by every session in the process and is
passed explicitly to the coordinator and orchestrator. All mutations go
through a single lock; reads copy a snapshot under the lock and return it,
so readers never hold the lock while iterating.
"""

import asyncio
import copy
import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import get_args

from deliberation.agents import Debater
from deliberation.errors import InferenceError
from deliberation.models import (
    AgentStatus,
    CaseMemory,
    CollaborativeDecision,
    Communication,
    ConsensusResult,
    DecisionOption,
    Insight,
    InsightKind,
    MessageType,
    PerformanceStats,
    Position,
)

logger = logging.getLogger(__name__)

InsightHandler = Callable[[Insight], None]

# Which agents hear about a high/critical insight of each kind.
ALERT_ROUTES: dict[str, tuple[str, ...]] = {
    "pattern": ("SolutionArchitect", "ProactiveAgent"),
    "anomaly": ("PatternAnalyst", "ComplianceGuardian"),
    "warning": ("ProactiveAgent", "ComplianceGuardian"),
    "opportunity": ("CustomerInsightAgent", "SolutionArchitect"),
}
_ALERT_IMPACTS = frozenset({"high", "critical"})
_INSIGHT_KINDS = frozenset(get_args(InsightKind))
_SATISFIED = 4
MEMORY_AGENT = "MemorySystem"


class AgentNetwork:
    """Process-wide registry shared by concurrent deliberation sessions."""

    def __init__(self, max_log_size: int = 1000) -> None:
        self._lock = threading.Lock()
        self._communications: deque[Communication] = deque(maxlen=max_log_size)
        self._insights: deque[Insight] = deque(maxlen=max_log_size)
        self._decisions: dict[str, CollaborativeDecision] = {}
        self._memories: dict[str, list[CaseMemory]] = {}
        self._status: dict[str, AgentStatus] = {}
        self._handlers: list[InsightHandler] = []

    # --- registration ---

    def register_agent(
        self,
        agent_id: str,
        expertise: list[str] | None = None,
        specialties: list[str] | None = None,
    ) -> AgentStatus:
        """Add an agent to the status table (idempotent)."""
        with self._lock:
            status = self._status.get(agent_id)
            if status is None:
                status = AgentStatus(
                    agent_id=agent_id,
                    expertise=list(expertise or []),
                    performance=PerformanceStats(specialties=list(specialties or [])),
                )
                self._status[agent_id] = status
            return copy.deepcopy(status)

    def subscribe(self, handler: InsightHandler) -> Callable[[], None]:
        """Receive every broadcast insight. Returns an unsubscribe callable."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    # --- messaging ---

    def send_message(
        self,
        from_agent: str,
        to_agent: str,
        message_type: MessageType,
        content: str,
        metadata: dict | None = None,
    ) -> Communication:
        message = Communication(
            from_agent=from_agent,
            to_agent=to_agent,
            message_type=message_type,
            content=content,
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._communications.append(message)
        logger.debug("%s -> %s [%s]: %s", from_agent, to_agent, message_type, content)
        return message

    def broadcast(self, insight: Insight) -> list[Communication]:
        """Append an insight; route high/critical ones as alerts.

        Returns:
            The alert messages appended to the communication log.
        """
        if insight.kind not in _INSIGHT_KINDS:
            raise ValueError(f"Unknown insight kind: {insight.kind}")

        with self._lock:
            self._insights.append(insight)
            handlers = list(self._handlers)

        logger.info("Insight from %s [%s/%s]: %s", insight.agent, insight.kind, insight.impact, insight.content)

        alerts: list[Communication] = []
        if insight.impact in _ALERT_IMPACTS:
            for agent in self.relevant_agents(insight.kind):
                alerts.append(
                    self.send_message(
                        from_agent=insight.agent,
                        to_agent=agent,
                        message_type="alert",
                        content=f"Critical insight: {insight.content}",
                        metadata={"kind": insight.kind, "impact": insight.impact,
                                  "confidence": insight.confidence},
                    )
                )

        for handler in handlers:
            try:
                handler(insight)
            except Exception as exc:
                logger.warning("Insight handler failed: %s", exc)
        return alerts

    @staticmethod
    def relevant_agents(kind: InsightKind) -> tuple[str, ...]:
        return ALERT_ROUTES.get(kind, ())

    # --- memory ---

    def record_memory(self, memory: CaseMemory) -> Insight | None:
        """Append a case memory for its subject.

        A resolved case with satisfaction >= 4 feeds a "pattern" insight back
        into the insight stream; that insight is returned.
        """
        with self._lock:
            self._memories.setdefault(memory.subject_id, []).append(copy.deepcopy(memory))

        satisfaction = memory.metrics.customer_satisfaction
        if memory.outcome != "resolved" or satisfaction is None or satisfaction < _SATISFIED:
            return None

        insight = Insight(
            agent=MEMORY_AGENT,
            kind="pattern",
            content=f"Successful resolution pattern identified for {memory.issue}",
            confidence=0.9,
            evidence=list(memory.learnings),
            impact="medium",
            related_data={"case_ids": [memory.case_id], "subject_ids": [memory.subject_id]},
        )
        self.broadcast(insight)
        return insight

    def get_history(self, subject_id: str) -> list[CaseMemory]:
        with self._lock:
            return copy.deepcopy(self._memories.get(subject_id, []))

    # --- collaborative decisions ---

    async def initiate_collaborative_decision(
        self,
        initiator: str,
        topic: str,
        participants: list[Debater],
    ) -> CollaborativeDecision:
        """Collect one candidate option per participant, without scoring.

        Participants whose call fails are left out of the options. Scoring
        belongs to ConsensusBuilder; record its verdict with close_decision().
        """
        for participant in participants:
            self.send_message(initiator, participant.agent_id, "request", f"Propose an option for: {topic}")

        async def _ask(participant: Debater) -> Position | InferenceError:
            try:
                return await participant.state_position(topic)
            except InferenceError as exc:
                logger.warning("Decision participant %s failed: %s", participant.agent_id, exc)
                return exc
            except Exception as exc:
                logger.warning("Decision participant %s unexpected failure: %s", participant.agent_id, exc)
                return InferenceError(participant.agent_id, f"Unexpected error: {exc}")

        results = await asyncio.gather(*(_ask(p) for p in participants))

        positions = [r for r in results if isinstance(r, Position)]
        decision = CollaborativeDecision(
            id=f"decision-{uuid.uuid4().hex[:8]}",
            initiating_agent=initiator,
            participating_agents=[p.agent_id for p in participants],
            topic=topic,
            options=[
                DecisionOption(
                    option=pos.stance,
                    supporting_agents=[pos.agent],
                    pros=list(pos.arguments),
                    confidence=pos.confidence,
                )
                for pos in positions
            ],
            positions=positions,
        )
        for pos in positions:
            self.send_message(pos.agent, initiator, "response", pos.stance, {"decision_id": decision.id})

        logger.info("Collaborative decision %s on '%s': %d options", decision.id, topic, len(decision.options))
        with self._lock:
            self._decisions[decision.id] = decision
            return copy.deepcopy(decision)

    def close_decision(self, decision_id: str, result: ConsensusResult) -> CollaborativeDecision:
        """Record a consensus verdict on an open decision.

        Raises:
            KeyError: If the decision id is unknown.
        """
        with self._lock:
            decision = self._decisions[decision_id]
            decision.final_decision = result.option.description if result.option else ""
            decision.reasoning = result.reasoning
            decision.dissent = list(result.dissent_reasons)
            return copy.deepcopy(decision)

    def get_decisions(self) -> list[CollaborativeDecision]:
        with self._lock:
            return copy.deepcopy(list(self._decisions.values()))

    # --- status ---

    def update_status(self, agent_id: str, busy: bool, current_task: str | None = None) -> bool:
        """Transition idle→busy or busy→idle.

        Returns False (and changes nothing) when the agent is unknown or is
        already busy, even with the same task.
        """
        with self._lock:
            status = self._status.get(agent_id)
            if status is None:
                logger.warning("Status update for unregistered agent %s ignored", agent_id)
                return False
            if busy and status.busy:
                return False
            status.busy = busy
            status.current_task = current_task if busy else None
            status.last_active_at = datetime.now(timezone.utc)
            return True

    def record_task_result(self, agent_id: str, succeeded: bool, elapsed_sec: float) -> None:
        with self._lock:
            status = self._status.get(agent_id)
            if status is None:
                return
            perf = status.performance
            done = perf.tasks_completed + perf.tasks_failed
            perf.avg_response_time_sec = (perf.avg_response_time_sec * done + elapsed_sec) / (done + 1)
            if succeeded:
                perf.tasks_completed += 1
            else:
                perf.tasks_failed += 1
            perf.success_rate = perf.tasks_completed / (done + 1)

    def get_status(self, agent_id: str) -> AgentStatus | None:
        with self._lock:
            status = self._status.get(agent_id)
            if status is None:
                return None
            return copy.deepcopy(status)

    def is_available(self, agent_id: str) -> bool:
        status = self.get_status(agent_id)
        return status is not None and not status.busy

    # --- reads ---

    def get_recent_insights(self, limit: int = 10) -> list[Insight]:
        with self._lock:
            if limit <= 0:
                return []
            return copy.deepcopy(list(self._insights)[-limit:])

    def get_communications(self, agent: str | None = None) -> list[Communication]:
        with self._lock:
            snapshot = copy.deepcopy(list(self._communications))
        if agent is None:
            return snapshot
        return [c for c in snapshot if agent in (c.from_agent, c.to_agent)]
