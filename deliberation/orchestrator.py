"""
Deliberation orchestrator: runs one support case through the agent panel.

Pipeline:
  1. Independent analyses (parallel): triage, patterns, customer insight
  2. Insight broadcast of the phase 1 findings
  3. Panel debate + consensus, only when phase 1 views diverge
  4. Solution design (sequential, consumes 1-3)
  5. Proactive planning (sequential, consumes 4)
  6. Synthesis into one recommendation plus metrics

A failing agent never aborts the pipeline: its slot is filled with a
zero-confidence placeholder that requests escalation. Every phase entry and
exit is recorded on the session's AuditTrail.
"""

import asyncio
import logging
import time

from deliberation.agents import Analyst
from deliberation.consensus import DEFAULT_MINIMUM_SUPPORT, ConsensusBuilder, normalize_stance
from deliberation.debate import DEFAULT_CONSENSUS_THRESHOLD, DEFAULT_MAX_ROUNDS, DebateCoordinator
from deliberation.errors import InferenceError, NoQuorumError
from deliberation.events import AuditTrail, EventSink
from deliberation.models import (
    AgentResult,
    Case,
    CaseMemory,
    CaseOutcome,
    ConsensusResult,
    DebateOutcome,
    DeliberationResult,
    Insight,
    SuccessMetrics,
)
from deliberation.network import AgentNetwork
from deliberation.synthesis import (
    format_debate_context,
    format_findings,
    format_history,
    synthesize_recommendation,
)

logger = logging.getLogger(__name__)

ACTOR = "Orchestrator"

PHASE_ANALYSIS = "phase1_independent_analysis"
PHASE_DEBATE = "panel_debate"
PHASE_SOLUTION = "phase2_solution_design"
PHASE_PROACTIVE = "phase3_proactive_planning"

DEFAULT_ANALYSIS_ROLES = ("Router", "PatternAnalyst", "CustomerInsightAgent")
DEFAULT_DEBATE_PANEL = ("PatternAnalyst", "CustomerInsightAgent", "SolutionArchitect", "ComplianceGuardian")
DEFAULT_ESCALATION_THRESHOLD = 0.6
_URGENT_PRIORITIES = frozenset({"urgent", "critical"})


def _placeholder(agent: str, phase: str, reason: str) -> AgentResult:
    return AgentResult(
        agent=agent,
        role=agent,
        phase=phase,
        content=f"Agent {agent} encountered an error",
        confidence=0.0,
        should_escalate=True,
        succeeded=False,
        error=reason,
    )


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class DeliberationOrchestrator:
    """
    Sequences a case through the analysis, debate, solution and planning phases.

    Usage:
        network = AgentNetwork()
        orchestrator = DeliberationOrchestrator(agents, network)
        result = await orchestrator.run(case)
        orchestrator.record_resolution(case, result, outcome="resolved", satisfaction=5)
    """

    def __init__(
        self,
        agents: dict[str, Analyst],
        network: AgentNetwork,
        analysis_roles: tuple[str, ...] | list[str] = DEFAULT_ANALYSIS_ROLES,
        debate_panel: tuple[str, ...] | list[str] = DEFAULT_DEBATE_PANEL,
        solution_role: str = "SolutionArchitect",
        proactive_role: str = "ProactiveAgent",
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        consensus_threshold: float = DEFAULT_CONSENSUS_THRESHOLD,
        minimum_support: float = DEFAULT_MINIMUM_SUPPORT,
        escalation_threshold: float = DEFAULT_ESCALATION_THRESHOLD,
        event_sinks: list[EventSink] | None = None,
    ):
        self.agents = agents
        self.network = network
        self.analysis_roles = list(analysis_roles)
        self.debate_panel = list(debate_panel)
        self.solution_role = solution_role
        self.proactive_role = proactive_role
        self.max_rounds = max_rounds
        self.consensus_threshold = consensus_threshold
        self.escalation_threshold = escalation_threshold
        self.builder = ConsensusBuilder(minimum_support=minimum_support)
        self._event_sinks = list(event_sinks or [])

        for agent_id, agent in agents.items():
            network.register_agent(
                agent_id,
                expertise=getattr(agent, "expertise", None),
                specialties=getattr(agent, "specialties", None),
            )

    async def run(self, case: Case) -> DeliberationResult:
        """
        Run the full pipeline for one case.

        Raises:
            NoQuorumError: Only when no agent in any phase produced a result.
        """
        audit = AuditTrail(self._event_sinks)
        started = time.monotonic()
        audit.emit(ACTOR, "session_started", case_id=case.id, title=case.title, subject=case.subject)
        history = format_history(self.network.get_history(case.subject))

        # ── Phase 1: independent analyses (parallel, wait-all) ──
        audit.emit(ACTOR, "phase_started", phase=PHASE_ANALYSIS, agents=list(self.analysis_roles))
        phase1 = list(await asyncio.gather(*(
            self._run_agent(role, case, "", history, PHASE_ANALYSIS, audit)
            for role in self.analysis_roles
        )))
        self._complete_phase(audit, PHASE_ANALYSIS, phase1)
        self._broadcast_findings(case, phase1)

        # ── Debate: only when the independent views diverge ──
        debate, consensus = await self._reconcile(case, phase1, audit)

        # ── Phase 2: solution design ──
        context = "\n\n".join(filter(None, [format_findings(phase1), format_debate_context(debate, consensus)]))
        audit.emit(ACTOR, "phase_started", phase=PHASE_SOLUTION, agents=[self.solution_role])
        solution = await self._run_agent(self.solution_role, case, context, history, PHASE_SOLUTION, audit)
        self._complete_phase(audit, PHASE_SOLUTION, [solution])

        # ── Phase 3: proactive planning ──
        context = "\n\n".join(filter(None, [context, format_findings([solution])]))
        audit.emit(ACTOR, "phase_started", phase=PHASE_PROACTIVE, agents=[self.proactive_role])
        proactive = await self._run_agent(self.proactive_role, case, context, history, PHASE_PROACTIVE, audit)
        self._complete_phase(audit, PHASE_PROACTIVE, [proactive])

        results = phase1 + [solution, proactive]
        succeeded = [r for r in results if r.succeeded]
        if not succeeded:
            audit.emit(ACTOR, "session_failed", case_id=case.id, reason="no agent produced a result")
            raise NoQuorumError(case.id, [r.agent for r in results])

        # ── Synthesis ──
        overall = _mean([r.confidence for r in succeeded])
        should_escalate = overall < self.escalation_threshold or any(r.should_escalate for r in results)
        recommendation = synthesize_recommendation(results, debate, consensus)
        metrics = self._metrics(results, proactive, time.monotonic() - started)

        audit.emit(
            ACTOR, "session_completed", case_id=case.id, confidence=overall,
            should_escalate=should_escalate, agents_succeeded=len(succeeded),
        )
        logger.info(
            "Case %s deliberated: confidence %.2f, escalate=%s, %d/%d agents succeeded",
            case.id, overall, should_escalate, len(succeeded), len(results),
        )

        return DeliberationResult(
            case_id=case.id,
            recommendation=recommendation,
            agent_results=results,
            overall_confidence=overall,
            should_escalate=should_escalate,
            metrics=metrics,
            events=audit.events(),
            debate=debate,
            consensus=consensus,
            insights=self.network.get_recent_insights(),
            communications=self.network.get_communications(),
        )

    async def _run_agent(
        self,
        role: str,
        case: Case,
        context: str,
        history: str,
        phase: str,
        audit: AuditTrail,
    ) -> AgentResult:
        """Run one agent with status tracking. Never raises."""
        agent = self.agents.get(role)
        if agent is None:
            logger.warning("Agent %s not configured; using placeholder", role)
            result = _placeholder(role, phase, "agent not configured")
            self._record_agent(audit, result)
            return result

        if not self.network.update_status(role, busy=True, current_task=f"Processing case {case.id}"):
            logger.warning("Agent %s is busy; not eligible for case %s", role, case.id)
            result = _placeholder(role, phase, "agent busy with another task")
            self._record_agent(audit, result)
            return result

        audit.emit(role, "agent_started", phase=phase, case_id=case.id)
        start = time.monotonic()
        try:
            result = await agent.analyze_case(case, context, history, phase)
        except InferenceError as exc:
            logger.warning("Agent %s failed in %s: %s", role, phase, exc)
            result = _placeholder(role, phase, str(exc))
        except Exception as exc:
            logger.warning("Agent %s unexpected failure in %s: %s", role, phase, exc)
            result = _placeholder(role, phase, f"Unexpected error: {exc}")
        finally:
            self.network.update_status(role, busy=False)

        self.network.record_task_result(role, result.succeeded, time.monotonic() - start)
        self._record_agent(audit, result)
        return result

    @staticmethod
    def _record_agent(audit: AuditTrail, result: AgentResult) -> None:
        audit.emit(
            result.agent, "agent_completed",
            phase=result.phase, succeeded=result.succeeded, confidence=result.confidence,
            evidence=list(result.evidence), next_actions=list(result.next_actions),
            should_escalate=result.should_escalate, error=result.error,
        )

    @staticmethod
    def _complete_phase(audit: AuditTrail, phase: str, results: list[AgentResult]) -> None:
        succeeded = [r for r in results if r.succeeded]
        audit.emit(
            ACTOR, "phase_completed",
            phase=phase,
            agents=[r.agent for r in results],
            succeeded=[r.agent for r in succeeded],
            confidence=_mean([r.confidence for r in succeeded]),
            evidence=[e for r in succeeded for e in r.evidence],
            next_actions=[a for r in succeeded for a in r.next_actions],
        )

    def _broadcast_findings(self, case: Case, phase1: list[AgentResult]) -> None:
        succeeded = [r for r in phase1 if r.succeeded]
        if not succeeded:
            return
        urgent = case.priority.lower() in _URGENT_PRIORITIES or any(r.should_escalate for r in succeeded)
        self.network.broadcast(Insight(
            agent=ACTOR,
            kind="pattern",
            content=f"Processing {case.category} issue for {case.subject}",
            confidence=_mean([r.confidence for r in succeeded]),
            evidence=[f"{r.agent} confidence: {r.confidence:.2f}" for r in succeeded],
            impact="critical" if urgent else "medium",
            related_data={"case_ids": [case.id], "subject_ids": [case.subject]},
        ))

    async def _reconcile(
        self,
        case: Case,
        phase1: list[AgentResult],
        audit: AuditTrail,
    ) -> tuple[DebateOutcome | None, ConsensusResult | None]:
        """Debate the recommended action when phase 1 stances diverge."""
        views = [r for r in phase1 if r.succeeded and r.stance]
        if len({normalize_stance(r.stance) for r in views}) <= 1:
            return None, None

        task = f"Debating case {case.id}"
        panel = [
            self.agents[role] for role in self.debate_panel
            if role in self.agents and self.network.update_status(role, busy=True, current_task=task)
        ]
        if len(panel) < 2:
            for agent in panel:
                self.network.update_status(agent.agent_id, busy=False)
            logger.info("Debate skipped for case %s: only %d panel member(s) available", case.id, len(panel))
            return None, None

        topic = (
            f"Recommended course of action for case {case.id}: {case.title}\n{case.description}\n"
            "Initial views:\n" + "\n".join(f"- {r.agent}: {r.stance}" for r in views)
        )
        audit.emit(ACTOR, "phase_started", phase=PHASE_DEBATE, agents=[a.agent_id for a in panel])
        coordinator = DebateCoordinator(
            network=self.network,
            max_rounds=self.max_rounds,
            consensus_threshold=self.consensus_threshold,
            audit=audit,
        )
        try:
            debate = await coordinator.run(topic, panel)
        finally:
            for agent in panel:
                self.network.update_status(agent.agent_id, busy=False)

        consensus = self.builder.build(topic, debate.final_positions, participants=debate.participants)
        if not consensus.reached and debate.final_positions:
            constraints = [
                arg for pos in debate.final_positions
                if pos.agent == "ComplianceGuardian" for arg in pos.arguments
            ]
            compromise = self.builder.find_compromise(debate.final_positions, constraints)
            consensus.alternative_options.append(compromise)
            audit.emit(ACTOR, "compromise_proposed", description=compromise.description,
                       benefits=list(compromise.benefits), risks=list(compromise.risks))

        audit.emit(
            ACTOR, "phase_completed",
            phase=PHASE_DEBATE,
            agents=debate.participants,
            confidence=debate.confidence,
            evidence=list(debate.dissent),
            next_actions=[debate.decision_path],
            consensus=debate.consensus,
            consensus_reached=consensus.reached,
        )
        return debate, consensus

    def _metrics(self, results: list[AgentResult], proactive: AgentResult, elapsed: float) -> dict[str, float]:
        insights = self.network.get_recent_insights()
        communications = self.network.get_communications()
        agent_count = max(len(self.agents), 1)
        return {
            "total_processing_time_sec": elapsed,
            "collaboration_score": min(1.0, len(communications) / (agent_count * 2)),
            "confidence_score": _mean([i.confidence for i in insights]),
            "proactive_actions_scheduled": float(len(proactive.next_actions)),
            "agents_succeeded": float(sum(r.succeeded for r in results)),
            "agents_failed": float(sum(not r.succeeded for r in results)),
        }

    def record_resolution(
        self,
        case: Case,
        result: DeliberationResult,
        outcome: CaseOutcome,
        satisfaction: int | None = None,
        resolution_time_sec: float | None = None,
        learnings: list[str] | None = None,
    ) -> Insight | None:
        """Store the case outcome as subject memory for later cases.

        Returns the derived success-pattern insight, if one was broadcast.
        """
        memory = CaseMemory(
            case_id=case.id,
            subject_id=case.subject,
            issue=case.title,
            resolution=result.recommendation.split("\n", 1)[0],
            outcome=outcome,
            learnings=list(learnings) if learnings is not None else [
                r.stance for r in result.agent_results if r.succeeded and r.stance
            ],
            metrics=SuccessMetrics(
                resolution_time_sec=(
                    resolution_time_sec if resolution_time_sec is not None
                    else result.metrics.get("total_processing_time_sec", 0.0)
                ),
                customer_satisfaction=satisfaction,
            ),
        )
        return self.network.record_memory(memory)
