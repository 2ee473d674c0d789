"""Tests for deliberation/events.py."""

import logging

from deliberation.events import AuditTrail
from deliberation.models import AuditEvent


def test_emit_records_event_with_payload():
    audit = AuditTrail()
    event = audit.emit("Orchestrator", "phase_started", phase="p1", agents=["Router"])
    assert event.actor == "Orchestrator"
    assert event.payload == {"phase": "p1", "agents": ["Router"]}
    assert audit.events() == [event]


def test_events_filter_by_kind():
    audit = AuditTrail()
    audit.emit("a", "phase_started", phase="p1")
    audit.emit("a", "round_completed", round=1)
    assert [e.kind for e in audit.events("round_completed")] == ["round_completed"]


def test_timeline_lists_phase_transitions_in_order():
    audit = AuditTrail()
    audit.emit("Orchestrator", "phase_started", phase="p1")
    audit.emit("Router", "agent_completed", phase="p1")
    audit.emit("Orchestrator", "phase_completed", phase="p1")
    assert audit.timeline() == [
        ("phase_started", "Orchestrator", "p1"),
        ("phase_completed", "Orchestrator", "p1"),
    ]


def test_sinks_are_called_and_failures_logged(caplog):
    seen: list[AuditEvent] = []

    def broken(event: AuditEvent) -> None:
        raise RuntimeError("stream closed")

    audit = AuditTrail([broken])
    audit.add_sink(seen.append)
    with caplog.at_level(logging.WARNING, logger="deliberation.events"):
        audit.emit("a", "session_started")

    assert [e.kind for e in seen] == ["session_started"]
    assert len(audit.events()) == 1
    assert any("stream closed" in r.message for r in caplog.records)


def test_events_returns_snapshot():
    audit = AuditTrail()
    snapshot = audit.events()
    audit.emit("a", "k")
    assert snapshot == []
