"""Audit trail of phase and round transitions, streamable to observers."""

import logging
import threading
from collections.abc import Callable
from typing import Any

from deliberation.models import AuditEvent

logger = logging.getLogger(__name__)

EventSink = Callable[[AuditEvent], None]


class AuditTrail:
    """Append-only event record for one deliberation session.

    Sinks (UI streams, log shippers) are called synchronously after each
    append; a failing sink is logged and does not interrupt deliberation.
    """

    def __init__(self, sinks: list[EventSink] | None = None) -> None:
        self._events: list[AuditEvent] = []
        self._sinks: list[EventSink] = list(sinks or [])
        self._lock = threading.Lock()

    def add_sink(self, sink: EventSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def emit(self, actor: str, kind: str, **payload: Any) -> AuditEvent:
        event = AuditEvent(actor=actor, kind=kind, payload=payload)
        with self._lock:
            self._events.append(event)
            sinks = list(self._sinks)
        logger.debug("event %s/%s %s", actor, kind, payload)
        for sink in sinks:
            try:
                sink(event)
            except Exception as exc:
                logger.warning("Audit sink failed on %s/%s: %s", actor, kind, exc)
        return event

    def events(self, kind: str | None = None) -> list[AuditEvent]:
        with self._lock:
            snapshot = list(self._events)
        if kind is None:
            return snapshot
        return [e for e in snapshot if e.kind == kind]

    def timeline(self) -> list[tuple[str, str, str]]:
        """(kind, actor, phase) for every phase transition, in emission order."""
        return [
            (e.kind, e.actor, str(e.payload.get("phase", "")))
            for e in self.events()
            if e.kind in ("phase_started", "phase_completed")
        ]
