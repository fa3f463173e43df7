"""Telemetry listener that persists admin-facing events as audit rows."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Set

from sqlalchemy.orm import Session

from .config import get_settings
from .db.session import session_scope
from .repositories.training_graph import training_graph
from .telemetry import TelemetryEvent, register_listener

logger = logging.getLogger(__name__)

MONITORED_EVENTS: Set[str] = {
    "module_targets_synced",
    "assignment_list_synced",
    "department_deleted",
    "role_deleted",
    "module_deleted",
    "chapter_completed",
    "progress_reset",
    "invariants_repaired",
}

_bound = threading.local()


@contextmanager
def bind_session(session: Session) -> Iterator[None]:
    """Record events emitted on this thread into ``session`` so they commit with it."""
    previous: Optional[Session] = getattr(_bound, "session", None)
    _bound.session = session
    try:
        yield
    finally:
        _bound.session = previous


def _record(session: Session, event: TelemetryEvent) -> None:
    learner_id = event.payload.get("learner_id")
    actor = event.payload.get("actor_id")
    training_graph.record_audit(
        session,
        event.name,
        event.payload,
        learner_id=learner_id if isinstance(learner_id, str) else None,
        actor=actor if isinstance(actor, str) else None,
    )


def persist_event(event: TelemetryEvent) -> None:
    if event.name not in MONITORED_EVENTS:
        return
    bound: Optional[Session] = getattr(_bound, "session", None)
    if bound is not None:
        _record(bound, event)
        return
    if get_settings().persistence_mode != "database":
        return
    try:
        with session_scope() as session:
            _record(session, event)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to persist telemetry event %s", event.name)


def install() -> None:
    register_listener(persist_event)


install()

__all__ = ["MONITORED_EVENTS", "bind_session", "install", "persist_event"]
