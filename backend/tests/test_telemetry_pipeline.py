from __future__ import annotations

import logging
from datetime import datetime, timezone

from training_portal import telemetry_pipeline
from training_portal.config import get_settings
from training_portal.db.session import create_schema, dispose_engine, session_scope
from training_portal.logging_config import configure_logging
from training_portal.repositories.training_graph import training_graph
from training_portal.telemetry import (
    TelemetryEvent,
    capture_events,
    clear_listeners,
    emit_event,
    register_listener,
    unregister_listener,
)


def test_emit_event_sanitizes_payload_and_logs(caplog) -> None:
    events: list[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)
    register_listener(events.append)
    try:
        with caplog.at_level(logging.INFO, logger="training.telemetry"):
            emit_event(
                "module_deleted",
                module_id="m1",
                at=datetime(2024, 1, 1, tzinfo=timezone.utc),
                roles={"r2", "r1"},
            )
    finally:
        clear_listeners()

    assert len(events) == 1
    assert events[0].payload == {"module_id": "m1", "at": "2024-01-01T00:00:00+00:00", "roles": ["r1", "r2"]}
    assert any("TELEMETRY" in record.getMessage() for record in caplog.records)


def test_failing_listener_does_not_break_emit() -> None:
    received: list[str] = []

    def broken(_: TelemetryEvent) -> None:
        raise RuntimeError("listener down")

    clear_listeners()
    register_listener(broken)
    register_listener(lambda event: received.append(event.name))
    try:
        emit_event("role_deleted", role_id="r1")
    finally:
        clear_listeners()
    assert received == ["role_deleted"]


def test_unregister_listener() -> None:
    received: list[str] = []
    listener = lambda event: received.append(event.name)  # noqa: E731
    clear_listeners()
    register_listener(listener)
    unregister_listener(listener)
    emit_event("role_deleted", role_id="r1")
    assert received == []


def test_monitored_events_persist_in_database_mode(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TRAINING_PERSISTENCE_MODE", "database")
    monkeypatch.setenv("TRAINING_DATABASE_URL", f"sqlite:///{tmp_path / 'audit.db'}")
    get_settings.cache_clear()
    dispose_engine()
    create_schema()

    clear_listeners()
    telemetry_pipeline.install()
    try:
        emit_event("progress_reset", learner_id="v2", actor_id="v1", module_id=None, cleared=1)
        emit_event("chapter_attempt_failed", learner_id="v2", chapter_id="c1-1")
    finally:
        clear_listeners()

    with session_scope(commit=False) as session:
        events = training_graph.audit_events(session)
        assert [event.event_type for event in events] == ["progress_reset"]
        assert events[0].learner_id == "v2"
        assert events[0].actor == "v1"
        assert events[0].payload["cleared"] == 1


def test_pipeline_ignores_events_in_file_mode(monkeypatch) -> None:
    def fail_scope(*args, **kwargs):
        raise AssertionError("database must not be touched in file mode")

    monkeypatch.setattr(telemetry_pipeline, "session_scope", fail_scope)
    telemetry_pipeline.persist_event(TelemetryEvent(name="progress_reset", payload={"learner_id": "v1"}))


def test_capture_events_filters_and_unregisters() -> None:
    with capture_events({"role_deleted"}) as events:
        emit_event("module_deleted", module_id="m1")
        emit_event("role_deleted", role_id="r1")
    emit_event("role_deleted", role_id="r2")

    assert [event.payload["role_id"] for event in events] == ["r1"]


def test_configure_logging_levels(monkeypatch) -> None:
    root = logging.getLogger()
    previous = {name: logging.getLogger(name).level for name in ("", "training.telemetry", "sqlalchemy.engine")}
    monkeypatch.setenv("TRAINING_TELEMETRY_LOG_LEVEL", "warning")
    try:
        configure_logging("DEBUG")
        assert root.level == logging.DEBUG
        assert logging.getLogger("training.telemetry").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        for name, level in previous.items():
            logging.getLogger(name).setLevel(level)
