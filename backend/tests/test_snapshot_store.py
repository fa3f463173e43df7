"""Tests for the file and database snapshot stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from training_portal.config import get_settings
from training_portal.db.models import PersistenceAuditEventModel, TrainingModuleModel
from training_portal.db.session import create_schema, dispose_engine, session_scope
from training_portal.entities import EntityStore
from training_portal.graph_sync import check_invariants, sync_from_assignment_edit
from training_portal.repositories.training_graph import training_graph
from training_portal.seed import demo_store
from training_portal.snapshot_store import SnapshotStore


@pytest.fixture
def sqlite_database(monkeypatch, tmp_path):
    monkeypatch.setenv("TRAINING_PERSISTENCE_MODE", "database")
    monkeypatch.setenv("TRAINING_DATABASE_URL", f"sqlite:///{tmp_path / 'training.db'}")
    get_settings.cache_clear()
    dispose_engine()
    create_schema()
    yield
    dispose_engine()


def test_demo_store_satisfies_invariants() -> None:
    assert check_invariants(demo_store()) == []


def test_file_store_seeds_and_persists(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "store.json"
    snapshots = SnapshotStore(data_path=path)

    assert snapshots.mode == "file"
    assert snapshots.read().require_department("d1").name == "Guest Services"
    assert not path.exists()

    with snapshots.transaction() as txn:
        txn.store = sync_from_assignment_edit("journey", "r3", ["m4"], txn.store)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["modules"][3]["target_role_ids"] == ["r1", "r3"]
    assert SnapshotStore(data_path=path).read().progression_of("r3") == ["m4"]


def test_file_store_discards_failed_transaction(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    snapshots = SnapshotStore(data_path=path)
    with snapshots.transaction():
        pass

    with pytest.raises(RuntimeError):
        with snapshots.transaction() as txn:
            txn.store = EntityStore()
            raise RuntimeError("boom")

    assert snapshots.read().department("d1") is not None


def test_file_store_without_seed_starts_empty(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("TRAINING_SEED_DEMO_DATA", "false")
    get_settings.cache_clear()
    assert SnapshotStore(data_path=tmp_path / "store.json").read() == EntityStore()


def test_database_store_round_trip(sqlite_database) -> None:
    snapshots = SnapshotStore()
    assert snapshots.mode == "database"

    with snapshots.transaction() as txn:
        assert txn.store == demo_store()
        txn.store = sync_from_assignment_edit("department", "d2", ["m4", "m2"], txn.store)

    stored = SnapshotStore().read()
    assert stored.require_department("d2").core_module_ids == ["m4", "m2"]
    assert stored.require_module("m2").is_compulsory is False
    assert [module.id for module in stored.modules] == ["m1", "m2", "m3", "m4"]
    assert check_invariants(stored) == []

    with session_scope(commit=False) as session:
        row = session.get(TrainingModuleModel, "m2")
        assert row is not None and row.is_compulsory is False
        assert row.chapters[0]["id"] == "c2-1"


def test_database_store_deletes_removed_rows(sqlite_database) -> None:
    with session_scope() as session:
        store = demo_store()
        training_graph.save(session, store)
        store.learners = [learner for learner in store.learners if learner.id != "v2"]
        training_graph.save(session, store)

    with session_scope(commit=False) as session:
        loaded = training_graph.load(session)
    assert [learner.id for learner in loaded.learners] == ["v1"]


def test_record_audit_persists_event(sqlite_database) -> None:
    with session_scope() as session:
        training_graph.record_audit(session, "progress_reset", {"learner_id": "v1"}, learner_id="v1")

    with session_scope(commit=False) as session:
        events = training_graph.audit_events(session, event_type="progress_reset")
        assert len(events) == 1
        assert isinstance(events[0], PersistenceAuditEventModel)
        assert events[0].actor == "system"
