"""Loads and commits ``EntityStore`` snapshots from the database or a JSON file."""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from pydantic import ValidationError

from .config import get_settings
from .db.session import session_scope
from .entities import EntityStore
from .repositories.training_graph import training_graph
from .seed import demo_store
from .telemetry_pipeline import bind_session

logger = logging.getLogger(__name__)


class StoreTransaction:
    """Holds the working snapshot of one transaction; assign ``store`` to commit a new one."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store
        self._loaded = store.clone()

    @property
    def changed(self) -> bool:
        return self.store != self._loaded


class _DatabaseSnapshotStore:
    """SQL persistence through ``TrainingGraphRepository``."""

    def __init__(self, *, seed_demo_data: bool) -> None:
        self._seed_demo_data = seed_demo_data

    def read(self) -> EntityStore:
        with session_scope(commit=False) as session:
            if self._seed_demo_data and training_graph.is_empty(session):
                return demo_store()
            return training_graph.load(session)

    @contextmanager
    def transaction(self) -> Generator[StoreTransaction, None, None]:
        with session_scope() as session:
            if self._seed_demo_data and training_graph.is_empty(session):
                logger.info("Seeding empty training database with the demo organisation")
                training_graph.save(session, demo_store())
            txn = StoreTransaction(training_graph.load(session))
            with bind_session(session):
                yield txn
            if txn.changed:
                training_graph.save(session, txn.store)


class _FileSnapshotStore:
    """JSON document persistence used for local and offline modes."""

    def __init__(self, path: Path, *, seed_demo_data: bool) -> None:
        self._path = path
        self._seed_demo_data = seed_demo_data
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> EntityStore:
        if not self._path.exists():
            return demo_store() if self._seed_demo_data else EntityStore()
        with self._path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        try:
            return EntityStore.model_validate(raw)
        except ValidationError as exc:
            raise RuntimeError(f"Training store at {self._path} is invalid: {exc}") from exc

    def _write_unlocked(self, store: EntityStore) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(store.model_dump(mode="json"), handle, indent=2)
        tmp_path.replace(self._path)

    def read(self) -> EntityStore:
        with self._lock:
            return self._load_unlocked()

    @contextmanager
    def transaction(self) -> Generator[StoreTransaction, None, None]:
        with self._lock:
            first_write = not self._path.exists()
            txn = StoreTransaction(self._load_unlocked())
            yield txn
            if txn.changed or first_write:
                self._write_unlocked(txn.store)


class SnapshotStore:
    """Facade that delegates to database or file persistence based on configuration.

    ``transaction()`` serialises load, compute and commit; if the body raises,
    nothing is written.
    """

    def __init__(self, data_path: Optional[Path] = None) -> None:
        settings = get_settings()
        self._mode = settings.persistence_mode
        if self._mode == "database":
            self._backend = _DatabaseSnapshotStore(seed_demo_data=settings.seed_demo_data)
        else:
            self._backend = _FileSnapshotStore(
                data_path or settings.data_path,
                seed_demo_data=settings.seed_demo_data,
            )
        self._lock = threading.RLock()

    @property
    def mode(self) -> str:
        return self._mode

    def read(self) -> EntityStore:
        return self._backend.read()

    @contextmanager
    def transaction(self) -> Generator[StoreTransaction, None, None]:
        with self._lock:
            with self._backend.transaction() as txn:
                yield txn


_snapshot_store: Optional[SnapshotStore] = None
_store_lock = threading.Lock()


def get_snapshot_store() -> SnapshotStore:
    global _snapshot_store
    with _store_lock:
        if _snapshot_store is None:
            _snapshot_store = SnapshotStore()
        return _snapshot_store


def reset_snapshot_store() -> None:
    """Forget the cached store so the next call re-reads settings. Mainly used by tests."""
    global _snapshot_store
    with _store_lock:
        _snapshot_store = None


__all__ = [
    "SnapshotStore",
    "StoreTransaction",
    "get_snapshot_store",
    "reset_snapshot_store",
]
