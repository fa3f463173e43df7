"""Volunteer-facing REST endpoints: dashboard, checkpoint attempts and retakes."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from .checkpoint import (
    CheckpointResult,
    CheckpointStatus,
    record_chapter_attempt,
    reset_learner_progress,
)
from .entities import Learner, ViewerContext
from .http_support import domain_errors, require_learner_access
from .progress_tracker import LearnerDashboard, ModuleProgressEntry, learner_dashboard
from .snapshot_store import SnapshotStore, get_snapshot_store

router = APIRouter(prefix="/api/learners", tags=["learners"])
logger = logging.getLogger(__name__)


class AttemptRequest(BaseModel):
    answers: Dict[str, str] = Field(default_factory=dict)


class AttemptResponse(BaseModel):
    chapter_id: str
    status: CheckpointStatus
    message: str
    wrong_question_ids: List[str] = Field(default_factory=list)
    completed_chapter_ids: List[str] = Field(default_factory=list)
    module: Optional[ModuleProgressEntry] = None


class ResetRequest(BaseModel):
    module_id: Optional[str] = None


class DashboardResponse(LearnerDashboard):
    previewing: bool = False


def _attempt_payload(result: CheckpointResult, dashboard: LearnerDashboard, module_id: str) -> AttemptResponse:
    entry = next((item for item in dashboard.modules if item.module_id == module_id), None)
    return AttemptResponse(
        chapter_id=result.chapter_id,
        status=result.status,
        message=result.message,
        wrong_question_ids=list(result.wrong_question_ids),
        completed_chapter_ids=list(result.learner.completed_chapter_ids),
        module=entry,
    )


@router.get("/{learner_id}/dashboard", response_model=DashboardResponse, status_code=status.HTTP_200_OK)
def get_dashboard(
    learner_id: str,
    viewer: ViewerContext = Depends(require_learner_access),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> DashboardResponse:
    store = snapshots.read()
    with domain_errors():
        learner = store.require_learner(learner_id)
    dashboard = learner_dashboard(learner, store)
    return DashboardResponse(
        **dashboard.model_dump(),
        previewing=viewer.is_impersonating and viewer.effective_learner_id == learner_id,
    )


@router.post(
    "/{learner_id}/modules/{module_id}/chapters/{chapter_id}/attempts",
    response_model=AttemptResponse,
    status_code=status.HTTP_200_OK,
)
def post_attempt(
    learner_id: str,
    module_id: str,
    chapter_id: str,
    payload: AttemptRequest,
    _: ViewerContext = Depends(require_learner_access),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> AttemptResponse:
    with snapshots.transaction() as txn, domain_errors():
        txn.store, result = record_chapter_attempt(txn.store, learner_id, module_id, chapter_id, payload.answers)
        dashboard = learner_dashboard(txn.store.require_learner(learner_id), txn.store)
    if not result.passed:
        logger.info("Checkpoint %s for %s returned %s", chapter_id, learner_id, result.status)
    return _attempt_payload(result, dashboard, module_id)


@router.post("/{learner_id}/reset", response_model=Learner)
def post_reset(
    learner_id: str,
    payload: ResetRequest,
    viewer: ViewerContext = Depends(require_learner_access),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> Learner:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = reset_learner_progress(txn.store, viewer, learner_id, payload.module_id)
        return txn.store.require_learner(learner_id)


__all__ = ["router"]
