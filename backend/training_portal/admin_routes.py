"""Administrative REST endpoints for the organisation graph."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field

from .checkpoint import reset_learner_progress
from .entities import Chapter, EntityStore, Learner, TrainingModule, ViewerContext
from .graph_sync import (
    InvariantViolation,
    check_invariants,
    delete_department,
    delete_module,
    delete_role,
    repair_store,
    sync_from_assignment_edit,
)
from .http_support import domain_errors, require_admin
from .org_admin import (
    create_department,
    create_module,
    create_role,
    rename_department,
    rename_role,
    update_learner,
    update_module,
)
from .snapshot_store import SnapshotStore, get_snapshot_store

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


class DepartmentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class RoleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    department_id: str = Field(..., min_length=1)


class RoleRenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ModuleListRequest(BaseModel):
    module_ids: List[str] = Field(default_factory=list)


class ModuleRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    target_department_ids: List[str] = Field(default_factory=list)
    target_role_ids: List[str] = Field(default_factory=list)
    duration_minutes: int = Field(default=30, ge=0)
    is_sequential: bool = True
    chapters: List[Chapter] = Field(default_factory=list)


class LearnerUpdateRequest(BaseModel):
    username: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role_ids: Optional[List[str]] = None
    is_admin: Optional[bool] = None


class ResetRequest(BaseModel):
    module_id: Optional[str] = None


class InvariantReport(BaseModel):
    consistent: bool
    violations: List[InvariantViolation] = Field(default_factory=list)


@router.get("/store", response_model=EntityStore, status_code=status.HTTP_200_OK)
def get_store(
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    return snapshots.read()


@router.post("/departments", response_model=EntityStore, status_code=status.HTTP_201_CREATED)
def post_department(
    payload: DepartmentRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = create_department(payload.name, txn.store)
        return txn.store


@router.patch("/departments/{department_id}", response_model=EntityStore)
def patch_department(
    department_id: str,
    payload: DepartmentRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = rename_department(department_id, payload.name, txn.store)
        return txn.store


@router.delete("/departments/{department_id}", response_model=EntityStore)
def remove_department(
    department_id: str,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = delete_department(department_id, txn.store)
        return txn.store


@router.put("/departments/{department_id}/core-modules", response_model=EntityStore)
def put_core_modules(
    department_id: str,
    payload: ModuleListRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = sync_from_assignment_edit("department", department_id, payload.module_ids, txn.store)
        return txn.store


@router.post("/roles", response_model=EntityStore, status_code=status.HTTP_201_CREATED)
def post_role(
    payload: RoleCreateRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = create_role(payload.name, payload.department_id, txn.store)
        return txn.store


@router.patch("/roles/{role_id}", response_model=EntityStore)
def patch_role(
    role_id: str,
    payload: RoleRenameRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = rename_role(role_id, payload.name, txn.store)
        return txn.store


@router.delete("/roles/{role_id}", response_model=EntityStore)
def remove_role(
    role_id: str,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = delete_role(role_id, txn.store)
        return txn.store


@router.put("/roles/{role_id}/journey", response_model=EntityStore)
def put_journey(
    role_id: str,
    payload: ModuleListRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> EntityStore:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = sync_from_assignment_edit("journey", role_id, payload.module_ids, txn.store)
        return txn.store


@router.post("/modules", response_model=TrainingModule, status_code=status.HTTP_201_CREATED)
def post_module(
    payload: ModuleRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> TrainingModule:
    with snapshots.transaction() as txn, domain_errors():
        txn.store, module = create_module(
            payload.title,
            txn.store,
            description=payload.description,
            target_department_ids=payload.target_department_ids,
            target_role_ids=payload.target_role_ids,
            duration_minutes=payload.duration_minutes,
            is_sequential=payload.is_sequential,
            chapters=payload.chapters,
        )
        logger.info("Module %s created (compulsory=%s)", module.id, module.is_compulsory)
        return module


@router.put("/modules/{module_id}", response_model=TrainingModule)
def put_module(
    module_id: str,
    payload: ModuleRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> TrainingModule:
    module = TrainingModule(id=module_id, **payload.model_dump())
    with snapshots.transaction() as txn, domain_errors():
        txn.store = update_module(module, txn.store)
        return txn.store.require_module(module_id)


@router.delete("/modules/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_module(
    module_id: str,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> Response:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = delete_module(module_id, txn.store)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/learners/{learner_id}", response_model=Learner)
def patch_learner(
    learner_id: str,
    payload: LearnerUpdateRequest,
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> Learner:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = update_learner(learner_id, txn.store, **payload.model_dump(exclude_unset=True))
        return txn.store.require_learner(learner_id)


@router.post("/learners/{learner_id}/reset", response_model=Learner)
def reset_learner(
    learner_id: str,
    payload: ResetRequest,
    viewer: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> Learner:
    with snapshots.transaction() as txn, domain_errors():
        txn.store = reset_learner_progress(txn.store, viewer, learner_id, payload.module_id)
        return txn.store.require_learner(learner_id)


@router.get("/invariants", response_model=InvariantReport)
def get_invariants(
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> InvariantReport:
    violations = check_invariants(snapshots.read())
    return InvariantReport(consistent=not violations, violations=violations)


@router.post("/repair", response_model=InvariantReport)
def post_repair(
    _: ViewerContext = Depends(require_admin),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> InvariantReport:
    with snapshots.transaction() as txn:
        txn.store = repair_store(txn.store)
        violations = check_invariants(txn.store)
    return InvariantReport(consistent=not violations, violations=violations)


__all__ = ["router"]
