"""Administrative edits of the organisation: departments, roles, modules and volunteers."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, List, Optional

from .entities import (
    Chapter,
    Department,
    EntityStore,
    GraphEditError,
    Learner,
    Role,
    TrainingModule,
)
from .graph_sync import sync_from_module_edit

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _clean_name(name: str, kind: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise GraphEditError("EMPTY_NAME", f"{kind} name must not be empty.")
    return cleaned


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def create_department(name: str, store: EntityStore, *, department_id: Optional[str] = None) -> EntityStore:
    department = Department(id=department_id or new_id("d"), name=_clean_name(name, "Department"))
    if store.department(department.id) is not None:
        raise GraphEditError("DUPLICATE_ID", f"Department '{department.id}' already exists.")
    working = store.clone()
    working.departments.append(department)
    logger.info("Created department %s (%s)", department.id, department.name)
    return working


def rename_department(department_id: str, name: str, store: EntityStore) -> EntityStore:
    store.require_department(department_id)
    cleaned = _clean_name(name, "Department")
    working = store.clone()
    working.require_department(department_id).name = cleaned
    return working


def create_role(name: str, department_id: str, store: EntityStore, *, role_id: Optional[str] = None) -> EntityStore:
    """Add a role under an existing department. Its journey is created on first use."""
    store.require_department(department_id)
    role = Role(id=role_id or new_id("r"), name=_clean_name(name, "Role"), department_id=department_id)
    if store.role(role.id) is not None:
        raise GraphEditError("DUPLICATE_ID", f"Role '{role.id}' already exists.")
    working = store.clone()
    working.roles.append(role)
    logger.info("Created role %s (%s) in %s", role.id, role.name, department_id)
    return working


def rename_role(role_id: str, name: str, store: EntityStore) -> EntityStore:
    store.require_role(role_id)
    cleaned = _clean_name(name, "Role")
    working = store.clone()
    working.require_role(role_id).name = cleaned
    return working


def create_module(
    title: str,
    store: EntityStore,
    *,
    description: str = "",
    target_department_ids: Iterable[str] = (),
    target_role_ids: Iterable[str] = (),
    duration_minutes: int = 30,
    is_sequential: bool = True,
    chapters: Optional[List[Chapter]] = None,
) -> tuple[EntityStore, TrainingModule]:
    """Build a new module and sync its targets. Without chapters it starts with an empty introduction."""
    module = TrainingModule(
        id=new_id("m"),
        title=_clean_name(title, "Module"),
        description=description,
        target_department_ids=list(target_department_ids),
        target_role_ids=list(target_role_ids),
        duration_minutes=duration_minutes,
        is_sequential=is_sequential,
        chapters=chapters if chapters else [Chapter(id=new_id("c"), title="Introduction")],
    )
    return sync_from_module_edit(module, store), module


def update_module(module: TrainingModule, store: EntityStore) -> EntityStore:
    store.require_module(module.id)
    _clean_name(module.title, "Module")
    return sync_from_module_edit(module, store)


def update_learner(
    learner_id: str,
    store: EntityStore,
    *,
    username: Optional[str] = None,
    full_name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    role_ids: Optional[Iterable[str]] = None,
    is_admin: Optional[bool] = None,
) -> EntityStore:
    """Edit a volunteer's profile and role memberships.

    Usernames are stored trimmed and lower-cased and must be unique across
    volunteers. Every role id must exist.
    """
    learner = store.require_learner(learner_id)
    changes: dict = {}

    if username is not None:
        normalized = normalize_username(username)
        if not normalized:
            raise GraphEditError("EMPTY_NAME", "Username must not be empty.")
        taken = any(
            other.id != learner_id and normalize_username(other.username) == normalized
            for other in store.learners
        )
        if taken:
            raise GraphEditError("DUPLICATE_USERNAME", f'The username "{normalized}" is already in use.')
        changes["username"] = normalized
    if full_name is not None:
        changes["full_name"] = full_name.strip()
    if email is not None:
        changes["email"] = email.strip()
    if phone is not None:
        changes["phone"] = phone.strip()
    if role_ids is not None:
        requested = list(role_ids)
        for role_id in requested:
            store.require_role(role_id)
        changes["role_ids"] = requested
    if is_admin is not None:
        changes["is_admin"] = is_admin

    updated = Learner.model_validate({**learner.model_dump(), **changes})
    return store.with_learner(updated)


__all__ = [
    "create_department",
    "create_module",
    "create_role",
    "new_id",
    "normalize_username",
    "rename_department",
    "rename_role",
    "update_learner",
    "update_module",
]
