"""Keeps the module <-> department and module <-> journey mirrors consistent.

Membership is stored twice: on the module (``target_department_ids`` and
``target_role_ids``) and on the owner (``Department.core_module_ids`` and
``Journey.progression_module_ids``). A module edit treats the module's target
sets as authoritative; an assignment edit treats the owner's list as
authoritative. Both paths re-derive the mirrored side over the whole store, so
re-running either one against a consistent store changes nothing.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Literal, Optional, Set

from pydantic import BaseModel

from .entities import (
    EntityStore,
    GraphEditError,
    Journey,
    TrainingModule,
    journey_id_for,
    unique_ids,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

AssignmentKind = Literal["department", "journey"]
ViolationRule = Literal[
    "department_mirror",
    "journey_mirror",
    "compulsory_listed",
    "duplicate_journey",
    "dangling_reference",
]


class InvariantViolation(BaseModel):
    """A single inconsistency found in a store snapshot."""

    code: Literal["INVARIANT_VIOLATION"] = "INVARIANT_VIOLATION"
    rule: ViolationRule
    detail: str
    module_id: Optional[str] = None
    owner_id: Optional[str] = None


def _ensure_journey(store: EntityStore, role_id: str) -> Journey:
    journey = store.journey_of(role_id)
    if journey is None:
        journey = Journey(id=journey_id_for(role_id), role_id=role_id)
        store.journeys.append(journey)
        logger.debug("Created journey %s for role %s", journey.id, role_id)
    return journey


def _without(values: Iterable[str], removed: Set[str]) -> List[str]:
    return [value for value in values if value not in removed]


def _apply_module_targets(store: EntityStore, module: TrainingModule) -> None:
    """Mirror one module's target sets into every department and journey list, in place."""
    wanted_departments = set(module.target_department_ids)
    for department in store.departments:
        listed = module.id in department.core_module_ids
        wanted = department.id in wanted_departments
        if wanted and not listed:
            department.core_module_ids.append(module.id)
        elif listed and not wanted:
            department.core_module_ids = _without(department.core_module_ids, {module.id})

    if not module.is_compulsory:
        for role_id in module.target_role_ids:
            _ensure_journey(store, role_id)

    wanted_roles = set(module.target_role_ids)
    for journey in store.journeys:
        listed = module.id in journey.progression_module_ids
        wanted = journey.role_id in wanted_roles
        if wanted and not listed:
            journey.progression_module_ids.append(module.id)
        elif listed and not wanted:
            journey.progression_module_ids = _without(journey.progression_module_ids, {module.id})


def _drop_completions(store: EntityStore, chapter_ids: Set[str]) -> None:
    """Remove ``chapter_ids`` from every learner's completions, in place."""
    if not chapter_ids:
        return
    for index, learner in enumerate(store.learners):
        if chapter_ids & set(learner.completed_chapter_ids):
            store.learners[index] = learner.model_copy(
                update={"completed_chapter_ids": _without(learner.completed_chapter_ids, chapter_ids)}
            )


def _upsert_module(store: EntityStore, module: TrainingModule) -> None:
    for index, existing in enumerate(store.modules):
        if existing.id == module.id:
            store.modules[index] = module
            return
    store.modules.append(module)


def sync_from_module_edit(module: TrainingModule, store: EntityStore) -> EntityStore:
    """Store ``module`` and rewrite every core and progression list to match its targets.

    Unknown target ids raise ``EntityNotFoundError`` and leave ``store`` untouched.
    Journeys are created for targeted roles that have none yet. Chapters dropped
    from the module are also dropped from every learner's completions.
    """
    for department_id in module.target_department_ids:
        store.require_department(department_id)
    for role_id in module.target_role_ids:
        store.require_role(role_id)

    previous = store.module(module.id)
    working = store.clone()
    edited = module.model_copy(deep=True)
    _upsert_module(working, edited)
    _apply_module_targets(working, edited)
    removed_chapters: Set[str] = set()
    if previous is not None:
        remaining = {chapter_id for item in working.modules for chapter_id in item.chapter_ids}
        removed_chapters = set(previous.chapter_ids) - remaining
        _drop_completions(working, removed_chapters)

    emit_event(
        "module_targets_synced",
        module_id=edited.id,
        is_compulsory=edited.is_compulsory,
        department_ids=list(edited.target_department_ids),
        role_ids=list(edited.target_role_ids),
        removed_chapter_ids=sorted(removed_chapters),
    )
    return working


def sync_from_assignment_edit(
    kind: AssignmentKind,
    owner_id: str,
    module_ids: Iterable[str],
    store: EntityStore,
) -> EntityStore:
    """Replace a department core list or a role's journey and mirror it onto modules.

    ``kind="department"`` takes a department id; ``kind="journey"`` takes a role id.
    Untargeted modules that get listed become targeted at the owner. Untargeted
    modules left out of the list are never touched.

    A module left out of the list normally just loses the owner from its targets.
    The one exception is a module whose only target is the owner: the whole edit
    is rejected with ``GraphEditError("LAST_TARGET")`` (HTTP 409) and ``store`` is
    left unchanged, because list edits never turn a module into a requirement for
    every learner. Clear the targets on the module itself to make it compulsory.
    """
    if kind == "department":
        store.require_department(owner_id)
        target_field = "target_department_ids"
    elif kind == "journey":
        store.require_role(owner_id)
        target_field = "target_role_ids"
    else:
        raise ValueError(f"Unsupported assignment kind: {kind!r}")

    requested = unique_ids(module_ids)
    for module_id in requested:
        store.require_module(module_id)

    working = store.clone()
    if kind == "department":
        working.require_department(owner_id).core_module_ids = list(requested)
    else:
        _ensure_journey(working, owner_id).progression_module_ids = list(requested)

    listed = set(requested)
    changed: List[str] = []
    for index, module in enumerate(working.modules):
        targets: List[str] = list(getattr(module, target_field))
        if module.id in listed:
            if owner_id in targets:
                continue
            targets.append(owner_id)
        else:
            if module.is_compulsory or owner_id not in targets:
                continue
            targets = _without(targets, {owner_id})
            updated = module.model_copy(update={target_field: targets})
            if updated.is_compulsory:
                raise GraphEditError(
                    "LAST_TARGET",
                    f"Removing '{module.id}' from '{owner_id}' would leave it without targets; "
                    "edit the module's targets instead.",
                )
        working.modules[index] = module.model_copy(update={target_field: targets})
        changed.append(module.id)

    emit_event(
        "assignment_list_synced",
        kind=kind,
        owner_id=owner_id,
        module_ids=list(requested),
        changed_module_ids=changed,
    )
    return working


def _strip_targets(store: EntityStore, *, department_ids: Set[str], role_ids: Set[str]) -> List[str]:
    """Drop deleted owners from module target sets, then re-mirror the affected modules."""
    affected: List[str] = []
    for index, module in enumerate(store.modules):
        if not (department_ids & set(module.target_department_ids) or role_ids & set(module.target_role_ids)):
            continue
        updated = module.model_copy(
            update={
                "target_department_ids": _without(module.target_department_ids, department_ids),
                "target_role_ids": _without(module.target_role_ids, role_ids),
            }
        )
        store.modules[index] = updated
        _apply_module_targets(store, updated)
        affected.append(updated.id)
        if updated.is_compulsory:
            logger.info("Module %s lost its last target and is now compulsory", updated.id)
    return affected


def _drop_roles(store: EntityStore, role_ids: Set[str]) -> List[str]:
    store.roles = [role for role in store.roles if role.id not in role_ids]
    store.journeys = [journey for journey in store.journeys if journey.role_id not in role_ids]
    for index, learner in enumerate(store.learners):
        if role_ids & set(learner.role_ids):
            store.learners[index] = learner.model_copy(update={"role_ids": _without(learner.role_ids, role_ids)})
    return _strip_targets(store, department_ids=set(), role_ids=role_ids)


def delete_role(role_id: str, store: EntityStore) -> EntityStore:
    """Remove a role and its journey, and strip the role from modules and learners."""
    store.require_role(role_id)
    working = store.clone()
    affected = _drop_roles(working, {role_id})
    emit_event("role_deleted", role_id=role_id, affected_module_ids=affected)
    return working


def delete_department(department_id: str, store: EntityStore) -> EntityStore:
    """Remove a department with all of its roles and their journeys."""
    store.require_department(department_id)
    working = store.clone()
    role_ids = {role.id for role in working.roles_in(department_id)}
    working.departments = [item for item in working.departments if item.id != department_id]
    affected = _drop_roles(working, role_ids)
    for module_id in _strip_targets(working, department_ids={department_id}, role_ids=set()):
        if module_id not in affected:
            affected.append(module_id)
    emit_event(
        "department_deleted",
        department_id=department_id,
        role_ids=sorted(role_ids),
        affected_module_ids=affected,
    )
    return working


def delete_module(module_id: str, store: EntityStore) -> EntityStore:
    """Remove a module, its list entries and the learners' completions of its chapters."""
    module = store.require_module(module_id)
    working = store.clone()
    working.modules = [item for item in working.modules if item.id != module_id]
    for department in working.departments:
        department.core_module_ids = _without(department.core_module_ids, {module_id})
    for journey in working.journeys:
        journey.progression_module_ids = _without(journey.progression_module_ids, {module_id})
    _drop_completions(working, set(module.chapter_ids))
    emit_event("module_deleted", module_id=module_id)
    return working


def check_invariants(store: EntityStore) -> List[InvariantViolation]:
    """Report every mirror inconsistency in ``store`` without raising."""
    violations: List[InvariantViolation] = []
    module_index = {module.id: module for module in store.modules}
    department_ids = {department.id for department in store.departments}
    role_ids = {role.id for role in store.roles}

    journey_counts = Counter(journey.role_id for journey in store.journeys)
    for role_id, count in journey_counts.items():
        if count > 1:
            violations.append(
                InvariantViolation(
                    rule="duplicate_journey",
                    owner_id=role_id,
                    detail=f"Role '{role_id}' has {count} journeys.",
                )
            )
        if role_id not in role_ids:
            violations.append(
                InvariantViolation(
                    rule="dangling_reference",
                    owner_id=role_id,
                    detail=f"Journey references unknown role '{role_id}'.",
                )
            )

    owners = [(department.id, department.core_module_ids) for department in store.departments]
    owners += [(journey.role_id, journey.progression_module_ids) for journey in store.journeys]
    for owner_id, listed_ids in owners:
        for module_id in listed_ids:
            module = module_index.get(module_id)
            if module is None:
                violations.append(
                    InvariantViolation(
                        rule="dangling_reference",
                        owner_id=owner_id,
                        module_id=module_id,
                        detail=f"'{owner_id}' lists unknown module '{module_id}'.",
                    )
                )
            elif module.is_compulsory:
                violations.append(
                    InvariantViolation(
                        rule="compulsory_listed",
                        owner_id=owner_id,
                        module_id=module_id,
                        detail=f"Compulsory module '{module_id}' is listed by '{owner_id}'.",
                    )
                )

    for module in store.modules:
        for target_id in module.target_department_ids:
            if target_id not in department_ids:
                violations.append(
                    InvariantViolation(
                        rule="dangling_reference",
                        owner_id=target_id,
                        module_id=module.id,
                        detail=f"Module '{module.id}' targets unknown department '{target_id}'.",
                    )
                )
        for target_id in module.target_role_ids:
            if target_id not in role_ids:
                violations.append(
                    InvariantViolation(
                        rule="dangling_reference",
                        owner_id=target_id,
                        module_id=module.id,
                        detail=f"Module '{module.id}' targets unknown role '{target_id}'.",
                    )
                )
        if module.is_compulsory:
            continue
        for department in store.departments:
            listed = module.id in department.core_module_ids
            targeted = department.id in module.target_department_ids
            if listed != targeted:
                violations.append(
                    InvariantViolation(
                        rule="department_mirror",
                        owner_id=department.id,
                        module_id=module.id,
                        detail=f"Department '{department.id}' and module '{module.id}' disagree.",
                    )
                )
        for role in store.roles:
            listed = module.id in store.progression_of(role.id)
            targeted = role.id in module.target_role_ids
            if listed != targeted:
                violations.append(
                    InvariantViolation(
                        rule="journey_mirror",
                        owner_id=role.id,
                        module_id=module.id,
                        detail=f"Journey of role '{role.id}' and module '{module.id}' disagree.",
                    )
                )
    return violations


def repair_store(store: EntityStore) -> EntityStore:
    """Re-derive every core and progression list from module target sets.

    Dangling ids and surplus journeys are dropped. A consistent store comes back
    unchanged.
    """
    violations = check_invariants(store)
    working = store.clone()
    if not violations:
        return working

    department_ids = {department.id for department in working.departments}
    role_ids = {role.id for role in working.roles}
    module_ids = {module.id for module in working.modules}

    kept_journeys: List[Journey] = []
    seen_roles: Set[str] = set()
    for journey in working.journeys:
        if journey.role_id not in role_ids or journey.role_id in seen_roles:
            continue
        seen_roles.add(journey.role_id)
        journey.progression_module_ids = [mid for mid in journey.progression_module_ids if mid in module_ids]
        kept_journeys.append(journey)
    working.journeys = kept_journeys

    for department in working.departments:
        department.core_module_ids = [mid for mid in department.core_module_ids if mid in module_ids]

    for index, module in enumerate(working.modules):
        cleaned = module.model_copy(
            update={
                "target_department_ids": [tid for tid in module.target_department_ids if tid in department_ids],
                "target_role_ids": [tid for tid in module.target_role_ids if tid in role_ids],
            }
        )
        working.modules[index] = cleaned
        _apply_module_targets(working, cleaned)

    rules = sorted({violation.rule for violation in violations})
    logger.warning("Repaired %d invariant violation(s): %s", len(violations), ", ".join(rules))
    emit_event("invariants_repaired", violation_count=len(violations), rules=rules)
    return working


__all__ = [
    "AssignmentKind",
    "InvariantViolation",
    "check_invariants",
    "delete_department",
    "delete_module",
    "delete_role",
    "repair_store",
    "sync_from_assignment_edit",
    "sync_from_module_edit",
]
