"""Derives the set of modules a learner is required to complete."""

from __future__ import annotations

from typing import List, Set

from .entities import EntityStore, Learner, TrainingModule


def assigned_module_ids(learner: Learner, store: EntityStore) -> Set[str]:
    """Collect compulsory, department core and journey module ids for a learner.

    Unknown roles and departments contribute nothing.
    """
    module_ids: Set[str] = {module.id for module in store.modules if module.is_compulsory}
    for role_id in learner.role_ids:
        role = store.role(role_id)
        if role is None:
            continue
        department = store.department_of(role)
        if department is not None:
            module_ids.update(department.core_module_ids)
        module_ids.update(store.progression_of(role.id))
    return module_ids


def resolve_assigned_modules(learner: Learner, store: EntityStore) -> List[TrainingModule]:
    """Return the learner's assigned modules in store order.

    Ids that no longer resolve to a module (deleted since being listed) are dropped.
    """
    module_ids = assigned_module_ids(learner, store)
    return [module.model_copy(deep=True) for module in store.modules if module.id in module_ids]


__all__ = ["assigned_module_ids", "resolve_assigned_modules"]
