"""Tests for keeping module targets and department/journey lists mirrored."""

from __future__ import annotations

import pytest

from training_portal.entities import EntityNotFoundError, EntityStore, GraphEditError, Journey, TrainingModule
from training_portal.graph_sync import (
    check_invariants,
    delete_department,
    delete_module,
    delete_role,
    repair_store,
    sync_from_assignment_edit,
    sync_from_module_edit,
)
from training_portal.telemetry import capture_events


def test_fixture_store_is_consistent(small_store: EntityStore) -> None:
    assert check_invariants(small_store) == []


def test_compulsory_exemption_scenario(small_store: EntityStore) -> None:
    module = TrainingModule(id="m5", title="Stage Safety")
    store = sync_from_module_edit(module, small_store)
    assert store.require_module("m5").is_compulsory

    targeted = module.model_copy(update={"target_role_ids": ["r2"]})
    assert targeted.is_compulsory is False
    store = sync_from_module_edit(targeted, store)

    assert store.progression_of("r2") == ["m5"]
    assert store.journey_of("r2").id == "journey-r2"
    assert check_invariants(store) == []


def test_module_edit_moves_module_between_owners(small_store: EntityStore) -> None:
    edited = small_store.require_module("m1").model_copy(
        update={"target_department_ids": ["d2"], "target_role_ids": ["r3"]}
    )
    store = sync_from_module_edit(edited, small_store)

    assert "m1" not in store.require_department("d1").core_module_ids
    assert store.require_department("d2").core_module_ids == ["m1"]
    assert store.progression_of("r3") == ["m1"]
    assert check_invariants(store) == []


def test_module_edit_to_compulsory_strips_every_list(small_store: EntityStore) -> None:
    edited = small_store.require_module("m2").model_copy(update={"target_role_ids": []})
    store = sync_from_module_edit(edited, small_store)

    assert store.require_module("m2").is_compulsory
    assert store.progression_of("r1") == []
    assert check_invariants(store) == []


def test_module_edit_is_idempotent(small_store: EntityStore) -> None:
    edited = small_store.require_module("m2").model_copy(update={"target_role_ids": ["r1", "r2"]})
    once = sync_from_module_edit(edited, small_store)
    twice = sync_from_module_edit(edited, once)
    assert once == twice


def test_module_edit_with_unknown_target_leaves_store_untouched(small_store: EntityStore) -> None:
    before = small_store.clone()
    edited = small_store.require_module("m2").model_copy(update={"target_role_ids": ["ghost"]})
    with pytest.raises(EntityNotFoundError):
        sync_from_module_edit(edited, small_store)
    assert small_store == before


def test_department_assignment_edit_updates_module_targets(small_store: EntityStore) -> None:
    store = sync_from_assignment_edit("department", "d2", ["m1", "m2"], small_store)

    assert store.require_department("d2").core_module_ids == ["m1", "m2"]
    assert store.require_module("m1").target_department_ids == ["d1", "d2"]
    assert store.require_module("m2").target_department_ids == ["d2"]
    assert check_invariants(store) == []


def test_journey_assignment_edit_creates_journey_and_collapses_duplicates(small_store: EntityStore) -> None:
    store = sync_from_assignment_edit("journey", "r2", ["m2", "m1", "m2"], small_store)

    assert store.progression_of("r2") == ["m2", "m1"]
    assert store.require_module("m2").target_role_ids == ["r1", "r2"]
    assert store.require_module("m1").target_role_ids == ["r2"]
    assert check_invariants(store) == []


def test_assignment_edit_removing_entry_untargets_module(small_store: EntityStore) -> None:
    store = sync_from_assignment_edit("journey", "r2", ["m2"], small_store)
    store = sync_from_assignment_edit("journey", "r1", [], store)

    assert store.require_module("m2").target_role_ids == ["r2"]
    assert store.progression_of("r1") == []
    assert check_invariants(store) == []


def test_assignment_edit_rejects_removing_last_target(small_store: EntityStore) -> None:
    with pytest.raises(GraphEditError) as excinfo:
        sync_from_assignment_edit("journey", "r1", [], small_store)
    assert excinfo.value.code == "LAST_TARGET"
    assert small_store.progression_of("r1") == ["m2"]


def test_assignment_edit_listing_compulsory_module_targets_it(small_store: EntityStore) -> None:
    store = sync_from_assignment_edit("department", "d2", ["m0"], small_store)

    module = store.require_module("m0")
    assert module.is_compulsory is False
    assert module.target_department_ids == ["d2"]
    assert check_invariants(store) == []


def test_assignment_edit_never_touches_unlisted_compulsory_modules(small_store: EntityStore) -> None:
    store = sync_from_assignment_edit("department", "d1", ["m1", "m2"], small_store)
    assert store.require_module("m0") == small_store.require_module("m0")


def test_assignment_edit_is_idempotent(small_store: EntityStore) -> None:
    once = sync_from_assignment_edit("department", "d2", ["m2", "m1"], small_store)
    twice = sync_from_assignment_edit("department", "d2", ["m2", "m1"], once)
    assert once == twice


def test_assignment_edit_unknown_ids(small_store: EntityStore) -> None:
    with pytest.raises(EntityNotFoundError):
        sync_from_assignment_edit("department", "ghost", [], small_store)
    with pytest.raises(EntityNotFoundError):
        sync_from_assignment_edit("journey", "r1", ["m2", "ghost"], small_store)


def test_cascading_department_deletion(small_store: EntityStore) -> None:
    store = sync_from_assignment_edit("journey", "r3", ["m2"], small_store)
    store = delete_department("d1", store)

    assert store.department("d1") is None
    assert store.role("r1") is None and store.role("r2") is None
    assert store.journey_of("r1") is None
    assert all("r1" not in module.target_role_ids for module in store.modules)
    assert store.require_module("m2").target_role_ids == ["r3"]
    assert store.require_learner("v1").role_ids == []
    # m1 was only targeted at d1 and is now required of everyone.
    assert store.require_module("m1").is_compulsory
    assert check_invariants(store) == []


def test_delete_role_strips_role_from_modules_and_learners(small_store: EntityStore) -> None:
    store = delete_role("r1", small_store)

    assert store.journey_of("r1") is None
    assert store.require_module("m2").target_role_ids == []
    assert store.require_learner("v1").role_ids == []
    assert check_invariants(store) == []


def test_module_edit_drops_completions_of_removed_chapters(small_store: EntityStore) -> None:
    learner = small_store.require_learner("v1").model_copy(
        update={"completed_chapter_ids": ["c0-1", "c1-1", "c1-2", "c2-1"]}
    )
    store = small_store.with_learner(learner)
    edited = store.require_module("m1").model_copy(deep=True)
    edited.chapters = [edited.chapters[1].model_copy(update={"id": "c1-2b"})]

    with capture_events({"module_targets_synced"}) as events:
        updated = sync_from_module_edit(edited, store)

    assert updated.require_learner("v1").completed_chapter_ids == ["c0-1", "c2-1"]
    assert events[0].payload["removed_chapter_ids"] == ["c1-1", "c1-2"]
    assert store.require_learner("v1").completed_chapter_ids == ["c0-1", "c1-1", "c1-2", "c2-1"]


def test_delete_module_strips_lists_and_completions(small_store: EntityStore) -> None:

    learner = small_store.require_learner("v1").model_copy(update={"completed_chapter_ids": ["c1-1", "c0-1"]})
    store = delete_module("m1", small_store.with_learner(learner))

    assert store.module("m1") is None
    assert store.require_department("d1").core_module_ids == []
    assert store.require_learner("v1").completed_chapter_ids == ["c0-1"]
    assert check_invariants(store) == []


def test_check_invariants_reports_each_rule(small_store: EntityStore) -> None:
    broken = small_store.clone()
    broken.require_department("d2").core_module_ids.append("m2")
    broken.require_department("d1").core_module_ids.append("m0")
    broken.journeys.append(Journey(id="dup", role_id="r1", progression_module_ids=["m2", "m-gone"]))

    rules = {violation.rule for violation in check_invariants(broken)}

    assert rules == {"department_mirror", "compulsory_listed", "duplicate_journey", "dangling_reference"}
    assert all(violation.code == "INVARIANT_VIOLATION" for violation in check_invariants(broken))


def test_repair_store_restores_invariants(small_store: EntityStore) -> None:
    broken = small_store.clone()
    broken.require_department("d2").core_module_ids.append("m2")
    broken.journeys.append(Journey(id="dup", role_id="r1"))
    broken.journeys[0].progression_module_ids = []

    with capture_events() as events:
        repaired = repair_store(broken)

    assert check_invariants(repaired) == []
    assert repaired.progression_of("r1") == ["m2"]
    assert repaired.require_department("d2").core_module_ids == []
    assert len(repaired.journeys) == 1
    assert [event.name for event in events] == ["invariants_repaired"]


def test_repair_of_consistent_store_is_a_no_op(small_store: EntityStore) -> None:
    assert repair_store(small_store) == small_store
