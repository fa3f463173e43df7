from __future__ import annotations

import pytest

from training_portal.checkpoint import ChapterState, ModulePlayer
from training_portal.config import get_settings
from training_portal.entities import EntityStore, Learner, TrainingModule


def _player(store: EntityStore, **kwargs) -> ModulePlayer:
    return ModulePlayer(store.require_module("m2"), Learner(id="v1"), **kwargs)


def test_enforced_gating_blocks_jumping_ahead(small_store: EntityStore) -> None:
    player = _player(small_store, gating="enforce")
    result = player.go_to(2)

    assert result.moved is False
    assert result.index == 0
    assert "Chapter c2-1" in (result.locked_reason or "")


def test_hint_gating_allows_jump_with_reason(small_store: EntityStore) -> None:
    player = _player(small_store, gating="hint")
    result = player.go_to(2)

    assert result.moved is True
    assert player.index == 2
    assert result.locked_reason is not None


def test_default_gating_comes_from_settings(small_store: EntityStore, monkeypatch) -> None:
    monkeypatch.setenv("TRAINING_SEQUENTIAL_GATING", "hint")
    get_settings.cache_clear()
    assert _player(small_store).gating == "hint"


def test_non_sequential_module_is_never_gated(small_store: EntityStore) -> None:
    module = small_store.require_module("m2").model_copy(update={"is_sequential": False})
    player = ModulePlayer(module, Learner(id="v1"), gating="enforce")
    assert player.go_to(3).moved is True
    assert player.locked_reason(3) is None


def test_advance_validates_current_chapter(small_store: EntityStore) -> None:
    player = _player(small_store, gating="enforce")

    first = player.advance()
    assert first.moved and first.index == 1
    assert first.checkpoint is not None and first.checkpoint.passed

    blocked = player.advance()
    assert blocked.moved is False
    assert blocked.checkpoint is not None
    assert blocked.checkpoint.status == "INCOMPLETE"

    assert player.draft("q2", "Pastor") is ChapterState.IN_PROGRESS
    wrong = player.advance()
    assert wrong.checkpoint.status == "INCORRECT"
    assert wrong.checkpoint.wrong_question_ids == ["q2"]

    player.draft("q2", "Security")
    assert player.advance().index == 2
    assert player.learner.completed_chapter_ids == ["c2-1", "c2-2"]


def test_advance_through_last_chapter_finishes(small_store: EntityStore) -> None:
    module = TrainingModule(id="m9", title="Short", target_role_ids=["r1"], chapters=[])
    assert ModulePlayer(module, Learner(id="v1"), gating="enforce").advance().finished

    player = ModulePlayer(small_store.require_module("m1"), Learner(id="v1"), gating="enforce")
    player.advance()
    result = player.advance()
    assert result.finished
    assert player.learner.completed_chapter_ids == ["c1-1", "c1-2"]


def test_retake_resets_chapter_and_drafts(small_store: EntityStore) -> None:
    player = _player(small_store, gating="enforce")
    player.advance()
    player.draft("q2", "Security")
    player.advance()

    assert player.retake(1) is ChapterState.UNSTARTED
    assert player.learner.completed_chapter_ids == ["c2-1"]
    assert player.drafts.answers_for("c2-2") == {}


def test_go_to_out_of_range(small_store: EntityStore) -> None:
    with pytest.raises(IndexError):
        _player(small_store, gating="hint").go_to(9)


@pytest.mark.parametrize("index", [-1, 4])
def test_chapter_index_must_be_in_range(small_store: EntityStore, index: int) -> None:
    player = _player(small_store, gating="hint")
    with pytest.raises(IndexError):
        player.state_of(index)
    with pytest.raises(IndexError):
        player.retake(index)
    with pytest.raises(IndexError):
        player.go_to(index)
    assert player.index == 0
