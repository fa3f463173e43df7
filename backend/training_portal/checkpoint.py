"""Per-chapter checkpoint quizzes: grading, completion, retakes and navigation."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from .config import get_settings
from .entities import (
    Chapter,
    EntityNotFoundError,
    EntityStore,
    Learner,
    Question,
    TrainingModule,
    ViewerContext,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)

CheckpointStatus = Literal["COMPLETED", "INCOMPLETE", "INCORRECT"]
SequentialGating = Literal["enforce", "hint"]

STATUS_MESSAGES: Dict[str, str] = {
    "COMPLETED": "Checkpoint passed.",
    "INCOMPLETE": "Answer every question before continuing.",
    "INCORRECT": "Some answers are not quite right. Review the highlighted questions and try again.",
}


class ChapterState(str, Enum):
    UNSTARTED = "UNSTARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ChapterLockedError(RuntimeError):
    """Raised when a sequential module is attempted out of order under enforced gating."""

    code = "CHAPTER_LOCKED"


class DraftBook(BaseModel):
    """Unvalidated answers for one learner, keyed by chapter id then question id."""

    learner_id: str
    chapters: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    def answers_for(self, chapter_id: str) -> Dict[str, str]:
        return dict(self.chapters.get(chapter_id, {}))

    def with_answer(self, chapter_id: str, question_id: str, answer: str) -> "DraftBook":
        chapters = {key: dict(value) for key, value in self.chapters.items()}
        chapters.setdefault(chapter_id, {})[question_id] = answer
        return DraftBook(learner_id=self.learner_id, chapters=chapters)

    def without_chapter(self, chapter_id: str) -> "DraftBook":
        chapters = {key: dict(value) for key, value in self.chapters.items() if key != chapter_id}
        return DraftBook(learner_id=self.learner_id, chapters=chapters)


class CheckpointResult(BaseModel):
    """Outcome of validating one chapter; failures are values, not exceptions."""

    chapter_id: str
    status: CheckpointStatus
    wrong_question_ids: List[str] = Field(default_factory=list)
    learner: Learner

    @property
    def passed(self) -> bool:
        return self.status == "COMPLETED"

    @property
    def message(self) -> str:
        return STATUS_MESSAGES[self.status]


def _is_blank(answer: Optional[str]) -> bool:
    return answer is None or not answer.strip()


def grade_answer(question: Question, answer: str) -> bool:
    """Multiple choice needs the exact option; text needs the keyword anywhere, any case."""
    expected = question.correct_answer or ""
    if question.type == "MULTIPLE_CHOICE":
        return answer == expected
    return expected.lower() in answer.lower()


def mark_chapter_completed(learner: Learner, chapter_id: str) -> Learner:
    if chapter_id in learner.completed_chapter_ids:
        return learner.model_copy(deep=True)
    return learner.model_copy(update={"completed_chapter_ids": [*learner.completed_chapter_ids, chapter_id]})


def validate_chapter(chapter: Chapter, draft_answers: Mapping[str, str], learner: Learner) -> CheckpointResult:
    """Grade the drafted answers for ``chapter`` and complete it when all pass.

    Missing answers make the result ``INCOMPLETE``; ``wrong_question_ids`` then
    lists the missing questions together with any answered incorrectly.
    """
    missing: List[str] = []
    flagged: List[str] = []
    for question in chapter.questions:
        answer = draft_answers.get(question.id)
        if _is_blank(answer):
            missing.append(question.id)
            flagged.append(question.id)
        elif not grade_answer(question, answer):  # type: ignore[arg-type]
            flagged.append(question.id)

    if flagged:
        status: CheckpointStatus = "INCOMPLETE" if missing else "INCORRECT"
        emit_event(
            "chapter_attempt_failed",
            learner_id=learner.id,
            chapter_id=chapter.id,
            status=status,
            wrong_question_ids=flagged,
        )
        return CheckpointResult(
            chapter_id=chapter.id,
            status=status,
            wrong_question_ids=flagged,
            learner=learner.model_copy(deep=True),
        )

    already_completed = chapter.id in learner.completed_chapter_ids
    updated = mark_chapter_completed(learner, chapter.id)
    emit_event(
        "chapter_completed",
        learner_id=learner.id,
        chapter_id=chapter.id,
        already_completed=already_completed,
    )
    return CheckpointResult(chapter_id=chapter.id, status="COMPLETED", learner=updated)


def chapter_state(chapter: Chapter, learner: Learner, drafts: Optional[DraftBook] = None) -> ChapterState:
    if chapter.id in learner.completed_chapter_ids:
        return ChapterState.COMPLETED
    if drafts is not None and any(not _is_blank(value) for value in drafts.answers_for(chapter.id).values()):
        return ChapterState.IN_PROGRESS
    return ChapterState.UNSTARTED


def reset_chapter(
    chapter: Chapter,
    learner: Learner,
    drafts: Optional[DraftBook] = None,
) -> Tuple[Learner, DraftBook]:
    """Undo one chapter: drop its completion and its drafted answers."""
    remaining = [chapter_id for chapter_id in learner.completed_chapter_ids if chapter_id != chapter.id]
    book = drafts if drafts is not None else DraftBook(learner_id=learner.id)
    return learner.model_copy(update={"completed_chapter_ids": remaining}), book.without_chapter(chapter.id)


def reset_module(learner: Learner, module: Optional[TrainingModule] = None) -> Learner:
    """Clear one module's chapter completions, or every completion when no module is given."""
    if module is None:
        return learner.model_copy(update={"completed_chapter_ids": []})
    chapter_ids = set(module.chapter_ids)
    remaining = [chapter_id for chapter_id in learner.completed_chapter_ids if chapter_id not in chapter_ids]
    return learner.model_copy(update={"completed_chapter_ids": remaining})


def locked_reason(module: TrainingModule, learner: Learner, index: int) -> Optional[str]:
    """Explain why chapter ``index`` is gated, or ``None`` when it is open."""
    if not module.is_sequential:
        return None
    completed = set(learner.completed_chapter_ids)
    for chapter in module.chapters[:index]:
        if chapter.id not in completed:
            return f"Complete '{chapter.title}' before moving ahead."
    return None


def _require_chapter(module: TrainingModule, chapter_id: str) -> Tuple[int, Chapter]:
    for index, chapter in enumerate(module.chapters):
        if chapter.id == chapter_id:
            return index, chapter
    raise EntityNotFoundError("Chapter", chapter_id)


def record_chapter_attempt(
    store: EntityStore,
    learner_id: str,
    module_id: str,
    chapter_id: str,
    answers: Mapping[str, str],
    *,
    gating: Optional[SequentialGating] = None,
) -> Tuple[EntityStore, CheckpointResult]:
    """Validate a submitted chapter for a learner held in ``store``."""
    learner = store.require_learner(learner_id)
    module = store.require_module(module_id)
    index, chapter = _require_chapter(module, chapter_id)

    mode = gating or get_settings().sequential_gating
    reason = locked_reason(module, learner, index)
    if reason and chapter.id not in learner.completed_chapter_ids:
        if mode == "enforce":
            raise ChapterLockedError(reason)
        logger.info("Learner %s attempted gated chapter %s: %s", learner_id, chapter_id, reason)

    result = validate_chapter(chapter, answers, learner)
    if not result.passed:
        return store.clone(), result
    return store.with_learner(result.learner), result


def reset_learner_progress(
    store: EntityStore,
    viewer: ViewerContext,
    learner_id: str,
    module_id: Optional[str] = None,
) -> EntityStore:
    """Retake or wipe progress; allowed for admins and for the learner's own record."""
    if not viewer.can_manage(learner_id):
        raise PermissionError(f"'{viewer.actor_id}' may not reset progress for '{learner_id}'.")
    learner = store.require_learner(learner_id)
    module = store.require_module(module_id) if module_id else None
    updated = reset_module(learner, module)
    emit_event(
        "progress_reset",
        learner_id=learner_id,
        module_id=module_id,
        actor_id=viewer.actor_id,
        cleared=len(learner.completed_chapter_ids) - len(updated.completed_chapter_ids),
    )
    return store.with_learner(updated)


class NavigationResult(BaseModel):
    index: int
    moved: bool
    finished: bool = False
    locked_reason: Optional[str] = None
    checkpoint: Optional[CheckpointResult] = None


class ModulePlayer:
    """Delivers one module chapter by chapter for one learner.

    Chapters are addressed by 0-based index. ``advance`` runs the checkpoint for
    the current chapter (unless already completed) and moves on only when it
    passes. Jumping with ``go_to`` honours the module's ``is_sequential`` flag
    according to ``gating``: ``"enforce"`` refuses to open a chapter whose
    predecessors are incomplete, ``"hint"`` opens it but reports why it is gated.
    """

    def __init__(
        self,
        module: TrainingModule,
        learner: Learner,
        *,
        drafts: Optional[DraftBook] = None,
        gating: Optional[SequentialGating] = None,
    ) -> None:
        self._module = module.model_copy(deep=True)
        self._learner = learner.model_copy(deep=True)
        self._drafts = drafts if drafts is not None else DraftBook(learner_id=learner.id)
        self._gating: SequentialGating = gating or get_settings().sequential_gating
        self._index = 0

    @property
    def module(self) -> TrainingModule:
        return self._module

    @property
    def learner(self) -> Learner:
        return self._learner

    @property
    def drafts(self) -> DraftBook:
        return self._drafts

    @property
    def gating(self) -> SequentialGating:
        return self._gating

    @property
    def index(self) -> int:
        return self._index

    @property
    def current_chapter(self) -> Optional[Chapter]:
        if not self._module.chapters:
            return None
        return self._module.chapters[self._index]

    def _chapter_at(self, index: int) -> Chapter:
        if not 0 <= index < len(self._module.chapters):
            raise IndexError(f"Chapter index {index} is out of range.")
        return self._module.chapters[index]

    def state_of(self, index: int) -> ChapterState:
        return chapter_state(self._chapter_at(index), self._learner, self._drafts)

    def locked_reason(self, index: int) -> Optional[str]:
        self._chapter_at(index)
        return locked_reason(self._module, self._learner, index)

    def draft(self, question_id: str, answer: str) -> ChapterState:
        """Record an unvalidated answer for the current chapter."""
        chapter = self.current_chapter
        if chapter is None:
            raise IndexError("Module has no chapters.")
        if not any(question.id == question_id for question in chapter.questions):
            raise EntityNotFoundError("Question", question_id)
        self._drafts = self._drafts.with_answer(chapter.id, question_id, answer)
        return self.state_of(self._index)

    def go_to(self, index: int) -> NavigationResult:
        self._chapter_at(index)
        reason = self.locked_reason(index)
        if reason and self._gating == "enforce":
            return NavigationResult(index=self._index, moved=False, locked_reason=reason)
        moved = index != self._index
        self._index = index
        return NavigationResult(index=index, moved=moved, locked_reason=reason)

    def advance(self) -> NavigationResult:
        chapter = self.current_chapter
        if chapter is None:
            return NavigationResult(index=0, moved=False, finished=True)

        checkpoint: Optional[CheckpointResult] = None
        if chapter.id not in self._learner.completed_chapter_ids:
            checkpoint = validate_chapter(chapter, self._drafts.answers_for(chapter.id), self._learner)
            if not checkpoint.passed:
                return NavigationResult(index=self._index, moved=False, checkpoint=checkpoint)
            self._learner = checkpoint.learner

        if self._index + 1 < len(self._module.chapters):
            self._index += 1
            return NavigationResult(index=self._index, moved=True, checkpoint=checkpoint)
        return NavigationResult(index=self._index, moved=False, finished=True, checkpoint=checkpoint)

    def retake(self, index: Optional[int] = None) -> ChapterState:
        """Reset a chapter (the current one by default) so its quiz can be taken again."""
        target = self._index if index is None else index
        chapter = self._chapter_at(target)
        self._learner, self._drafts = reset_chapter(chapter, self._learner, self._drafts)
        return self.state_of(target)


__all__ = [
    "ChapterLockedError",
    "ChapterState",
    "CheckpointResult",
    "CheckpointStatus",
    "DraftBook",
    "ModulePlayer",
    "NavigationResult",
    "SequentialGating",
    "chapter_state",
    "grade_answer",
    "locked_reason",
    "mark_chapter_completed",
    "record_chapter_attempt",
    "reset_chapter",
    "reset_learner_progress",
    "reset_module",
    "validate_chapter",
]
