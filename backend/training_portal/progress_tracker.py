"""Completion percentages for modules, chapters and the learner dashboard."""

from __future__ import annotations

from typing import Iterable, List, Literal, Optional

from pydantic import BaseModel, Field

from .assignment_resolver import resolve_assigned_modules
from .checkpoint import ChapterState, DraftBook, chapter_state
from .entities import EntityStore, Learner, TrainingModule

AssignmentSource = Literal["compulsory", "department", "journey"]


def percent_of(part: int, whole: int) -> int:
    """Integer percentage rounded half up; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


class OverallProgress(BaseModel):
    completed: int = 0
    total: int = 0
    percent: int = 0


class ChapterProgress(BaseModel):
    chapter_id: str
    title: str
    state: ChapterState
    percent: int = 0
    answered_questions: int = 0
    total_questions: int = 0


class ModuleProgressEntry(BaseModel):
    module_id: str
    title: str
    source: AssignmentSource
    is_compulsory: bool
    is_sequential: bool
    duration_minutes: int
    percent: int
    completed_chapters: int
    total_chapters: int


class LearnerDashboard(BaseModel):
    learner_id: str
    full_name: str = ""
    modules: List[ModuleProgressEntry] = Field(default_factory=list)
    overall: OverallProgress = Field(default_factory=OverallProgress)


def _completed_count(module: TrainingModule, learner: Learner) -> int:
    completed = set(learner.completed_chapter_ids)
    return sum(1 for chapter in module.chapters if chapter.id in completed)


def module_progress(module: TrainingModule, learner: Learner) -> int:
    """Percent of ``module`` chapters the learner completed; 100 for an empty module."""
    if not module.chapters:
        return 100
    return percent_of(_completed_count(module, learner), len(module.chapters))


def overall_progress(modules: Iterable[TrainingModule], learner: Learner) -> OverallProgress:
    """Count the fully completed modules among ``modules``."""
    assigned = list(modules)
    completed = sum(1 for module in assigned if module_progress(module, learner) == 100)
    total = len(assigned)
    return OverallProgress(completed=completed, total=total, percent=percent_of(completed, total))



def chapter_progress(
    module: TrainingModule,
    learner: Learner,
    drafts: Optional[DraftBook] = None,
) -> List[ChapterProgress]:
    entries: List[ChapterProgress] = []
    for chapter in module.chapters:
        state = chapter_state(chapter, learner, drafts)
        answers = drafts.answers_for(chapter.id) if drafts is not None else {}
        answered = sum(1 for question in chapter.questions if answers.get(question.id, "").strip())
        total = len(chapter.questions)
        if state is ChapterState.COMPLETED:
            percent = 100
        else:
            percent = percent_of(answered, total)
        entries.append(
            ChapterProgress(
                chapter_id=chapter.id,
                title=chapter.title,
                state=state,
                percent=percent,
                answered_questions=answered,
                total_questions=total,
            )
        )
    return entries


def _ordered_assignments(learner: Learner, store: EntityStore) -> List[tuple[TrainingModule, AssignmentSource]]:
    assigned = {module.id: module for module in resolve_assigned_modules(learner, store)}
    ordered: List[tuple[TrainingModule, AssignmentSource]] = []
    seen: set[str] = set()

    def take(module_id: str, source: AssignmentSource) -> None:
        module = assigned.get(module_id)
        if module is None or module_id in seen:
            return
        seen.add(module_id)
        ordered.append((module, source))

    for module in store.modules:
        if module.is_compulsory:
            take(module.id, "compulsory")
    roles = [role for role in (store.role(role_id) for role_id in learner.role_ids) if role is not None]
    for role in roles:
        department = store.department_of(role)
        if department is not None:
            for module_id in department.core_module_ids:
                take(module_id, "department")
    for role in roles:
        for module_id in store.progression_of(role.id):
            take(module_id, "journey")
    return ordered


def learner_dashboard(learner: Learner, store: EntityStore) -> LearnerDashboard:
    """Assigned modules with their completion, compulsory first, then core, then journey."""
    ordered = _ordered_assignments(learner, store)
    entries = [
        ModuleProgressEntry(
            module_id=module.id,
            title=module.title,
            source=source,
            is_compulsory=module.is_compulsory,
            is_sequential=module.is_sequential,
            duration_minutes=module.duration_minutes,
            percent=module_progress(module, learner),
            completed_chapters=_completed_count(module, learner),
            total_chapters=len(module.chapters),
        )
        for module, source in ordered
    ]
    return LearnerDashboard(
        learner_id=learner.id,
        full_name=learner.full_name,
        modules=entries,
        overall=overall_progress([module for module, _ in ordered], learner),
    )


__all__ = [
    "AssignmentSource",
    "ChapterProgress",
    "LearnerDashboard",
    "ModuleProgressEntry",
    "OverallProgress",
    "chapter_progress",
    "learner_dashboard",
    "module_progress",
    "overall_progress",
    "percent_of",
]
