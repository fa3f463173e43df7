"""Entity models for the training assignment graph and the store snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

ContentType = Literal["VIDEO", "PDF", "LINK"]
QuestionType = Literal["TEXT", "MULTIPLE_CHOICE"]


def unique_ids(values: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


class EntityNotFoundError(LookupError):
    """Raised by write paths that reference an id missing from the store."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} '{entity_id}' was not found.")
        self.kind = kind
        self.entity_id = entity_id


class GraphEditError(ValueError):
    """Raised when an administrative edit is rejected without touching the store."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class Question(BaseModel):
    id: str
    text: str = ""
    type: QuestionType = "TEXT"
    options: List[str] = Field(default_factory=list)
    correct_answer: Optional[str] = None


class Chapter(BaseModel):
    id: str
    title: str
    content_type: ContentType = "VIDEO"
    content_url: str = ""
    questions: List[Question] = Field(default_factory=list)


class TrainingModule(BaseModel):
    """A course made of ordered chapters, targeted at departments and roles."""

    id: str
    title: str
    description: str = ""
    target_role_ids: List[str] = Field(default_factory=list)
    target_department_ids: List[str] = Field(default_factory=list)
    duration_minutes: int = Field(default=30, ge=0)
    is_sequential: bool = True
    chapters: List[Chapter] = Field(default_factory=list)

    @field_validator("target_role_ids", "target_department_ids")
    @classmethod
    def _dedupe_targets(cls, value: List[str]) -> List[str]:
        return unique_ids(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_compulsory(self) -> bool:
        """Untargeted modules are required of every learner."""
        return not self.target_role_ids and not self.target_department_ids

    @property
    def chapter_ids(self) -> List[str]:
        return [chapter.id for chapter in self.chapters]

    def chapter(self, chapter_id: str) -> Optional[Chapter]:
        return next((chapter for chapter in self.chapters if chapter.id == chapter_id), None)


class Department(BaseModel):
    id: str
    name: str
    core_module_ids: List[str] = Field(default_factory=list)

    @field_validator("core_module_ids")
    @classmethod
    def _dedupe_modules(cls, value: List[str]) -> List[str]:
        return unique_ids(value)


class Role(BaseModel):
    id: str
    name: str
    department_id: str


class Journey(BaseModel):
    id: str
    role_id: str
    progression_module_ids: List[str] = Field(default_factory=list)

    @field_validator("progression_module_ids")
    @classmethod
    def _dedupe_modules(cls, value: List[str]) -> List[str]:
        return unique_ids(value)


class Learner(BaseModel):
    """Volunteer record: role memberships and completed checkpoints."""

    id: str
    username: str = ""
    full_name: str = ""
    email: str = ""
    phone: str = ""
    role_ids: List[str] = Field(default_factory=list)
    completed_chapter_ids: List[str] = Field(default_factory=list)
    is_admin: bool = False

    @field_validator("role_ids", "completed_chapter_ids")
    @classmethod
    def _dedupe_ids(cls, value: List[str]) -> List[str]:
        return unique_ids(value)


def journey_id_for(role_id: str) -> str:
    return f"journey-{role_id}"


class EntityStore(BaseModel):
    """Working set of all entity collections.

    Engine functions never mutate a store they receive; they return a new one.
    Collections keep insertion order so derived results are deterministic.
    """

    departments: List[Department] = Field(default_factory=list)
    roles: List[Role] = Field(default_factory=list)
    journeys: List[Journey] = Field(default_factory=list)
    modules: List[TrainingModule] = Field(default_factory=list)
    learners: List[Learner] = Field(default_factory=list)

    def clone(self) -> "EntityStore":
        return self.model_copy(deep=True)

    def department(self, department_id: str) -> Optional[Department]:
        return next((item for item in self.departments if item.id == department_id), None)

    def role(self, role_id: str) -> Optional[Role]:
        return next((item for item in self.roles if item.id == role_id), None)

    def module(self, module_id: str) -> Optional[TrainingModule]:
        return next((item for item in self.modules if item.id == module_id), None)

    def learner(self, learner_id: str) -> Optional[Learner]:
        return next((item for item in self.learners if item.id == learner_id), None)

    def journey_of(self, role_id: str) -> Optional[Journey]:
        return next((item for item in self.journeys if item.role_id == role_id), None)

    def department_of(self, role: Role) -> Optional[Department]:
        return self.department(role.department_id)

    def progression_of(self, role_id: str) -> List[str]:
        """Progression list of a role's journey; empty when none exists yet."""
        journey = self.journey_of(role_id)
        return list(journey.progression_module_ids) if journey else []

    def roles_in(self, department_id: str) -> List[Role]:
        return [role for role in self.roles if role.department_id == department_id]

    def require_department(self, department_id: str) -> Department:
        department = self.department(department_id)
        if department is None:
            raise EntityNotFoundError("Department", department_id)
        return department

    def require_role(self, role_id: str) -> Role:
        role = self.role(role_id)
        if role is None:
            raise EntityNotFoundError("Role", role_id)
        return role

    def require_module(self, module_id: str) -> TrainingModule:
        module = self.module(module_id)
        if module is None:
            raise EntityNotFoundError("Module", module_id)
        return module

    def require_learner(self, learner_id: str) -> Learner:
        learner = self.learner(learner_id)
        if learner is None:
            raise EntityNotFoundError("Learner", learner_id)
        return learner

    def with_learner(self, learner: Learner) -> "EntityStore":
        """Return a copy of the store with ``learner`` replaced or appended."""
        clone = self.clone()
        for index, existing in enumerate(clone.learners):
            if existing.id == learner.id:
                clone.learners[index] = learner.model_copy(deep=True)
                return clone
        clone.learners.append(learner.model_copy(deep=True))
        return clone


@dataclass(frozen=True)
class ViewerContext:
    """Who is acting, and whose record they are looking at.

    Admin previews ("view as") are expressed here instead of in shared state.
    """

    actor_id: str
    is_admin: bool = False
    view_as_id: Optional[str] = None

    @property
    def is_impersonating(self) -> bool:
        return self.view_as_id is not None and self.view_as_id != self.actor_id

    @property
    def effective_learner_id(self) -> str:
        return self.view_as_id if self.is_admin and self.view_as_id else self.actor_id

    def can_manage(self, learner_id: str) -> bool:
        return self.is_admin or self.actor_id == learner_id


__all__ = [
    "Chapter",
    "ContentType",
    "Department",
    "EntityNotFoundError",
    "EntityStore",
    "GraphEditError",
    "Journey",
    "Learner",
    "Question",
    "QuestionType",
    "Role",
    "TrainingModule",
    "ViewerContext",
    "journey_id_for",
    "unique_ids",
]
