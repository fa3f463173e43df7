"""Database-backed repository for the whole training graph snapshot."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.base import Base
from ..db.models import (
    DepartmentModel,
    JourneyModel,
    LearnerModel,
    PersistenceAuditEventModel,
    RoleModel,
    TrainingModuleModel,
)
from ..entities import (
    Chapter,
    Department,
    EntityStore,
    Journey,
    Learner,
    Role,
    TrainingModule,
)

# Parents before children; deletes run in reverse.
_TABLE_ORDER: Sequence[Type[Base]] = (
    DepartmentModel,
    RoleModel,
    JourneyModel,
    TrainingModuleModel,
    LearnerModel,
)


class TrainingGraphRepository:
    """Loads and saves an ``EntityStore`` as one row per entity."""

    def load(self, session: Session) -> EntityStore:
        return EntityStore(
            departments=[self._department(model) for model in self._ordered(session, DepartmentModel)],
            roles=[self._role(model) for model in self._ordered(session, RoleModel)],
            journeys=[self._journey(model) for model in self._ordered(session, JourneyModel)],
            modules=[self._module(model) for model in self._ordered(session, TrainingModuleModel)],
            learners=[self._learner(model) for model in self._ordered(session, LearnerModel)],
        )

    def is_empty(self, session: Session) -> bool:
        for model_cls in _TABLE_ORDER:
            if session.execute(select(model_cls.id).limit(1)).first() is not None:  # type: ignore[attr-defined]
                return False
        return True

    def save(self, session: Session, store: EntityStore) -> None:
        """Make the tables match ``store``: upsert present rows, delete the rest."""
        rows: Dict[Type[Base], List[Dict[str, Any]]] = {
            DepartmentModel: [
                {"id": item.id, "name": item.name, "core_module_ids": list(item.core_module_ids)}
                for item in store.departments
            ],
            RoleModel: [
                {"id": item.id, "name": item.name, "department_id": item.department_id} for item in store.roles
            ],
            JourneyModel: [
                {
                    "id": item.id,
                    "role_id": item.role_id,
                    "progression_module_ids": list(item.progression_module_ids),
                }
                for item in store.journeys
            ],
            TrainingModuleModel: [self._module_row(item) for item in store.modules],
            LearnerModel: [
                item.model_dump(
                    include={
                        "id",
                        "username",
                        "full_name",
                        "email",
                        "phone",
                        "role_ids",
                        "completed_chapter_ids",
                        "is_admin",
                    }
                )
                for item in store.learners
            ],
        }

        for model_cls in reversed(_TABLE_ORDER):
            keep = [row["id"] for row in rows[model_cls]]
            stmt = delete(model_cls)
            if keep:
                stmt = stmt.where(model_cls.id.not_in(keep))  # type: ignore[attr-defined]
            session.execute(stmt)
        session.flush()

        for model_cls in _TABLE_ORDER:
            self._upsert(session, model_cls, rows[model_cls])
            session.flush()

    def record_audit(
        self,
        session: Session,
        event_type: str,
        payload: Dict[str, Any],
        *,
        learner_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> None:
        event = PersistenceAuditEventModel(
            learner_id=learner_id,
            event_type=event_type,
            payload=payload,
            actor=actor or "system",
        )
        session.add(event)

    def audit_events(self, session: Session, *, event_type: Optional[str] = None) -> List[PersistenceAuditEventModel]:
        stmt = select(PersistenceAuditEventModel).order_by(PersistenceAuditEventModel.created_at.asc())
        if event_type:
            stmt = stmt.where(PersistenceAuditEventModel.event_type == event_type)
        return list(session.execute(stmt).scalars())

    def _upsert(self, session: Session, model_cls: Type[Base], rows: Iterable[Dict[str, Any]]) -> None:
        existing = {model.id: model for model in session.execute(select(model_cls)).scalars()}  # type: ignore[attr-defined]
        for position, row in enumerate(rows):
            model = existing.get(row["id"])
            if model is None:
                session.add(model_cls(**row, position=position))
                continue
            for field, value in row.items():
                if getattr(model, field) != value:
                    setattr(model, field, value)
            if model.position != position:  # type: ignore[attr-defined]
                model.position = position  # type: ignore[attr-defined]

    def _ordered(self, session: Session, model_cls: Type[Base]) -> List[Any]:
        stmt = select(model_cls).order_by(model_cls.position.asc(), model_cls.id.asc())  # type: ignore[attr-defined]
        return list(session.execute(stmt).scalars())

    @staticmethod
    def _module_row(module: TrainingModule) -> Dict[str, Any]:
        return {
            "id": module.id,
            "title": module.title,
            "description": module.description,
            "target_role_ids": list(module.target_role_ids),
            "target_department_ids": list(module.target_department_ids),
            "is_compulsory": module.is_compulsory,
            "duration_minutes": module.duration_minutes,
            "is_sequential": module.is_sequential,
            "chapters": [chapter.model_dump(mode="json") for chapter in module.chapters],
        }

    @staticmethod
    def _department(model: DepartmentModel) -> Department:
        return Department(id=model.id, name=model.name, core_module_ids=list(model.core_module_ids or []))

    @staticmethod
    def _role(model: RoleModel) -> Role:
        return Role(id=model.id, name=model.name, department_id=model.department_id)

    @staticmethod
    def _journey(model: JourneyModel) -> Journey:
        return Journey(
            id=model.id,
            role_id=model.role_id,
            progression_module_ids=list(model.progression_module_ids or []),
        )

    @staticmethod
    def _module(model: TrainingModuleModel) -> TrainingModule:
        # is_compulsory is derived from the targets; the column is write-only.
        return TrainingModule(
            id=model.id,
            title=model.title,
            description=model.description,
            target_role_ids=list(model.target_role_ids or []),
            target_department_ids=list(model.target_department_ids or []),
            duration_minutes=model.duration_minutes,
            is_sequential=model.is_sequential,
            chapters=[Chapter.model_validate(item) for item in model.chapters or []],
        )

    @staticmethod
    def _learner(model: LearnerModel) -> Learner:
        return Learner(
            id=model.id,
            username=model.username,
            full_name=model.full_name,
            email=model.email,
            phone=model.phone,
            role_ids=list(model.role_ids or []),
            completed_chapter_ids=list(model.completed_chapter_ids or []),
            is_admin=model.is_admin,
        )


training_graph = TrainingGraphRepository()

__all__ = ["TrainingGraphRepository", "training_graph"]
