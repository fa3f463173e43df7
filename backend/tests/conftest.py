from __future__ import annotations

from typing import Iterator

import pytest

from training_portal.config import get_settings
from training_portal.db.session import dispose_engine
from training_portal.entities import (
    Chapter,
    Department,
    EntityStore,
    Journey,
    Learner,
    Question,
    Role,
    TrainingModule,
)
from training_portal.snapshot_store import reset_snapshot_store


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path) -> Iterator[None]:
    monkeypatch.setenv("ENV_FILE", str(tmp_path / "missing.env"))
    monkeypatch.setenv("TRAINING_PERSISTENCE_MODE", "file")
    monkeypatch.setenv("TRAINING_DATA_PATH", str(tmp_path / "training_store.json"))
    monkeypatch.delenv("TRAINING_DATABASE_URL", raising=False)
    monkeypatch.delenv("TRAINING_SEQUENTIAL_GATING", raising=False)
    monkeypatch.delenv("TRAINING_SEED_DEMO_DATA", raising=False)
    get_settings.cache_clear()
    reset_snapshot_store()
    dispose_engine()
    yield
    get_settings.cache_clear()
    reset_snapshot_store()
    dispose_engine()


def _chapter(chapter_id: str, *questions: Question) -> Chapter:
    return Chapter(id=chapter_id, title=f"Chapter {chapter_id}", questions=list(questions))


@pytest.fixture
def small_store() -> EntityStore:
    """One department with two roles, one compulsory module and two targeted modules."""
    return EntityStore(
        departments=[
            Department(id="d1", name="Guest Services", core_module_ids=["m1"]),
            Department(id="d2", name="Worship Arts"),
        ],
        roles=[
            Role(id="r1", name="Usher", department_id="d1"),
            Role(id="r2", name="Greeter", department_id="d1"),
            Role(id="r3", name="Vocalist", department_id="d2"),
        ],
        journeys=[Journey(id="journey-r1", role_id="r1", progression_module_ids=["m2"])],
        modules=[
            TrainingModule(
                id="m0",
                title="Safety Basics",
                chapters=[
                    _chapter(
                        "c0-1",
                        Question(id="q1", text="Primary goal?", type="TEXT", correct_answer="safety"),
                    )
                ],
            ),
            TrainingModule(
                id="m1",
                title="Hospitality",
                target_department_ids=["d1"],
                chapters=[_chapter("c1-1"), _chapter("c1-2")],
            ),
            TrainingModule(
                id="m2",
                title="Emergency Response",
                target_role_ids=["r1"],
                chapters=[
                    _chapter("c2-1"),
                    _chapter(
                        "c2-2",
                        Question(
                            id="q2",
                            text="Who do you call first?",
                            type="MULTIPLE_CHOICE",
                            options=["Pastor", "Security"],
                            correct_answer="Security",
                        ),
                    ),
                    _chapter("c2-3"),
                    _chapter("c2-4"),
                ],
            ),
        ],
        learners=[
            Learner(id="v1", username="jsmith", full_name="John Smith", role_ids=["r1"], is_admin=True),
            Learner(id="v2", username="alee", full_name="Alice Lee", role_ids=["r3"]),
        ],
    )
