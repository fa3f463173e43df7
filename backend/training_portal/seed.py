"""Demo organisation loaded into an empty store."""

from __future__ import annotations

from .entities import (
    Chapter,
    Department,
    EntityStore,
    Journey,
    Learner,
    Question,
    Role,
    TrainingModule,
)


def demo_store() -> EntityStore:
    departments = [
        Department(id="d1", name="Guest Services", core_module_ids=["m3"]),
        Department(id="d2", name="Worship Arts"),
        Department(id="d3", name="Family Ministry"),
    ]
    roles = [
        Role(id="r1", name="Usher", department_id="d1"),
        Role(id="r2", name="Greeter", department_id="d1"),
        Role(id="r3", name="Sunday School Teacher", department_id="d3"),
        Role(id="r4", name="Worship Team", department_id="d2"),
    ]
    modules = [
        TrainingModule(
            id="m1",
            title="Safe Sanctuary Basics",
            description="Essential safety protocols for protecting children and vulnerable adults.",
            duration_minutes=45,
            is_sequential=True,
            chapters=[
                Chapter(
                    id="c1-1",
                    title="Introduction to Safety",
                    content_type="VIDEO",
                    content_url="https://www.youtube.com/watch?v=aqz-KE-bpKQ",
                    questions=[
                        Question(
                            id="q1",
                            text="What is the primary goal of Safe Sanctuary?",
                            type="TEXT",
                            correct_answer="safety",
                        )
                    ],
                )
            ],
        ),
        TrainingModule(
            id="m2",
            title="Church Vision & Values",
            description="Understanding our mission and core beliefs.",
            duration_minutes=30,
            is_sequential=False,
            chapters=[
                Chapter(
                    id="c2-1",
                    title="Our Core Mission",
                    content_type="LINK",
                    content_url="https://www.church.com/vision",
                )
            ],
        ),
        TrainingModule(
            id="m3",
            title="Guest Hospitality Fundamentals",
            description="The core mindset of serving every person who walks through our doors.",
            target_role_ids=["r1", "r2"],
            target_department_ids=["d1"],
            duration_minutes=20,
            chapters=[
                Chapter(
                    id="c3-1",
                    title="The Heart of a Servant",
                    content_url="https://www.youtube.com/watch?v=XW9O9_f0DYo",
                )
            ],
        ),
        TrainingModule(
            id="m4",
            title="Emergency Response for Ushers",
            description="Specific security and medical response procedures for the ushering team.",
            target_role_ids=["r1"],
            duration_minutes=40,
            chapters=[
                Chapter(
                    id="c4-1",
                    title="Crisis Management",
                    content_url="https://www.youtube.com/watch?v=kYI9F6Y9fN4",
                )
            ],
        ),
    ]
    journeys = [
        Journey(id="j1", role_id="r1", progression_module_ids=["m4", "m3"]),
        Journey(id="journey-r2", role_id="r2", progression_module_ids=["m3"]),
    ]
    learners = [
        Learner(
            id="v1",
            username="jsmith",
            full_name="John Smith",
            email="john@example.com",
            phone="555-0101",
            role_ids=["r1"],
            completed_chapter_ids=["c1-1"],
            is_admin=True,
        ),
        Learner(
            id="v2",
            username="aleee",
            full_name="Alice Lee",
            email="alice@example.com",
            phone="555-0102",
            role_ids=["r4"],
        ),
    ]
    return EntityStore(
        departments=departments,
        roles=roles,
        journeys=journeys,
        modules=modules,
        learners=learners,
    )


__all__ = ["demo_store"]
