from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient

from schedule_engine.api.deps import get_engine
from schedule_engine.main import app
from schedule_engine.schemas.reference import SectionRef, SubjectRef, TeacherRef
from schedule_engine.schemas.timetable import AssignmentInput, AssignmentKind, TimeSlot
from schedule_engine.services.reference_registry import InMemoryReferenceRegistry
from schedule_engine.services.repository import InMemoryScheduleRepository
from schedule_engine.services.scheduling import SchedulingEngine

ACADEMIC_YEAR = "2024-2025"
FIXED_NOW = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)  # a Monday
EXCEPTION_DAY = date(2025, 1, 10)  # Friday
NEXT_DAY = date(2025, 1, 11)  # Saturday


@pytest.fixture()
def registry():
    return InMemoryReferenceRegistry(
        sections=[
            SectionRef(id="10-A", grade="10", name="A", academic_year=ACADEMIC_YEAR, student_count=32),
            SectionRef(id="10-B", grade="10", name="B", academic_year=ACADEMIC_YEAR, student_count=30),
            SectionRef(id="10-C", grade="10", name="C", academic_year=ACADEMIC_YEAR, student_count=28),
            SectionRef(id="9-A", grade="9", name="A", academic_year="2023-2024", student_count=31),
        ],
        subjects=[
            SubjectRef(id="math", name="Mathematics", code="MATH"),
            SubjectRef(id="eng", name="English", code="ENG"),
            SubjectRef(id="sci", name="Science", code="SCI"),
        ],
        teachers=[
            TeacherRef(id="T1", name="Asha", qualified_subject_ids=frozenset({"math"}), weekly_capacity=10),
            TeacherRef(id="T2", name="Bilal", qualified_subject_ids=frozenset({"eng"}), weekly_capacity=6),
            TeacherRef(id="T3", name="Chen", qualified_subject_ids=frozenset({"math", "eng"}), weekly_capacity=8),
            TeacherRef(id="T4", name="Dara", qualified_subject_ids=frozenset({"sci"}), weekly_capacity=2),
            TeacherRef(id="T5", name="Eli", weekly_capacity=4),
        ],
    )


@pytest.fixture()
def slots():
    return [
        TimeSlot(id="P1", label="Period 1", start="09:00", end="09:45"),
        TimeSlot(id="P2", label="Period 2", start="09:45", end="10:30"),
        TimeSlot(id="BRK", label="Short break", start="10:30", end="10:45", is_break=True, break_kind="short"),
    ]


@pytest.fixture()
def engine(registry):
    return SchedulingEngine(
        repository=InMemoryScheduleRepository(),
        registry=registry,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture()
def schedule(engine, slots):
    return engine.create_schedule(
        name="Grade 10 weekly",
        academic_year=ACADEMIC_YEAR,
        time_slots=slots,
        section_ids=["10-A", "10-B"],
    )


@pytest.fixture()
def assign(engine):
    def _assign(schedule_id, slot_id, section_id, subject_id, teacher_id, kind=AssignmentKind.regular, on=None):
        return engine.upsert_assignment(
            schedule_id,
            AssignmentInput(
                time_slot_id=slot_id,
                section_id=section_id,
                subject_id=subject_id,
                teacher_id=teacher_id,
                kind=kind,
                effective_date=on,
            ),
        )

    return _assign


@pytest.fixture()
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
