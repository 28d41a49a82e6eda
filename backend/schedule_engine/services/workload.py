from __future__ import annotations

from dataclasses import dataclass

from schedule_engine.core.exceptions import ConfigurationError
from schedule_engine.schemas.insights import LoadTier, TeacherLoad
from schedule_engine.schemas.reference import TeacherRef
from schedule_engine.schemas.timetable import Schedule
from schedule_engine.services.assignment_store import AssignmentStore


@dataclass(frozen=True)
class LoadThresholds:
    medium: float = 0.5
    high: float = 0.8
    overloaded: float = 1.0

    def __post_init__(self) -> None:
        if not (0 <= self.medium <= self.high <= self.overloaded):
            raise ConfigurationError(
                "Load thresholds must be ascending: "
                f"medium={self.medium} high={self.high} overloaded={self.overloaded}"
            )

    def classify(self, count: int, capacity: int) -> LoadTier:
        if capacity <= 0:
            return LoadTier.available if count == 0 else LoadTier.overloaded
        ratio = count / capacity
        if ratio > self.overloaded:
            return LoadTier.overloaded
        if ratio >= self.high:
            return LoadTier.high
        if ratio >= self.medium:
            return LoadTier.medium
        return LoadTier.available


def regular_period_count(schedule: Schedule, store: AssignmentStore, teacher_id: str) -> int:
    teaching = {slot.id for slot in schedule.teaching_slots()}
    return sum(
        1
        for assignment in store.regular_assignments()
        if assignment.teacher_id == teacher_id and assignment.time_slot_id in teaching
    )


def teacher_load(
    schedule: Schedule,
    store: AssignmentStore,
    teacher: TeacherRef,
    thresholds: LoadThresholds | None = None,
) -> TeacherLoad:
    thresholds = thresholds or LoadThresholds()
    count = regular_period_count(schedule, store, teacher.id)
    capacity = teacher.weekly_capacity
    ratio = round(count / capacity, 4) if capacity > 0 else (0.0 if count == 0 else float(count))
    return TeacherLoad(
        teacher_id=teacher.id,
        count=count,
        weekly_capacity=capacity,
        ratio=ratio,
        tier=thresholds.classify(count, capacity),
    )


def remaining_capacity(schedule: Schedule, store: AssignmentStore, teacher: TeacherRef) -> int:
    return teacher.weekly_capacity - regular_period_count(schedule, store, teacher.id)
