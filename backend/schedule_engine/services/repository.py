from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock

from schedule_engine.core.exceptions import NotFoundError, StaleScheduleError
from schedule_engine.schemas.timetable import ClassTeacherAssignment, Schedule
from schedule_engine.services.assignment_store import AssignmentStore


@dataclass(frozen=True)
class ScheduleSnapshot:
    """One published version of a schedule with the store built for it.

    Published snapshots are never mutated; writers build a new one.
    """

    schedule: Schedule
    store: AssignmentStore

    @classmethod
    def build(cls, schedule: Schedule, store: AssignmentStore | None = None) -> "ScheduleSnapshot":
        if store is None:
            store = AssignmentStore(schedule.assignments)
        else:
            schedule = schedule.model_copy(update={"assignments": tuple(store)})
        return cls(schedule=schedule, store=store)

    @property
    def version(self) -> int:
        return self.schedule.version


class ScheduleRepository(ABC):
    @abstractmethod
    def get(self, schedule_id: str) -> ScheduleSnapshot:
        raise NotImplementedError

    @abstractmethod
    def list_schedules(self) -> list[Schedule]:
        raise NotImplementedError

    @abstractmethod
    def add(self, snapshot: ScheduleSnapshot) -> ScheduleSnapshot:
        raise NotImplementedError

    @abstractmethod
    def replace(self, snapshot: ScheduleSnapshot, expected_version: int) -> ScheduleSnapshot:
        """Publish ``snapshot`` if the stored version still equals ``expected_version``."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, schedule_id: str, expected_version: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_class_teacher(self, academic_year: str, section_id: str) -> ClassTeacherAssignment | None:
        raise NotImplementedError

    @abstractmethod
    def class_teacher_section(self, academic_year: str, teacher_id: str) -> ClassTeacherAssignment | None:
        raise NotImplementedError

    @abstractmethod
    def list_class_teachers(self, academic_year: str) -> list[ClassTeacherAssignment]:
        raise NotImplementedError

    @abstractmethod
    def save_class_teacher(self, assignment: ClassTeacherAssignment) -> ClassTeacherAssignment:
        raise NotImplementedError


class InMemoryScheduleRepository(ScheduleRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._snapshots: dict[str, ScheduleSnapshot] = {}
        self._class_teachers: dict[tuple[str, str], ClassTeacherAssignment] = {}

    def get(self, schedule_id: str) -> ScheduleSnapshot:
        with self._lock:
            snapshot = self._snapshots.get(schedule_id)
        if snapshot is None:
            raise NotFoundError("schedule", schedule_id)
        return snapshot

    def list_schedules(self) -> list[Schedule]:
        with self._lock:
            schedules = [snapshot.schedule for snapshot in self._snapshots.values()]
        return sorted(schedules, key=lambda item: (item.created_at, item.id))

    def add(self, snapshot: ScheduleSnapshot) -> ScheduleSnapshot:
        with self._lock:
            self._snapshots[snapshot.schedule.id] = snapshot
        return snapshot

    def replace(self, snapshot: ScheduleSnapshot, expected_version: int) -> ScheduleSnapshot:
        schedule_id = snapshot.schedule.id
        with self._lock:
            current = self._snapshots.get(schedule_id)
            if current is None:
                raise NotFoundError("schedule", schedule_id)
            if current.version != expected_version:
                raise StaleScheduleError(schedule_id, expected_version)
            self._snapshots[schedule_id] = snapshot
        return snapshot

    def delete(self, schedule_id: str, expected_version: int) -> None:
        with self._lock:
            current = self._snapshots.get(schedule_id)
            if current is None:
                raise NotFoundError("schedule", schedule_id)
            if current.version != expected_version:
                raise StaleScheduleError(schedule_id, expected_version)
            del self._snapshots[schedule_id]

    def get_class_teacher(self, academic_year: str, section_id: str) -> ClassTeacherAssignment | None:
        with self._lock:
            return self._class_teachers.get((academic_year, section_id))

    def class_teacher_section(self, academic_year: str, teacher_id: str) -> ClassTeacherAssignment | None:
        with self._lock:
            for (year, _), assignment in self._class_teachers.items():
                if year == academic_year and assignment.teacher_id == teacher_id:
                    return assignment
        return None

    def list_class_teachers(self, academic_year: str) -> list[ClassTeacherAssignment]:
        with self._lock:
            found = [item for (year, _), item in self._class_teachers.items() if year == academic_year]
        return sorted(found, key=lambda item: item.section_id)

    def save_class_teacher(self, assignment: ClassTeacherAssignment) -> ClassTeacherAssignment:
        with self._lock:
            self._class_teachers[(assignment.academic_year, assignment.section_id)] = assignment
        return assignment
