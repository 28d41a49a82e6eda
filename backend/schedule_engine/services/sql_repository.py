from __future__ import annotations

import logging
from threading import Lock

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from schedule_engine.core.exceptions import ConflictError, NotFoundError, StaleScheduleError
from schedule_engine.models.class_teacher_assignment import ClassTeacherAssignmentRecord
from schedule_engine.models.schedule_record import ScheduleRecord
from schedule_engine.schemas.timetable import ClassTeacherAssignment, Schedule
from schedule_engine.services.repository import ScheduleRepository, ScheduleSnapshot


logger = logging.getLogger(__name__)


def _to_payload(schedule: Schedule) -> dict:
    return schedule.model_dump(mode="json", exclude={"version", "status"})


def _to_schedule(record: ScheduleRecord) -> Schedule:
    return Schedule.model_validate({**record.payload, "status": record.status, "version": record.version})


def _to_class_teacher(record: ClassTeacherAssignmentRecord) -> ClassTeacherAssignment:
    return ClassTeacherAssignment(
        academic_year=record.academic_year,
        section_id=record.section_id,
        teacher_id=record.teacher_id,
        assigned_at=record.assigned_at,
    )


class SqlScheduleRepository(ScheduleRepository):
    """Schedules as JSON payload rows guarded by an integer version column.

    ``replace`` and ``delete`` only touch the row when its version still
    matches, so writers in other processes surface as ``StaleScheduleError``.
    Snapshots are cached per version to keep reads from rebuilding indexes.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._cache_lock = Lock()
        self._cache: dict[str, ScheduleSnapshot] = {}

    def _cached(self, record: ScheduleRecord) -> ScheduleSnapshot:
        with self._cache_lock:
            cached = self._cache.get(record.id)
            if cached is not None and cached.version == record.version:
                return cached
        snapshot = ScheduleSnapshot.build(_to_schedule(record))
        with self._cache_lock:
            self._cache[record.id] = snapshot
        return snapshot

    def _remember(self, snapshot: ScheduleSnapshot) -> None:
        with self._cache_lock:
            self._cache[snapshot.schedule.id] = snapshot

    def get(self, schedule_id: str) -> ScheduleSnapshot:
        with self._session_factory() as session:
            record = session.get(ScheduleRecord, schedule_id)
            if record is None:
                raise NotFoundError("schedule", schedule_id)
            return self._cached(record)

    def list_schedules(self) -> list[Schedule]:
        with self._session_factory() as session:
            records = session.execute(select(ScheduleRecord).order_by(ScheduleRecord.created_at, ScheduleRecord.id))
            return [self._cached(record).schedule for record in records.scalars().all()]

    def add(self, snapshot: ScheduleSnapshot) -> ScheduleSnapshot:
        schedule = snapshot.schedule
        with self._session_factory() as session:
            session.add(
                ScheduleRecord(
                    id=schedule.id,
                    name=schedule.name,
                    academic_year=schedule.academic_year,
                    status=schedule.status.value,
                    version=schedule.version,
                    payload=_to_payload(schedule),
                    created_at=schedule.created_at,
                    finalized_at=schedule.finalized_at,
                )
            )
            session.commit()
        self._remember(snapshot)
        return snapshot

    def replace(self, snapshot: ScheduleSnapshot, expected_version: int) -> ScheduleSnapshot:
        schedule = snapshot.schedule
        with self._session_factory() as session:
            result = session.execute(
                update(ScheduleRecord)
                .where(ScheduleRecord.id == schedule.id, ScheduleRecord.version == expected_version)
                .values(
                    name=schedule.name,
                    status=schedule.status.value,
                    version=schedule.version,
                    payload=_to_payload(schedule),
                    finalized_at=schedule.finalized_at,
                )
            )
            if result.rowcount == 0:
                session.rollback()
                if session.get(ScheduleRecord, schedule.id) is None:
                    raise NotFoundError("schedule", schedule.id)
                logger.info("Stale write rejected for schedule %s at version %s", schedule.id, expected_version)
                raise StaleScheduleError(schedule.id, expected_version)
            session.commit()
        self._remember(snapshot)
        return snapshot

    def delete(self, schedule_id: str, expected_version: int) -> None:
        with self._session_factory() as session:
            result = session.execute(
                delete(ScheduleRecord).where(
                    ScheduleRecord.id == schedule_id, ScheduleRecord.version == expected_version
                )
            )
            if result.rowcount == 0:
                session.rollback()
                if session.get(ScheduleRecord, schedule_id) is None:
                    raise NotFoundError("schedule", schedule_id)
                raise StaleScheduleError(schedule_id, expected_version)
            session.commit()
        with self._cache_lock:
            self._cache.pop(schedule_id, None)

    def get_class_teacher(self, academic_year: str, section_id: str) -> ClassTeacherAssignment | None:
        with self._session_factory() as session:
            record = session.execute(
                select(ClassTeacherAssignmentRecord).where(
                    ClassTeacherAssignmentRecord.academic_year == academic_year,
                    ClassTeacherAssignmentRecord.section_id == section_id,
                )
            ).scalar_one_or_none()
            return _to_class_teacher(record) if record is not None else None

    def class_teacher_section(self, academic_year: str, teacher_id: str) -> ClassTeacherAssignment | None:
        with self._session_factory() as session:
            record = session.execute(
                select(ClassTeacherAssignmentRecord).where(
                    ClassTeacherAssignmentRecord.academic_year == academic_year,
                    ClassTeacherAssignmentRecord.teacher_id == teacher_id,
                )
            ).scalar_one_or_none()
            return _to_class_teacher(record) if record is not None else None

    def list_class_teachers(self, academic_year: str) -> list[ClassTeacherAssignment]:
        with self._session_factory() as session:
            records = session.execute(
                select(ClassTeacherAssignmentRecord)
                .where(ClassTeacherAssignmentRecord.academic_year == academic_year)
                .order_by(ClassTeacherAssignmentRecord.section_id)
            )
            return [_to_class_teacher(record) for record in records.scalars().all()]

    def save_class_teacher(self, assignment: ClassTeacherAssignment) -> ClassTeacherAssignment:
        with self._session_factory() as session:
            record = session.execute(
                select(ClassTeacherAssignmentRecord).where(
                    ClassTeacherAssignmentRecord.academic_year == assignment.academic_year,
                    ClassTeacherAssignmentRecord.section_id == assignment.section_id,
                )
            ).scalar_one_or_none()
            if record is None:
                record = ClassTeacherAssignmentRecord(
                    academic_year=assignment.academic_year,
                    section_id=assignment.section_id,
                )
                session.add(record)
            record.teacher_id = assignment.teacher_id
            record.assigned_at = assignment.assigned_at
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                holder = self.class_teacher_section(assignment.academic_year, assignment.teacher_id)
                raise ConflictError(
                    teacher_id=assignment.teacher_id,
                    conflicting_section_id=holder.section_id if holder else assignment.section_id,
                    message=f"Teacher {assignment.teacher_id} is already a class teacher in {assignment.academic_year}",
                ) from exc
        return assignment
