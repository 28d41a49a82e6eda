"""Scheduling engine: the operations exposed to API and UI callers.

Every write follows the same sequence:

1. cheap shape and status checks against the published snapshot,
2. reference registry lookups (outside any lock, they may block or time out),
3. under the per-schedule lock: re-read, re-check, run the conflict gate on a
   private copy of the store, then publish the copy as ``version + 1``.

Reads never take the lock; they work on whichever snapshot is published.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import logging
import threading
import time
from typing import Callable, Iterable
import uuid

from schedule_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from schedule_engine.schemas.conflict import ConflictReport
from schedule_engine.schemas.insights import SubstituteCandidate, TeacherLoad
from schedule_engine.schemas.reference import SectionRef
from schedule_engine.schemas.timetable import (
    Assignment,
    AssignmentInput,
    AssignmentKey,
    AssignmentKind,
    AssignmentOutcome,
    ClassTeacherAssignment,
    EffectiveCell,
    Schedule,
    ScheduleStatus,
    ScheduleSummary,
    TimeSlot,
)
from schedule_engine.services import calendar_grid, lifecycle
from schedule_engine.services.assignment_store import AssignmentStore
from schedule_engine.services.conflict_service import ConflictService
from schedule_engine.services.locking import ScheduleLocks
from schedule_engine.services.policy import SchedulingPolicy
from schedule_engine.services.reference_registry import ReferenceRegistry
from schedule_engine.services.repository import ScheduleRepository, ScheduleSnapshot
from schedule_engine.services.resolver import rank_substitute_candidates, resolve_effective_schedule, teacher_day
from schedule_engine.services.workload import teacher_load


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _describe_key(key: AssignmentKey) -> str:
    parts = [key.time_slot_id, key.section_id, key.kind.value]
    if key.effective_date is not None:
        parts.append(key.effective_date.isoformat())
    return "/".join(parts)


class SchedulingEngine:
    def __init__(
        self,
        repository: ScheduleRepository,
        registry: ReferenceRegistry,
        policy: SchedulingPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        locks: ScheduleLocks | None = None,
    ):
        self.repository = repository
        self.registry = registry
        self.policy = policy or SchedulingPolicy()
        self._clock = clock or _utcnow
        self.locks = locks or ScheduleLocks()

    def _today(self) -> date:
        return self._clock().date()

    def _conflicts(self, snapshot: ScheduleSnapshot, store: AssignmentStore | None = None) -> ConflictService:
        return ConflictService(
            snapshot.schedule,
            store if store is not None else snapshot.store,
            qualification_mode=self.policy.qualification_mode,
            unique_exam_subjects=self.policy.unique_exam_subjects,
        )

    def _commit(
        self,
        current: ScheduleSnapshot,
        *,
        schedule: Schedule | None = None,
        store: AssignmentStore | None = None,
    ) -> ScheduleSnapshot:
        base = schedule if schedule is not None else current.schedule
        published = ScheduleSnapshot.build(
            base.model_copy(update={"version": current.version + 1}),
            store if store is not None else current.store,
        )
        return self.repository.replace(published, expected_version=current.version)

    # Schedules

    def _resolve_sections(self, academic_year: str, section_ids: Iterable[str]) -> list[SectionRef]:
        sections: list[SectionRef] = []
        for section_id in section_ids:
            section = self.registry.get_section(section_id)
            if section.academic_year != academic_year:
                raise ValidationError(
                    f"Section {section_id} belongs to academic year {section.academic_year}, "
                    f"not {academic_year}",
                    details={"section_id": section_id, "academic_year": section.academic_year},
                )
            sections.append(section)
        return sections

    def create_schedule(
        self,
        name: str,
        academic_year: str,
        time_slots: Iterable[TimeSlot] = (),
        section_ids: Iterable[str] = (),
        working_days: Iterable[str] | None = None,
    ) -> Schedule:
        slots = calendar_grid.validate_slot_sequence(time_slots)
        days = calendar_grid.normalize_working_days(working_days)
        section_ids = list(section_ids)
        if len(set(section_ids)) != len(section_ids):
            raise ValidationError("Duplicate section ids", details={"section_ids": section_ids})
        self._resolve_sections(academic_year, section_ids)

        schedule = Schedule(
            id=str(uuid.uuid4()),
            name=name,
            academic_year=academic_year,
            time_slots=tuple(slots),
            section_ids=tuple(section_ids),
            working_days=days,
            created_at=self._clock(),
        )
        self.repository.add(ScheduleSnapshot.build(schedule))
        logger.info("Created schedule %s (%s, %s)", schedule.id, schedule.name, schedule.academic_year)
        return schedule

    def get_schedule(self, schedule_id: str) -> Schedule:
        return self.repository.get(schedule_id).schedule

    def list_schedules(self, status: ScheduleStatus | None = None) -> list[Schedule]:
        schedules = self.repository.list_schedules()
        if status is None:
            return schedules
        return [item for item in schedules if item.status == status]

    def delete_schedule(self, schedule_id: str) -> None:
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            lifecycle.require_draft(current.schedule, "delete the schedule")
            self.repository.delete(schedule_id, expected_version=current.version)
        self.locks.forget(schedule_id)
        logger.info("Deleted draft schedule %s", schedule_id)

    def duplicate_schedule(self, schedule_id: str, name: str | None = None) -> Schedule:
        source = self.repository.get(schedule_id).schedule
        new_id = str(uuid.uuid4())
        regulars = tuple(
            item.model_copy(update={"schedule_id": new_id})
            for item in source.assignments
            if item.kind == AssignmentKind.regular
        )
        copy = Schedule(
            id=new_id,
            name=name or f"{source.name} (copy)",
            academic_year=source.academic_year,
            time_slots=source.time_slots,
            section_ids=source.section_ids,
            assignments=regulars,
            working_days=source.working_days,
            created_at=self._clock(),
        )
        self.repository.add(ScheduleSnapshot.build(copy))
        logger.info("Duplicated schedule %s into %s", schedule_id, new_id)
        return copy

    # Calendar grid

    def add_time_slot(self, schedule_id: str, slot: TimeSlot) -> Schedule:
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            updated = calendar_grid.add_time_slot(current.schedule, slot)
            return self._commit(current, schedule=updated).schedule

    def remove_time_slot(self, schedule_id: str, slot_id: str) -> Schedule:
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            updated = calendar_grid.remove_time_slot(current.schedule, current.store, slot_id)
            return self._commit(current, schedule=updated).schedule

    def attach_section(self, schedule_id: str, section_id: str) -> Schedule:
        schedule = self.repository.get(schedule_id).schedule
        lifecycle.require_draft(schedule, "attach sections")
        self._resolve_sections(schedule.academic_year, [section_id])
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            updated = calendar_grid.attach_section(current.schedule, section_id)
            if updated is current.schedule:
                return updated
            return self._commit(current, schedule=updated).schedule

    def detach_section(self, schedule_id: str, section_id: str) -> Schedule:
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            updated = calendar_grid.detach_section(current.schedule, current.store, section_id)
            return self._commit(current, schedule=updated).schedule

    # Assignments

    def _check_assignment_input(self, schedule: Schedule, data: AssignmentInput) -> None:
        slot = schedule.slot(data.time_slot_id)
        if slot is None:
            raise NotFoundError("time_slot", data.time_slot_id)
        if slot.is_break:
            raise ValidationError(
                f"Time slot {slot.id} is a break and cannot be assigned",
                details={"time_slot_id": slot.id},
            )

        if data.kind == AssignmentKind.regular:
            lifecycle.require_draft(schedule, "change regular assignments")
            if data.effective_date is not None:
                raise ValidationError(
                    "Regular assignments recur and cannot carry an effective_date",
                    details={"effective_date": data.effective_date.isoformat()},
                )
        else:
            if data.effective_date is None:
                raise ValidationError(
                    f"{data.kind.value} assignments require an effective_date",
                    details={"kind": data.kind.value},
                )
            if not self.policy.allow_past_overlays and data.effective_date < self._today():
                raise ValidationError(
                    f"effective_date {data.effective_date.isoformat()} is in the past",
                    details={"effective_date": data.effective_date.isoformat(), "today": self._today().isoformat()},
                )
            lifecycle.require_overlay_writable(schedule, f"add {data.kind.value} assignments")

        if data.section_id not in schedule.section_ids:
            self.registry.get_section(data.section_id)
            raise ValidationError(
                f"Section {data.section_id} is not attached to schedule {schedule.id}",
                details={"section_id": data.section_id},
            )

    def upsert_assignment(self, schedule_id: str, data: AssignmentInput) -> AssignmentOutcome:
        self._check_assignment_input(self.repository.get(schedule_id).schedule, data)

        self.registry.get_section(data.section_id)
        self.registry.get_subject(data.subject_id)
        teacher = self.registry.get_teacher(data.teacher_id)

        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            self._check_assignment_input(current.schedule, data)
            candidate = Assignment(schedule_id=schedule_id, **data.model_dump())
            store = current.store.copy()
            warnings = self._conflicts(current, store).check_upsert(candidate, teacher)
            previous = store.put(candidate)
            published = self._commit(current, store=store)

        logger.info(
            "%s %s assignment %s in schedule %s (version %s)",
            "Replaced" if previous is not None else "Stored",
            candidate.kind.value,
            _describe_key(candidate.key),
            schedule_id,
            published.version,
        )
        return AssignmentOutcome(assignment=candidate, warnings=warnings)

    def remove_assignment(self, schedule_id: str, key: AssignmentKey) -> None:
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            lifecycle.require_writable_for(current.schedule, key.kind, f"remove {key.kind.value} assignments")
            if current.store.get(key) is None:
                raise NotFoundError("assignment", _describe_key(key))
            self._conflicts(current).check_removal(key)
            store = current.store.copy()
            store.discard(key)
            published = self._commit(current, store=store)
        logger.info(
            "Removed assignment %s from schedule %s (version %s)",
            _describe_key(key),
            schedule_id,
            published.version,
        )

    def get_assignment(self, schedule_id: str, key: AssignmentKey) -> Assignment:
        found = self.repository.get(schedule_id).store.get(key)
        if found is None:
            raise NotFoundError("assignment", _describe_key(key))
        return found

    # Read-side views

    def get_effective_schedule(self, schedule_id: str, on: date) -> list[EffectiveCell]:
        snapshot = self.repository.get(schedule_id)
        return resolve_effective_schedule(snapshot.schedule, snapshot.store, on)

    def get_teacher_day(self, schedule_id: str, teacher_id: str, on: date) -> list[EffectiveCell]:
        snapshot = self.repository.get(schedule_id)
        self.registry.get_teacher(teacher_id)
        return teacher_day(snapshot.schedule, snapshot.store, teacher_id, on)

    def get_teacher_load(self, schedule_id: str, teacher_id: str) -> TeacherLoad:
        snapshot = self.repository.get(schedule_id)
        teacher = self.registry.get_teacher(teacher_id)
        return teacher_load(snapshot.schedule, snapshot.store, teacher, self.policy.load_thresholds)

    def get_teacher_loads(self, schedule_id: str) -> list[TeacherLoad]:
        snapshot = self.repository.get(schedule_id)
        teacher_ids = sorted({item.teacher_id for item in snapshot.store.regular_assignments()})
        return [
            teacher_load(snapshot.schedule, snapshot.store, teacher, self.policy.load_thresholds)
            for teacher in self.registry.get_teachers(teacher_ids)
        ]

    def find_available_teachers(
        self,
        schedule_id: str,
        slot_id: str,
        on: date,
        candidate_ids: Iterable[str],
        subject_id: str | None = None,
    ) -> list[SubstituteCandidate]:
        snapshot = self.repository.get(schedule_id)
        slot = snapshot.schedule.slot(slot_id)
        if slot is None:
            raise NotFoundError("time_slot", slot_id)
        if slot.is_break:
            raise ValidationError(f"Time slot {slot_id} is a break", details={"time_slot_id": slot_id})
        teachers = self.registry.get_teachers(candidate_ids)
        return rank_substitute_candidates(snapshot.schedule, snapshot.store, teachers, slot_id, on, subject_id)

    def summarize(self, schedule_id: str) -> ScheduleSummary:
        snapshot = self.repository.get(schedule_id)
        schedule = snapshot.schedule
        teaching = schedule.teaching_slots()
        total_cells = len(teaching) * len(schedule.section_ids)
        assigned = sum(
            1
            for slot in teaching
            for section_id in schedule.section_ids
            if snapshot.store.regular_at(slot.id, section_id) is not None
        )
        return ScheduleSummary(
            id=schedule.id,
            name=schedule.name,
            academic_year=schedule.academic_year,
            status=schedule.status,
            version=schedule.version,
            total_time_slots=len(schedule.time_slots),
            teaching_slots=len(teaching),
            total_sections=len(schedule.section_ids),
            assigned_cells=assigned,
            total_cells=total_cells,
            completion_percentage=round(assigned / total_cells * 100, 1) if total_cells else 0.0,
            overlay_count=len(snapshot.store.overlay_assignments()),
        )

    def detect_conflicts(self, schedule_id: str, dates: Iterable[date] | None = None) -> ConflictReport:
        snapshot = self.repository.get(schedule_id)
        if dates is None:
            dates = snapshot.store.overlay_dates()
        return self._conflicts(snapshot).detect_conflicts(dates)

    # Lifecycle

    def finalize_schedule(
        self,
        schedule_id: str,
        require_full_coverage: bool = False,
        *,
        cancel_event: threading.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> Schedule:
        deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            finalized = lifecycle.finalize(
                current.schedule,
                current.store,
                now=self._clock(),
                require_full_coverage=require_full_coverage,
                cancel_event=cancel_event,
                deadline=deadline,
            )
            published = self._commit(current, schedule=finalized)
        logger.info("Finalized schedule %s (version %s)", schedule_id, published.version)
        return published.schedule

    def archive_schedule(self, schedule_id: str) -> Schedule:
        with self.locks.hold(schedule_id):
            current = self.repository.get(schedule_id)
            archived = lifecycle.archive(current.schedule, now=self._clock())
            published = self._commit(current, schedule=archived)
        logger.info("Archived schedule %s (version %s)", schedule_id, published.version)
        return published.schedule

    # Class teachers

    def assign_class_teacher(self, section_id: str, teacher_id: str) -> ClassTeacherAssignment:
        section = self.registry.get_section(section_id)
        self.registry.get_teacher(teacher_id)
        academic_year = section.academic_year

        with self.locks.hold(f"class-teachers:{academic_year}"):
            holder = self.repository.class_teacher_section(academic_year, teacher_id)
            if holder is not None and holder.section_id != section_id:
                raise ConflictError(
                    teacher_id=teacher_id,
                    conflicting_section_id=holder.section_id,
                    message=(
                        f"Teacher {teacher_id} is already class teacher of section "
                        f"{holder.section_id} in {academic_year}"
                    ),
                )
            saved = self.repository.save_class_teacher(
                ClassTeacherAssignment(
                    academic_year=academic_year,
                    section_id=section_id,
                    teacher_id=teacher_id,
                    assigned_at=self._clock(),
                )
            )
        logger.info("Assigned class teacher %s to section %s (%s)", teacher_id, section_id, academic_year)
        return saved

    def get_class_teacher(self, academic_year: str, section_id: str) -> ClassTeacherAssignment:
        found = self.repository.get_class_teacher(academic_year, section_id)
        if found is None:
            raise NotFoundError("class_teacher", f"{academic_year}/{section_id}")
        return found

    def list_class_teachers(self, academic_year: str) -> list[ClassTeacherAssignment]:
        return self.repository.list_class_teachers(academic_year)
