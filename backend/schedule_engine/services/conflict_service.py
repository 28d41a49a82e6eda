from __future__ import annotations

from collections import defaultdict
from datetime import date
import logging
from typing import Dict, Iterable, List, Literal, Set, Tuple

from schedule_engine.core.exceptions import ConflictError, QualificationError, ValidationError
from schedule_engine.schemas.conflict import ConflictDetail, ConflictReport
from schedule_engine.schemas.reference import TeacherRef
from schedule_engine.schemas.timetable import Assignment, AssignmentKey, AssignmentKind, Schedule
from schedule_engine.services.assignment_store import AssignmentStore


logger = logging.getLogger(__name__)

QualificationMode = Literal["warn", "strict", "off"]


class ConflictService:
    """Single gate for assignment writes against one schedule version.

    The service only reads ``schedule`` and ``store``; the caller commits the
    write after a successful check, inside the same per-schedule lock.
    """

    def __init__(
        self,
        schedule: Schedule,
        store: AssignmentStore,
        *,
        qualification_mode: QualificationMode = "warn",
        unique_exam_subjects: bool = True,
    ):
        self.schedule = schedule
        self.store = store
        self.qualification_mode = qualification_mode
        self.unique_exam_subjects = unique_exam_subjects

    def check_upsert(self, candidate: Assignment, teacher: TeacherRef | None = None) -> List[ConflictDetail]:
        """Raise on any hard violation; return soft warnings otherwise."""
        slot = self.schedule.slot(candidate.time_slot_id)
        if slot is not None and slot.is_break:
            raise ValidationError(
                f"Time slot {slot.id} is a break and cannot be assigned",
                details={"time_slot_id": slot.id},
            )

        if candidate.kind.is_overlay:
            self._check_overlay_cell(candidate)
            self._check_overlay_teacher(candidate)
            if candidate.kind == AssignmentKind.exam and self.unique_exam_subjects:
                self._check_exam_subject(candidate)
        else:
            self._check_regular_teacher(candidate)

        return self._check_qualification(candidate, teacher)

    def check_removal(self, key: AssignmentKey) -> None:
        """Removing an overlay hands the cell back to its regular teacher, who must be free."""
        if not key.kind.is_overlay or key.effective_date is None:
            return
        on = key.effective_date
        if not self.schedule.recurs_on(on):
            return
        regular = self.store.regular_at(key.time_slot_id, key.section_id)
        if regular is None:
            return
        for other in self.store.teacher_overlays(regular.teacher_id, key.time_slot_id, on):
            if other.section_id != key.section_id:
                raise ConflictError(
                    teacher_id=regular.teacher_id,
                    conflicting_section_id=other.section_id,
                    time_slot_id=key.time_slot_id,
                    effective_date=on,
                )

    def _check_overlay_cell(self, candidate: Assignment) -> None:
        on = candidate.effective_date
        existing = self.store.overlay_at(candidate.time_slot_id, candidate.section_id, on)
        if existing is not None and existing.kind != candidate.kind:
            raise ValidationError(
                f"Section {candidate.section_id} already has a {existing.kind.value} overlay "
                f"at slot {candidate.time_slot_id} on {on.isoformat()}",
                details={
                    "time_slot_id": candidate.time_slot_id,
                    "section_id": candidate.section_id,
                    "effective_date": on.isoformat(),
                    "existing_kind": existing.kind.value,
                },
            )

    def _check_regular_teacher(self, candidate: Assignment) -> None:
        teacher_id = candidate.teacher_id
        slot_id = candidate.time_slot_id
        for other in self.store.teacher_regulars(teacher_id, slot_id):
            if other.section_id != candidate.section_id:
                raise ConflictError(
                    teacher_id=teacher_id,
                    conflicting_section_id=other.section_id,
                    time_slot_id=slot_id,
                )
        # An overlay elsewhere collides with the new regular binding on any recurring
        # date where this section has no overlay of its own.
        for other in self.store.teacher_overlay_bindings(teacher_id, slot_id):
            on = other.effective_date
            if other.section_id == candidate.section_id or not self.schedule.recurs_on(on):
                continue
            if self.store.overlay_at(slot_id, candidate.section_id, on) is None:
                raise ConflictError(
                    teacher_id=teacher_id,
                    conflicting_section_id=other.section_id,
                    time_slot_id=slot_id,
                    effective_date=on,
                )

    def _check_overlay_teacher(self, candidate: Assignment) -> None:
        teacher_id = candidate.teacher_id
        slot_id = candidate.time_slot_id
        on = candidate.effective_date
        for other in self.store.teacher_overlays(teacher_id, slot_id, on):
            if other.section_id != candidate.section_id:
                raise ConflictError(
                    teacher_id=teacher_id,
                    conflicting_section_id=other.section_id,
                    time_slot_id=slot_id,
                    effective_date=on,
                )
        if not self.schedule.recurs_on(on):
            return
        for other in self.store.teacher_regulars(teacher_id, slot_id):
            if other.section_id == candidate.section_id:
                continue
            if self.store.overlay_at(slot_id, other.section_id, on) is None:
                raise ConflictError(
                    teacher_id=teacher_id,
                    conflicting_section_id=other.section_id,
                    time_slot_id=slot_id,
                    effective_date=on,
                )

    def _check_exam_subject(self, candidate: Assignment) -> None:
        for other in self.store.overlay_assignments():
            if other.kind != AssignmentKind.exam or other.key == candidate.key:
                continue
            if other.section_id == candidate.section_id and other.subject_id == candidate.subject_id:
                raise ValidationError(
                    f"Section {candidate.section_id} already sits the {candidate.subject_id} exam "
                    f"on {other.effective_date.isoformat()}",
                    details={
                        "section_id": candidate.section_id,
                        "subject_id": candidate.subject_id,
                        "scheduled_on": other.effective_date.isoformat(),
                    },
                )

    def _check_qualification(self, candidate: Assignment, teacher: TeacherRef | None) -> List[ConflictDetail]:
        if teacher is None or self.qualification_mode == "off":
            return []
        if teacher.is_qualified_for(candidate.subject_id):
            return []
        if self.qualification_mode == "strict":
            raise QualificationError(teacher_id=teacher.id, subject_id=candidate.subject_id)

        logger.warning(
            "Teacher %s is not qualified for subject %s (schedule=%s slot=%s section=%s)",
            teacher.id,
            candidate.subject_id,
            self.schedule.id,
            candidate.time_slot_id,
            candidate.section_id,
        )
        return [
            ConflictDetail(
                id=f"qual-{candidate.time_slot_id}-{candidate.section_id}-{teacher.id}",
                conflict_type="qualification_mismatch",
                description=f"Teacher {teacher.id} is not qualified to teach subject {candidate.subject_id}",
                severity="soft",
                teacher_id=teacher.id,
                time_slot_id=candidate.time_slot_id,
                section_ids=[candidate.section_id],
                subject_id=candidate.subject_id,
                effective_date=candidate.effective_date,
            )
        ]

    def detect_conflicts(self, dates: Iterable[date] = ()) -> ConflictReport:
        """Audit the stored state: the regular layer plus the merged view on each date."""
        conflicts: List[ConflictDetail] = []
        checked_dates = sorted(set(dates))

        for assignment in self.store:
            slot = self.schedule.slot(assignment.time_slot_id)
            if slot is not None and slot.is_break:
                conflicts.append(
                    ConflictDetail(
                        id=f"break-{assignment.time_slot_id}-{assignment.section_id}",
                        conflict_type="break_assignment",
                        description=f"Assignment targets break slot {slot.label}",
                        severity="hard",
                        teacher_id=assignment.teacher_id,
                        time_slot_id=assignment.time_slot_id,
                        section_ids=[assignment.section_id],
                        effective_date=assignment.effective_date,
                    )
                )

        # Regular layer
        regular_bindings: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
        for assignment in self.store.regular_assignments():
            regular_bindings[(assignment.teacher_id, assignment.time_slot_id)].add(assignment.section_id)
        conflicts.extend(self._double_bookings(regular_bindings, None))

        # Merged view per date
        for on in checked_dates:
            recurs = self.schedule.recurs_on(on)
            bindings: Dict[Tuple[str, str], Set[str]] = defaultdict(set)
            for slot in self.schedule.teaching_slots():
                for section_id in self.schedule.section_ids:
                    occupant = self.store.occupant(slot.id, section_id, on, recurs=recurs)
                    if occupant is not None:
                        bindings[(occupant.teacher_id, slot.id)].add(section_id)
            conflicts.extend(self._double_bookings(bindings, on))

        if conflicts:
            logger.info("Conflict audit found %s issue(s) in schedule %s", len(conflicts), self.schedule.id)
        return ConflictReport(
            schedule_id=self.schedule.id,
            version=self.schedule.version,
            checked_dates=checked_dates,
            conflicts=conflicts,
        )

    @staticmethod
    def _double_bookings(bindings: Dict[Tuple[str, str], Set[str]], on: date | None) -> List[ConflictDetail]:
        found: List[ConflictDetail] = []
        for (teacher_id, slot_id), section_ids in sorted(bindings.items()):
            if len(section_ids) < 2:
                continue
            suffix = on.isoformat() if on else "regular"
            found.append(
                ConflictDetail(
                    id=f"teacher-{teacher_id}-{slot_id}-{suffix}",
                    conflict_type="teacher_double_booking",
                    description=(
                        f"Teacher {teacher_id} is bound to {len(section_ids)} sections at slot {slot_id}"
                        + (f" on {on.isoformat()}" if on else "")
                    ),
                    severity="hard",
                    teacher_id=teacher_id,
                    time_slot_id=slot_id,
                    section_ids=sorted(section_ids),
                    effective_date=on,
                )
            )
        return found
