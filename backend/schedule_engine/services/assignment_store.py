from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable, Iterator

from schedule_engine.schemas.timetable import Assignment, AssignmentKey, AssignmentKind


class AssignmentStore:
    """Assignments of one schedule, keyed by natural key.

    Two secondary indexes are kept in step with the primary table on every
    ``put``/``discard``:

    - ``by_slot_section[(slot, section)]`` maps ``(kind, date)`` to the record,
      so cell lookups never scan the table.
    - ``by_teacher_slot[(teacher, slot, date)]`` holds every record binding a
      teacher at a slot; regular records use ``None`` as their date.

    A store is a plain mutable container. Writers work on a ``copy()`` and the
    repository publishes the copy once the write has been committed.
    """

    def __init__(self, assignments: Iterable[Assignment] = ()):
        self._primary: dict[AssignmentKey, Assignment] = {}
        self.by_slot_section: dict[tuple[str, str], dict[tuple[AssignmentKind, date | None], Assignment]] = (
            defaultdict(dict)
        )
        self.by_teacher_slot: dict[tuple[str, str, date | None], dict[AssignmentKey, Assignment]] = defaultdict(dict)
        for assignment in assignments:
            self.put(assignment)

    def __iter__(self) -> Iterator[Assignment]:
        return iter(list(self._primary.values()))

    def __len__(self) -> int:
        return len(self._primary)

    def __contains__(self, key: object) -> bool:
        return key in self._primary

    def copy(self) -> "AssignmentStore":
        return AssignmentStore(self._primary.values())

    def get(self, key: AssignmentKey) -> Assignment | None:
        cell = self.by_slot_section.get((key.time_slot_id, key.section_id))
        if not cell:
            return None
        return cell.get((key.kind, key.effective_date))

    def put(self, assignment: Assignment) -> Assignment | None:
        """Insert or replace by natural key; returns the replaced record."""
        previous = self.discard(assignment.key)
        self._primary[assignment.key] = assignment
        self.by_slot_section[(assignment.time_slot_id, assignment.section_id)][
            (assignment.kind, assignment.effective_date)
        ] = assignment
        self.by_teacher_slot[(assignment.teacher_id, assignment.time_slot_id, assignment.effective_date)][
            assignment.key
        ] = assignment
        return previous

    def discard(self, key: AssignmentKey) -> Assignment | None:
        existing = self._primary.pop(key, None)
        if existing is None:
            return None
        cell_key = (existing.time_slot_id, existing.section_id)
        cell = self.by_slot_section.get(cell_key)
        if cell is not None:
            cell.pop((existing.kind, existing.effective_date), None)
            if not cell:
                del self.by_slot_section[cell_key]
        teacher_key = (existing.teacher_id, existing.time_slot_id, existing.effective_date)
        bucket = self.by_teacher_slot.get(teacher_key)
        if bucket is not None:
            bucket.pop(key, None)
            if not bucket:
                del self.by_teacher_slot[teacher_key]
        return existing

    def regular_at(self, time_slot_id: str, section_id: str) -> Assignment | None:
        cell = self.by_slot_section.get((time_slot_id, section_id))
        if not cell:
            return None
        return cell.get((AssignmentKind.regular, None))

    def overlay_at(self, time_slot_id: str, section_id: str, on: date) -> Assignment | None:
        cell = self.by_slot_section.get((time_slot_id, section_id))
        if not cell:
            return None
        for kind in (AssignmentKind.substitute, AssignmentKind.exam):
            found = cell.get((kind, on))
            if found is not None:
                return found
        return None

    def occupant(self, time_slot_id: str, section_id: str, on: date, *, recurs: bool = True) -> Assignment | None:
        """The assignment in force for a cell on a date: overlay first, then regular."""
        overlay = self.overlay_at(time_slot_id, section_id, on)
        if overlay is not None:
            return overlay
        if not recurs:
            return None
        return self.regular_at(time_slot_id, section_id)

    def teacher_regulars(self, teacher_id: str, time_slot_id: str) -> list[Assignment]:
        return list(self.by_teacher_slot.get((teacher_id, time_slot_id, None), {}).values())

    def teacher_overlay_bindings(self, teacher_id: str, time_slot_id: str) -> list[Assignment]:
        """Every overlay binding the teacher at the slot, across all dates."""
        return [
            item
            for (bound_teacher, slot_id, on), bucket in self.by_teacher_slot.items()
            if bound_teacher == teacher_id and slot_id == time_slot_id and on is not None
            for item in bucket.values()
        ]

    def teacher_overlays(self, teacher_id: str, time_slot_id: str, on: date) -> list[Assignment]:
        return list(self.by_teacher_slot.get((teacher_id, time_slot_id, on), {}).values())

    def regular_assignments(self) -> list[Assignment]:
        return [item for item in self._primary.values() if item.kind == AssignmentKind.regular]

    def overlay_assignments(self, on: date | None = None) -> list[Assignment]:
        return [
            item
            for item in self._primary.values()
            if item.kind.is_overlay and (on is None or item.effective_date == on)
        ]

    def overlay_dates(self) -> list[date]:
        return sorted({item.effective_date for item in self.overlay_assignments() if item.effective_date})

    def references_slot(self, time_slot_id: str) -> bool:
        return any(slot_id == time_slot_id for slot_id, _ in self.by_slot_section)

    def references_section(self, section_id: str) -> bool:
        return any(cell_section == section_id for _, cell_section in self.by_slot_section)
