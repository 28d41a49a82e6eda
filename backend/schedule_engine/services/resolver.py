from __future__ import annotations

from datetime import date
from typing import Iterable, List

from schedule_engine.schemas.insights import SubstituteCandidate
from schedule_engine.schemas.reference import TeacherRef
from schedule_engine.schemas.timetable import EffectiveCell, Schedule
from schedule_engine.services.assignment_store import AssignmentStore
from schedule_engine.services.workload import remaining_capacity


def resolve_effective_schedule(schedule: Schedule, store: AssignmentStore, on: date) -> List[EffectiveCell]:
    """What happens in every teaching cell on ``on``.

    Cells come out in slot order, then in the schedule's section order. An
    overlay for that exact date wins; otherwise the regular assignment applies
    when the date falls on a working day; otherwise the period is free.
    """
    recurs = schedule.recurs_on(on)
    cells: List[EffectiveCell] = []
    for slot in schedule.teaching_slots():
        for section_id in schedule.section_ids:
            occupant = store.occupant(slot.id, section_id, on, recurs=recurs)
            if occupant is None:
                cells.append(EffectiveCell(time_slot_id=slot.id, section_id=section_id))
                continue
            cells.append(
                EffectiveCell(
                    time_slot_id=slot.id,
                    section_id=section_id,
                    subject_id=occupant.subject_id,
                    teacher_id=occupant.teacher_id,
                    kind=occupant.kind,
                )
            )
    return cells


def teacher_day(schedule: Schedule, store: AssignmentStore, teacher_id: str, on: date) -> List[EffectiveCell]:
    return [cell for cell in resolve_effective_schedule(schedule, store, on) if cell.teacher_id == teacher_id]


def is_teacher_free(schedule: Schedule, store: AssignmentStore, teacher_id: str, slot_id: str, on: date) -> bool:
    recurs = schedule.recurs_on(on)
    for section_id in schedule.section_ids:
        occupant = store.occupant(slot_id, section_id, on, recurs=recurs)
        if occupant is not None and occupant.teacher_id == teacher_id:
            return False
    return True


def rank_substitute_candidates(
    schedule: Schedule,
    store: AssignmentStore,
    teachers: Iterable[TeacherRef],
    slot_id: str,
    on: date,
    subject_id: str | None = None,
) -> List[SubstituteCandidate]:
    """Teachers free at ``slot_id`` on ``on``: qualified first, then most spare capacity."""
    ranked: List[SubstituteCandidate] = []
    for teacher in teachers:
        if not is_teacher_free(schedule, store, teacher.id, slot_id, on):
            continue
        remaining = remaining_capacity(schedule, store, teacher)
        ranked.append(
            SubstituteCandidate(
                teacher_id=teacher.id,
                qualified=True if subject_id is None else teacher.is_qualified_for(subject_id),
                regular_periods=teacher.weekly_capacity - remaining,
                remaining_capacity=remaining,
            )
        )
    ranked.sort(key=lambda item: (not item.qualified, -item.remaining_capacity, item.teacher_id))
    return ranked
