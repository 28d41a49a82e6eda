from __future__ import annotations

from typing import Iterable, List

from schedule_engine.core.exceptions import NotFoundError, ValidationError
from schedule_engine.schemas.timetable import DAY_ORDER, Schedule, TimeSlot, normalize_day
from schedule_engine.services.assignment_store import AssignmentStore
from schedule_engine.services.lifecycle import require_draft


def ordered_slots(slots: Iterable[TimeSlot]) -> List[TimeSlot]:
    return sorted(slots, key=lambda slot: (slot.start_minutes, slot.end_minutes, slot.id))


def validate_slot_sequence(slots: Iterable[TimeSlot]) -> List[TimeSlot]:
    """Return the slots in start order, rejecting duplicate ids and overlaps."""
    ordered = ordered_slots(slots)
    seen: set[str] = set()
    for slot in ordered:
        if slot.id in seen:
            raise ValidationError(f"Duplicate time slot id {slot.id}", details={"time_slot_id": slot.id})
        seen.add(slot.id)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.overlaps(current):
            raise ValidationError(
                f"Time slot {current.id} ({current.start}-{current.end}) overlaps "
                f"{previous.id} ({previous.start}-{previous.end})",
                details={"time_slot_id": current.id, "overlapping_slot_id": previous.id},
            )
    return ordered


def normalize_working_days(days: Iterable[str] | None) -> tuple[str, ...]:
    """Full day names in week order; ``None`` means every day of the week."""
    if days is None:
        return tuple(DAY_ORDER)
    normalized: set[str] = set()
    for day in days:
        try:
            normalized.add(normalize_day(day))
        except ValueError as exc:
            raise ValidationError(str(exc), details={"working_day": day}) from exc
    if not normalized:
        raise ValidationError("working_days cannot be empty", details={"working_days": []})
    return tuple(day for day in DAY_ORDER if day in normalized)



def add_time_slot(schedule: Schedule, slot: TimeSlot) -> Schedule:
    require_draft(schedule, "add time slots")
    slots = validate_slot_sequence([*schedule.time_slots, slot])
    return schedule.model_copy(update={"time_slots": tuple(slots)})


def remove_time_slot(schedule: Schedule, store: AssignmentStore, slot_id: str) -> Schedule:
    require_draft(schedule, "remove time slots")
    if schedule.slot(slot_id) is None:
        raise NotFoundError("time_slot", slot_id)
    if store.references_slot(slot_id):
        raise ValidationError(
            f"Time slot {slot_id} is still referenced by assignments",
            details={"time_slot_id": slot_id},
        )
    remaining = tuple(slot for slot in schedule.time_slots if slot.id != slot_id)
    return schedule.model_copy(update={"time_slots": remaining})


def attach_section(schedule: Schedule, section_id: str) -> Schedule:
    require_draft(schedule, "attach sections")
    if section_id in schedule.section_ids:
        return schedule
    return schedule.model_copy(update={"section_ids": (*schedule.section_ids, section_id)})


def detach_section(schedule: Schedule, store: AssignmentStore, section_id: str) -> Schedule:
    require_draft(schedule, "detach sections")
    if section_id not in schedule.section_ids:
        raise NotFoundError("section", section_id)
    if store.references_section(section_id):
        raise ValidationError(
            f"Section {section_id} is still referenced by assignments",
            details={"section_id": section_id},
        )
    remaining = tuple(item for item in schedule.section_ids if item != section_id)
    return schedule.model_copy(update={"section_ids": remaining})
