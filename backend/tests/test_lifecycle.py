import threading
import time

import pytest

from schedule_engine.core.exceptions import (
    ImmutableScheduleError,
    IncompleteScheduleError,
    OperationCancelledError,
)
from schedule_engine.schemas.timetable import AssignmentKind, ScheduleStatus
from schedule_engine.services.lifecycle import coverage_gaps

from conftest import EXCEPTION_DAY, FIXED_NOW


def test_scenario_b_full_coverage_gate(engine, schedule, assign):
    assign(schedule.id, "P1", "10-A", "math", "T1")
    assign(schedule.id, "P1", "10-B", "eng", "T2")
    assign(schedule.id, "P2", "10-A", "eng", "T3")

    with pytest.raises(IncompleteScheduleError) as exc_info:
        engine.finalize_schedule(schedule.id, require_full_coverage=True)
    assert exc_info.value.missing == [("P2", "10-B")]
    assert exc_info.value.details["missing"] == [{"time_slot_id": "P2", "section_id": "10-B"}]
    assert engine.get_schedule(schedule.id).status == ScheduleStatus.draft

    assign(schedule.id, "P2", "10-B", "math", "T1")
    finalized = engine.finalize_schedule(schedule.id, require_full_coverage=True)

    assert finalized.status == ScheduleStatus.finalized
    assert finalized.finalized_at == FIXED_NOW
    assert finalized.is_finalised
    assert not finalized.accepts_regular_writes
    assert finalized.accepts_overlay_writes


def test_finalize_without_coverage_requirement(engine, schedule):
    finalized = engine.finalize_schedule(schedule.id)
    assert finalized.status == ScheduleStatus.finalized


def test_only_forward_transitions(engine, schedule):
    with pytest.raises(ImmutableScheduleError):
        engine.archive_schedule(schedule.id)

    engine.finalize_schedule(schedule.id)
    with pytest.raises(ImmutableScheduleError):
        engine.finalize_schedule(schedule.id)

    archived = engine.archive_schedule(schedule.id)
    assert archived.status == ScheduleStatus.archived
    assert archived.archived_at == FIXED_NOW
    assert archived.finalized_at == FIXED_NOW

    with pytest.raises(ImmutableScheduleError):
        engine.archive_schedule(schedule.id)
    with pytest.raises(ImmutableScheduleError):
        engine.finalize_schedule(schedule.id)


def test_archive_blocks_overlays(engine, schedule, assign):
    assign(schedule.id, "P1", "10-A", "math", "T1")
    engine.finalize_schedule(schedule.id)
    substitute = assign(schedule.id, "P1", "10-A", "math", "T3", kind=AssignmentKind.substitute, on=EXCEPTION_DAY)
    engine.archive_schedule(schedule.id)

    with pytest.raises(ImmutableScheduleError):
        assign(schedule.id, "P2", "10-A", "math", "T3", kind=AssignmentKind.substitute, on=EXCEPTION_DAY)
    with pytest.raises(ImmutableScheduleError):
        assign(schedule.id, "P1", "10-B", "math", "T3", kind=AssignmentKind.exam, on=EXCEPTION_DAY)
    with pytest.raises(ImmutableScheduleError):
        engine.remove_assignment(schedule.id, substitute.assignment.key)
    assert engine.get_assignment(schedule.id, substitute.assignment.key).teacher_id == "T3"


def test_delete_is_limited_to_drafts(engine, schedule):
    other = engine.create_schedule("Scratch", schedule.academic_year, [], ["10-A"])
    engine.delete_schedule(other.id)
    assert [item.id for item in engine.list_schedules()] == [schedule.id]

    engine.finalize_schedule(schedule.id)
    with pytest.raises(ImmutableScheduleError):
        engine.delete_schedule(schedule.id)


def test_cancelled_finalize_leaves_status_unchanged(engine, schedule):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelledError):
        engine.finalize_schedule(schedule.id, require_full_coverage=True, cancel_event=cancel)

    current = engine.get_schedule(schedule.id)
    assert current.status == ScheduleStatus.draft
    assert current.version == schedule.version


def test_coverage_scan_honours_deadline(engine, schedule):
    snapshot = engine.repository.get(schedule.id)
    with pytest.raises(OperationCancelledError) as exc_info:
        coverage_gaps(snapshot.schedule, snapshot.store, deadline=time.monotonic() - 1)
    assert exc_info.value.details["operation"] == "finalize"

    assert coverage_gaps(snapshot.schedule, snapshot.store) == [
        ("P1", "10-A"),
        ("P1", "10-B"),
        ("P2", "10-A"),
        ("P2", "10-B"),
    ]


def test_duplicate_copies_regular_layer_into_new_draft(engine, schedule, assign):
    assign(schedule.id, "P1", "10-A", "math", "T1")
    engine.finalize_schedule(schedule.id)
    assign(schedule.id, "P1", "10-A", "math", "T3", kind=AssignmentKind.substitute, on=EXCEPTION_DAY)

    copy = engine.duplicate_schedule(schedule.id)

    assert copy.id != schedule.id
    assert copy.name == "Grade 10 weekly (copy)"
    assert copy.status == ScheduleStatus.draft
    assert [(item.schedule_id, item.teacher_id) for item in copy.assignments] == [(copy.id, "T1")]
    assert [slot.id for slot in copy.time_slots] == ["P1", "P2", "BRK"]
