"""Schedule status state machine.

``draft -> finalized -> archived`` are the only transitions. The grid and
assignment gates read ``status`` through the helpers below instead of keeping
flags of their own.
"""

from __future__ import annotations

from datetime import datetime
import threading
import time
from typing import List, Tuple

from schedule_engine.core.exceptions import (
    ImmutableScheduleError,
    IncompleteScheduleError,
    OperationCancelledError,
)
from schedule_engine.schemas.timetable import AssignmentKind, Schedule, ScheduleStatus
from schedule_engine.services.assignment_store import AssignmentStore


def require_draft(schedule: Schedule, action: str) -> None:
    if not schedule.accepts_regular_writes:
        raise ImmutableScheduleError(schedule.id, schedule.status.value, action)


def require_overlay_writable(schedule: Schedule, action: str) -> None:
    if not schedule.accepts_overlay_writes:
        raise ImmutableScheduleError(schedule.id, schedule.status.value, action)


def require_writable_for(schedule: Schedule, kind: AssignmentKind, action: str) -> None:
    if kind.is_overlay:
        require_overlay_writable(schedule, action)
    else:
        require_draft(schedule, action)


def coverage_gaps(
    schedule: Schedule,
    store: AssignmentStore,
    *,
    cancel_event: threading.Event | None = None,
    deadline: float | None = None,
) -> List[Tuple[str, str]]:
    """Non-break (slot, section) cells without a regular assignment.

    Read-only. ``deadline`` is a ``time.monotonic()`` value; hitting it or a set
    ``cancel_event`` raises ``OperationCancelledError``.
    """
    missing: List[Tuple[str, str]] = []
    for slot in schedule.teaching_slots():
        if (cancel_event is not None and cancel_event.is_set()) or (
            deadline is not None and time.monotonic() >= deadline
        ):
            raise OperationCancelledError("finalize", schedule.id)
        for section_id in schedule.section_ids:
            if store.regular_at(slot.id, section_id) is None:
                missing.append((slot.id, section_id))
    return missing


def finalize(
    schedule: Schedule,
    store: AssignmentStore,
    *,
    now: datetime,
    require_full_coverage: bool = False,
    cancel_event: threading.Event | None = None,
    deadline: float | None = None,
) -> Schedule:
    if schedule.status != ScheduleStatus.draft:
        raise ImmutableScheduleError(schedule.id, schedule.status.value, "finalize")
    if require_full_coverage:
        missing = coverage_gaps(schedule, store, cancel_event=cancel_event, deadline=deadline)
        if missing:
            raise IncompleteScheduleError(schedule.id, missing)
    return schedule.model_copy(update={"status": ScheduleStatus.finalized, "finalized_at": now})


def archive(schedule: Schedule, *, now: datetime) -> Schedule:
    if schedule.status != ScheduleStatus.finalized:
        raise ImmutableScheduleError(schedule.id, schedule.status.value, "archive")
    return schedule.model_copy(update={"status": ScheduleStatus.archived, "archived_at": now})
