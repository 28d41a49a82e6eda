from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status

from schedule_engine.api.deps import get_engine
from schedule_engine.schemas.conflict import ConflictReport
from schedule_engine.schemas.insights import SubstituteCandidate, TeacherLoad
from schedule_engine.schemas.timetable import (
    AssignmentInput,
    AssignmentKey,
    AssignmentKind,
    AssignmentOutcome,
    EffectiveCell,
    FinalizeRequest,
    Schedule,
    ScheduleCreate,
    ScheduleDuplicate,
    ScheduleStatus,
    ScheduleSummary,
    TimeSlot,
)
from schedule_engine.services.scheduling import SchedulingEngine

router = APIRouter()


@router.post("/schedules", response_model=Schedule, status_code=status.HTTP_201_CREATED)
def create_schedule(payload: ScheduleCreate, engine: SchedulingEngine = Depends(get_engine)) -> Schedule:
    return engine.create_schedule(
        name=payload.name,
        academic_year=payload.academic_year,
        time_slots=payload.time_slots,
        section_ids=payload.section_ids,
        working_days=payload.working_days,
    )


@router.get("/schedules", response_model=list[Schedule])
def list_schedules(
    schedule_status: ScheduleStatus | None = Query(default=None, alias="status"),
    engine: SchedulingEngine = Depends(get_engine),
) -> list[Schedule]:
    return engine.list_schedules(schedule_status)


@router.get("/schedules/{schedule_id}", response_model=Schedule)
def get_schedule(schedule_id: str, engine: SchedulingEngine = Depends(get_engine)) -> Schedule:
    return engine.get_schedule(schedule_id)


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(schedule_id: str, engine: SchedulingEngine = Depends(get_engine)) -> Response:
    engine.delete_schedule(schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/schedules/{schedule_id}/duplicate", response_model=Schedule, status_code=status.HTTP_201_CREATED)
def duplicate_schedule(
    schedule_id: str,
    payload: ScheduleDuplicate | None = None,
    engine: SchedulingEngine = Depends(get_engine),
) -> Schedule:
    return engine.duplicate_schedule(schedule_id, name=payload.name if payload else None)


@router.get("/schedules/{schedule_id}/summary", response_model=ScheduleSummary)
def get_schedule_summary(schedule_id: str, engine: SchedulingEngine = Depends(get_engine)) -> ScheduleSummary:
    return engine.summarize(schedule_id)


@router.post("/schedules/{schedule_id}/time-slots", response_model=Schedule)
def add_time_slot(schedule_id: str, payload: TimeSlot, engine: SchedulingEngine = Depends(get_engine)) -> Schedule:
    return engine.add_time_slot(schedule_id, payload)


@router.delete("/schedules/{schedule_id}/time-slots/{slot_id}", response_model=Schedule)
def remove_time_slot(schedule_id: str, slot_id: str, engine: SchedulingEngine = Depends(get_engine)) -> Schedule:
    return engine.remove_time_slot(schedule_id, slot_id)


@router.post("/schedules/{schedule_id}/sections/{section_id}", response_model=Schedule)
def attach_section(schedule_id: str, section_id: str, engine: SchedulingEngine = Depends(get_engine)) -> Schedule:
    return engine.attach_section(schedule_id, section_id)


@router.delete("/schedules/{schedule_id}/sections/{section_id}", response_model=Schedule)
def detach_section(schedule_id: str, section_id: str, engine: SchedulingEngine = Depends(get_engine)) -> Schedule:
    return engine.detach_section(schedule_id, section_id)


@router.put("/schedules/{schedule_id}/assignments", response_model=AssignmentOutcome)
def upsert_assignment(
    schedule_id: str,
    payload: AssignmentInput,
    engine: SchedulingEngine = Depends(get_engine),
) -> AssignmentOutcome:
    return engine.upsert_assignment(schedule_id, payload)


@router.delete("/schedules/{schedule_id}/assignments", status_code=status.HTTP_204_NO_CONTENT)
def remove_assignment(
    schedule_id: str,
    time_slot_id: str = Query(min_length=1),
    section_id: str = Query(min_length=1),
    kind: AssignmentKind = Query(default=AssignmentKind.regular),
    effective_date: date | None = Query(default=None),
    engine: SchedulingEngine = Depends(get_engine),
) -> Response:
    engine.remove_assignment(schedule_id, AssignmentKey(time_slot_id, section_id, kind, effective_date))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/schedules/{schedule_id}/effective", response_model=list[EffectiveCell])
def get_effective_schedule(
    schedule_id: str,
    on: date = Query(),
    engine: SchedulingEngine = Depends(get_engine),
) -> list[EffectiveCell]:
    return engine.get_effective_schedule(schedule_id, on)


@router.get("/schedules/{schedule_id}/teachers/{teacher_id}/load", response_model=TeacherLoad)
def get_teacher_load(schedule_id: str, teacher_id: str, engine: SchedulingEngine = Depends(get_engine)) -> TeacherLoad:
    return engine.get_teacher_load(schedule_id, teacher_id)


@router.get("/schedules/{schedule_id}/loads", response_model=list[TeacherLoad])
def get_teacher_loads(schedule_id: str, engine: SchedulingEngine = Depends(get_engine)) -> list[TeacherLoad]:
    return engine.get_teacher_loads(schedule_id)


@router.get("/schedules/{schedule_id}/teachers/{teacher_id}/day", response_model=list[EffectiveCell])
def get_teacher_day(
    schedule_id: str,
    teacher_id: str,
    on: date = Query(),
    engine: SchedulingEngine = Depends(get_engine),
) -> list[EffectiveCell]:
    return engine.get_teacher_day(schedule_id, teacher_id, on)


@router.get("/schedules/{schedule_id}/available-teachers", response_model=list[SubstituteCandidate])
def find_available_teachers(
    schedule_id: str,
    time_slot_id: str = Query(min_length=1),
    on: date = Query(),
    candidate_ids: list[str] = Query(default=[], alias="candidate_id"),
    subject_id: str | None = Query(default=None),
    engine: SchedulingEngine = Depends(get_engine),
) -> list[SubstituteCandidate]:
    return engine.find_available_teachers(schedule_id, time_slot_id, on, candidate_ids, subject_id)


@router.get("/schedules/{schedule_id}/conflicts", response_model=ConflictReport)
def get_schedule_conflicts(
    schedule_id: str,
    on: list[date] | None = Query(default=None),
    engine: SchedulingEngine = Depends(get_engine),
) -> ConflictReport:
    return engine.detect_conflicts(schedule_id, on)


@router.post("/schedules/{schedule_id}/finalize", response_model=Schedule)
def finalize_schedule(
    schedule_id: str,
    payload: FinalizeRequest | None = None,
    engine: SchedulingEngine = Depends(get_engine),
) -> Schedule:
    payload = payload or FinalizeRequest()
    return engine.finalize_schedule(
        schedule_id,
        require_full_coverage=payload.require_full_coverage,
        timeout_seconds=payload.timeout_seconds,
    )


@router.post("/schedules/{schedule_id}/archive", response_model=Schedule)
def archive_schedule(schedule_id: str, engine: SchedulingEngine = Depends(get_engine)) -> Schedule:
    return engine.archive_schedule(schedule_id)
