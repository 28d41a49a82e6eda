from fastapi import APIRouter, Depends, Query

from schedule_engine.api.deps import get_engine
from schedule_engine.schemas.timetable import ClassTeacherAssignment, ClassTeacherAssignmentIn
from schedule_engine.services.scheduling import SchedulingEngine

router = APIRouter()


@router.put("/class-teachers", response_model=ClassTeacherAssignment)
def assign_class_teacher(
    payload: ClassTeacherAssignmentIn,
    engine: SchedulingEngine = Depends(get_engine),
) -> ClassTeacherAssignment:
    return engine.assign_class_teacher(payload.section_id, payload.teacher_id)


@router.get("/class-teachers", response_model=list[ClassTeacherAssignment])
def list_class_teachers(
    academic_year: str = Query(min_length=1),
    section_id: str | None = Query(default=None),
    engine: SchedulingEngine = Depends(get_engine),
) -> list[ClassTeacherAssignment]:
    if section_id is not None:
        return [engine.get_class_teacher(academic_year, section_id)]
    return engine.list_class_teachers(academic_year)
