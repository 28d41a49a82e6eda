from schedule_engine.models.class_teacher_assignment import ClassTeacherAssignmentRecord  # noqa: F401
from schedule_engine.models.schedule_record import ScheduleRecord  # noqa: F401
