import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from schedule_engine.db.base import Base


class ClassTeacherAssignmentRecord(Base):
    __tablename__ = "class_teacher_assignments"
    __table_args__ = (
        UniqueConstraint("academic_year", "section_id", name="uq_class_teacher_year_section"),
        UniqueConstraint("academic_year", "teacher_id", name="uq_class_teacher_year_teacher"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    section_id: Mapped[str] = mapped_column(String(36), nullable=False)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
