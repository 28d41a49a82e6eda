from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel


class ConflictDetail(BaseModel):
    id: str
    conflict_type: Literal[
        "teacher_double_booking",
        "break_assignment",
        "qualification_mismatch",
    ]
    description: str
    severity: Literal["hard", "soft"]
    teacher_id: Optional[str] = None
    time_slot_id: Optional[str] = None
    section_ids: List[str] = []
    subject_id: Optional[str] = None
    effective_date: Optional[date] = None


class ConflictReport(BaseModel):
    schedule_id: str
    version: int
    checked_dates: List[date]
    conflicts: List[ConflictDetail]

    @property
    def has_hard_conflicts(self) -> bool:
        return any(item.severity == "hard" for item in self.conflicts)
