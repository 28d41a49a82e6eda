from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schedule_engine.schemas.conflict import ConflictDetail

DAY_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

DAY_SHORT_MAP = {
    "Mon": "Monday",
    "Tue": "Tuesday",
    "Wed": "Wednesday",
    "Thu": "Thursday",
    "Fri": "Friday",
    "Sat": "Saturday",
    "Sun": "Sunday",
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def normalize_day(value: str) -> str:
    day = value.strip()
    day = DAY_SHORT_MAP.get(day, day)
    if day not in DAY_ORDER:
        raise ValueError(f"Invalid day value: {value}")
    return day


class ScheduleStatus(str, Enum):
    draft = "draft"
    finalized = "finalized"
    archived = "archived"


class AssignmentKind(str, Enum):
    regular = "regular"
    substitute = "substitute"
    exam = "exam"

    @property
    def is_overlay(self) -> bool:
        return self is not AssignmentKind.regular


class BreakKind(str, Enum):
    short = "short"
    lunch = "lunch"
    other = "other"


class TimeSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=36)
    label: str = Field(min_length=1, max_length=100)
    start: str
    end: str
    is_break: bool = False
    break_kind: BreakKind | None = None

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_interval(self) -> "TimeSlot":
        if self.end_minutes <= self.start_minutes:
            raise ValueError("End time must be after start time")
        if self.break_kind is not None and not self.is_break:
            raise ValueError("break_kind is only allowed on break slots")
        return self

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end)

    def overlaps(self, other: "TimeSlot") -> bool:
        # Half-open [start, end): back-to-back periods do not overlap.
        return self.start_minutes < other.end_minutes and other.start_minutes < self.end_minutes


class AssignmentKey(NamedTuple):
    time_slot_id: str
    section_id: str
    kind: AssignmentKind
    effective_date: date | None = None


class AssignmentInput(BaseModel):
    time_slot_id: str = Field(min_length=1, max_length=36)
    section_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    teacher_id: str = Field(min_length=1, max_length=36)
    kind: AssignmentKind = AssignmentKind.regular
    effective_date: date | None = None


class Assignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    schedule_id: str
    time_slot_id: str
    section_id: str
    subject_id: str
    teacher_id: str
    kind: AssignmentKind = AssignmentKind.regular
    effective_date: date | None = None

    @property
    def key(self) -> AssignmentKey:
        return AssignmentKey(self.time_slot_id, self.section_id, self.kind, self.effective_date)


class Schedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    academic_year: str
    status: ScheduleStatus = ScheduleStatus.draft
    time_slots: tuple[TimeSlot, ...] = ()
    section_ids: tuple[str, ...] = ()
    assignments: tuple[Assignment, ...] = ()
    working_days: tuple[str, ...] = tuple(DAY_ORDER)
    version: int = 0
    created_at: datetime
    finalized_at: datetime | None = None
    archived_at: datetime | None = None

    @property
    def is_finalised(self) -> bool:
        return self.status in (ScheduleStatus.finalized, ScheduleStatus.archived)

    @property
    def accepts_regular_writes(self) -> bool:
        return self.status == ScheduleStatus.draft

    @property
    def accepts_overlay_writes(self) -> bool:
        return self.status != ScheduleStatus.archived

    def slot(self, slot_id: str) -> TimeSlot | None:
        for slot in self.time_slots:
            if slot.id == slot_id:
                return slot
        return None

    def teaching_slots(self) -> list[TimeSlot]:
        return [slot for slot in self.time_slots if not slot.is_break]

    def recurs_on(self, on: date) -> bool:
        return DAY_ORDER[on.weekday()] in self.working_days


class ScheduleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    academic_year: str = Field(min_length=1, max_length=20)
    time_slots: list[TimeSlot] = Field(default_factory=list)
    section_ids: list[str] = Field(default_factory=list)
    working_days: list[str] | None = None

    @field_validator("working_days")
    @classmethod
    def validate_working_days(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        days = {normalize_day(day) for day in value}
        if not days:
            raise ValueError("working_days cannot be empty")
        return [day for day in DAY_ORDER if day in days]


class ScheduleDuplicate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)


class FinalizeRequest(BaseModel):
    require_full_coverage: bool = False
    timeout_seconds: float | None = Field(default=None, gt=0)


class AssignmentOutcome(BaseModel):
    assignment: Assignment
    warnings: list[ConflictDetail] = Field(default_factory=list)


class EffectiveCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_slot_id: str
    section_id: str
    subject_id: str | None = None
    teacher_id: str | None = None
    kind: AssignmentKind | None = None


class ScheduleSummary(BaseModel):
    id: str
    name: str
    academic_year: str
    status: ScheduleStatus
    version: int
    total_time_slots: int
    teaching_slots: int
    total_sections: int
    assigned_cells: int
    total_cells: int
    completion_percentage: float
    overlay_count: int


class ClassTeacherAssignmentIn(BaseModel):
    section_id: str = Field(min_length=1, max_length=36)
    teacher_id: str = Field(min_length=1, max_length=36)


class ClassTeacherAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    academic_year: str
    section_id: str
    teacher_id: str
    assigned_at: datetime

