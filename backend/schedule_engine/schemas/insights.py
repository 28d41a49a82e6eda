from enum import Enum

from pydantic import BaseModel


class LoadTier(str, Enum):
    available = "available"
    medium = "medium"
    high = "high"
    overloaded = "overloaded"


class TeacherLoad(BaseModel):
    teacher_id: str
    count: int
    weekly_capacity: int
    ratio: float
    tier: LoadTier


class SubstituteCandidate(BaseModel):
    teacher_id: str
    qualified: bool
    regular_periods: int
    remaining_capacity: int
