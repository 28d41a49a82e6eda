from pydantic import BaseModel, ConfigDict, Field


class SectionRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=36)
    grade: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=50)
    academic_year: str = Field(min_length=1, max_length=20)
    student_count: int = Field(default=0, ge=0)
    homeroom_teacher_id: str | None = None


class SubjectRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    code: str = Field(min_length=1, max_length=50)


class TeacherRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=36)
    name: str | None = None
    qualified_subject_ids: frozenset[str] = frozenset()
    weekly_capacity: int = Field(default=0, ge=0)

    def is_qualified_for(self, subject_id: str) -> bool:
        return subject_id in self.qualified_subject_ids
