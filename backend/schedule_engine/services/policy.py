from __future__ import annotations

from dataclasses import dataclass, field

from schedule_engine.core.config import Settings
from schedule_engine.services.conflict_service import QualificationMode
from schedule_engine.services.workload import LoadThresholds


@dataclass(frozen=True)
class SchedulingPolicy:
    qualification_mode: QualificationMode = "warn"
    allow_past_overlays: bool = False
    unique_exam_subjects: bool = True
    load_thresholds: LoadThresholds = field(default_factory=LoadThresholds)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulingPolicy":
        return cls(
            qualification_mode=settings.qualification_mode,
            allow_past_overlays=settings.allow_past_overlays,
            unique_exam_subjects=settings.unique_exam_subjects,
            load_thresholds=LoadThresholds(
                medium=settings.load_medium_ratio,
                high=settings.load_high_ratio,
                overloaded=settings.load_overloaded_ratio,
            ),
        )
