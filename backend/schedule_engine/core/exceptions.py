from __future__ import annotations

from datetime import date


class AppError(Exception):
    """Base class for all engine exceptions."""

    code = "app_error"

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(AppError):
    """Raised for malformed input or an operation the schedule's status does not allow."""

    code = "validation_error"

    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message, status_code=status_code, details=details)


class ImmutableScheduleError(ValidationError):
    """Raised when finalized or archived data would be mutated outside the overlay path."""

    code = "immutable_schedule"

    def __init__(self, schedule_id: str, status: str, action: str):
        super().__init__(
            f"Schedule {schedule_id} is {status}; cannot {action}",
            details={"schedule_id": schedule_id, "status": status, "action": action},
            status_code=409,
        )


class NotFoundError(AppError):
    code = "not_found"

    def __init__(self, kind: str, resource_id: str):
        self.kind = kind
        self.resource_id = resource_id
        super().__init__(
            f"{kind} with id {resource_id} not found",
            status_code=404,
            details={"kind": kind, "id": resource_id},
        )


class ConflictError(AppError):
    """Teacher double-booking."""

    code = "teacher_conflict"

    def __init__(
        self,
        teacher_id: str,
        conflicting_section_id: str,
        time_slot_id: str | None = None,
        effective_date: date | None = None,
        message: str | None = None,
    ):
        self.teacher_id = teacher_id
        self.time_slot_id = time_slot_id
        self.conflicting_section_id = conflicting_section_id
        self.effective_date = effective_date
        if message is None:
            message = f"Teacher {teacher_id} is already bound to section {conflicting_section_id}"
            if time_slot_id is not None:
                message += f" at slot {time_slot_id}"
            if effective_date is not None:
                message += f" on {effective_date.isoformat()}"
        super().__init__(
            message,
            status_code=409,
            details={
                "teacher_id": teacher_id,
                "time_slot_id": time_slot_id,
                "conflicting_section_id": conflicting_section_id,
                "effective_date": effective_date.isoformat() if effective_date else None,
            },
        )


class QualificationError(AppError):
    code = "qualification_mismatch"

    def __init__(self, teacher_id: str, subject_id: str):
        self.teacher_id = teacher_id
        self.subject_id = subject_id
        super().__init__(
            f"Teacher {teacher_id} is not qualified to teach subject {subject_id}",
            status_code=422,
            details={"teacher_id": teacher_id, "subject_id": subject_id},
        )


class IncompleteScheduleError(AppError):
    code = "incomplete_schedule"

    def __init__(self, schedule_id: str, missing: list[tuple[str, str]]):
        self.missing = missing
        super().__init__(
            f"Schedule {schedule_id} has {len(missing)} uncovered cell(s)",
            status_code=422,
            details={
                "schedule_id": schedule_id,
                "missing": [
                    {"time_slot_id": slot_id, "section_id": section_id} for slot_id, section_id in missing
                ],
            },
        )


class DependencyError(AppError):
    """Raised when the reference registry fails for a reason other than a missing record."""

    code = "dependency_error"

    def __init__(self, message: str, details: dict | None = None, status_code: int = 502):
        super().__init__(message, status_code=status_code, details=details)


class DependencyTimeoutError(DependencyError):
    code = "dependency_timeout"

    def __init__(self, kind: str, resource_id: str, timeout_seconds: float | None = None):
        super().__init__(
            f"Reference registry timed out resolving {kind} {resource_id}",
            details={"kind": kind, "id": resource_id, "timeout_seconds": timeout_seconds},
            status_code=504,
        )


class StaleScheduleError(AppError):
    """Raised when a schedule changed underneath a write; the caller may retry."""

    code = "stale_schedule"

    def __init__(self, schedule_id: str, expected_version: int):
        super().__init__(
            f"Schedule {schedule_id} changed since version {expected_version}",
            status_code=409,
            details={"schedule_id": schedule_id, "expected_version": expected_version},
        )


class OperationCancelledError(AppError):
    code = "operation_cancelled"

    def __init__(self, operation: str, schedule_id: str):
        super().__init__(
            f"{operation} of schedule {schedule_id} was cancelled",
            status_code=408,
            details={"operation": operation, "schedule_id": schedule_id},
        )


class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""

    code = "configuration_error"

    def __init__(self, message: str):
        super().__init__(message, status_code=500)
