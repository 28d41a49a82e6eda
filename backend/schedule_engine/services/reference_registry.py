"""Read-only access to sections, subjects and teachers owned by other services."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from threading import Lock
from typing import Callable, Iterable, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from schedule_engine.core.exceptions import DependencyError, DependencyTimeoutError, NotFoundError
from schedule_engine.schemas.reference import SectionRef, SubjectRef, TeacherRef


logger = logging.getLogger(__name__)

RefT = TypeVar("RefT", bound=BaseModel)


class ReferenceRegistry(ABC):
    @abstractmethod
    def get_section(self, section_id: str) -> SectionRef:
        raise NotImplementedError

    @abstractmethod
    def get_subject(self, subject_id: str) -> SubjectRef:
        raise NotImplementedError

    @abstractmethod
    def get_teacher(self, teacher_id: str) -> TeacherRef:
        raise NotImplementedError

    def get_teachers(self, teacher_ids: Iterable[str]) -> list[TeacherRef]:
        return [self.get_teacher(teacher_id) for teacher_id in dict.fromkeys(teacher_ids)]


class InMemoryReferenceRegistry(ReferenceRegistry):
    def __init__(
        self,
        sections: Iterable[SectionRef] = (),
        subjects: Iterable[SubjectRef] = (),
        teachers: Iterable[TeacherRef] = (),
    ) -> None:
        self._lock = Lock()
        self._sections = {item.id: item for item in sections}
        self._subjects = {item.id: item for item in subjects}
        self._teachers = {item.id: item for item in teachers}

    def add_section(self, section: SectionRef) -> None:
        with self._lock:
            self._sections[section.id] = section

    def add_subject(self, subject: SubjectRef) -> None:
        with self._lock:
            self._subjects[subject.id] = subject

    def add_teacher(self, teacher: TeacherRef) -> None:
        with self._lock:
            self._teachers[teacher.id] = teacher

    def get_section(self, section_id: str) -> SectionRef:
        with self._lock:
            found = self._sections.get(section_id)
        if found is None:
            raise NotFoundError("section", section_id)
        return found

    def get_subject(self, subject_id: str) -> SubjectRef:
        with self._lock:
            found = self._subjects.get(subject_id)
        if found is None:
            raise NotFoundError("subject", subject_id)
        return found

    def get_teacher(self, teacher_id: str) -> TeacherRef:
        with self._lock:
            found = self._teachers.get(teacher_id)
        if found is None:
            raise NotFoundError("teacher", teacher_id)
        return found


class HttpReferenceRegistry(ReferenceRegistry):
    """Registry backed by the master-data REST service.

    Expects ``GET {base_url}/sections/{id}``, ``/subjects/{id}`` and
    ``/teachers/{id}`` to return the JSON shape of the matching reference model.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def get_section(self, section_id: str) -> SectionRef:
        return self._fetch("section", "sections", section_id, SectionRef.model_validate)

    def get_subject(self, subject_id: str) -> SubjectRef:
        return self._fetch("subject", "subjects", subject_id, SubjectRef.model_validate)

    def get_teacher(self, teacher_id: str) -> TeacherRef:
        return self._fetch("teacher", "teachers", teacher_id, TeacherRef.model_validate)

    def _fetch(self, kind: str, collection: str, resource_id: str, parse: Callable[[object], RefT]) -> RefT:
        try:
            response = self._client.get(f"/{collection}/{resource_id}", timeout=self.timeout_seconds)
        except httpx.TimeoutException as exc:
            logger.warning("Reference registry timed out for %s %s: %s", kind, resource_id, exc)
            raise DependencyTimeoutError(kind, resource_id, self.timeout_seconds) from exc
        except httpx.HTTPError as exc:
            logger.warning("Reference registry request failed for %s %s: %s", kind, resource_id, exc)
            raise DependencyError(
                f"Reference registry unavailable while resolving {kind} {resource_id}",
                details={"kind": kind, "id": resource_id},
            ) from exc

        if response.status_code == 404:
            raise NotFoundError(kind, resource_id)
        if response.is_error:
            logger.warning(
                "Reference registry returned HTTP %s for %s %s", response.status_code, kind, resource_id
            )
            raise DependencyError(
                f"Reference registry returned HTTP {response.status_code} for {kind} {resource_id}",
                details={"kind": kind, "id": resource_id, "status_code": response.status_code},
            )

        try:
            return parse(response.json())
        except (ValueError, PydanticValidationError) as exc:
            raise DependencyError(
                f"Reference registry returned an invalid {kind} record for {resource_id}",
                details={"kind": kind, "id": resource_id},
            ) from exc
