import httpx
import pytest
from fastapi.testclient import TestClient

from schedule_engine.api import deps
from schedule_engine.core.exceptions import DependencyError, DependencyTimeoutError, NotFoundError
from schedule_engine.main import app
from schedule_engine.schemas.timetable import AssignmentInput, TimeSlot
from schedule_engine.services.reference_registry import HttpReferenceRegistry
from schedule_engine.services.repository import InMemoryScheduleRepository
from schedule_engine.services.scheduling import SchedulingEngine

from conftest import ACADEMIC_YEAR, FIXED_NOW

RECORDS = {
    "/sections/10-A": {"id": "10-A", "grade": "10", "name": "A", "academic_year": ACADEMIC_YEAR, "student_count": 30},
    "/subjects/math": {"id": "math", "name": "Mathematics", "code": "MATH"},
    "/teachers/T1": {"id": "T1", "name": "Asha", "qualified_subject_ids": ["math"], "weekly_capacity": 12},
}


def _registry(handler) -> HttpReferenceRegistry:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://registry.test")
    return HttpReferenceRegistry("http://registry.test", timeout_seconds=0.5, client=client)


def _serve_records(request: httpx.Request) -> httpx.Response:
    record = RECORDS.get(request.url.path)
    if record is None:
        return httpx.Response(404, json={"detail": "not found"})
    return httpx.Response(200, json=record)


def test_resolves_records():
    registry = _registry(_serve_records)

    teacher = registry.get_teacher("T1")
    assert teacher.qualified_subject_ids == frozenset({"math"})
    assert teacher.weekly_capacity == 12
    assert registry.get_section("10-A").academic_year == ACADEMIC_YEAR
    assert registry.get_subject("math").code == "MATH"


def test_missing_record_is_not_found():
    registry = _registry(_serve_records)
    with pytest.raises(NotFoundError) as exc_info:
        registry.get_teacher("T9")
    assert exc_info.value.details == {"kind": "teacher", "id": "T9"}


def test_timeout_surfaces_as_dependency_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("registry too slow", request=request)

    registry = _registry(handler)
    with pytest.raises(DependencyTimeoutError) as exc_info:
        registry.get_subject("math")
    assert exc_info.value.status_code == 504
    assert exc_info.value.details["timeout_seconds"] == 0.5


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"detail": "boom"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"id": "T1", "weekly_capacity": -3}),
    ],
)
def test_upstream_failures_are_dependency_errors(response):
    registry = _registry(lambda request: response)
    with pytest.raises(DependencyError) as exc_info:
        registry.get_teacher("T1")
    assert not isinstance(exc_info.value, DependencyTimeoutError)


def test_transport_error_is_dependency_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DependencyError):
        _registry(handler).get_section("10-A")


def test_registry_timeout_aborts_write_without_state_change():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/teachers/"):
            raise httpx.ReadTimeout("registry too slow", request=request)
        return _serve_records(request)

    engine = SchedulingEngine(InMemoryScheduleRepository(), _registry(handler), clock=lambda: FIXED_NOW)
    schedule = engine.create_schedule(
        name="Remote",
        academic_year=ACADEMIC_YEAR,
        time_slots=[TimeSlot(id="P1", label="Period 1", start="09:00", end="09:45")],
        section_ids=["10-A"],
    )

    with pytest.raises(DependencyTimeoutError):
        engine.upsert_assignment(
            schedule.id,
            AssignmentInput(time_slot_id="P1", section_id="10-A", subject_id="math", teacher_id="T1"),
        )

    current = engine.get_schedule(schedule.id)
    assert current.version == schedule.version
    assert current.assignments == ()


def test_app_shutdown_closes_registry_client(monkeypatch):
    http_client = httpx.Client(transport=httpx.MockTransport(_serve_records), base_url="http://registry.test")
    registry = HttpReferenceRegistry("http://registry.test", timeout_seconds=0.5, client=http_client)
    monkeypatch.setattr(deps, "build_registry", lambda settings: registry)
    deps.get_engine.cache_clear()

    with TestClient(app):
        assert deps.get_engine().registry is registry
        assert not http_client.is_closed

    assert http_client.is_closed
    assert deps.get_engine.cache_info().currsize == 0
