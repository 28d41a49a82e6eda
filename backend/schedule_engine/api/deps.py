from functools import lru_cache

from schedule_engine.core.config import Settings, get_settings
from schedule_engine.db.session import SessionLocal
from schedule_engine.services.policy import SchedulingPolicy
from schedule_engine.services.reference_registry import (
    HttpReferenceRegistry,
    InMemoryReferenceRegistry,
    ReferenceRegistry,
)
from schedule_engine.services.repository import InMemoryScheduleRepository, ScheduleRepository
from schedule_engine.services.scheduling import SchedulingEngine
from schedule_engine.services.sql_repository import SqlScheduleRepository


def build_registry(settings: Settings) -> ReferenceRegistry:
    if settings.registry_base_url:
        return HttpReferenceRegistry(settings.registry_base_url, timeout_seconds=settings.registry_timeout_seconds)
    return InMemoryReferenceRegistry()


def build_repository(settings: Settings) -> ScheduleRepository:
    if settings.store_backend == "sql":
        return SqlScheduleRepository(SessionLocal)
    return InMemoryScheduleRepository()


@lru_cache
def get_engine() -> SchedulingEngine:
    settings = get_settings()
    return SchedulingEngine(
        repository=build_repository(settings),
        registry=build_registry(settings),
        policy=SchedulingPolicy.from_settings(settings),
    )


def close_engine() -> None:
    if get_engine.cache_info().currsize == 0:
        return
    registry = get_engine().registry
    if isinstance(registry, HttpReferenceRegistry):
        registry.close()
    get_engine.cache_clear()
