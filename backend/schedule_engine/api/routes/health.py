from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from schedule_engine.api.deps import get_engine
from schedule_engine.core.config import get_settings
from schedule_engine.db.bootstrap import missing_schema
from schedule_engine.db.session import engine as db_engine
from schedule_engine.services.reference_registry import HttpReferenceRegistry
from schedule_engine.services.scheduling import SchedulingEngine

router = APIRouter()

settings = get_settings()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready(engine: SchedulingEngine = Depends(get_engine)) -> JSONResponse:
    checks: dict[str, object] = {
        "store_backend": settings.store_backend,
        "registry": "http" if isinstance(engine.registry, HttpReferenceRegistry) else "memory",
        "qualification_mode": engine.policy.qualification_mode,
    }
    ready = True

    if settings.store_backend == "sql":
        try:
            with db_engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            missing_tables, missing_columns = missing_schema(db_engine)
            checks["database"] = {
                "ok": not missing_tables and not missing_columns,
                "missing_tables": missing_tables,
                "missing_columns": missing_columns,
            }
            ready = not missing_tables and not missing_columns
        except Exception as exc:  # pragma: no cover - environment dependent
            checks["database"] = {"ok": False, "error": str(exc)}
            ready = False

    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
