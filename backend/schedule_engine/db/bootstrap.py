from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from schedule_engine.db.base import Base
import schedule_engine.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "schedules": {"id", "name", "academic_year", "status", "version", "payload"},
    "class_teacher_assignments": {"id", "academic_year", "section_id", "teacher_id", "assigned_at"},
}


def missing_schema(bind: Engine) -> tuple[list[str], dict[str, list[str]]]:
    with bind.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
        missing_columns: dict[str, list[str]] = {}
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(required - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_schema(bind: Engine) -> None:
    try:
        Base.metadata.create_all(bind=bind)
        missing_tables, missing_columns = missing_schema(bind)
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
        if missing_columns:
            flat = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
            raise RuntimeError(f"Missing required columns: {', '.join(flat)}")
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Schedule schema bootstrap failed")
        raise RuntimeError("Schedule schema bootstrap failed") from exc
