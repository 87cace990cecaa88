from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

import smartschedule.models  # noqa: F401
from smartschedule.db.base import Base

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "levels": {"id", "name", "student_count_target"},
    "courses": {"id", "code", "level_id", "credit", "is_elective", "prerequisites"},
    "rooms": {"id", "name", "capacity", "type"},
    "timeslots": {"id", "day_of_week", "start_time", "end_time", "is_midterm_block", "is_break"},
    "instructors": {"id", "name", "unavailable_timeslot_ids", "max_weekly_hours"},
    "sections": {"id", "course_id", "number", "capacity", "level_id"},
    "rule_sets": {"id", "version"},
    "rules": {"id", "rule_set_id", "key", "value", "active"},
    "schedules": {"id", "scope", "version", "status"},
    "schedule_assignments": {"id", "schedule_id", "section_id", "timeslot_id", "room_id", "instructor_id"},
}


def find_schema_gaps(bind: Engine) -> tuple[list[str], dict[str, list[str]]]:
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
        missing_tables, missing_columns = find_schema_gaps(bind)
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
        if missing_columns:
            flattened = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
            raise RuntimeError(f"Missing required columns: {', '.join(flattened)}")
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Schema bootstrap failed")
        raise RuntimeError("Schema bootstrap failed") from exc
