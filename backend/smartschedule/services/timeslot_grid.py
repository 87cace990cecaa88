from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from smartschedule.core.exceptions import InvalidRequest
from smartschedule.models.instructor import Instructor
from smartschedule.models.timeslot import TimeSlot
from smartschedule.schemas.rules import minutes_to_time, parse_time_to_minutes
from smartschedule.services.audit import log_activity

logger = logging.getLogger(__name__)

# Sunday through Thursday.
DEFAULT_TEACHING_DAYS = (0, 1, 2, 3, 4)


@dataclass(frozen=True)
class GridSpec:
    days: tuple[int, ...] = DEFAULT_TEACHING_DAYS
    day_start: str = "08:00"
    day_end: str = "20:00"
    period_minutes: int = 50
    gap_minutes: int = 10
    lunch_start: str | None = "11:50"
    lunch_end: str | None = "13:00"


@dataclass(frozen=True)
class GridSlot:
    day_of_week: int
    start_time: str
    end_time: str


def build_weekly_grid(spec: GridSpec | None = None) -> list[GridSlot]:
    spec = spec or GridSpec()
    if spec.period_minutes <= 0 or spec.gap_minutes < 0:
        raise ValueError("period_minutes must be positive and gap_minutes non-negative")
    day_start = parse_time_to_minutes(spec.day_start)
    day_end = parse_time_to_minutes(spec.day_end)
    lunch = None
    if spec.lunch_start and spec.lunch_end:
        lunch = (parse_time_to_minutes(spec.lunch_start), parse_time_to_minutes(spec.lunch_end))

    slots: list[GridSlot] = []
    for day in sorted(set(spec.days)):
        current = day_start
        while current < day_end:
            if lunch is not None and lunch[0] <= current < lunch[1]:
                current = lunch[1]
                continue
            end = current + spec.period_minutes
            if end > day_end:
                break
            slots.append(GridSlot(day, minutes_to_time(current), minutes_to_time(end)))
            current = end + spec.gap_minutes
    return slots


def _remap_unavailability(
    db: Session,
    old_keys: dict[str, tuple[int, str, str]],
    new_slots: list[TimeSlot],
) -> tuple[dict[str, list[str]], list[dict[str, str]]]:
    """Maps each instructor's blocked slot ids onto the new grid by (day, start, end)."""
    new_ids = {(slot.day_of_week, slot.start_time, slot.end_time): slot.id for slot in new_slots}
    remapped: dict[str, list[str]] = {}
    orphaned: list[dict[str, str]] = []
    for instructor in db.execute(select(Instructor).order_by(Instructor.id)).scalars():
        if not instructor.unavailable_timeslot_ids:
            continue
        mapped: list[str] = []
        for timeslot_id in instructor.unavailable_timeslot_ids:
            new_id = new_ids.get(old_keys.get(timeslot_id))
            if new_id is None:
                orphaned.append({"instructor_id": instructor.id, "timeslot_id": timeslot_id})
            else:
                mapped.append(new_id)
        remapped[instructor.id] = sorted(set(mapped))
    return remapped, orphaned


def replace_timeslot_grid(db: Session, spec: GridSpec | None = None, *, actor: str | None = None) -> list[TimeSlot]:
    """Drops the stored grid and writes a fresh one in a single transaction.

    Instructor unavailability follows its slots onto the new grid. When a blocked
    slot has no match in the new grid nothing is changed and `InvalidRequest` is raised.
    """
    grid = build_weekly_grid(spec)
    try:
        old_keys = {slot.id: (slot.day_of_week, slot.start_time, slot.end_time) for slot in list_timeslots(db)}
        db.execute(delete(TimeSlot))
        new_slots = [
            TimeSlot(
                id=str(uuid.uuid4()),
                day_of_week=item.day_of_week,
                start_time=item.start_time,
                end_time=item.end_time,
            )
            for item in grid
        ]
        db.add_all(new_slots)
        remapped, orphaned = _remap_unavailability(db, old_keys, new_slots)
        if orphaned:
            raise InvalidRequest(
                "New timeslot grid would drop instructor unavailability",
                details={"orphaned_references": orphaned},
            )
        for instructor_id, timeslot_ids in remapped.items():
            db.get(Instructor, instructor_id).unavailable_timeslot_ids = timeslot_ids
        log_activity(
            db,
            actor=actor,
            action="timeslot.grid.replace",
            entity_type="timeslot",
            details={"count": len(grid), "remapped_instructors": len(remapped)},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Timeslot grid replaced count=%s remapped_instructors=%s", len(grid), len(remapped))
    return list_timeslots(db)


def list_timeslots(db: Session) -> list[TimeSlot]:
    return list(
        db.execute(select(TimeSlot).order_by(TimeSlot.day_of_week, TimeSlot.start_time, TimeSlot.end_time)).scalars()
    )
