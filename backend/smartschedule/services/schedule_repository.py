from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from smartschedule.core.exceptions import DataUnavailable, InvalidEntity, PersistenceFailure
from smartschedule.models.course import Course
from smartschedule.models.instructor import Instructor
from smartschedule.models.level import Level
from smartschedule.models.room import Room, RoomType
from smartschedule.models.rule import Rule, RuleSet
from smartschedule.models.schedule import ALL_LEVELS_SCOPE, Schedule, ScheduleAssignment, ScheduleStatus
from smartschedule.models.section import Section
from smartschedule.models.timeslot import TimeSlot
from smartschedule.schemas.rules import RuleSetCreate, parse_time_to_minutes
from smartschedule.services import domain
from smartschedule.services.audit import log_activity
from smartschedule.services.search_engine import Assignment, EngineResult

logger = logging.getLogger(__name__)


def scope_for(level_filter: str | None) -> str:
    return level_filter or ALL_LEVELS_SCOPE


def _to_minutes(slot: TimeSlot, field: str, value: str) -> int:
    try:
        return parse_time_to_minutes(value)
    except ValueError as exc:
        raise InvalidEntity("timeslot", slot.id, field, str(exc)) from exc


def _domain_timeslot(slot: TimeSlot) -> domain.TimeSlot:
    return domain.TimeSlot(
        id=slot.id,
        day_of_week=slot.day_of_week,
        start_minute=_to_minutes(slot, "start_time", slot.start_time),
        end_minute=_to_minutes(slot, "end_time", slot.end_time),
        is_midterm_block=bool(slot.is_midterm_block),
        is_break=bool(slot.is_break),
    )


def _domain_room(room: Room) -> domain.Room:
    room_type = room.type.value if isinstance(room.type, RoomType) else str(room.type)
    return domain.Room(id=room.id, name=room.name, capacity=room.capacity, room_type=room_type)


def _domain_instructor(instructor: Instructor) -> domain.Instructor:
    return domain.Instructor(
        id=instructor.id,
        name=instructor.name,
        max_weekly_hours=instructor.max_weekly_hours,
        unavailable_timeslot_ids=frozenset(instructor.unavailable_timeslot_ids or []),
        qualified_course_ids=frozenset(instructor.qualified_course_ids or []),
        preferred_course_ids=frozenset(instructor.preferred_course_ids or []),
    )


def _domain_course(course: Course) -> domain.Course:
    return domain.Course(
        id=course.id,
        code=course.code,
        name=course.name,
        level_id=course.level_id,
        credit=course.credit,
        is_elective=bool(course.is_elective),
        prerequisites=frozenset(course.prerequisites or []),
    )


def _domain_section(section: Section) -> domain.Section:
    return domain.Section(
        id=section.id,
        course_id=section.course_id,
        number=section.number,
        capacity=section.capacity,
        level_id=section.level_id,
        room_id=section.room_id,
        instructor_id=section.instructor_id,
    )


class ScheduleRepository:
    """Reads planning snapshots from the store and writes versioned schedules back."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve_rule_set(self, version: int | None) -> RuleSet | None:
        if version is None:
            return self.db.execute(select(RuleSet).order_by(RuleSet.version.desc()).limit(1)).scalar_one_or_none()
        return self.db.execute(select(RuleSet).where(RuleSet.version == version)).scalar_one_or_none()

    def resolve_rule_set_version(self, version: int | None) -> int | None:
        """Latest version when `version` is None; None when no such rule set exists."""
        rule_set = self.resolve_rule_set(version)
        return rule_set.version if rule_set is not None else None

    def load_planning_inputs(
        self,
        level_filter: str | None = None,
        rule_set_version: int | None = None,
    ) -> domain.PlanningInputs:
        levels = list(self.db.execute(select(Level)).scalars())
        level_ids = {level.id for level in levels}
        if level_filter is not None and level_filter not in level_ids:
            raise DataUnavailable(
                f"Level {level_filter} not found",
                details={"missing_references": [{"entity": "level", "entity_id": level_filter}]},
            )

        query = select(Section)
        if level_filter is not None:
            query = query.where(Section.level_id == level_filter)
        sections = list(self.db.execute(query).scalars())
        courses = list(self.db.execute(select(Course)).scalars())
        rooms = list(self.db.execute(select(Room)).scalars())
        timeslots = list(self.db.execute(select(TimeSlot)).scalars())
        instructors = list(self.db.execute(select(Instructor)).scalars())

        course_by_id = {course.id: course for course in courses}
        room_ids = {room.id for room in rooms}
        instructor_ids = {instructor.id for instructor in instructors}

        missing: list[dict[str, str]] = []
        used_course_ids: set[str] = set()
        for section in sections:
            references = (
                ("course_id", section.course_id, section.course_id in course_by_id),
                ("level_id", section.level_id, section.level_id in level_ids),
                ("room_id", section.room_id, section.room_id is None or section.room_id in room_ids),
                (
                    "instructor_id",
                    section.instructor_id,
                    section.instructor_id is None or section.instructor_id in instructor_ids,
                ),
            )
            for field, value, resolved in references:
                if not resolved:
                    missing.append({"entity": "section", "entity_id": section.id, "field": field, "missing_id": value})
            if section.course_id in course_by_id:
                used_course_ids.add(section.course_id)
        timeslot_ids = {slot.id for slot in timeslots}
        for instructor in instructors:
            for timeslot_id in sorted(set(instructor.unavailable_timeslot_ids or []) - timeslot_ids):
                missing.append(
                    {
                        "entity": "instructor",
                        "entity_id": instructor.id,
                        "field": "unavailable_timeslot_ids",
                        "missing_id": timeslot_id,
                    }
                )
        for course_id in sorted(used_course_ids):
            course = course_by_id[course_id]
            if course.level_id not in level_ids:
                missing.append(
                    {"entity": "course", "entity_id": course.id, "field": "level_id", "missing_id": course.level_id}
                )
        if missing:
            missing.sort(key=lambda item: (item["entity"], item["entity_id"], item["field"]))
            raise DataUnavailable(
                f"{len(missing)} referenced record(s) could not be resolved",
                details={"missing_references": missing},
            )

        rules: list[domain.Rule] = []
        if rule_set_version is not None:
            rule_set = self.resolve_rule_set(rule_set_version)
            if rule_set is None:
                raise DataUnavailable(
                    f"Rule set version {rule_set_version} not found",
                    details={"rule_set_version": rule_set_version},
                )
            rules = [
                domain.Rule(key=rule.key, value=rule.value if rule.value is not None else {}, active=bool(rule.active))
                for rule in self.list_rules(rule_set.id)
            ]

        return domain.PlanningInputs(
            sections=tuple(_domain_section(section) for section in sections),
            rooms=tuple(_domain_room(room) for room in rooms),
            timeslots=tuple(_domain_timeslot(slot) for slot in timeslots),
            instructors=tuple(_domain_instructor(instructor) for instructor in instructors),
            courses=tuple(_domain_course(course) for course in courses),
            levels=tuple(
                domain.Level(id=level.id, name=level.name, student_count_target=level.student_count_target)
                for level in levels
            ),
            rules=tuple(rules),
            rule_set_version=rule_set_version,
            level_filter=level_filter,
        )

    def next_version(self, scope: str) -> int:
        current = self.db.execute(select(func.max(Schedule.version)).where(Schedule.scope == scope)).scalar()
        return (current or 0) + 1

    def _write_assignments(self, schedule_id: str, assignments: Iterable[Assignment]) -> None:
        for item in assignments:
            self.db.add(
                ScheduleAssignment(
                    schedule_id=schedule_id,
                    section_id=item.section_id,
                    timeslot_id=item.timeslot_id,
                    room_id=item.room_id,
                    instructor_id=item.instructor_id,
                    is_valid=item.is_valid,
                    soft_penalty=item.soft_penalty,
                    soft_violations=list(item.soft_violations),
                )
            )
        self.db.flush()

    def persist_schedule(
        self,
        result: EngineResult,
        *,
        version: int,
        scope: str,
        seed: int,
        rule_set_version: int | None,
        diagnostics: dict,
        actor: str | None = None,
    ) -> str:
        """Writes the schedule, its assignments and an activity row in one transaction."""
        status = ScheduleStatus.complete if result.complete else ScheduleStatus.partial
        try:
            schedule = Schedule(
                scope=scope,
                version=version,
                seed=seed,
                rule_set_version=rule_set_version,
                status=status,
                unassigned_section_ids=[item.section_id for item in result.unassigned],
                diagnostics=diagnostics,
            )
            self.db.add(schedule)
            self.db.flush()
            schedule_id = schedule.id
            self._write_assignments(schedule_id, result.assignments)
            log_activity(
                self.db,
                actor=actor,
                action="schedule.generate",
                entity_type="schedule",
                entity_id=schedule_id,
                details={
                    "scope": scope,
                    "version": version,
                    "seed": seed,
                    "status": status.value,
                    "assigned": len(result.assignments),
                    "unassigned": len(result.unassigned),
                },
            )
            self.db.commit()
        except (IntegrityError, OperationalError) as exc:
            self.db.rollback()
            raise PersistenceFailure(
                "Schedule could not be written; the store rejected the transaction",
                transient=True,
                details={"scope": scope, "version": version, "error": exc.__class__.__name__},
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceFailure(
                "Schedule could not be written",
                details={"scope": scope, "version": version, "error": exc.__class__.__name__},
            ) from exc
        logger.info("Schedule persisted schedule_id=%s scope=%s version=%s status=%s", schedule_id, scope, version, status.value)
        return schedule_id

    def get_schedule(self, schedule_id: str) -> Schedule | None:
        return self.db.get(Schedule, schedule_id)

    def list_schedules(self, level_id: str | None = None) -> list[Schedule]:
        query = select(Schedule)
        if level_id is not None:
            query = query.where(Schedule.scope == level_id)
        return list(self.db.execute(query.order_by(Schedule.scope, Schedule.version.desc())).scalars())

    def list_assignments(self, schedule_id: str) -> list[ScheduleAssignment]:
        return list(
            self.db.execute(
                select(ScheduleAssignment)
                .where(ScheduleAssignment.schedule_id == schedule_id)
                .order_by(ScheduleAssignment.section_id)
            ).scalars()
        )

    def list_rules(self, rule_set_id: str) -> list[Rule]:
        return list(
            self.db.execute(
                select(Rule).where(Rule.rule_set_id == rule_set_id).order_by(Rule.key, Rule.id)
            ).scalars()
        )

    def list_rule_sets(self) -> list[RuleSet]:
        return list(self.db.execute(select(RuleSet).order_by(RuleSet.version)).scalars())

    def create_rule_set(self, payload: RuleSetCreate, *, actor: str | None = None) -> RuleSet:
        """Rule sets are immutable; every change is stored as the next version."""
        current = self.db.execute(select(func.max(RuleSet.version))).scalar()
        version = (current or 0) + 1
        rule_set = RuleSet(version=version, description=payload.description)
        try:
            self.db.add(rule_set)
            self.db.flush()
            for item in payload.rules:
                self.db.add(Rule(rule_set_id=rule_set.id, key=item.key, value=item.value, active=item.active))
            log_activity(
                self.db,
                actor=actor,
                action="rule_set.create",
                entity_type="rule_set",
                entity_id=rule_set.id,
                details={"version": rule_set.version, "rule_keys": [item.key for item in payload.rules]},
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise PersistenceFailure(
                "Rule set version was taken concurrently; retry the request",
                transient=True,
                details={"version": version},
            ) from exc
        self.db.refresh(rule_set)
        return rule_set
