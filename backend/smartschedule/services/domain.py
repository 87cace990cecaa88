from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Iterable, TypeVar

from smartschedule.core.exceptions import InvalidEntity
from smartschedule.schemas.rules import DAY_NAMES, minutes_to_time


@dataclass(frozen=True)
class Level:
    id: str
    name: str
    student_count_target: int = 0


@dataclass(frozen=True)
class Course:
    id: str
    code: str
    level_id: str
    credit: int = 3
    is_elective: bool = False
    prerequisites: frozenset[str] = frozenset()
    name: str = ""

    def __post_init__(self) -> None:
        if self.credit < 0:
            raise InvalidEntity("course", self.id, "credit", "must not be negative")


@dataclass(frozen=True)
class Room:
    id: str
    name: str
    capacity: int
    room_type: str = "lecture"

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise InvalidEntity("room", self.id, "capacity", "must be greater than 0")


@dataclass(frozen=True)
class TimeSlot:
    id: str
    day_of_week: int
    start_minute: int
    end_minute: int
    is_midterm_block: bool = False
    is_break: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise InvalidEntity("timeslot", self.id, "day_of_week", "must be between 0 and 6")
        if self.end_minute <= self.start_minute:
            raise InvalidEntity("timeslot", self.id, "end", "must be after start")

    @property
    def duration_minutes(self) -> int:
        return self.end_minute - self.start_minute

    @property
    def label(self) -> str:
        return f"{DAY_NAMES[self.day_of_week]} {minutes_to_time(self.start_minute)}-{minutes_to_time(self.end_minute)}"

    def overlaps(self, other: TimeSlot) -> bool:
        return (
            self.day_of_week == other.day_of_week
            and self.start_minute < other.end_minute
            and other.start_minute < self.end_minute
        )

    def overlaps_window(self, start_minute: int, end_minute: int) -> bool:
        return self.start_minute < end_minute and start_minute < self.end_minute


@dataclass(frozen=True)
class Instructor:
    id: str
    name: str
    max_weekly_hours: int = 20
    unavailable_timeslot_ids: frozenset[str] = frozenset()
    # Empty means the instructor may teach any course.
    qualified_course_ids: frozenset[str] = frozenset()
    preferred_course_ids: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.max_weekly_hours < 0:
            raise InvalidEntity("instructor", self.id, "max_weekly_hours", "must not be negative")

    def is_qualified(self, course_id: str) -> bool:
        return not self.qualified_course_ids or course_id in self.qualified_course_ids


@dataclass(frozen=True)
class Section:
    id: str
    course_id: str
    number: int
    capacity: int
    level_id: str
    room_id: str | None = None
    instructor_id: str | None = None

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise InvalidEntity("section", self.id, "capacity", "must be greater than 0")


@dataclass(frozen=True)
class Rule:
    key: str
    value: Any = field(default_factory=dict)
    active: bool = True


_T = TypeVar("_T")


def _sorted_unique(kind: str, items: Iterable[_T]) -> tuple[_T, ...]:
    ordered = tuple(sorted(items, key=lambda item: item.id))
    for previous, current in zip(ordered, ordered[1:]):
        if previous.id == current.id:
            raise InvalidEntity(kind, current.id, "id", "is duplicated")
    return ordered


@dataclass(frozen=True)
class PlanningInputs:
    """Immutable snapshot a single scheduling run works from.

    Collections are re-sorted by id on construction, so the order in which the
    store returned rows never influences the search.
    """

    sections: tuple[Section, ...]
    rooms: tuple[Room, ...]
    timeslots: tuple[TimeSlot, ...]
    instructors: tuple[Instructor, ...]
    courses: tuple[Course, ...] = ()
    levels: tuple[Level, ...] = ()
    rules: tuple[Rule, ...] = ()
    rule_set_version: int | None = None
    level_filter: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sections", _sorted_unique("section", self.sections))
        object.__setattr__(self, "rooms", _sorted_unique("room", self.rooms))
        object.__setattr__(self, "timeslots", _sorted_unique("timeslot", self.timeslots))
        object.__setattr__(self, "instructors", _sorted_unique("instructor", self.instructors))
        object.__setattr__(self, "courses", _sorted_unique("course", self.courses))
        object.__setattr__(self, "levels", _sorted_unique("level", self.levels))
        object.__setattr__(self, "rules", tuple(sorted(self.rules, key=lambda rule: rule.key)))

    @cached_property
    def section_by_id(self) -> dict[str, Section]:
        return {item.id: item for item in self.sections}

    @cached_property
    def room_by_id(self) -> dict[str, Room]:
        return {item.id: item for item in self.rooms}

    @cached_property
    def timeslot_by_id(self) -> dict[str, TimeSlot]:
        return {item.id: item for item in self.timeslots}

    @cached_property
    def instructor_by_id(self) -> dict[str, Instructor]:
        return {item.id: item for item in self.instructors}

    @cached_property
    def course_by_id(self) -> dict[str, Course]:
        return {item.id: item for item in self.courses}

    @cached_property
    def level_by_id(self) -> dict[str, Level]:
        return {item.id: item for item in self.levels}

    @cached_property
    def sections_by_course(self) -> dict[str, tuple[Section, ...]]:
        grouped: dict[str, list[Section]] = defaultdict(list)
        for section in self.sections:
            grouped[section.course_id].append(section)
        return {key: tuple(value) for key, value in grouped.items()}

    @cached_property
    def timeslots_by_day(self) -> dict[int, tuple[TimeSlot, ...]]:
        grouped: dict[int, list[TimeSlot]] = defaultdict(list)
        for slot in self.timeslots:
            grouped[slot.day_of_week].append(slot)
        return {
            day: tuple(sorted(slots, key=lambda item: (item.start_minute, item.end_minute, item.id)))
            for day, slots in grouped.items()
        }

    @cached_property
    def overlapping_timeslot_ids(self) -> dict[str, tuple[str, ...]]:
        """Every timeslot id mapped to the ids it overlaps with, itself included."""
        overlaps: dict[str, tuple[str, ...]] = {}
        for day_slots in self.timeslots_by_day.values():
            for slot in day_slots:
                overlaps[slot.id] = tuple(other.id for other in day_slots if slot.overlaps(other))
        return overlaps

    def is_elective(self, section: Section) -> bool:
        course = self.course_by_id.get(section.course_id)
        return bool(course and course.is_elective)
