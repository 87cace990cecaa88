"""Seed a small department catalog for SmartSchedule.

Run:
  PYTHONPATH=backend python scripts/seed_demo_data.py
"""

from __future__ import annotations

import os

from sqlalchemy import func, select

from smartschedule.db.bootstrap import ensure_schema
from smartschedule.db.session import SessionLocal, engine
from smartschedule.models.course import Course
from smartschedule.models.instructor import Instructor
from smartschedule.models.level import Level
from smartschedule.models.room import Room, RoomType
from smartschedule.models.rule import Rule, RuleSet
from smartschedule.models.section import Section
from smartschedule.models.timeslot import TimeSlot
from smartschedule.services.timeslot_grid import replace_timeslot_grid

SECTIONS_PER_COURSE = int(os.getenv("SEED_SECTIONS_PER_COURSE", "2"))
REBUILD_GRID = os.getenv("SEED_REBUILD_GRID", "false").strip().lower() in {"1", "true", "yes", "on"}

LEVELS = [
    ("level-3", "Level 3", 120),
    ("level-4", "Level 4", 110),
    ("level-5", "Level 5", 90),
]

# (id, code, name, level, credit, elective, prerequisites)
COURSES = [
    ("swe-211", "SWE 211", "Introduction to Software Engineering", "level-3", 3, False, []),
    ("cs-210", "CS 210", "Data Structures", "level-3", 3, False, []),
    ("math-151", "MATH 151", "Discrete Mathematics", "level-3", 3, False, []),
    ("swe-321", "SWE 321", "Software Requirements Engineering", "level-4", 3, False, ["swe-211"]),
    ("swe-312", "SWE 312", "Software Architecture", "level-4", 3, False, ["swe-211"]),
    ("cs-285", "CS 285", "Discrete Structures II", "level-4", 3, True, ["math-151"]),
    ("swe-381", "SWE 381", "Web Application Development", "level-5", 3, False, ["cs-210"]),
    ("swe-434", "SWE 434", "Software Testing and Validation", "level-5", 3, False, ["swe-321"]),
    ("swe-477", "SWE 477", "Human-Computer Interaction", "level-5", 3, True, []),
]

ROOMS = [
    ("room-a101", "A101", 45, RoomType.lecture),
    ("room-a102", "A102", 40, RoomType.lecture),
    ("room-a205", "A205", 60, RoomType.lecture),
    ("room-b010", "B010", 35, RoomType.lab),
    ("room-b011", "B011", 35, RoomType.lab),
]

# (id, name, max weekly hours, qualified course ids, preferred course ids)
INSTRUCTORS = [
    ("inst-alharbi", "Dr. Alharbi", 12, ["swe-211", "swe-321", "swe-434"], ["swe-321"]),
    ("inst-alotaibi", "Dr. Alotaibi", 12, ["cs-210", "cs-285", "math-151"], []),
    ("inst-alqahtani", "Dr. Alqahtani", 10, ["swe-312", "swe-381"], ["swe-381"]),
    ("inst-alshehri", "Dr. Alshehri", 14, [], ["swe-477"]),
    ("inst-alzahrani", "Dr. Alzahrani", 12, ["math-151", "cs-285", "swe-211"], []),
]

DEFAULT_RULES = [
    ("breakWindow", {"start": "12:00", "end": "13:00"}),
    ("midtermBlock", {"days": [1, 3], "start": "12:00", "end": "14:00"}),
    ("capacityLimit", {"minimumHeadroom": 0}),
]


def upsert_levels(session) -> None:
    for level_id, name, target in LEVELS:
        record = session.get(Level, level_id)
        if record is None:
            record = Level(id=level_id)
            session.add(record)
        record.name = name
        record.student_count_target = target


def upsert_courses(session) -> None:
    for course_id, code, name, level_id, credit, elective, prerequisites in COURSES:
        record = session.get(Course, course_id)
        if record is None:
            record = Course(id=course_id)
            session.add(record)
        record.code = code
        record.name = name
        record.level_id = level_id
        record.credit = credit
        record.is_elective = elective
        record.prerequisites = list(prerequisites)


def upsert_rooms(session) -> None:
    for room_id, name, capacity, room_type in ROOMS:
        record = session.get(Room, room_id)
        if record is None:
            record = Room(id=room_id)
            session.add(record)
        record.name = name
        record.capacity = capacity
        record.type = room_type


def upsert_instructors(session) -> None:
    for instructor_id, name, max_hours, qualified, preferred in INSTRUCTORS:
        record = session.get(Instructor, instructor_id)
        if record is None:
            record = Instructor(id=instructor_id, unavailable_timeslot_ids=[])
            session.add(record)
        record.name = name
        record.max_weekly_hours = max_hours
        record.qualified_course_ids = list(qualified)
        record.preferred_course_ids = list(preferred)


def upsert_sections(session) -> None:
    for course_id, _, _, level_id, _, _, _ in COURSES:
        for number in range(1, SECTIONS_PER_COURSE + 1):
            section_id = f"{course_id}-{number:02d}"
            record = session.get(Section, section_id)
            if record is None:
                record = Section(id=section_id, course_id=course_id, number=number)
                session.add(record)
            record.capacity = 30
            record.level_id = level_id


def ensure_timeslot_grid(session) -> None:
    existing = session.execute(select(func.count(TimeSlot.id))).scalar_one()
    if existing and not REBUILD_GRID:
        return
    # Commits the catalog upserts together with the grid.
    replace_timeslot_grid(session, actor="seed")


def ensure_default_rule_set(session) -> None:
    if session.execute(select(func.count(RuleSet.id))).scalar_one():
        return
    rule_set = RuleSet(version=1, description="Department defaults")
    session.add(rule_set)
    session.flush()
    for key, value in DEFAULT_RULES:
        session.add(Rule(rule_set_id=rule_set.id, key=key, value=value, active=True))


def main() -> None:
    ensure_schema(engine)
    with SessionLocal() as session:
        upsert_levels(session)
        upsert_courses(session)
        upsert_rooms(session)
        upsert_instructors(session)
        upsert_sections(session)
        ensure_timeslot_grid(session)
        ensure_default_rule_set(session)

        session.commit()

        course_count = session.execute(select(func.count(Course.id))).scalar_one()
        section_count = session.execute(select(func.count(Section.id))).scalar_one()
        room_count = session.execute(select(func.count(Room.id))).scalar_one()
        instructor_count = session.execute(select(func.count(Instructor.id))).scalar_one()
        timeslot_count = session.execute(select(func.count(TimeSlot.id))).scalar_one()

    print("SmartSchedule data seeded successfully.")
    print("")
    print(f"Levels: {len(LEVELS)}")
    print(f"Course records: {course_count}")
    print(f"Sections: {section_count}")
    print(f"Rooms (lecture + lab): {room_count}")
    print(f"Instructors: {instructor_count}")
    print(f"Timeslots: {timeslot_count}")
    print("")
    print("Generate a schedule with:")
    print('  curl -X POST localhost:8000/api/generate -H "content-type: application/json" -d \'{"seed": 1}\'')


if __name__ == "__main__":
    main()
