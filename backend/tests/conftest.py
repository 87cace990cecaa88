import os

# Must be set before smartschedule imports read the cached settings.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from smartschedule.api.deps import get_db  # noqa: E402
from smartschedule.db.base import Base  # noqa: E402
from smartschedule.main import app  # noqa: E402
from smartschedule.models.course import Course  # noqa: E402
from smartschedule.models.instructor import Instructor  # noqa: E402
from smartschedule.models.level import Level  # noqa: E402
from smartschedule.models.room import Room  # noqa: E402
from smartschedule.models.section import Section  # noqa: E402
from smartschedule.models.timeslot import TimeSlot  # noqa: E402


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def seed_catalog(db_session):
    """Writes a small catalog: one level, one course, `rooms` rooms, `slots` Sunday slots, `sections` sections."""

    def _seed(*, rooms: int = 2, slots: int = 2, sections: int = 3, instructors: int = 3, room_capacity: int = 40):
        level = Level(id="level-1", name="Level 1", student_count_target=90)
        course = Course(id="course-1", code="CS101", name="Intro to Computing", level_id=level.id)
        db_session.add_all([level, course])
        for index in range(1, rooms + 1):
            db_session.add(Room(id=f"room-{index}", name=f"R{index}", capacity=room_capacity))
        for index in range(slots):
            start = 8 + index
            db_session.add(
                TimeSlot(
                    id=f"slot-{index + 1}",
                    day_of_week=0,
                    start_time=f"{start:02d}:00",
                    end_time=f"{start:02d}:50",
                )
            )
        for index in range(1, instructors + 1):
            db_session.add(Instructor(id=f"inst-{index}", name=f"Instructor {index}", max_weekly_hours=20))
        for index in range(1, sections + 1):
            db_session.add(
                Section(id=f"sec-{index}", course_id=course.id, number=index, capacity=30, level_id=level.id)
            )
        db_session.commit()

    return _seed
