import pytest

from smartschedule.core.config import Settings
from smartschedule.core.exceptions import ResourceNotFoundError
from smartschedule.services.conflict_service import ConflictService
from smartschedule.services.schedule_repository import ScheduleRepository
from smartschedule.services.search_engine import Assignment, EngineResult


def _persist(repository, assignments):
    return repository.persist_schedule(
        EngineResult(assignments=tuple(assignments), unassigned=(), states={}),
        version=repository.next_version("all"),
        scope="all",
        seed=1,
        rule_set_version=None,
        diagnostics={},
    )


def test_detects_room_and_instructor_clashes_in_stored_schedule(db_session, seed_catalog):
    seed_catalog()
    repository = ScheduleRepository(db_session)
    schedule_id = _persist(
        repository,
        [
            Assignment(section_id="sec-1", timeslot_id="slot-1", room_id="room-1", instructor_id="inst-1"),
            Assignment(section_id="sec-2", timeslot_id="slot-1", room_id="room-1", instructor_id="inst-1"),
            Assignment(section_id="sec-3", timeslot_id="slot-2", room_id="room-2", instructor_id="inst-3"),
        ],
    )

    report = ConflictService(repository, Settings()).detect_conflicts(schedule_id)

    hard = [item for item in report.conflicts if item.severity == "hard"]
    assert report.hard_conflicts == 2
    assert {item.kind for item in hard} == {"room_double_booking", "instructor_double_booking"}
    assert all(item.section_id == "sec-2" and item.conflicting_section_ids == ["sec-1"] for item in hard)


def test_missing_schedule_raises_not_found(db_session):
    with pytest.raises(ResourceNotFoundError):
        ConflictService(ScheduleRepository(db_session), Settings()).detect_conflicts("nope")
