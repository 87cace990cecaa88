import pytest

from smartschedule.core.exceptions import InvalidRequest
from smartschedule.models.instructor import Instructor
from smartschedule.models.timeslot import TimeSlot
from smartschedule.services.schedule_repository import ScheduleRepository
from smartschedule.services.timeslot_grid import GridSpec, build_weekly_grid, list_timeslots, replace_timeslot_grid


def test_default_grid_skips_lunch_and_weekend():
    grid = build_weekly_grid()

    assert len(grid) == 55
    assert {item.day_of_week for item in grid} == {0, 1, 2, 3, 4}
    sunday = [(item.start_time, item.end_time) for item in grid if item.day_of_week == 0]
    assert sunday[:5] == [
        ("08:00", "08:50"),
        ("09:00", "09:50"),
        ("10:00", "10:50"),
        ("11:00", "11:50"),
        ("13:00", "13:50"),
    ]
    assert sunday[-1] == ("19:00", "19:50")


def test_grid_without_lunch_break():
    grid = build_weekly_grid(GridSpec(days=(1,), day_start="08:00", day_end="10:00", lunch_start=None, lunch_end=None))

    assert [(item.start_time, item.end_time) for item in grid] == [("08:00", "08:50"), ("09:00", "09:50")]


def test_generate_endpoint_replaces_grid(client):
    first = client.post("/api/timeslots/generate")
    assert first.status_code == 200
    assert first.json()["count"] == 55

    second = client.post("/api/timeslots/generate", json={"days": [2], "dayStart": "09:00", "dayEnd": "12:00"})
    assert second.json()["count"] == 3

    listed = client.get("/api/timeslots").json()
    assert [(item["dayOfWeek"], item["startTime"]) for item in listed] == [(2, "09:00"), (2, "10:00"), (2, "11:00")]


def test_generate_endpoint_validates_window(client):
    response = client.post("/api/timeslots/generate", json={"dayStart": "18:00", "dayEnd": "08:00"})
    assert response.status_code == 422


def test_replacing_grid_carries_unavailability_to_matching_slots(db_session, seed_catalog):
    seed_catalog()
    db_session.get(Instructor, "inst-1").unavailable_timeslot_ids = ["slot-1"]
    db_session.commit()

    replace_timeslot_grid(db_session)

    blocked = db_session.get(Instructor, "inst-1").unavailable_timeslot_ids
    assert len(blocked) == 1
    slot = db_session.get(TimeSlot, blocked[0])
    assert (slot.day_of_week, slot.start_time, slot.end_time) == (0, "08:00", "08:50")
    inputs = ScheduleRepository(db_session).load_planning_inputs()
    assert inputs.instructor_by_id["inst-1"].unavailable_timeslot_ids == frozenset(blocked)


def test_replacing_grid_that_would_orphan_unavailability_is_rejected(db_session, seed_catalog):
    seed_catalog()
    db_session.get(Instructor, "inst-1").unavailable_timeslot_ids = ["slot-1"]
    db_session.commit()

    with pytest.raises(InvalidRequest) as exc_info:
        replace_timeslot_grid(db_session, GridSpec(days=(2,)))

    assert exc_info.value.details["orphaned_references"] == [{"instructor_id": "inst-1", "timeslot_id": "slot-1"}]
    assert [slot.id for slot in list_timeslots(db_session)] == ["slot-1", "slot-2"]
    assert db_session.get(Instructor, "inst-1").unavailable_timeslot_ids == ["slot-1"]
