import itertools

import pytest

from smartschedule.core.exceptions import GenerationCancelled
from smartschedule.services.domain import Instructor, PlanningInputs, Room, Section, TimeSlot
from smartschedule.services.rules import compile_rules
from smartschedule.services.search_engine import (
    REASON_BUDGET_EXHAUSTED,
    REASON_SEARCH_HALTED,
    CancellationToken,
    EngineSettings,
    SchedulingEngine,
    SectionState,
)


def _inputs(*, sections=3, rooms=2, slots=2, instructors=3, room_capacity=40, break_slots=()):
    return PlanningInputs(
        sections=tuple(
            Section(id=f"sec-{index}", course_id="c-1", number=index, capacity=30, level_id="l-1")
            for index in range(1, sections + 1)
        ),
        rooms=tuple(Room(id=f"room-{index}", name=f"R{index}", capacity=room_capacity) for index in range(1, rooms + 1)),
        timeslots=tuple(
            TimeSlot(
                id=f"slot-{index}",
                day_of_week=index // 6,
                start_minute=480 + (index % 6) * 60,
                end_minute=530 + (index % 6) * 60,
                is_break=index in break_slots,
            )
            for index in range(slots)
        ),
        instructors=tuple(Instructor(id=f"inst-{index}", name=f"I{index}") for index in range(1, instructors + 1)),
    )


def _run(inputs, *, seed=1, **settings):
    rules = compile_rules(inputs.rules, inputs.timeslots)
    return SchedulingEngine(inputs, rules, seed=seed, settings=EngineSettings(**settings)).run()


def _assert_no_double_booking(result, inputs):
    room_slots = [(item.room_id, item.timeslot_id) for item in result.assignments]
    instructor_slots = [(item.instructor_id, item.timeslot_id) for item in result.assignments]
    assert len(room_slots) == len(set(room_slots))
    assert len(instructor_slots) == len(set(instructor_slots))
    by_id = inputs.timeslot_by_id
    for first, second in itertools.combinations(result.assignments, 2):
        if by_id[first.timeslot_id].overlaps(by_id[second.timeslot_id]):
            assert first.room_id != second.room_id
            assert first.instructor_id != second.instructor_id


def test_three_sections_two_rooms_two_slots_is_complete():
    inputs = _inputs(sections=3, rooms=2, slots=2)

    result = _run(inputs, seed=1)

    assert result.complete
    assert len(result.assignments) == 3
    assert len({(item.room_id, item.timeslot_id) for item in result.assignments}) == 3
    assert all(state == SectionState.committed for state in result.states.values())
    _assert_no_double_booking(result, inputs)


def test_single_room_and_slot_leaves_two_sections_unassigned():
    inputs = _inputs(sections=3, rooms=1, slots=1)

    result = _run(inputs, seed=1)

    assert not result.complete
    assert len(result.assignments) == 1
    assert len(result.unassigned) == 2
    for item in result.unassigned:
        assert item.reasons[0] == "room_double_booking"
        assert result.states[item.section_id] == SectionState.failed
    # The first placement is retried once per remaining instructor before giving up.
    assert result.backtracks == 2


def test_every_section_is_assigned_or_diagnosed():
    inputs = _inputs(sections=9, rooms=2, slots=4, instructors=2)

    result = _run(inputs, seed=7, backtrack_budget=50)

    assigned = {item.section_id for item in result.assignments}
    unassigned = {item.section_id for item in result.unassigned}
    assert assigned | unassigned == {section.id for section in inputs.sections}
    assert not assigned & unassigned
    assert all(item.reasons for item in result.unassigned)
    _assert_no_double_booking(result, inputs)


def test_same_seed_and_inputs_give_identical_schedules():
    inputs = _inputs(sections=8, rooms=3, slots=4, instructors=3)
    shuffled = PlanningInputs(
        sections=tuple(reversed(inputs.sections)),
        rooms=tuple(reversed(inputs.rooms)),
        timeslots=tuple(reversed(inputs.timeslots)),
        instructors=tuple(reversed(inputs.instructors)),
    )

    first = _run(inputs, seed=42)
    second = _run(inputs, seed=42)
    third = _run(shuffled, seed=42)

    assert first.assignments == second.assignments == third.assignments
    assert first.unassigned == second.unassigned == third.unassigned


def test_break_slots_are_never_used():
    inputs = _inputs(sections=4, rooms=2, slots=3, break_slots=(0,))

    result = _run(inputs)

    assert result.complete
    assert all(item.timeslot_id != "slot-0" for item in result.assignments)


def test_midterm_slots_are_blocked_by_default():
    inputs = PlanningInputs(
        sections=(Section(id="sec-1", course_id="c-1", number=1, capacity=10, level_id="l-1"),),
        rooms=(Room(id="room-1", name="R1", capacity=20),),
        timeslots=(TimeSlot(id="mid", day_of_week=2, start_minute=600, end_minute=650, is_midterm_block=True),),
        instructors=(Instructor(id="inst-1", name="I1"),),
    )

    result = _run(inputs)

    assert [item.section_id for item in result.unassigned] == ["sec-1"]
    assert result.unassigned[0].reasons == ("blocked_timeslot",)


def test_section_without_any_fitting_room_fails_without_backtracking():
    inputs = _inputs(sections=2, rooms=2, slots=2, room_capacity=20)

    result = _run(inputs)

    assert len(result.unassigned) == 2
    assert result.backtracks == 0
    assert all(item.reasons == ("room_capacity",) for item in result.unassigned)


def test_exhausted_budget_is_reported():
    inputs = _inputs(sections=3, rooms=1, slots=1)

    result = _run(inputs, backtrack_budget=0)

    assert result.budget_exhausted
    assert result.backtracks == 0
    assert any(REASON_BUDGET_EXHAUSTED in item.reasons for item in result.unassigned)


def test_halt_mode_stops_at_first_failure():
    inputs = _inputs(sections=3, rooms=1, slots=1)

    result = _run(inputs, failure_mode="halt")

    assert result.halted
    assert len(result.assignments) == 1
    halted = [item for item in result.unassigned if item.reasons == (REASON_SEARCH_HALTED,)]
    assert len(halted) == 1


def test_preassigned_room_and_instructor_are_respected():
    inputs = PlanningInputs(
        sections=(
            Section(id="sec-1", course_id="c-1", number=1, capacity=10, level_id="l-1", room_id="room-2"),
            Section(id="sec-2", course_id="c-1", number=2, capacity=10, level_id="l-1", instructor_id="inst-2"),
        ),
        rooms=(Room(id="room-1", name="R1", capacity=20), Room(id="room-2", name="R2", capacity=20)),
        timeslots=(TimeSlot(id="slot-1", day_of_week=0, start_minute=480, end_minute=530),),
        instructors=(Instructor(id="inst-1", name="I1"), Instructor(id="inst-2", name="I2")),
    )

    result = _run(inputs)

    placed = {item.section_id: item for item in result.assignments}
    assert result.complete
    assert placed["sec-1"].room_id == "room-2"
    assert placed["sec-2"].instructor_id == "inst-2"


def test_backtracking_recovers_from_a_greedy_dead_end():
    # One room. sec-a prefers the earliest slot, which leaves sec-b and sec-c
    # fighting over slot-3; only moving sec-a to slot-2 completes the week.
    slots = tuple(
        TimeSlot(id=f"slot-{index}", day_of_week=0, start_minute=420 + index * 60, end_minute=470 + index * 60)
        for index in (1, 2, 3)
    )
    inputs = PlanningInputs(
        sections=(
            Section(id="sec-a", course_id="c-a", number=1, capacity=30, level_id="l-1"),
            Section(id="sec-b", course_id="c-b", number=1, capacity=30, level_id="l-1"),
            Section(id="sec-c", course_id="c-c", number=1, capacity=30, level_id="l-1"),
        ),
        rooms=(Room(id="room-1", name="R1", capacity=40),),
        timeslots=slots,
        instructors=(
            Instructor(
                id="inst-a",
                name="A",
                qualified_course_ids=frozenset({"c-a"}),
                unavailable_timeslot_ids=frozenset({"slot-3"}),
            ),
            *(
                Instructor(
                    id=f"inst-{course}{index}",
                    name=f"{course.upper()}{index}",
                    qualified_course_ids=frozenset({f"c-{course}"}),
                    unavailable_timeslot_ids=frozenset({"slot-2"}),
                )
                for course in ("b", "c")
                for index in (1, 2)
            ),
        ),
    )

    result = _run(inputs, seed=7)

    placed = {item.section_id: item.timeslot_id for item in result.assignments}
    assert result.complete
    assert result.backtracks >= 1
    assert placed["sec-a"] == "slot-2"
    assert {placed["sec-b"], placed["sec-c"]} == {"slot-1", "slot-3"}
    _assert_no_double_booking(result, inputs)


def test_cancelled_token_stops_the_run():
    inputs = _inputs()
    token = CancellationToken()
    token.cancel()
    engine = SchedulingEngine(inputs, compile_rules((), inputs.timeslots), seed=1, cancel_token=token)

    with pytest.raises(GenerationCancelled) as exc_info:
        engine.run()

    assert exc_info.value.reason == "cancelled"


def test_wall_clock_limit_times_out():
    inputs = _inputs()
    ticks = itertools.count(0, 100)
    engine = SchedulingEngine(
        inputs,
        compile_rules((), inputs.timeslots),
        seed=1,
        settings=EngineSettings(max_runtime_seconds=1.0),
        clock=lambda: next(ticks),
    )

    with pytest.raises(GenerationCancelled) as exc_info:
        engine.run()

    assert exc_info.value.reason == "timeout"
