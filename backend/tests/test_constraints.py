import pytest

from smartschedule.services.constraints import Candidate, ConstraintEvaluator, ConstraintKind, PartialAssignment
from smartschedule.services.domain import Course, Instructor, PlanningInputs, Room, Rule, Section, TimeSlot
from smartschedule.services.rules import compile_rules


def _inputs(**overrides):
    defaults = dict(
        sections=(
            Section(id="s1", course_id="c-req", number=1, capacity=30, level_id="l-1"),
            Section(id="s2", course_id="c-req", number=2, capacity=30, level_id="l-1"),
            Section(id="s3", course_id="c-other", number=1, capacity=30, level_id="l-2"),
            Section(id="s4", course_id="c-elective", number=1, capacity=30, level_id="l-1"),
        ),
        rooms=(Room(id="r1", name="R1", capacity=40), Room(id="r2", name="R2", capacity=40)),
        timeslots=(
            TimeSlot(id="a", day_of_week=0, start_minute=480, end_minute=530),
            TimeSlot(id="a-late", day_of_week=0, start_minute=500, end_minute=550),
            TimeSlot(id="b", day_of_week=0, start_minute=535, end_minute=585),
            TimeSlot(id="c", day_of_week=0, start_minute=600, end_minute=650),
            TimeSlot(id="brk", day_of_week=0, start_minute=720, end_minute=770, is_break=True),
        ),
        instructors=(
            Instructor(id="i1", name="One", unavailable_timeslot_ids=frozenset({"c"})),
            Instructor(id="i2", name="Two", qualified_course_ids=frozenset({"c-other", "c-elective"})),
        ),
        courses=(
            Course(id="c-req", code="REQ", level_id="l-1"),
            Course(id="c-other", code="OTH", level_id="l-2"),
            Course(id="c-elective", code="ELE", level_id="l-1", is_elective=True),
        ),
    )
    defaults.update(overrides)
    return PlanningInputs(**defaults)


def _evaluator(inputs, rules=()):
    return ConstraintEvaluator(inputs, compile_rules(rules, inputs.timeslots))


def test_room_double_booking_detects_overlapping_slots():
    inputs = _inputs()
    evaluator = _evaluator(inputs)
    partial = PartialAssignment(inputs)
    partial.add(Candidate("s1", "a", "r1", "i1"))

    evaluation = evaluator.evaluate(partial, Candidate("s3", "a-late", "r1", "i2"))

    assert ConstraintKind.room_double_booking in evaluation.violated_hard
    assert evaluation.conflicting_section_ids == ("s1",)
    assert not evaluation.admissible
    assert not evaluator.is_admissible(partial, Candidate("s3", "a-late", "r1", "i2"))


def test_instructor_double_booking():
    inputs = _inputs()
    evaluator = _evaluator(inputs)
    partial = PartialAssignment(inputs)
    partial.add(Candidate("s1", "a", "r1", "i1"))

    evaluation = evaluator.evaluate(partial, Candidate("s2", "a", "r2", "i1"))

    assert evaluation.violated_hard == (ConstraintKind.instructor_double_booking,)


def test_static_violations_cover_capacity_break_unavailability_and_qualification():
    inputs = _inputs(rooms=(Room(id="r1", name="R1", capacity=20), Room(id="r2", name="R2", capacity=40)))
    evaluator = _evaluator(inputs)

    assert evaluator.static_violations(Candidate("s1", "a", "r1", "i1")) == (ConstraintKind.room_capacity,)
    assert evaluator.static_violations(Candidate("s1", "brk", "r2", "i1")) == (ConstraintKind.blocked_timeslot,)
    assert evaluator.static_violations(Candidate("s1", "c", "r2", "i1")) == (ConstraintKind.instructor_unavailable,)
    assert evaluator.static_violations(Candidate("s1", "a", "r2", "i2")) == (ConstraintKind.instructor_not_qualified,)
    assert evaluator.static_violations(Candidate("s3", "a", "r2", "i2")) == ()


def test_capacity_headroom_rule_tightens_room_fit():
    inputs = _inputs()
    evaluator = _evaluator(inputs, [Rule(key="capacityLimit", value={"minimumHeadroom": 15})])

    assert ConstraintKind.room_capacity in evaluator.static_violations(Candidate("s1", "a", "r1", "i1"))


def test_instructor_overload_blocks_past_weekly_maximum():
    inputs = _inputs(instructors=(Instructor(id="i1", name="One", max_weekly_hours=1),))
    evaluator = _evaluator(inputs)
    partial = PartialAssignment(inputs)
    partial.add(Candidate("s1", "a", "r1", "i1"))

    evaluation = evaluator.evaluate(partial, Candidate("s2", "c", "r1", "i1"))

    assert evaluation.violated_hard == (ConstraintKind.instructor_overload,)


def test_back_to_back_sessions_are_penalised():
    inputs = _inputs()
    evaluator = _evaluator(inputs)
    partial = PartialAssignment(inputs)
    partial.add(Candidate("s1", "a", "r1", "i1"))

    evaluation = evaluator.evaluate(partial, Candidate("s2", "b", "r2", "i1"))

    assert evaluation.admissible
    assert evaluation.soft_violations == (ConstraintKind.back_to_back,)
    assert evaluation.soft_penalty == pytest.approx(evaluator.weights.back_to_back)


def test_cross_level_room_sharing_is_penalised():
    inputs = _inputs()
    evaluator = _evaluator(inputs)
    partial = PartialAssignment(inputs)
    partial.add(Candidate("s1", "a", "r1", "i1"))

    evaluation = evaluator.evaluate(partial, Candidate("s3", "c", "r1", "i2"))

    assert evaluation.soft_violations == (ConstraintKind.cross_level_room,)
    assert evaluation.soft_penalty == pytest.approx(evaluator.weights.cross_level_room)


def test_elective_overlapping_required_course_of_same_level_is_penalised():
    inputs = _inputs()
    evaluator = _evaluator(inputs)
    partial = PartialAssignment(inputs)
    partial.add(Candidate("s1", "a", "r1", "i1"))

    evaluation = evaluator.evaluate(partial, Candidate("s4", "a-late", "r2", "i2"))

    assert evaluation.soft_violations == (ConstraintKind.elective_clash,)
    assert evaluation.soft_penalty == pytest.approx(evaluator.weights.elective_clash)


def test_instructor_preference_mismatch_is_penalised():
    inputs = _inputs(
        instructors=(Instructor(id="i1", name="One", preferred_course_ids=frozenset({"c-other"})),),
    )
    evaluator = _evaluator(inputs)

    evaluation = evaluator.evaluate(PartialAssignment(inputs), Candidate("s1", "a", "r1", "i1"))

    assert evaluation.soft_violations == (ConstraintKind.instructor_preference,)


def test_partial_assignment_indexes_follow_add_and_remove():
    inputs = _inputs()
    partial = PartialAssignment(inputs)
    candidate = Candidate("s1", "a", "r1", "i1")

    partial.add(candidate)
    assert "s1" in partial
    assert partial.by_room_slot[("r1", "a")] == ["s1"]
    assert partial.instructor_minutes["i1"] == 50
    with pytest.raises(ValueError):
        partial.add(candidate)

    assert partial.remove("s1") == candidate
    assert len(partial) == 0
    assert ("r1", "a") not in partial.by_room_slot
    assert partial.instructor_minutes["i1"] == 0


def test_audit_reports_each_clash_once():
    inputs = _inputs()
    evaluator = _evaluator(inputs)

    findings = evaluator.audit(
        [
            Candidate("s2", "a", "r1", "i1"),
            Candidate("s1", "a", "r1", "i1"),
            Candidate("s3", "brk", "r2", "i2"),
        ]
    )
    hard = [(item.section_id, item.kind, item.conflicting_section_ids) for item in findings if item.severity == "hard"]

    assert ("s2", ConstraintKind.room_double_booking, ("s1",)) in hard
    assert ("s2", ConstraintKind.instructor_double_booking, ("s1",)) in hard
    assert ("s3", ConstraintKind.blocked_timeslot, ()) in hard
    assert not [item for item in hard if item[0] == "s1"]
