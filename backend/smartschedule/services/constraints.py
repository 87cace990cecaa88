from __future__ import annotations

import math
from collections import Counter, defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from smartschedule.services.domain import PlanningInputs, Section
from smartschedule.services.rules import CompiledRules


class ConstraintKind(str, Enum):
    room_double_booking = "room_double_booking"
    instructor_double_booking = "instructor_double_booking"
    room_capacity = "room_capacity"
    blocked_timeslot = "blocked_timeslot"
    instructor_unavailable = "instructor_unavailable"
    instructor_not_qualified = "instructor_not_qualified"
    instructor_overload = "instructor_overload"
    load_imbalance = "load_imbalance"
    back_to_back = "back_to_back"
    cross_level_room = "cross_level_room"
    elective_clash = "elective_clash"
    instructor_preference = "instructor_preference"


HARD_CONSTRAINTS = frozenset(
    {
        ConstraintKind.room_double_booking,
        ConstraintKind.instructor_double_booking,
        ConstraintKind.room_capacity,
        ConstraintKind.blocked_timeslot,
        ConstraintKind.instructor_unavailable,
        ConstraintKind.instructor_not_qualified,
        ConstraintKind.instructor_overload,
    }
)

_KIND_ORDER = {kind: index for index, kind in enumerate(ConstraintKind)}


def _ordered(kinds: Iterable[ConstraintKind]) -> tuple[ConstraintKind, ...]:
    return tuple(sorted(set(kinds), key=_KIND_ORDER.__getitem__))


@dataclass(frozen=True)
class Candidate:
    section_id: str
    timeslot_id: str
    room_id: str
    instructor_id: str


@dataclass(frozen=True)
class Evaluation:
    violated_hard: tuple[ConstraintKind, ...]
    soft_penalty: float
    soft_violations: tuple[ConstraintKind, ...] = ()
    conflicting_section_ids: tuple[str, ...] = ()

    @property
    def admissible(self) -> bool:
        return not self.violated_hard


@dataclass(frozen=True)
class AuditFinding:
    section_id: str
    kind: ConstraintKind
    conflicting_section_ids: tuple[str, ...] = ()

    @property
    def severity(self) -> str:
        return "hard" if self.kind in HARD_CONSTRAINTS else "soft"


class PartialAssignment:
    """Assignments made so far, indexed so one candidate can be checked without a full scan."""

    def __init__(self, inputs: PlanningInputs) -> None:
        self._inputs = inputs
        self.assignments: dict[str, Candidate] = {}
        self.by_room_slot: dict[tuple[str, str], list[str]] = defaultdict(list)
        self.by_instructor_slot: dict[tuple[str, str], list[str]] = defaultdict(list)
        self.by_level_slot: dict[tuple[str, str], list[str]] = defaultdict(list)
        self.by_room_day: dict[tuple[str, int], list[str]] = defaultdict(list)
        self.by_instructor_day: dict[tuple[str, int], list[str]] = defaultdict(list)
        self.instructor_minutes: Counter[str] = Counter()
        self.instructor_sections: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self.assignments)

    def __contains__(self, section_id: object) -> bool:
        return section_id in self.assignments

    def _keys(self, candidate: Candidate):
        section = self._inputs.section_by_id[candidate.section_id]
        slot = self._inputs.timeslot_by_id[candidate.timeslot_id]
        return (
            (self.by_room_slot, (candidate.room_id, slot.id)),
            (self.by_instructor_slot, (candidate.instructor_id, slot.id)),
            (self.by_level_slot, (section.level_id, slot.id)),
            (self.by_room_day, (candidate.room_id, slot.day_of_week)),
            (self.by_instructor_day, (candidate.instructor_id, slot.day_of_week)),
        ), slot.duration_minutes

    def add(self, candidate: Candidate) -> None:
        if candidate.section_id in self.assignments:
            raise ValueError(f"Section {candidate.section_id} is already assigned")
        self.assignments[candidate.section_id] = candidate
        keys, minutes = self._keys(candidate)
        for index, key in keys:
            index[key].append(candidate.section_id)
        self.instructor_minutes[candidate.instructor_id] += minutes
        self.instructor_sections[candidate.instructor_id] += 1

    def remove(self, section_id: str) -> Candidate:
        candidate = self.assignments.pop(section_id)
        keys, minutes = self._keys(candidate)
        for index, key in keys:
            entries = index[key]
            entries.remove(section_id)
            if not entries:
                del index[key]
        self.instructor_minutes[candidate.instructor_id] -= minutes
        self.instructor_sections[candidate.instructor_id] -= 1
        return candidate


class ConstraintEvaluator:
    def __init__(self, inputs: PlanningInputs, rules: CompiledRules) -> None:
        self.inputs = inputs
        self.rules = rules
        self.weights = rules.weights
        self.fair_share = math.ceil(len(inputs.sections) / max(1, len(inputs.instructors)))

    def static_violations(self, candidate: Candidate) -> tuple[ConstraintKind, ...]:
        """Checks that do not depend on other assignments."""
        section = self.inputs.section_by_id[candidate.section_id]
        room = self.inputs.room_by_id[candidate.room_id]
        instructor = self.inputs.instructor_by_id[candidate.instructor_id]
        kinds: list[ConstraintKind] = []
        if room.capacity < section.capacity + self.rules.minimum_headroom:
            kinds.append(ConstraintKind.room_capacity)
        if self.rules.blocked_reason(candidate.timeslot_id) is not None:
            kinds.append(ConstraintKind.blocked_timeslot)
        if candidate.timeslot_id in instructor.unavailable_timeslot_ids:
            kinds.append(ConstraintKind.instructor_unavailable)
        if not instructor.is_qualified(section.course_id):
            kinds.append(ConstraintKind.instructor_not_qualified)
        return tuple(kinds)

    def _overlapping(self, timeslot_id: str) -> tuple[str, ...]:
        return self.inputs.overlapping_timeslot_ids.get(timeslot_id, (timeslot_id,))

    def _booked(
        self,
        index: dict[tuple[str, str], list[str]],
        owner_id: str,
        timeslot_id: str,
        section_id: str,
    ) -> list[str]:
        clashes: list[str] = []
        for other_slot_id in self._overlapping(timeslot_id):
            for other_id in index.get((owner_id, other_slot_id), ()):
                if other_id != section_id:
                    clashes.append(other_id)
        return clashes

    def _overloaded(self, partial: PartialAssignment, candidate: Candidate) -> bool:
        instructor = self.inputs.instructor_by_id[candidate.instructor_id]
        slot = self.inputs.timeslot_by_id[candidate.timeslot_id]
        projected = partial.instructor_minutes[candidate.instructor_id] + slot.duration_minutes
        return projected > instructor.max_weekly_hours * 60

    def is_admissible(self, partial: PartialAssignment, candidate: Candidate) -> bool:
        """Short-circuiting hard check for candidates already known to pass `static_violations`."""
        if self._booked(partial.by_room_slot, candidate.room_id, candidate.timeslot_id, candidate.section_id):
            return False
        if self._booked(
            partial.by_instructor_slot, candidate.instructor_id, candidate.timeslot_id, candidate.section_id
        ):
            return False
        return not self._overloaded(partial, candidate)

    def evaluate(self, partial: PartialAssignment, candidate: Candidate) -> Evaluation:
        section = self.inputs.section_by_id[candidate.section_id]
        slot = self.inputs.timeslot_by_id[candidate.timeslot_id]

        hard = list(self.static_violations(candidate))
        conflicting: list[str] = []
        room_clashes = self._booked(partial.by_room_slot, candidate.room_id, slot.id, section.id)
        if room_clashes:
            hard.append(ConstraintKind.room_double_booking)
            conflicting.extend(room_clashes)
        instructor_clashes = self._booked(partial.by_instructor_slot, candidate.instructor_id, slot.id, section.id)
        if instructor_clashes:
            hard.append(ConstraintKind.instructor_double_booking)
            conflicting.extend(instructor_clashes)
        if self._overloaded(partial, candidate):
            hard.append(ConstraintKind.instructor_overload)

        penalty, soft = self._soft_penalty(partial, candidate, section)
        return Evaluation(
            violated_hard=_ordered(hard),
            soft_penalty=round(penalty, 6),
            soft_violations=_ordered(soft),
            conflicting_section_ids=tuple(sorted(set(conflicting))),
        )

    def _soft_penalty(
        self,
        partial: PartialAssignment,
        candidate: Candidate,
        section: Section,
    ) -> tuple[float, list[ConstraintKind]]:
        weights = self.weights
        slot = self.inputs.timeslot_by_id[candidate.timeslot_id]
        instructor = self.inputs.instructor_by_id[candidate.instructor_id]
        penalty = 0.0
        soft: list[ConstraintKind] = []

        excess = partial.instructor_sections[candidate.instructor_id] + 1 - self.fair_share
        if excess > 0 and weights.load_imbalance:
            penalty += weights.load_imbalance * excess
            soft.append(ConstraintKind.load_imbalance)

        for other_id in partial.by_instructor_day.get((candidate.instructor_id, slot.day_of_week), ()):
            if other_id == section.id:
                continue
            other_slot = self.inputs.timeslot_by_id[partial.assignments[other_id].timeslot_id]
            gap = max(other_slot.start_minute - slot.end_minute, slot.start_minute - other_slot.end_minute)
            if 0 <= gap < weights.min_break_minutes and weights.back_to_back:
                penalty += weights.back_to_back
                soft.append(ConstraintKind.back_to_back)

        for other_id in partial.by_room_day.get((candidate.room_id, slot.day_of_week), ()):
            if other_id == section.id:
                continue
            if self.inputs.section_by_id[other_id].level_id != section.level_id and weights.cross_level_room:
                penalty += weights.cross_level_room
                soft.append(ConstraintKind.cross_level_room)

        section_elective = self.inputs.is_elective(section)
        for other_slot_id in self._overlapping(slot.id):
            for other_id in partial.by_level_slot.get((section.level_id, other_slot_id), ()):
                other = self.inputs.section_by_id[other_id]
                if other.id == section.id or other.course_id == section.course_id:
                    continue
                if (section_elective or self.inputs.is_elective(other)) and weights.elective_clash:
                    penalty += weights.elective_clash
                    soft.append(ConstraintKind.elective_clash)

        if (
            instructor.preferred_course_ids
            and section.course_id not in instructor.preferred_course_ids
            and weights.instructor_preference
        ):
            penalty += weights.instructor_preference
            soft.append(ConstraintKind.instructor_preference)

        return penalty, soft

    def audit(self, candidates: Iterable[Candidate]) -> list[AuditFinding]:
        """Re-checks a complete assignment set; each pairwise clash is reported once, on the later section id."""
        partial = PartialAssignment(self.inputs)
        findings: list[AuditFinding] = []
        for candidate in sorted(candidates, key=lambda item: item.section_id):
            evaluation = self.evaluate(partial, candidate)
            related_by_kind = {
                ConstraintKind.room_double_booking: self._booked(
                    partial.by_room_slot, candidate.room_id, candidate.timeslot_id, candidate.section_id
                ),
                ConstraintKind.instructor_double_booking: self._booked(
                    partial.by_instructor_slot, candidate.instructor_id, candidate.timeslot_id, candidate.section_id
                ),
            }
            for kind in evaluation.violated_hard:
                related = tuple(sorted(set(related_by_kind.get(kind, ()))))
                findings.append(AuditFinding(candidate.section_id, kind, related))
            for kind in evaluation.soft_violations:
                findings.append(AuditFinding(candidate.section_id, kind))
            partial.add(candidate)
        return findings
