from __future__ import annotations

import hashlib
import logging
import re
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from time import monotonic, perf_counter
from typing import Callable, Literal

from smartschedule.core.config import Settings
from smartschedule.core.exceptions import GenerationCancelled
from smartschedule.services.constraints import (
    Candidate,
    ConstraintEvaluator,
    ConstraintKind,
    Evaluation,
    PartialAssignment,
)
from smartschedule.services.domain import PlanningInputs, Room
from smartschedule.services.rules import CompiledRules

logger = logging.getLogger(__name__)

FailureMode = Literal["halt", "continue"]

REASON_BUDGET_EXHAUSTED = "backtrack_budget_exhausted"
REASON_SEARCH_HALTED = "search_halted"
REASON_NO_CANDIDATES = "no_candidates"


class SectionState(str, Enum):
    unassigned = "unassigned"
    tentative = "tentative"
    committed = "committed"
    failed = "failed"


@dataclass(frozen=True)
class EngineSettings:
    backtrack_budget: int = 5_000
    failure_mode: FailureMode = "continue"
    cancel_check_interval: int = 64
    max_runtime_seconds: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineSettings":
        return cls(
            backtrack_budget=settings.backtrack_budget,
            failure_mode=settings.failure_mode,
            cancel_check_interval=settings.cancel_check_interval,
            max_runtime_seconds=settings.max_runtime_seconds,
        )


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class Assignment:
    section_id: str
    timeslot_id: str
    room_id: str
    instructor_id: str
    is_valid: bool = True
    soft_penalty: float = 0.0
    soft_violations: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnassignedSection:
    section_id: str
    reasons: tuple[str, ...]
    detail: str


@dataclass(frozen=True)
class EngineResult:
    assignments: tuple[Assignment, ...]
    unassigned: tuple[UnassignedSection, ...]
    states: dict[str, SectionState]
    steps: int = 0
    backtracks: int = 0
    budget_exhausted: bool = False
    halted: bool = False
    runtime_ms: int = 0

    @property
    def complete(self) -> bool:
        return not self.unassigned

    @property
    def total_soft_penalty(self) -> float:
        return round(sum(item.soft_penalty for item in self.assignments), 6)


@dataclass
class _DecisionPoint:
    section_id: str
    ranked: list[tuple[Candidate, Evaluation]]
    position: int = 0

    @property
    def current(self) -> tuple[Candidate, Evaluation]:
        return self.ranked[self.position]

    @property
    def has_alternatives(self) -> bool:
        return self.position + 1 < len(self.ranked)


@dataclass
class _Domain:
    candidates: list[Candidate] = field(default_factory=list)
    rejections: Counter = field(default_factory=Counter)


def _natural_key(value: str) -> tuple:
    return tuple(int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", value))


def seeded_rank(seed: int, identifier: str) -> str:
    payload = f"{seed}|{identifier}".encode("utf-8")
    return hashlib.blake2b(payload, digest_size=8).hexdigest()


class SchedulingEngine:
    """Backtracking section assignment over an explicit decision stack.

    Sections are picked most-constrained-first, candidates are tried in
    ascending soft-penalty order, and every ordering decision is a function of
    the seed and entity ids so identical inputs give identical schedules.
    """

    def __init__(
        self,
        inputs: PlanningInputs,
        rules: CompiledRules,
        *,
        seed: int,
        settings: EngineSettings | None = None,
        cancel_token: CancellationToken | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.inputs = inputs
        self.rules = rules
        self.seed = seed
        self.settings = settings or EngineSettings()
        self.cancel_token = cancel_token
        self.clock = clock
        self.evaluator = ConstraintEvaluator(inputs, rules)

        rooms_in_order = sorted(inputs.rooms, key=lambda room: (_natural_key(room.name), room.id))
        self.room_rank = {room.id: index for index, room in enumerate(rooms_in_order)}
        slots_in_order = sorted(
            inputs.timeslots,
            key=lambda slot: (slot.day_of_week, slot.start_minute, slot.end_minute, slot.id),
        )
        self.timeslot_rank = {slot.id: index for index, slot in enumerate(slots_in_order)}
        instructors_in_order = sorted(inputs.instructors, key=lambda item: (seeded_rank(seed, item.id), item.id))
        self.instructor_rank = {item.id: index for index, item in enumerate(instructors_in_order)}
        self.section_order = sorted(
            (section.id for section in inputs.sections),
            key=lambda section_id: (seeded_rank(seed, section_id), section_id),
        )
        self.domains = {section.id: self._build_domain(section.id) for section in inputs.sections}

    def _candidate_key(self, candidate: Candidate) -> tuple[int, int, int]:
        return (
            self.room_rank[candidate.room_id],
            self.timeslot_rank[candidate.timeslot_id],
            self.instructor_rank[candidate.instructor_id],
        )

    def _build_domain(self, section_id: str) -> _Domain:
        """Enumerates the (timeslot, room, instructor) triples that pass every static check."""
        section = self.inputs.section_by_id[section_id]
        domain = _Domain()

        rooms: list[Room] = []
        room_pool = self.inputs.rooms
        if section.room_id is not None:
            room_pool = tuple(room for room in self.inputs.rooms if room.id == section.room_id)
        for room in room_pool:
            if room.capacity < section.capacity + self.rules.minimum_headroom:
                domain.rejections[ConstraintKind.room_capacity] += 1
            else:
                rooms.append(room)

        instructor_pool = self.inputs.instructors
        if section.instructor_id is not None:
            instructor_pool = tuple(item for item in self.inputs.instructors if item.id == section.instructor_id)
        instructors = []
        for instructor in instructor_pool:
            if instructor.is_qualified(section.course_id):
                instructors.append(instructor)
            else:
                domain.rejections[ConstraintKind.instructor_not_qualified] += 1

        for slot in self.inputs.timeslots:
            if self.rules.blocked_reason(slot.id) is not None:
                domain.rejections[ConstraintKind.blocked_timeslot] += 1
                continue
            for room in rooms:
                for instructor in instructors:
                    if slot.id in instructor.unavailable_timeslot_ids:
                        domain.rejections[ConstraintKind.instructor_unavailable] += 1
                        continue
                    domain.candidates.append(Candidate(section.id, slot.id, room.id, instructor.id))

        domain.candidates.sort(key=self._candidate_key)
        return domain

    def _rank_candidates(self, partial: PartialAssignment, section_id: str) -> list[tuple[Candidate, Evaluation]]:
        ranked: list[tuple[Candidate, Evaluation]] = []
        for candidate in self.domains[section_id].candidates:
            if not self.evaluator.is_admissible(partial, candidate):
                continue
            ranked.append((candidate, self.evaluator.evaluate(partial, candidate)))
        ranked.sort(key=lambda item: (item[1].soft_penalty, self._candidate_key(item[0])))
        return ranked

    def _count_admissible(self, partial: PartialAssignment, section_id: str, limit: int) -> int:
        count = 0
        for candidate in self.domains[section_id].candidates:
            if self.evaluator.is_admissible(partial, candidate):
                count += 1
                if count >= limit:
                    break
        return count

    def _select_section(self, partial: PartialAssignment, pending: set[str]) -> str:
        ordered = [section_id for section_id in self.section_order if section_id in pending]
        best_id = ordered[0]
        best_count = self._count_admissible(partial, best_id, len(self.domains[best_id].candidates) + 1)
        for section_id in ordered[1:]:
            if best_count == 0:
                break
            count = self._count_admissible(partial, section_id, best_count)
            if count < best_count:
                best_id, best_count = section_id, count
        return best_id

    @staticmethod
    def _resume_index(stack: list[_DecisionPoint]) -> int | None:
        for index in range(len(stack) - 1, -1, -1):
            if stack[index].has_alternatives:
                return index
        return None

    def _diagnose(self, partial: PartialAssignment, section_id: str, *, budget_exhausted: bool) -> UnassignedSection:
        domain = self.domains[section_id]
        blocking: Counter = Counter(domain.rejections)
        for candidate in domain.candidates:
            blocking.update(self.evaluator.evaluate(partial, candidate).violated_hard)
        reasons = [kind.value for kind, _ in sorted(blocking.items(), key=lambda item: (-item[1], item[0].value))]
        if budget_exhausted:
            reasons.append(REASON_BUDGET_EXHAUSTED)
        if not reasons:
            reasons.append(REASON_NO_CANDIDATES)
        summary = ", ".join(f"{kind.value} ({count})" for kind, count in sorted(blocking.items(), key=lambda item: item[0].value))
        detail = "No admissible (timeslot, room, instructor) triple"
        if summary:
            detail = f"{detail}; rejected by {summary}"
        return UnassignedSection(section_id=section_id, reasons=tuple(reasons), detail=detail)

    def _checkpoint(self, steps: int, started: float) -> None:
        if (steps - 1) % self.settings.cancel_check_interval:
            return
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise GenerationCancelled("cancelled", details={"steps": steps})
        limit = self.settings.max_runtime_seconds
        if limit is not None and self.clock() - started > limit:
            raise GenerationCancelled("timeout", details={"steps": steps, "max_runtime_seconds": limit})

    def run(self) -> EngineResult:
        started_perf = perf_counter()
        started = self.clock()
        partial = PartialAssignment(self.inputs)
        states = {section_id: SectionState.unassigned for section_id in self.section_order}
        pending = set(self.section_order)
        chosen: dict[str, Evaluation] = {}
        stack: list[_DecisionPoint] = []
        failures: dict[str, UnassignedSection] = {}
        steps = 0
        backtracks = 0
        budget_exhausted = False
        halted = False

        while pending:
            steps += 1
            self._checkpoint(steps, started)
            section_id = self._select_section(partial, pending)
            ranked = self._rank_candidates(partial, section_id)
            if ranked:
                point = _DecisionPoint(section_id, ranked)
                stack.append(point)
                partial.add(point.current[0])
                chosen[section_id] = point.current[1]
                states[section_id] = SectionState.tentative
                pending.discard(section_id)
                continue

            # Dead end. An empty static domain cannot be fixed by revisiting earlier choices.
            resume = self._resume_index(stack) if self.domains[section_id].candidates else None
            if resume is not None and not budget_exhausted:
                if backtracks >= self.settings.backtrack_budget:
                    budget_exhausted = True
                    logger.info("Backtrack budget exhausted budget=%s steps=%s", self.settings.backtrack_budget, steps)
                else:
                    backtracks += 1
                    while len(stack) > resume + 1:
                        undone = stack.pop()
                        partial.remove(undone.section_id)
                        chosen.pop(undone.section_id, None)
                        states[undone.section_id] = SectionState.unassigned
                        pending.add(undone.section_id)
                    point = stack[resume]
                    partial.remove(point.section_id)
                    point.position += 1
                    partial.add(point.current[0])
                    chosen[point.section_id] = point.current[1]
                    continue

            failures[section_id] = self._diagnose(partial, section_id, budget_exhausted=budget_exhausted)
            states[section_id] = SectionState.failed
            pending.discard(section_id)
            logger.debug("Section failed section_id=%s reasons=%s", section_id, failures[section_id].reasons)
            if self.settings.failure_mode == "halt":
                halted = True
                for remaining in sorted(pending):
                    failures[remaining] = UnassignedSection(
                        section_id=remaining,
                        reasons=(REASON_SEARCH_HALTED,),
                        detail=f"Search halted after section {section_id} failed",
                    )
                pending.clear()

        if not halted:
            # Last chance for failed sections against the finished assignment.
            for section_id in sorted(sid for sid, state in states.items() if state == SectionState.failed):
                ranked = self._rank_candidates(partial, section_id)
                if not ranked:
                    continue
                candidate, evaluation = ranked[0]
                partial.add(candidate)
                chosen[section_id] = evaluation
                states[section_id] = SectionState.tentative
                failures.pop(section_id, None)

        for section_id, state in states.items():
            if state == SectionState.tentative:
                states[section_id] = SectionState.committed

        assignments = tuple(
            Assignment(
                section_id=candidate.section_id,
                timeslot_id=candidate.timeslot_id,
                room_id=candidate.room_id,
                instructor_id=candidate.instructor_id,
                is_valid=chosen[candidate.section_id].admissible,
                soft_penalty=chosen[candidate.section_id].soft_penalty,
                soft_violations=tuple(kind.value for kind in chosen[candidate.section_id].soft_violations),
            )
            for candidate in sorted(partial.assignments.values(), key=lambda item: item.section_id)
        )
        result = EngineResult(
            assignments=assignments,
            unassigned=tuple(failures[section_id] for section_id in sorted(failures)),
            states=dict(sorted(states.items())),
            steps=steps,
            backtracks=backtracks,
            budget_exhausted=budget_exhausted,
            halted=halted,
            runtime_ms=int((perf_counter() - started_perf) * 1000),
        )
        logger.info(
            "Engine run finished seed=%s sections=%s assigned=%s unassigned=%s steps=%s backtracks=%s runtime_ms=%s",
            self.seed,
            len(states),
            len(result.assignments),
            len(result.unassigned),
            steps,
            backtracks,
            result.runtime_ms,
        )
        return result
