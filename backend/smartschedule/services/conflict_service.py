from __future__ import annotations

from smartschedule.core.config import Settings
from smartschedule.core.exceptions import DataUnavailable, ResourceNotFoundError
from smartschedule.models.schedule import ALL_LEVELS_SCOPE
from smartschedule.schemas.schedule import ConflictOut, ConflictReportOut
from smartschedule.services.constraints import Candidate, ConstraintEvaluator
from smartschedule.services.rules import PenaltyWeights, compile_rules
from smartschedule.services.schedule_repository import ScheduleRepository


class ConflictService:
    """Re-checks a stored schedule against the current reference data and its rule set."""

    def __init__(self, repository: ScheduleRepository, settings: Settings):
        self.repository = repository
        self.settings = settings

    def detect_conflicts(self, schedule_id: str) -> ConflictReportOut:
        schedule = self.repository.get_schedule(schedule_id)
        if schedule is None:
            raise ResourceNotFoundError("Schedule", schedule_id)

        level_filter = None if schedule.scope == ALL_LEVELS_SCOPE else schedule.scope
        inputs = self.repository.load_planning_inputs(level_filter, schedule.rule_set_version)
        rules = compile_rules(
            inputs.rules,
            inputs.timeslots,
            default_weights=PenaltyWeights.from_settings(self.settings),
        )

        candidates: list[Candidate] = []
        stale: list[str] = []
        for row in self.repository.list_assignments(schedule_id):
            if (
                row.section_id not in inputs.section_by_id
                or row.timeslot_id not in inputs.timeslot_by_id
                or row.room_id not in inputs.room_by_id
                or row.instructor_id not in inputs.instructor_by_id
            ):
                stale.append(row.section_id)
                continue
            candidates.append(Candidate(row.section_id, row.timeslot_id, row.room_id, row.instructor_id))
        if stale:
            raise DataUnavailable(
                "Schedule references records that no longer exist",
                details={"schedule_id": schedule_id, "section_ids": sorted(stale)},
            )

        findings = ConstraintEvaluator(inputs, rules).audit(candidates)
        conflicts = [
            ConflictOut(
                section_id=item.section_id,
                kind=item.kind.value,
                severity=item.severity,
                conflicting_section_ids=list(item.conflicting_section_ids),
            )
            for item in findings
        ]
        hard = sum(1 for item in conflicts if item.severity == "hard")
        return ConflictReportOut(
            schedule_id=schedule_id,
            hard_conflicts=hard,
            soft_conflicts=len(conflicts) - hard,
            conflicts=conflicts,
        )
