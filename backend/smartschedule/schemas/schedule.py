from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from smartschedule.models.schedule import ScheduleStatus


class ScheduleSummaryOut(BaseModel):
    id: str
    scope: str
    version: int
    seed: int
    rule_set_version: int | None = Field(default=None, alias="ruleSetVersion")
    status: ScheduleStatus
    unassigned_section_ids: list[str] = Field(default_factory=list, alias="unassignedSectionIds")
    created_at: datetime | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class AssignmentOut(BaseModel):
    section_id: str = Field(alias="sectionId")
    timeslot_id: str = Field(alias="timeslotId")
    room_id: str = Field(alias="roomId")
    instructor_id: str = Field(alias="instructorId")
    is_valid: bool = Field(default=True, alias="isValid")
    soft_penalty: float = Field(default=0.0, alias="softPenalty")
    soft_violations: list[str] = Field(default_factory=list, alias="softViolations")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class ScheduleOut(ScheduleSummaryOut):
    diagnostics: dict[str, Any] = Field(default_factory=dict)
    assignments: list[AssignmentOut] = Field(default_factory=list)


class ConflictOut(BaseModel):
    section_id: str = Field(alias="sectionId")
    kind: str
    severity: Literal["hard", "soft"]
    conflicting_section_ids: list[str] = Field(default_factory=list, alias="conflictingSectionIds")

    model_config = ConfigDict(populate_by_name=True)


class ConflictReportOut(BaseModel):
    schedule_id: str = Field(alias="scheduleId")
    hard_conflicts: int = Field(alias="hardConflicts")
    soft_conflicts: int = Field(alias="softConflicts")
    conflicts: list[ConflictOut] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)
