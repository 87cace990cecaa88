from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from smartschedule.models.schedule import ScheduleStatus


class GenerateScheduleRequest(BaseModel):
    # Type and range checks on seed and rule set version happen in the orchestrator so they surface as 400s.
    seed: Any
    level_filter: str | None = Field(default=None, max_length=36, alias="levelFilter")
    rule_set_version: Any = Field(default=None, alias="ruleSetVersion")
    allow_partial: bool = Field(default=True, alias="allowPartial")

    model_config = ConfigDict(populate_by_name=True)


class UnassignedSectionOut(BaseModel):
    section_id: str = Field(alias="sectionId")
    reasons: list[str] = Field(default_factory=list)
    detail: str = ""

    model_config = ConfigDict(populate_by_name=True)


class GenerateScheduleResponse(BaseModel):
    schedule_id: str = Field(alias="scheduleId")
    version: int
    scope: str
    status: ScheduleStatus
    unassigned_sections: list[UnassignedSectionOut] = Field(default_factory=list, alias="unassignedSections")
    diagnostics: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)
