from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Day-of-week numbering follows the timeslot grid: 0 = Sunday ... 6 = Saturday.
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

BREAK_WINDOW = "breakWindow"
MIDTERM_BLOCK = "midtermBlock"
CAPACITY_LIMIT = "capacityLimit"
PENALTY_WEIGHTS = "penaltyWeights"
# Window rules may appear several times in one rule set.
REPEATABLE_RULE_KEYS = frozenset({BREAK_WINDOW, MIDTERM_BLOCK})



def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


class TimeWindow(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "TimeWindow":
        if parse_time_to_minutes(self.end) <= parse_time_to_minutes(self.start):
            raise ValueError("end must be after start")
        return self

    @property
    def start_minute(self) -> int:
        return parse_time_to_minutes(self.start)

    @property
    def end_minute(self) -> int:
        return parse_time_to_minutes(self.end)


def _validate_days(value: list[int]) -> list[int]:
    invalid = [day for day in value if day < 0 or day > 6]
    if invalid:
        raise ValueError(f"Invalid day-of-week value(s): {', '.join(str(day) for day in invalid)}")
    return sorted(set(value))


class BreakWindowRule(TimeWindow):
    """Window during which no section may meet; applies to every day unless `days` is given."""

    days: list[int] | None = None

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return None
        return _validate_days(value)


class MidtermBlockRule(TimeWindow):
    days: list[int] = Field(min_length=1)
    exclusive: bool = True

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: list[int]) -> list[int]:
        return _validate_days(value)


class CapacityLimitRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    minimum_headroom: int = Field(default=0, ge=0, le=1000, alias="minimumHeadroom")


class PenaltyWeightsRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    load_imbalance: float | None = Field(default=None, ge=0, alias="loadImbalance")
    back_to_back: float | None = Field(default=None, ge=0, alias="backToBack")
    cross_level_room: float | None = Field(default=None, ge=0, alias="crossLevelRoom")
    elective_clash: float | None = Field(default=None, ge=0, alias="electiveClash")
    instructor_preference: float | None = Field(default=None, ge=0, alias="instructorPreference")
    min_break_minutes: int | None = Field(default=None, ge=0, le=240, alias="minBreakMinutes")


class RuleIn(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    value: dict[str, Any] = Field(default_factory=dict)
    active: bool = True


class RuleOut(RuleIn):
    id: str
    value: Any = None

    model_config = {"from_attributes": True}


class RuleSetCreate(BaseModel):
    description: str | None = Field(default=None, max_length=500)
    rules: list[RuleIn] = Field(default_factory=list, max_length=100)

    @model_validator(mode="after")
    def validate_unique_keys(self) -> "RuleSetCreate":
        seen: set[str] = set()
        duplicates: set[str] = set()
        for rule in self.rules:
            if rule.key in REPEATABLE_RULE_KEYS:
                continue
            if rule.key in seen:
                duplicates.add(rule.key)
            else:
                seen.add(rule.key)
        if duplicates:
            raise ValueError(f"Duplicate rule keys: {', '.join(sorted(duplicates))}")
        return self


class RuleSetOut(BaseModel):
    id: str
    version: int
    description: str | None = None
    rules: list[RuleOut] = Field(default_factory=list)
