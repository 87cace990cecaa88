from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from smartschedule.schemas.rules import TIME_PATTERN, parse_time_to_minutes


class TimeSlotOut(BaseModel):
    id: str
    day_of_week: int = Field(alias="dayOfWeek")
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    is_midterm_block: bool = Field(default=False, alias="isMidtermBlock")
    is_break: bool = Field(default=False, alias="isBreak")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class TimeSlotGridRequest(BaseModel):
    days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4], min_length=1, max_length=7)
    day_start: str = Field(default="08:00", alias="dayStart")
    day_end: str = Field(default="20:00", alias="dayEnd")
    period_minutes: int = Field(default=50, ge=10, le=240, alias="periodMinutes")
    gap_minutes: int = Field(default=10, ge=0, le=120, alias="gapMinutes")
    lunch_start: str | None = Field(default="11:50", alias="lunchStart")
    lunch_end: str | None = Field(default="13:00", alias="lunchEnd")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("days")
    @classmethod
    def validate_days(cls, value: list[int]) -> list[int]:
        invalid = [day for day in value if day < 0 or day > 6]
        if invalid:
            raise ValueError(f"Invalid day-of-week value(s): {', '.join(str(day) for day in invalid)}")
        return sorted(set(value))

    @field_validator("day_start", "day_end", "lunch_start", "lunch_end")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is not None and not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_windows(self) -> "TimeSlotGridRequest":
        if parse_time_to_minutes(self.day_end) <= parse_time_to_minutes(self.day_start):
            raise ValueError("dayEnd must be after dayStart")
        if (self.lunch_start is None) != (self.lunch_end is None):
            raise ValueError("lunchStart and lunchEnd must be given together")
        if self.lunch_start and self.lunch_end:
            if parse_time_to_minutes(self.lunch_end) <= parse_time_to_minutes(self.lunch_start):
                raise ValueError("lunchEnd must be after lunchStart")
        return self


class TimeSlotGridOut(BaseModel):
    count: int
    timeslots: list[TimeSlotOut] = Field(default_factory=list)
