from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Float, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from smartschedule.db.base import Base

ALL_LEVELS_SCOPE = "all"


class ScheduleStatus(str, Enum):
    complete = "complete"
    partial = "partial"


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint("scope", "version", name="uq_schedules_scope_version"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    scope: Mapped[str] = mapped_column(String(36), nullable=False, index=True, default=ALL_LEVELS_SCOPE)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    seed: Mapped[int] = mapped_column(Integer, nullable=False)
    rule_set_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[ScheduleStatus] = mapped_column(SAEnum(ScheduleStatus, name="schedule_status"), nullable=False)
    unassigned_section_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    diagnostics: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ScheduleAssignment(Base):
    __tablename__ = "schedule_assignments"
    __table_args__ = (
        UniqueConstraint("schedule_id", "section_id", name="uq_schedule_assignments_schedule_section"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    section_id: Mapped[str] = mapped_column(String(36), nullable=False)
    timeslot_id: Mapped[str] = mapped_column(String(36), nullable=False)
    room_id: Mapped[str] = mapped_column(String(36), nullable=False)
    instructor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    soft_penalty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    soft_violations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
