import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from smartschedule.db.base import Base


class Instructor(Base):
    __tablename__ = "instructors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    max_weekly_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    # Derived from the instructor's availability preferences by the CRUD layer.
    unavailable_timeslot_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    qualified_course_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    preferred_course_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
