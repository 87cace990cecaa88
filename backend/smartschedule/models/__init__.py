from smartschedule.models.activity_log import ActivityLog  # noqa: F401
from smartschedule.models.course import Course  # noqa: F401
from smartschedule.models.instructor import Instructor  # noqa: F401
from smartschedule.models.level import Level  # noqa: F401
from smartschedule.models.room import Room, RoomType  # noqa: F401
from smartschedule.models.rule import Rule, RuleSet  # noqa: F401
from smartschedule.models.schedule import (  # noqa: F401
    ALL_LEVELS_SCOPE,
    Schedule,
    ScheduleAssignment,
    ScheduleStatus,
)
from smartschedule.models.section import Section  # noqa: F401
from smartschedule.models.timeslot import TimeSlot  # noqa: F401
