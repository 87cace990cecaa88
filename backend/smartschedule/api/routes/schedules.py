from fastapi import APIRouter, Depends, Query

from smartschedule.api.deps import get_repository
from smartschedule.core.config import Settings, get_settings
from smartschedule.core.exceptions import ResourceNotFoundError
from smartschedule.schemas.schedule import AssignmentOut, ConflictReportOut, ScheduleOut, ScheduleSummaryOut
from smartschedule.services.conflict_service import ConflictService
from smartschedule.services.schedule_repository import ScheduleRepository

router = APIRouter()


@router.get("/schedules", response_model=list[ScheduleSummaryOut])
def list_schedules(
    level_id: str | None = Query(default=None, alias="levelId", max_length=36),
    repository: ScheduleRepository = Depends(get_repository),
) -> list[ScheduleSummaryOut]:
    return [ScheduleSummaryOut.model_validate(item) for item in repository.list_schedules(level_id)]


@router.get("/schedules/{schedule_id}", response_model=ScheduleOut)
def get_schedule(schedule_id: str, repository: ScheduleRepository = Depends(get_repository)) -> ScheduleOut:
    schedule = repository.get_schedule(schedule_id)
    if schedule is None:
        raise ResourceNotFoundError("Schedule", schedule_id)
    summary = ScheduleSummaryOut.model_validate(schedule)
    return ScheduleOut(
        **summary.model_dump(),
        diagnostics=schedule.diagnostics or {},
        assignments=[AssignmentOut.model_validate(row) for row in repository.list_assignments(schedule_id)],
    )


@router.get("/schedules/{schedule_id}/conflicts", response_model=ConflictReportOut)
def get_schedule_conflicts(
    schedule_id: str,
    repository: ScheduleRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> ConflictReportOut:
    return ConflictService(repository, settings).detect_conflicts(schedule_id)
