from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from smartschedule.api.deps import get_db
from smartschedule.schemas.timeslot import TimeSlotGridOut, TimeSlotGridRequest, TimeSlotOut
from smartschedule.services.timeslot_grid import GridSpec, list_timeslots, replace_timeslot_grid

router = APIRouter()


@router.get("/timeslots", response_model=list[TimeSlotOut])
def get_timeslots(db: Session = Depends(get_db)) -> list[TimeSlotOut]:
    return [TimeSlotOut.model_validate(item) for item in list_timeslots(db)]


@router.post("/timeslots/generate", response_model=TimeSlotGridOut)
def generate_timeslots(
    payload: TimeSlotGridRequest | None = None,
    db: Session = Depends(get_db),
) -> TimeSlotGridOut:
    payload = payload or TimeSlotGridRequest()
    spec = GridSpec(
        days=tuple(payload.days),
        day_start=payload.day_start,
        day_end=payload.day_end,
        period_minutes=payload.period_minutes,
        gap_minutes=payload.gap_minutes,
        lunch_start=payload.lunch_start,
        lunch_end=payload.lunch_end,
    )
    timeslots = replace_timeslot_grid(db, spec, actor="api")
    return TimeSlotGridOut(
        count=len(timeslots),
        timeslots=[TimeSlotOut.model_validate(item) for item in timeslots],
    )
