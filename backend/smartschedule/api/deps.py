from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from smartschedule.core.config import Settings, get_settings
from smartschedule.db.session import SessionLocal
from smartschedule.services.generation import GenerationOrchestrator
from smartschedule.services.schedule_repository import ScheduleRepository


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_repository(db: Session = Depends(get_db)) -> ScheduleRepository:
    return ScheduleRepository(db)


def get_orchestrator(
    repository: ScheduleRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> GenerationOrchestrator:
    return GenerationOrchestrator(repository, settings)
