from fastapi import APIRouter, Depends

from smartschedule.api.deps import get_orchestrator
from smartschedule.schemas.generator import (
    GenerateScheduleRequest,
    GenerateScheduleResponse,
    UnassignedSectionOut,
)
from smartschedule.services.generation import GenerationOrchestrator, GenerationRequest

router = APIRouter()


@router.post("/generate", response_model=GenerateScheduleResponse)
def generate_schedule(
    payload: GenerateScheduleRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerateScheduleResponse:
    outcome = orchestrator.generate(
        GenerationRequest(
            seed=payload.seed,
            level_filter=payload.level_filter,
            rule_set_version=payload.rule_set_version,
            allow_partial=payload.allow_partial,
            actor="api",
        )
    )
    return GenerateScheduleResponse(
        schedule_id=outcome.schedule_id,
        version=outcome.version,
        scope=outcome.scope,
        status=outcome.status,
        unassigned_sections=[
            UnassignedSectionOut(section_id=item.section_id, reasons=list(item.reasons), detail=item.detail)
            for item in outcome.unassigned_sections
        ],
        diagnostics=outcome.diagnostics,
    )
