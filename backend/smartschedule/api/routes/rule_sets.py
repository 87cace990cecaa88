from fastapi import APIRouter, Depends, status

from smartschedule.api.deps import get_repository
from smartschedule.models.rule import RuleSet
from smartschedule.schemas.rules import RuleOut, RuleSetCreate, RuleSetOut
from smartschedule.services.schedule_repository import ScheduleRepository

router = APIRouter()


def _rule_set_out(repository: ScheduleRepository, rule_set: RuleSet) -> RuleSetOut:
    return RuleSetOut(
        id=rule_set.id,
        version=rule_set.version,
        description=rule_set.description,
        rules=[RuleOut.model_validate(rule) for rule in repository.list_rules(rule_set.id)],
    )


@router.get("/rule-sets", response_model=list[RuleSetOut])
def list_rule_sets(repository: ScheduleRepository = Depends(get_repository)) -> list[RuleSetOut]:
    return [_rule_set_out(repository, item) for item in repository.list_rule_sets()]


@router.post("/rule-sets", response_model=RuleSetOut, status_code=status.HTTP_201_CREATED)
def create_rule_set(
    payload: RuleSetCreate,
    repository: ScheduleRepository = Depends(get_repository),
) -> RuleSetOut:
    rule_set = repository.create_rule_set(payload, actor="api")
    return _rule_set_out(repository, rule_set)
