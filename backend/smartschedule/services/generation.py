from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from time import perf_counter

from smartschedule.core.config import Settings, get_settings
from smartschedule.core.exceptions import Infeasible, InvalidRequest, PersistenceFailure
from smartschedule.models.schedule import ScheduleStatus
from smartschedule.services.rules import PenaltyWeights, compile_rules
from smartschedule.services.schedule_repository import ScheduleRepository, scope_for
from smartschedule.services.search_engine import (
    CancellationToken,
    EngineResult,
    EngineSettings,
    SchedulingEngine,
    UnassignedSection,
)

logger = logging.getLogger(__name__)

# Seeds are stored in a 32-bit integer column.
MAX_SEED = 2_147_483_647


@dataclass(frozen=True)
class GenerationRequest:
    seed: int
    level_filter: str | None = None
    rule_set_version: int | None = None
    allow_partial: bool = True
    actor: str | None = None


@dataclass(frozen=True)
class GenerationOutcome:
    schedule_id: str
    version: int
    scope: str
    status: ScheduleStatus
    unassigned_sections: tuple[UnassignedSection, ...] = ()
    diagnostics: dict = field(default_factory=dict)


def build_diagnostics(result: EngineResult, *, applied_rules: tuple[str, ...], ignored_rules: tuple[str, ...]) -> dict:
    return {
        "steps": result.steps,
        "backtracks": result.backtracks,
        "budget_exhausted": result.budget_exhausted,
        "halted": result.halted,
        "runtime_ms": result.runtime_ms,
        "applied_rules": list(applied_rules),
        "ignored_rules": list(ignored_rules),
        "total_soft_penalty": result.total_soft_penalty,
        "soft_violations": {
            item.section_id: list(item.soft_violations) for item in result.assignments if item.soft_violations
        },
        "unassigned": {
            item.section_id: {"reasons": list(item.reasons), "detail": item.detail} for item in result.unassigned
        },
    }


def _validate_request(request: GenerationRequest) -> None:
    seed = request.seed
    if isinstance(seed, bool) or not isinstance(seed, int) or not 0 <= seed <= MAX_SEED:
        raise InvalidRequest(f"Seed must be an integer between 0 and {MAX_SEED}", details={"seed": seed})
    version = request.rule_set_version
    if version is not None and (isinstance(version, bool) or not isinstance(version, int) or version < 1):
        raise InvalidRequest("Rule set version must be a positive integer", details={"rule_set_version": version})


class GenerationOrchestrator:
    def __init__(
        self,
        repository: ScheduleRepository,
        settings: Settings | None = None,
        *,
        sleep=time.sleep,
    ) -> None:
        self.repository = repository
        self.settings = settings or get_settings()
        self._sleep = sleep

    def generate(self, request: GenerationRequest, cancel_token: CancellationToken | None = None) -> GenerationOutcome:
        """Runs one scheduling pass and persists it as the next version of its scope.

        Partial schedules are persisted and reported unless the request disallows
        them. A cancelled run raises `GenerationCancelled` before anything is written.
        """
        started = perf_counter()
        logger.info(
            "SCHEDULE GENERATION START | seed=%s | level=%s | rule_set_version=%s",
            request.seed,
            request.level_filter,
            request.rule_set_version,
        )
        try:
            _validate_request(request)
            rule_set_version = self.repository.resolve_rule_set_version(request.rule_set_version)
            if request.rule_set_version is not None and rule_set_version is None:
                raise InvalidRequest(
                    f"Rule set version {request.rule_set_version} does not exist",
                    details={"rule_set_version": request.rule_set_version},
                )

            inputs = self.repository.load_planning_inputs(request.level_filter, rule_set_version)
            rules = compile_rules(
                inputs.rules,
                inputs.timeslots,
                default_weights=PenaltyWeights.from_settings(self.settings),
                required_keys=self.settings.required_rule_keys,
            )
            engine = SchedulingEngine(
                inputs,
                rules,
                seed=request.seed,
                settings=EngineSettings.from_settings(self.settings),
                cancel_token=cancel_token,
            )
            result = engine.run()
            if not result.complete and not request.allow_partial:
                raise Infeasible(
                    [item.section_id for item in result.unassigned],
                    details={"reasons": {item.section_id: list(item.reasons) for item in result.unassigned}},
                )

            diagnostics = build_diagnostics(
                result,
                applied_rules=rules.applied_rule_keys,
                ignored_rules=rules.ignored_rule_keys,
            )
            scope = scope_for(request.level_filter)
            schedule_id, version = self._persist_with_retry(
                result,
                scope=scope,
                seed=request.seed,
                rule_set_version=rule_set_version,
                diagnostics=diagnostics,
                actor=request.actor,
            )
            status = ScheduleStatus.complete if result.complete else ScheduleStatus.partial
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.info(
                "SCHEDULE GENERATION COMPLETE | seed=%s | scope=%s | version=%s | status=%s | assigned=%s | unassigned=%s | runtime_ms=%s | wall_ms=%s",
                request.seed,
                scope,
                version,
                status.value,
                len(result.assignments),
                len(result.unassigned),
                result.runtime_ms,
                elapsed_ms,
            )
            return GenerationOutcome(
                schedule_id=schedule_id,
                version=version,
                scope=scope,
                status=status,
                unassigned_sections=result.unassigned,
                diagnostics=diagnostics,
            )
        except Exception:
            elapsed_ms = int((perf_counter() - started) * 1000)
            logger.exception(
                "SCHEDULE GENERATION FAILED | seed=%s | level=%s | wall_ms=%s",
                request.seed,
                request.level_filter,
                elapsed_ms,
            )
            raise

    def _persist_with_retry(
        self,
        result: EngineResult,
        *,
        scope: str,
        seed: int,
        rule_set_version: int | None,
        diagnostics: dict,
        actor: str | None,
    ) -> tuple[str, int]:
        attempts = max(1, self.settings.persist_retry_attempts)
        backoff = max(0.0, self.settings.persist_retry_backoff_seconds)
        for attempt in range(1, attempts + 1):
            # Re-read each attempt; a concurrent run may have taken the version.
            version = self.repository.next_version(scope)
            try:
                schedule_id = self.repository.persist_schedule(
                    result,
                    version=version,
                    scope=scope,
                    seed=seed,
                    rule_set_version=rule_set_version,
                    diagnostics=diagnostics,
                    actor=actor,
                )
                return schedule_id, version
            except PersistenceFailure as exc:
                if not exc.transient or attempt >= attempts:
                    raise
                logger.warning(
                    "SCHEDULE PERSIST RETRY | scope=%s | version=%s | attempt=%s/%s | error=%s",
                    scope,
                    version,
                    attempt,
                    attempts,
                    exc.details.get("error"),
                )
                if backoff > 0:
                    self._sleep(backoff * attempt)
        raise AssertionError("unreachable")
