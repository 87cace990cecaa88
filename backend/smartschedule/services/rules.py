from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError

from smartschedule.core.config import Settings
from smartschedule.core.exceptions import InvalidRequest
from smartschedule.schemas.rules import (
    BREAK_WINDOW,
    CAPACITY_LIMIT,
    MIDTERM_BLOCK,
    PENALTY_WEIGHTS,
    BreakWindowRule,
    CapacityLimitRule,
    MidtermBlockRule,
    PenaltyWeightsRule,
)
from smartschedule.services.domain import Rule, TimeSlot

logger = logging.getLogger(__name__)

BLOCKED_BY_BREAK = "break"
BLOCKED_BY_MIDTERM = "midterm"


@dataclass(frozen=True)
class PenaltyWeights:
    load_imbalance: float = 4.0
    back_to_back: float = 2.0
    cross_level_room: float = 1.0
    elective_clash: float = 6.0
    instructor_preference: float = 1.5
    min_break_minutes: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "PenaltyWeights":
        return cls(
            load_imbalance=settings.penalty_load_imbalance,
            back_to_back=settings.penalty_back_to_back,
            cross_level_room=settings.penalty_cross_level_room,
            elective_clash=settings.penalty_elective_clash,
            instructor_preference=settings.penalty_instructor_preference,
            min_break_minutes=settings.min_break_minutes,
        )

    def merged_with(self, override: PenaltyWeightsRule) -> "PenaltyWeights":
        changes = {key: value for key, value in override.model_dump().items() if value is not None}
        return replace(self, **changes)


@dataclass(frozen=True)
class CompiledRules:
    blocked_timeslots: dict[str, str]
    minimum_headroom: int = 0
    weights: PenaltyWeights = PenaltyWeights()
    applied_rule_keys: tuple[str, ...] = ()
    ignored_rule_keys: tuple[str, ...] = ()

    def blocked_reason(self, timeslot_id: str) -> str | None:
        return self.blocked_timeslots.get(timeslot_id)


def _rule_value(rule: Rule) -> dict[str, Any] | None:
    # Rows written by other tools may hold any JSON value.
    if not isinstance(rule.value, Mapping):
        return None
    return dict(rule.value)


def _parse_hard_rule(rule: Rule, model: type[BaseModel]) -> BaseModel:
    value = _rule_value(rule)
    if value is None:
        raise InvalidRequest(
            f"Rule '{rule.key}' is malformed",
            details={"rule_key": rule.key, "errors": ["value must be a JSON object"]},
        )
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise InvalidRequest(
            f"Rule '{rule.key}' is malformed",
            details={"rule_key": rule.key, "errors": [error["msg"] for error in exc.errors()]},
        ) from exc


def compile_rules(
    rules: Iterable[Rule],
    timeslots: Iterable[TimeSlot],
    *,
    default_weights: PenaltyWeights | None = None,
    required_keys: Iterable[str] = (),
) -> CompiledRules:
    """Turns the active rule records into the lookups the evaluator needs.

    Malformed hard-constraint rules and missing required rules raise
    `InvalidRequest`; unknown keys and a malformed `penaltyWeights` are ignored.
    """
    active = [rule for rule in rules if rule.active]
    active_keys = {rule.key for rule in active}
    missing = sorted(set(required_keys) - active_keys)
    if missing:
        raise InvalidRequest(
            "Required scheduling rules are missing or inactive",
            details={"missing_rule_keys": missing},
        )

    break_windows: list[BreakWindowRule] = []
    midterm_blocks: list[MidtermBlockRule] = []
    capacity = CapacityLimitRule()
    weights = default_weights or PenaltyWeights()
    applied: list[str] = []
    ignored: list[str] = []

    for rule in active:
        if rule.key == BREAK_WINDOW:
            break_windows.append(_parse_hard_rule(rule, BreakWindowRule))
        elif rule.key == MIDTERM_BLOCK:
            midterm_blocks.append(_parse_hard_rule(rule, MidtermBlockRule))
        elif rule.key == CAPACITY_LIMIT:
            # Repeated limits keep the strictest headroom.
            parsed = _parse_hard_rule(rule, CapacityLimitRule)
            if parsed.minimum_headroom >= capacity.minimum_headroom:
                capacity = parsed
        elif rule.key == PENALTY_WEIGHTS:
            value = _rule_value(rule)
            try:
                if value is None:
                    raise ValueError("penaltyWeights value must be a JSON object")
                weights = weights.merged_with(PenaltyWeightsRule.model_validate(value))
            except ValueError:
                logger.warning("Ignoring malformed rule key=%s; using configured penalty weights", rule.key)
                ignored.append(rule.key)
                continue
        else:
            logger.info("Ignoring unknown rule key=%s", rule.key)
            ignored.append(rule.key)
            continue
        applied.append(rule.key)

    midterm_allowed = any(not block.exclusive for block in midterm_blocks)
    blocked: dict[str, str] = {}
    for slot in timeslots:
        if slot.is_break or any(
            (window.days is None or slot.day_of_week in window.days)
            and slot.overlaps_window(window.start_minute, window.end_minute)
            for window in break_windows
        ):
            blocked[slot.id] = BLOCKED_BY_BREAK
            continue
        if slot.is_midterm_block and not midterm_allowed:
            blocked[slot.id] = BLOCKED_BY_MIDTERM
            continue
        if any(
            block.exclusive
            and slot.day_of_week in block.days
            and slot.overlaps_window(block.start_minute, block.end_minute)
            for block in midterm_blocks
        ):
            blocked[slot.id] = BLOCKED_BY_MIDTERM

    return CompiledRules(
        blocked_timeslots=blocked,
        minimum_headroom=capacity.minimum_headroom,
        weights=weights,
        applied_rule_keys=tuple(sorted(set(applied))),
        ignored_rule_keys=tuple(sorted(set(ignored))),
    )
