"""
Outcome handler shape shared by every disposition type.

A handler is a frozen record of catalog metadata plus pure functions for
validation, follow-up actions, delay and result extras. Handlers hold no
state and never touch storage.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..domain.errors import OutcomeExecutionFailed
from ..domain.models import (
    CallOutcomeContext,
    ConversionHint,
    ConversionType,
    NextAction,
    OutcomeCategory,
    OutcomeResult,
    OutcomeType,
    ScoringRule,
    ValidationResult,
)
from ..domain.payloads import PAYLOAD_TYPES, OutcomePayload
from .catalog import OUTCOME_CATALOG

ValidateFn = Callable[[CallOutcomeContext, OutcomePayload], ValidationResult]
ActionsFn = Callable[[CallOutcomeContext, OutcomePayload], list[NextAction]]
DelayFn = Callable[[CallOutcomeContext, OutcomePayload], float]
ExtrasFn = Callable[[CallOutcomeContext, OutcomePayload], dict[str, Any]]

SHORT_CALL_SECONDS = 30


def _no_extras(context: CallOutcomeContext, data: OutcomePayload) -> dict[str, Any]:
    return {}


def _no_actions(context: CallOutcomeContext, data: OutcomePayload) -> list[NextAction]:
    return []


@dataclass(frozen=True, slots=True)
class OutcomeHandler:
    outcome_type: OutcomeType
    display_name: str
    description: str
    category: OutcomeCategory
    scoring_rule: ScoringRule
    validate: ValidateFn
    delay_hours: DelayFn
    next_actions: ActionsFn = _no_actions
    result_extras: ExtrasFn = _no_extras
    conversion_type: ConversionType | None = None
    required_fields: tuple[str, ...] = field(default_factory=tuple)

    @property
    def payload_type(self) -> type[OutcomePayload]:
        return PAYLOAD_TYPES[self.outcome_type]

    def coerce_payload(self, data: OutcomePayload | None) -> OutcomePayload:
        """Default an absent payload; reject one tagged for another outcome."""
        if data is None:
            return self.payload_type()
        if type(data) is not self.payload_type:
            raise OutcomeExecutionFailed(
                self.outcome_type,
                f"expected {self.payload_type.__name__}, got {type(data).__name__}",
            )
        return data

    def execute(self, context: CallOutcomeContext, data: OutcomePayload | None) -> OutcomeResult:
        payload = self.coerce_payload(data)
        extras = dict(self.result_extras(context, payload))

        if "conversions" not in extras and self.conversion_type is not None:
            extras["conversions"] = [ConversionHint(self.conversion_type, self.description)]

        return OutcomeResult(
            success=True,
            outcome_type=self.outcome_type,
            next_actions=self.next_actions(context, payload),
            score_adjustment=self.scoring_rule.score_delta,
            next_call_delay_hours=self.delay_hours(context, payload),
            **extras,
        )


def make_handler(
    outcome_type: OutcomeType,
    *,
    validate: ValidateFn,
    delay_hours: DelayFn,
    next_actions: ActionsFn = _no_actions,
    result_extras: ExtrasFn = _no_extras,
    required_fields: tuple[str, ...] = (),
) -> OutcomeHandler:
    """Build a handler whose metadata comes from the outcome catalog."""
    entry = OUTCOME_CATALOG[outcome_type]
    return OutcomeHandler(
        outcome_type=outcome_type,
        display_name=entry.display_name,
        description=entry.description,
        category=entry.category,
        scoring_rule=entry.scoring_rule,
        validate=validate,
        delay_hours=delay_hours,
        next_actions=next_actions,
        result_extras=result_extras,
        conversion_type=entry.conversion_type,
        required_fields=required_fields,
    )


def hours_until(target: datetime, now: datetime) -> float:
    """Non-negative hours from now until target."""
    return max(0.0, (target - now).total_seconds() / 3600)


def hours_since(moment: datetime, now: datetime) -> float:
    return (now - moment).total_seconds() / 3600


def is_short_call(context: CallOutcomeContext, threshold: int = SHORT_CALL_SECONDS) -> bool:
    return not context.call_duration_seconds or context.call_duration_seconds < threshold


def consecutive_outcomes(context: CallOutcomeContext, outcome_type: OutcomeType) -> int:
    """How many of the most recent previous outcomes in a row equal outcome_type."""
    count = 0
    for previous in context.previous_outcomes:
        if previous != outcome_type:
            break
        count += 1
    return count


def validation_result(
    errors: list[str], warnings: list[str], required_fields: tuple[str, ...] = ()
) -> ValidationResult:
    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        required_fields=list(required_fields),
    )
