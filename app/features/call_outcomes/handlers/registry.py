"""
Outcome handler registry: pure dispatch from OutcomeType to handler.

The registry never writes to storage. Callers receive either a successful
OutcomeResult or one of the typed dispatch errors.
"""

from collections.abc import Iterable

from app.infrastructure.observability.logging import get_logger

from ..domain.errors import (
    CallOutcomeError,
    OutcomeExecutionFailed,
    UnknownOutcomeType,
    ValidationFailed,
)
from ..domain.models import CallOutcomeContext, OutcomeResult, OutcomeType, ValidationResult
from ..domain.payloads import OutcomePayload
from .base import OutcomeHandler

logger = get_logger(__name__)


class OutcomeHandlerRegistry:
    """Maps each OutcomeType to exactly one handler; last registration wins."""

    def __init__(self, handlers: Iterable[OutcomeHandler] = ()):
        self._handlers: dict[OutcomeType, OutcomeHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: OutcomeHandler) -> None:
        if handler.outcome_type in self._handlers:
            logger.info("Replacing outcome handler", outcome_type=handler.outcome_type.value)
        self._handlers[handler.outcome_type] = handler

    def get_handler(self, outcome_type: str | OutcomeType) -> OutcomeHandler:
        handler = self._handlers.get(OutcomeType.parse(outcome_type))
        if handler is None:
            raise UnknownOutcomeType(str(outcome_type))
        return handler

    def has_handler(self, outcome_type: str | OutcomeType) -> bool:
        try:
            self.get_handler(outcome_type)
        except UnknownOutcomeType:
            return False
        return True

    def registered_types(self) -> list[OutcomeType]:
        return list(self._handlers)

    def handlers(self) -> list[OutcomeHandler]:
        return list(self._handlers.values())

    def get_score_adjustment(self, outcome_type: str | OutcomeType) -> int:
        return self.get_handler(outcome_type).scoring_rule.score_delta

    def validate(
        self,
        outcome_type: str | OutcomeType,
        context: CallOutcomeContext,
        data: OutcomePayload | None = None,
    ) -> ValidationResult:
        handler = self.get_handler(outcome_type)
        return handler.validate(context, handler.coerce_payload(data))

    def dispatch(
        self,
        outcome_type: str | OutcomeType,
        context: CallOutcomeContext,
        data: OutcomePayload | None = None,
    ) -> OutcomeResult:
        """
        Validate then execute the handler for outcome_type.

        Raises:
            UnknownOutcomeType: no handler registered.
            ValidationFailed: validate reported errors; execute was not called.
            OutcomeExecutionFailed: wrong payload type, execute raised or
                returned success=False.
        """
        handler = self.get_handler(outcome_type)
        payload = handler.coerce_payload(data)

        validation = handler.validate(context, payload)
        if not validation.is_valid:
            logger.info(
                "Outcome validation failed",
                session_id=context.session_id,
                outcome_type=handler.outcome_type.value,
                errors=validation.errors,
            )
            raise ValidationFailed(handler.outcome_type.value, validation.errors, validation.warnings)

        try:
            result = handler.execute(context, payload)
        except CallOutcomeError:
            raise
        except Exception as e:
            logger.error(
                "Outcome handler raised",
                session_id=context.session_id,
                outcome_type=handler.outcome_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise OutcomeExecutionFailed(handler.outcome_type.value, str(e)) from e

        if not result.success:
            raise OutcomeExecutionFailed(
                handler.outcome_type.value, result.error or "handler reported failure"
            )

        result.warnings = list(validation.warnings) + list(result.warnings)
        if result.warnings:
            logger.info(
                "Outcome accepted with warnings",
                session_id=context.session_id,
                outcome_type=handler.outcome_type.value,
                warnings=result.warnings,
            )
        return result


def build_default_registry() -> OutcomeHandlerRegistry:
    from . import administrative, negative, neutral, positive

    return OutcomeHandlerRegistry(
        [*positive.HANDLERS, *neutral.HANDLERS, *negative.HANDLERS, *administrative.HANDLERS]
    )
