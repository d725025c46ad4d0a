"""
Neutral outcomes: the call connected briefly or not at all.
"""

from ..domain.models import CallOutcomeContext, NextAction, OutcomeType, ValidationResult
from ..domain.payloads import HungUpData, NoAnswerData
from .base import consecutive_outcomes, make_handler, validation_result

NO_ANSWER_DELAYS = (4.0, 24.0, 48.0)
NO_ANSWER_SMS_THRESHOLD = 3
NO_ANSWER_ESCALATION_THRESHOLD = 5
NO_ANSWER_MAX_RING_SECONDS = 60
HUNG_UP_DELAY_HOURS = 24.0


def _validate_no_answer(context: CallOutcomeContext, data: NoAnswerData) -> ValidationResult:
    warnings = []
    if context.call_duration_seconds and context.call_duration_seconds > NO_ANSWER_MAX_RING_SECONDS:
        warnings.append("Long call duration for a no-answer outcome - check the disposition")
    return validation_result([], warnings)


def _no_answer_delay(context: CallOutcomeContext, data: NoAnswerData) -> float:
    previous = consecutive_outcomes(context, OutcomeType.NO_ANSWER)
    return NO_ANSWER_DELAYS[min(previous, len(NO_ANSWER_DELAYS) - 1)]


def _no_answer_actions(context: CallOutcomeContext, data: NoAnswerData) -> list[NextAction]:
    # Includes the current call
    streak = consecutive_outcomes(context, OutcomeType.NO_ANSWER) + 1
    actions = []
    if streak >= NO_ANSWER_SMS_THRESHOLD:
        actions.append(
            NextAction(
                type="send_sms",
                description="Send check-in SMS after repeated unanswered calls",
                priority="medium",
                parameters={"message_type": "no_answer_checkin", "attempts": streak},
            )
        )
    if streak >= NO_ANSWER_ESCALATION_THRESHOLD:
        actions.append(
            NextAction(
                type="escalate",
                description="Customer unreachable after repeated attempts",
                priority="medium",
                parameters={"attempts": streak},
            )
        )
    return actions


def _no_answer_extras(context: CallOutcomeContext, data: NoAnswerData) -> dict:
    return {"notes": data.notes}


no_answer_handler = make_handler(
    OutcomeType.NO_ANSWER,
    validate=_validate_no_answer,
    delay_hours=_no_answer_delay,
    next_actions=_no_answer_actions,
    result_extras=_no_answer_extras,
)


def _validate_hung_up(context: CallOutcomeContext, data: HungUpData) -> ValidationResult:
    return validation_result([], [])


def _hung_up_actions(context: CallOutcomeContext, data: HungUpData) -> list[NextAction]:
    if consecutive_outcomes(context, OutcomeType.HUNG_UP) == 0:
        return []
    return [
        NextAction(
            type="flag_for_review",
            description="Repeated hang-ups - review contact approach",
            priority="low",
        )
    ]


def _hung_up_extras(context: CallOutcomeContext, data: HungUpData) -> dict:
    return {"notes": data.notes}


hung_up_handler = make_handler(
    OutcomeType.HUNG_UP,
    validate=_validate_hung_up,
    delay_hours=lambda context, data: HUNG_UP_DELAY_HOURS,
    next_actions=_hung_up_actions,
    result_extras=_hung_up_extras,
)

HANDLERS = (no_answer_handler, hung_up_handler)
