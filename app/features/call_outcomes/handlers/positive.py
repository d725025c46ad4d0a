"""
Positive outcomes: the customer engaged or reached out to us.
"""

import math
from datetime import timedelta

from ..domain.models import CallOutcomeContext, NextAction, OutcomeType, ValidationResult
from ..domain.payloads import (
    CallbackData,
    CompletedFormData,
    GoingToCompleteData,
    MightCompleteData,
    MissedCallData,
)
from .base import (
    hours_since,
    hours_until,
    is_short_call,
    make_handler,
    validation_result,
)

MISSED_CALL_STALE_HOURS = 24
MISSED_CALL_MAX_DURATION_SECONDS = 5
GOING_TO_COMPLETE_FALLBACK_HOURS = 24


# --- completed_form ---------------------------------------------------------


def _validate_completed_form(context: CallOutcomeContext, data: CompletedFormData) -> ValidationResult:
    warnings = []
    if is_short_call(context):
        warnings.append("Very short call for a completed form - please confirm the outcome")
    return validation_result([], warnings)


def _completed_form_actions(context: CallOutcomeContext, data: CompletedFormData) -> list[NextAction]:
    actions = [
        NextAction(
            type="mark_conversion",
            description="Record the user as converted (form completed)",
            required=True,
            priority="high",
            parameters={"conversion_type": "completed"},
        ),
        NextAction(
            type="remove_from_queue",
            description="Remove user from the calling queue",
            required=True,
            priority="high",
        ),
        NextAction(
            type="send_sms",
            description="Send form completion confirmation",
            priority="medium",
            parameters={"message_type": "form_completion_confirmation"},
        ),
    ]
    if data.documents_requested:
        actions.append(
            NextAction(
                type="update_user_data",
                description="Record documents requested during the call",
                priority="medium",
                parameters={"documents_requested": list(data.documents_requested)},
            )
        )
    return actions


def _completed_form_extras(context: CallOutcomeContext, data: CompletedFormData) -> dict:
    return {
        "notes": data.notes or "Customer completed their form during the call",
        "documents_requested": list(data.documents_requested),
    }


completed_form_handler = make_handler(
    OutcomeType.COMPLETED_FORM,
    validate=_validate_completed_form,
    delay_hours=lambda context, data: 0.0,
    next_actions=_completed_form_actions,
    result_extras=_completed_form_extras,
)


# --- going_to_complete / might_complete -------------------------------------


def _validate_intent(context: CallOutcomeContext, data: GoingToCompleteData | MightCompleteData) -> ValidationResult:
    errors = []
    warnings = []
    if data.callback_datetime is None:
        warnings.append("No follow-up time provided - a default follow-up will be used")
    elif data.callback_datetime <= context.captured_at:
        errors.append("Follow-up datetime must be in the future")
    return validation_result(errors, warnings)


def _going_to_complete_delay(context: CallOutcomeContext, data: GoingToCompleteData) -> float:
    if data.callback_datetime:
        return hours_until(data.callback_datetime, context.captured_at)
    return float(GOING_TO_COMPLETE_FALLBACK_HOURS)


def _might_complete_delay(context: CallOutcomeContext, data: MightCompleteData) -> float:
    if data.callback_datetime:
        # Whole hours, halves round up
        return float(math.floor(hours_until(data.callback_datetime, context.captured_at) + 0.5))
    return 0.0


def _magic_link_action(data: GoingToCompleteData | MightCompleteData) -> list[NextAction]:
    if data.magic_link_sent:
        return []
    return [
        NextAction(
            type="send_magic_link",
            description="Send magic link so the customer can complete their form",
            required=True,
            priority="high",
        )
    ]


def _going_to_complete_actions(context: CallOutcomeContext, data: GoingToCompleteData) -> list[NextAction]:
    actions = _magic_link_action(data)
    if data.callback_datetime:
        actions.append(
            NextAction(
                type="schedule_callback",
                description="Schedule follow-up call",
                required=True,
                priority="medium",
                due_date=data.callback_datetime,
                parameters={"reason": data.callback_reason or "Follow up on form completion"},
            )
        )
    actions.append(
        NextAction(
            type="send_sms",
            description="Send form completion reminder",
            priority="medium",
            parameters={"message_type": "going_to_complete_reminder"},
        )
    )
    return actions


def _might_complete_actions(context: CallOutcomeContext, data: MightCompleteData) -> list[NextAction]:
    actions = _magic_link_action(data)
    if data.callback_datetime:
        actions.append(
            NextAction(
                type="schedule_callback",
                description="Schedule follow-up call",
                required=True,
                priority="medium",
                due_date=data.callback_datetime,
                parameters={"reason": data.callback_reason or "Customer considering form completion"},
            )
        )
    else:
        actions.append(
            NextAction(
                type="flag_for_review",
                description="Agent to decide follow-up timing",
                priority="low",
            )
        )
    return actions


def _intent_extras(context: CallOutcomeContext, data: GoingToCompleteData | MightCompleteData) -> dict:
    return {
        "callback_datetime": data.callback_datetime,
        "callback_reason": data.callback_reason,
        "magic_link_sent": data.magic_link_sent,
        "notes": data.notes,
    }


going_to_complete_handler = make_handler(
    OutcomeType.GOING_TO_COMPLETE,
    validate=_validate_intent,
    delay_hours=_going_to_complete_delay,
    next_actions=_going_to_complete_actions,
    result_extras=_intent_extras,
)

might_complete_handler = make_handler(
    OutcomeType.MIGHT_COMPLETE,
    validate=_validate_intent,
    delay_hours=_might_complete_delay,
    next_actions=_might_complete_actions,
    result_extras=_intent_extras,
)


# --- call_back --------------------------------------------------------------


def _validate_call_back(context: CallOutcomeContext, data: CallbackData) -> ValidationResult:
    errors = []
    if data.callback_datetime is None:
        errors.append("Callback datetime is required for callback requests")
    elif data.callback_datetime <= context.captured_at:
        errors.append("Callback datetime must be in the future")
    return validation_result(errors, [], required_fields=("callback_datetime",))


def _call_back_delay(context: CallOutcomeContext, data: CallbackData) -> float:
    if data.callback_datetime:
        return hours_until(data.callback_datetime, context.captured_at)
    return 0.0


def _call_back_actions(context: CallOutcomeContext, data: CallbackData) -> list[NextAction]:
    return [
        NextAction(
            type="schedule_callback",
            description="Call the customer back at the requested time",
            required=True,
            priority="high",
            due_date=data.callback_datetime,
            parameters={"reason": data.callback_reason or "Customer requested callback"},
        ),
        NextAction(
            type="send_sms",
            description="Confirm the callback time by SMS",
            priority="low",
            parameters={"message_type": "callback_confirmation"},
        ),
    ]


def _call_back_extras(context: CallOutcomeContext, data: CallbackData) -> dict:
    return {
        "callback_datetime": data.callback_datetime,
        "callback_reason": data.callback_reason or "Customer requested callback",
        "notes": data.notes,
    }


call_back_handler = make_handler(
    OutcomeType.CALL_BACK,
    validate=_validate_call_back,
    delay_hours=_call_back_delay,
    next_actions=_call_back_actions,
    result_extras=_call_back_extras,
    required_fields=("callback_datetime",),
)


# --- missed_call ------------------------------------------------------------


def _validate_missed_call(context: CallOutcomeContext, data: MissedCallData) -> ValidationResult:
    errors = []
    warnings = []
    if data.missed_call_time is None:
        errors.append("Missed call time is required")
    elif data.missed_call_time > context.captured_at:
        errors.append("Missed call time cannot be in the future")
    elif hours_since(data.missed_call_time, context.captured_at) > MISSED_CALL_STALE_HOURS:
        warnings.append("Missed call is more than 24 hours old")

    if context.call_duration_seconds and context.call_duration_seconds > MISSED_CALL_MAX_DURATION_SECONDS:
        warnings.append("Call duration suggests the call was answered - check the outcome")

    return validation_result(errors, warnings, required_fields=("missed_call_time",))


def _missed_call_delay(context: CallOutcomeContext, data: MissedCallData) -> float:
    if data.missed_call_time is None:
        return 0.0
    age = hours_since(data.missed_call_time, context.captured_at)
    if age < 1:
        return 0.0
    if age < 4:
        return 0.25
    return 0.5


def _missed_call_actions(context: CallOutcomeContext, data: MissedCallData) -> list[NextAction]:
    callback_at = context.captured_at + timedelta(hours=_missed_call_delay(context, data))
    return [
        NextAction(
            type="schedule_callback",
            description="Return the customer's missed call",
            required=True,
            priority="critical",
            due_date=callback_at,
            parameters={"reason": "Customer called in and we missed it"},
        ),
        NextAction(
            type="send_sms",
            description="Acknowledge the missed call",
            priority="high",
            parameters={"message_type": "missed_call_acknowledgement"},
        ),
        NextAction(
            type="flag_for_review",
            description="Inbound interest - prioritise this customer",
            required=True,
            priority="critical",
        ),
    ]


def _missed_call_extras(context: CallOutcomeContext, data: MissedCallData) -> dict:
    return {
        "callback_datetime": context.captured_at + timedelta(hours=_missed_call_delay(context, data)),
        "callback_reason": "Return missed inbound call",
        "notes": data.notes,
    }


missed_call_handler = make_handler(
    OutcomeType.MISSED_CALL,
    validate=_validate_missed_call,
    delay_hours=_missed_call_delay,
    next_actions=_missed_call_actions,
    result_extras=_missed_call_extras,
    required_fields=("missed_call_time",),
)

HANDLERS = (
    completed_form_handler,
    going_to_complete_handler,
    might_complete_handler,
    call_back_handler,
    missed_call_handler,
)
