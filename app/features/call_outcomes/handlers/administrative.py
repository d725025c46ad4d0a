"""
Administrative outcomes. Opt-outs are compliance events: notes are mandatory
and the user leaves every queue immediately.
"""

from ..domain.models import (
    CallOutcomeContext,
    ConversionHint,
    ConversionType,
    NextAction,
    OutcomeType,
    ValidationResult,
)
from ..domain.payloads import DoNotContactData
from .base import is_short_call, make_handler, validation_result


def _validate_do_not_contact(context: CallOutcomeContext, data: DoNotContactData) -> ValidationResult:
    errors = []
    warnings = []

    if not data.notes:
        errors.append("Notes are required for do-not-contact outcomes (compliance record)")
    if not data.reason:
        warnings.append("Consider recording a structured opt-out reason")
    if data.confirmation_sent is None:
        warnings.append("Indicate whether an opt-out confirmation was sent to the customer")
    if is_short_call(context):
        warnings.append("Very short call - confirm the customer explicitly requested no contact")

    return validation_result(errors, warnings, required_fields=("notes",))


def _do_not_contact_actions(context: CallOutcomeContext, data: DoNotContactData) -> list[NextAction]:
    actions = [
        NextAction(
            type="remove_from_queue",
            description="Remove user from all calling queues immediately",
            required=True,
            priority="critical",
        ),
        NextAction(
            type="update_user_data",
            description="Record opt-out preference",
            required=True,
            priority="critical",
            parameters={
                "contact_preference": "do_not_contact",
                "opt_out_reason": data.reason,
                "opt_out_at": context.captured_at.isoformat(),
            },
        ),
    ]
    if data.send_confirmation:
        actions.append(
            NextAction(
                type="send_sms",
                description="Send opt-out confirmation",
                priority="high",
                parameters={"message_type": "opt_out_confirmation"},
            )
        )
    if data.legal_review:
        actions.append(
            NextAction(
                type="flag_for_review",
                description="Compliance review of opt-out request",
                required=True,
                priority="high",
                parameters={"review_type": "compliance"},
            )
        )
    return actions


def _do_not_contact_extras(context: CallOutcomeContext, data: DoNotContactData) -> dict:
    return {
        "notes": data.notes,
        "conversions": [
            ConversionHint(
                ConversionType.OPTED_OUT,
                data.reason or "Customer requested not to be contacted",
            )
        ],
    }


do_not_contact_handler = make_handler(
    OutcomeType.DO_NOT_CONTACT,
    validate=_validate_do_not_contact,
    delay_hours=lambda context, data: 0.0,
    next_actions=_do_not_contact_actions,
    result_extras=_do_not_contact_extras,
    required_fields=("notes",),
)

HANDLERS = (do_not_contact_handler,)
