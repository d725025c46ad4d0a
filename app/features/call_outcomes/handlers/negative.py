"""
Negative outcomes: the lead is unreachable, uninterested or ineligible.
"""

from ..domain.models import (
    CallOutcomeContext,
    ConversionHint,
    ConversionType,
    NextAction,
    OutcomeType,
    ValidationResult,
)
from ..domain.payloads import BadNumberData, NoClaimData, NotInterestedData
from .base import make_handler, validation_result

BAD_NUMBER_DELAY_HOURS = 48.0
NOT_INTERESTED_DELAY_HOURS = 48.0


def _validate_bad_number(context: CallOutcomeContext, data: BadNumberData) -> ValidationResult:
    warnings = []
    if not data.reason:
        warnings.append("Consider specifying why the number is bad (disconnected, wrong person, ...)")
    return validation_result([], warnings)


def _bad_number_actions(context: CallOutcomeContext, data: BadNumberData) -> list[NextAction]:
    return [
        NextAction(
            type="update_user_data",
            description="Mark phone number as invalid",
            required=True,
            priority="high",
            parameters={"phone_status": "invalid", "reason": data.reason},
        ),
        NextAction(
            type="flag_for_review",
            description="Find an alternative contact number",
            priority="medium",
        ),
    ]


def _bad_number_extras(context: CallOutcomeContext, data: BadNumberData) -> dict:
    return {"notes": data.notes or data.reason}


bad_number_handler = make_handler(
    OutcomeType.BAD_NUMBER,
    validate=_validate_bad_number,
    delay_hours=lambda context, data: BAD_NUMBER_DELAY_HOURS,
    next_actions=_bad_number_actions,
    result_extras=_bad_number_extras,
)


def _validate_needs_notes(context: CallOutcomeContext, data: NotInterestedData | NoClaimData) -> ValidationResult:
    warnings = []
    if not data.notes:
        warnings.append("Notes are recommended to explain this outcome")
    return validation_result([], warnings)


def _not_interested_actions(context: CallOutcomeContext, data: NotInterestedData) -> list[NextAction]:
    return [
        NextAction(
            type="flag_for_review",
            description="Customer not interested - manual review before further contact",
            required=True,
            priority="medium",
            parameters={"reason": data.reason},
        ),
        NextAction(
            type="update_user_data",
            description="Record lack of interest",
            priority="low",
            parameters={"interest_status": "not_interested"},
        ),
    ]


def _not_interested_extras(context: CallOutcomeContext, data: NotInterestedData) -> dict:
    return {"notes": data.notes or data.reason}


not_interested_handler = make_handler(
    OutcomeType.NOT_INTERESTED,
    validate=_validate_needs_notes,
    delay_hours=lambda context, data: NOT_INTERESTED_DELAY_HOURS,
    next_actions=_not_interested_actions,
    result_extras=_not_interested_extras,
)


def _no_claim_actions(context: CallOutcomeContext, data: NoClaimData) -> list[NextAction]:
    return [
        NextAction(
            type="remove_from_queue",
            description="Remove user from all calling queues",
            required=True,
            priority="critical",
        ),
        NextAction(
            type="update_user_data",
            description="Record that the customer has no valid claim",
            required=True,
            priority="high",
            parameters={"claim_status": "no_claim", "reason": data.reason},
        ),
    ]


def _no_claim_extras(context: CallOutcomeContext, data: NoClaimData) -> dict:
    return {
        "notes": data.notes or data.reason,
        "conversions": [
            ConversionHint(
                ConversionType.NO_LONGER_ELIGIBLE,
                data.reason or "Customer has no valid claim",
            )
        ],
    }


no_claim_handler = make_handler(
    OutcomeType.NO_CLAIM,
    validate=_validate_needs_notes,
    delay_hours=lambda context, data: 0.0,
    next_actions=_no_claim_actions,
    result_extras=_no_claim_extras,
)

HANDLERS = (bad_number_handler, not_interested_handler, no_claim_handler)
