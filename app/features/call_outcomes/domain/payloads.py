"""
Per-outcome disposition payloads.

Each OutcomeType carries its own structured payload, selected by the same
tag as its handler. build_payload() narrows a generic submission down to the
fields that payload declares.
"""

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import Any

from .models import DispositionSubmission, OutcomeType


@dataclass(slots=True)
class OutcomePayload:
    notes: str | None = None


@dataclass(slots=True)
class CompletedFormData(OutcomePayload):
    documents_requested: list[str] = field(default_factory=list)


@dataclass(slots=True)
class GoingToCompleteData(OutcomePayload):
    callback_datetime: datetime | None = None
    callback_reason: str | None = None
    magic_link_sent: bool = False


@dataclass(slots=True)
class MightCompleteData(OutcomePayload):
    callback_datetime: datetime | None = None
    callback_reason: str | None = None
    magic_link_sent: bool = False


@dataclass(slots=True)
class CallbackData(OutcomePayload):
    callback_datetime: datetime | None = None
    callback_reason: str | None = None


@dataclass(slots=True)
class MissedCallData(OutcomePayload):
    missed_call_time: datetime | None = None


@dataclass(slots=True)
class NoAnswerData(OutcomePayload):
    pass


@dataclass(slots=True)
class HungUpData(OutcomePayload):
    pass


@dataclass(slots=True)
class BadNumberData(OutcomePayload):
    reason: str | None = None


@dataclass(slots=True)
class NotInterestedData(OutcomePayload):
    reason: str | None = None


@dataclass(slots=True)
class NoClaimData(OutcomePayload):
    reason: str | None = None


@dataclass(slots=True)
class DoNotContactData(OutcomePayload):
    reason: str | None = None
    confirmation_sent: bool | None = None
    send_confirmation: bool = False
    legal_review: bool = False


PAYLOAD_TYPES: dict[OutcomeType, type[OutcomePayload]] = {
    OutcomeType.COMPLETED_FORM: CompletedFormData,
    OutcomeType.GOING_TO_COMPLETE: GoingToCompleteData,
    OutcomeType.MIGHT_COMPLETE: MightCompleteData,
    OutcomeType.CALL_BACK: CallbackData,
    OutcomeType.MISSED_CALL: MissedCallData,
    OutcomeType.NO_ANSWER: NoAnswerData,
    OutcomeType.HUNG_UP: HungUpData,
    OutcomeType.BAD_NUMBER: BadNumberData,
    OutcomeType.NOT_INTERESTED: NotInterestedData,
    OutcomeType.NO_CLAIM: NoClaimData,
    OutcomeType.DO_NOT_CONTACT: DoNotContactData,
}


def _as_utc(value: Any) -> Any:
    """Naive datetimes from forms are taken as UTC."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def build_payload(outcome_type: OutcomeType, values: dict[str, Any]) -> OutcomePayload:
    """Instantiate the payload for outcome_type from a loose mapping of fields."""
    payload_cls = PAYLOAD_TYPES[outcome_type]
    accepted = {f.name for f in fields(payload_cls)}
    kwargs = {k: _as_utc(v) for k, v in values.items() if k in accepted and v is not None}
    if isinstance(kwargs.get("notes"), str):
        kwargs["notes"] = kwargs["notes"].strip() or None
    return payload_cls(**kwargs)


def payload_from_submission(
    outcome_type: OutcomeType, submission: DispositionSubmission
) -> OutcomePayload:
    values = {f.name: getattr(submission, f.name) for f in fields(DispositionSubmission)}
    return build_payload(outcome_type, values)
