"""
Queue and conversion transition decisions.

Pure functions only. The disposition pipeline, the queue transition service
and the leak monitor all decide conversions through this module so the
three paths can never disagree.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..domain.models import (
    OUTSTANDING_REQUESTS,
    QUEUE_COMPLETED,
    QUEUE_CONVERTED,
    UNSIGNED_USERS,
    ConversionType,
    OutcomeResult,
    UserStatus,
)
from ..handlers.base import OutcomeHandler
from ..scoring.service import PriorityScore

# (from_queue, to_queue) transitions that normally imply a conversion
LEAK_PATTERNS: tuple[tuple[str, str | None], ...] = (
    (UNSIGNED_USERS, OUTSTANDING_REQUESTS),
    (UNSIGNED_USERS, None),
    (OUTSTANDING_REQUESTS, None),
)

EXCLUDED_REQUIREMENT_TYPES = frozenset(
    {
        "signature",
        "vehicle_registration",
        "cfa",
        "solicitor_letter_of_authority",
        "letter_of_authority",
    }
)
BASE_ID_DOCUMENT_REASON = "base requirement for claim."


@dataclass(frozen=True, slots=True)
class TransitionDecision:
    convert: bool
    conversion_type: ConversionType | None = None
    conversion_reason: str | None = None
    needs_manual_review: bool = False
    close_queue_status: str | None = None
    schedule_callback: bool = False


@dataclass(frozen=True, slots=True)
class ConversionDecision:
    should_log: bool
    conversion_type: ConversionType | None = None
    reason: str | None = None


def decide_transition(
    score: PriorityScore,
    result: OutcomeResult,
    handler: OutcomeHandler,
    max_score: int = 200,
) -> TransitionDecision:
    """Whether this disposition removes the user from the active pool."""
    triggers = handler.scoring_rule.triggers_conversion
    convert = triggers or (score.is_bounded and score.final_score >= max_score)
    has_callback = result.callback_datetime is not None

    if convert:
        if result.conversions:
            conversion_type = result.conversions[0].type
            reason = result.conversions[0].reason
        elif handler.conversion_type is not None:
            conversion_type = handler.conversion_type
            reason = handler.description
        else:
            conversion_type = ConversionType.SCORE_THRESHOLD
            reason = f"Score reached {score.final_score}"
        return TransitionDecision(
            convert=True,
            conversion_type=conversion_type,
            conversion_reason=reason,
            close_queue_status=QUEUE_CONVERTED,
        )

    return TransitionDecision(
        convert=False,
        needs_manual_review=score.final_score >= max_score,
        close_queue_status=QUEUE_COMPLETED if has_callback else None,
        schedule_callback=has_callback,
    )


def is_leak_pattern(from_queue: str | None, to_queue: str | None) -> bool:
    return (from_queue, to_queue) in LEAK_PATTERNS


def is_valid_pending_requirement(document_type: str | None, reason: str | None) -> bool:
    kind = (document_type or "").strip().lower()
    if kind in EXCLUDED_REQUIREMENT_TYPES:
        return False
    if kind == "id_document" and (reason or "").strip().lower() == BASE_ID_DOCUMENT_REASON:
        return False
    return True


def count_valid_pending_requirements(requirements: Iterable[Mapping[str, Any]]) -> int:
    """Count pending requirement rows that actually block completion."""
    return sum(
        1
        for req in requirements
        if is_valid_pending_requirement(req.get("document_type"), req.get("requirement_reason"))
    )


def should_log_conversion(
    from_queue: str | None, to_queue: str | None, status: UserStatus
) -> ConversionDecision:
    """Re-derive whether a queue exit is a real conversion from the user's case state."""
    if from_queue == UNSIGNED_USERS and to_queue is None and status.has_signature:
        return ConversionDecision(
            True,
            ConversionType.SIGNATURE_OBTAINED,
            "User provided signature - moved from unsigned queue",
        )

    if from_queue == OUTSTANDING_REQUESTS and to_queue is None and status.pending_requirements == 0:
        return ConversionDecision(
            True,
            ConversionType.REQUIREMENTS_COMPLETED,
            "All outstanding requirements have been fulfilled - user complete",
        )

    return ConversionDecision(False)
