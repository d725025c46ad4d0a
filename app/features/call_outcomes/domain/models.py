"""
Domain models for the call outcome pipeline.

Lightweight dataclasses shared by handlers, scoring, repositories and the
API layer. Rows read from Postgres are mapped into these shapes by the
repositories; nothing here talks to storage.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from .errors import UnknownOutcomeType

# Queue types
UNSIGNED_USERS = "unsigned_users"
OUTSTANDING_REQUESTS = "outstanding_requests"

# Queue entry statuses
QUEUE_PENDING = "pending"
QUEUE_ASSIGNED = "assigned"
QUEUE_COMPLETED = "completed"
QUEUE_CONVERTED = "converted"
QUEUE_INVALID = "invalid"
OPEN_QUEUE_STATUSES = (QUEUE_PENDING, QUEUE_ASSIGNED)

# Callback statuses
CALLBACK_PENDING = "pending"
CALLBACK_ACCEPTED = "accepted"
CALLBACK_COMPLETED = "completed"
CALLBACK_CANCELLED = "cancelled"
OPEN_CALLBACK_STATUSES = (CALLBACK_PENDING, CALLBACK_ACCEPTED)


class OutcomeType(StrEnum):
    COMPLETED_FORM = "completed_form"
    GOING_TO_COMPLETE = "going_to_complete"
    MIGHT_COMPLETE = "might_complete"
    CALL_BACK = "call_back"
    MISSED_CALL = "missed_call"
    NO_ANSWER = "no_answer"
    HUNG_UP = "hung_up"
    BAD_NUMBER = "bad_number"
    NOT_INTERESTED = "not_interested"
    NO_CLAIM = "no_claim"
    DO_NOT_CONTACT = "do_not_contact"

    @classmethod
    def parse(cls, value: "str | OutcomeType") -> "OutcomeType":
        """Strict lookup; unknown values are a reportable defect."""
        try:
            return cls(value)
        except ValueError:
            raise UnknownOutcomeType(str(value)) from None


class OutcomeCategory(StrEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    ADMINISTRATIVE = "administrative"


class ConversionType(StrEnum):
    COMPLETED = "completed"
    OPTED_OUT = "opted_out"
    NO_LONGER_ELIGIBLE = "no_longer_eligible"
    SCORE_THRESHOLD = "score_threshold"
    SIGNATURE_OBTAINED = "signature_obtained"
    REQUIREMENTS_COMPLETED = "requirements_completed"


@dataclass(frozen=True, slots=True)
class ScoringRule:
    score_delta: int
    triggers_conversion: bool
    description: str


@dataclass(slots=True)
class CallOutcomeContext:
    """Everything a handler may look at when judging a disposition."""

    session_id: str
    user_id: int
    agent_id: int
    call_duration_seconds: int | None = None
    call_started_at: datetime | None = None
    call_sid: str | None = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    # Most recent first
    previous_outcomes: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    required_fields: list[str] = field(default_factory=list)


@dataclass(slots=True)
class NextAction:
    """Typed action record handed to the external notification dispatcher."""

    type: str  # send_sms, send_magic_link, flag_for_review, escalate, schedule_callback, ...
    description: str
    required: bool = False
    priority: str = "medium"  # low, medium, high, critical
    due_date: datetime | None = None
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ConversionHint:
    type: ConversionType
    reason: str


@dataclass(slots=True)
class OutcomeResult:
    success: bool
    outcome_type: OutcomeType
    next_actions: list[NextAction]
    score_adjustment: int
    next_call_delay_hours: float
    callback_datetime: datetime | None = None
    callback_reason: str | None = None
    conversions: list[ConversionHint] = field(default_factory=list)
    notes: str | None = None
    magic_link_sent: bool = False
    documents_requested: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class CallEndedEvent:
    """Terminal call event from the telephony provider."""

    session_id: str
    call_sid: str | None = None
    duration_seconds: int | None = None
    connected_at: datetime | None = None
    ended_at: datetime | None = None


@dataclass(slots=True)
class DispositionSubmission:
    """Agent disposition as submitted from the UI."""

    session_id: str
    agent_id: int
    outcome_type: str
    notes: str | None = None
    callback_datetime: datetime | None = None
    callback_reason: str | None = None
    documents_requested: list[str] = field(default_factory=list)
    missed_call_time: datetime | None = None
    reason: str | None = None
    confirmation_sent: bool | None = None
    send_confirmation: bool = False
    legal_review: bool = False
    magic_link_sent: bool = False


@dataclass(slots=True)
class CallSession:
    id: str
    user_id: int
    agent_id: int
    source_queue_type: str | None
    call_sid: str | None = None
    started_at: datetime | None = None
    duration_seconds: int | None = None
    last_outcome_type: str | None = None


@dataclass(slots=True)
class OutcomeRecord:
    """Immutable disposition record, one per finished call session."""

    session_id: str
    user_id: int
    agent_id: int
    outcome_type: OutcomeType
    notes: str | None
    captured_at: datetime
    score_adjustment: int = 0
    next_call_delay_hours: float | None = None
    magic_link_sent: bool = False
    documents_requested: list[str] = field(default_factory=list)
    id: str | None = None


@dataclass(slots=True)
class UserCallScore:
    user_id: int
    current_score: int = 0
    is_active: bool = True
    current_queue_type: str | None = None
    last_reset_date: datetime | None = None
    last_outcome: str | None = None
    total_attempts: int = 0
    last_call_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class QueueEntry:
    id: str
    user_id: int
    queue_type: str
    priority_score: int
    status: str
    queue_reason: str | None = None


@dataclass(slots=True)
class ConversionRecord:
    user_id: int
    previous_queue_type: str
    conversion_type: str
    conversion_reason: str
    final_score: int
    total_attempts: int
    converted_at: datetime
    source: str
    primary_agent_id: int | None = None
    id: str | None = None


@dataclass(slots=True)
class QueueTransitionAuditEntry:
    user_id: int
    from_queue: str | None
    to_queue: str | None
    reason: str
    source: str
    conversion_logged: bool
    timestamp: datetime
    agent_id: int | None = None
    session_id: str | None = None
    conversion_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(slots=True)
class Callback:
    user_id: int
    scheduled_for: datetime
    reason: str
    original_session_id: str | None
    status: str = CALLBACK_PENDING
    id: str | None = None


@dataclass(slots=True)
class UserStatus:
    """Real-world case state read from the source of truth, not the score cache."""

    user_id: int
    has_signature: bool
    pending_requirements: int
