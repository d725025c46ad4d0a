"""
Domain subpackage for the call outcome pipeline.
"""

from .errors import (
    CallOutcomeError,
    OutcomeExecutionFailed,
    ReconciliationRepairFailed,
    ScoringDegraded,
    TransitionPersistenceError,
    UnknownOutcomeType,
    ValidationFailed,
)
from .models import (
    CallEndedEvent,
    CallOutcomeContext,
    CallSession,
    Callback,
    ConversionHint,
    ConversionRecord,
    ConversionType,
    DispositionSubmission,
    NextAction,
    OutcomeCategory,
    OutcomeRecord,
    OutcomeResult,
    OutcomeType,
    QueueEntry,
    QueueTransitionAuditEntry,
    ScoringRule,
    UserCallScore,
    UserStatus,
    ValidationResult,
)
from .payloads import PAYLOAD_TYPES, OutcomePayload, build_payload, payload_from_submission

__all__ = [
    "CallEndedEvent",
    "CallOutcomeContext",
    "CallOutcomeError",
    "CallSession",
    "Callback",
    "ConversionHint",
    "ConversionRecord",
    "ConversionType",
    "DispositionSubmission",
    "NextAction",
    "OutcomeCategory",
    "OutcomeExecutionFailed",
    "OutcomePayload",
    "OutcomeRecord",
    "OutcomeResult",
    "OutcomeType",
    "PAYLOAD_TYPES",
    "QueueEntry",
    "QueueTransitionAuditEntry",
    "ReconciliationRepairFailed",
    "ScoringDegraded",
    "ScoringRule",
    "TransitionPersistenceError",
    "UnknownOutcomeType",
    "UserCallScore",
    "UserStatus",
    "ValidationFailed",
    "ValidationResult",
    "build_payload",
    "payload_from_submission",
]
