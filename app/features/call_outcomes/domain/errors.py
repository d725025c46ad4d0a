"""
Error taxonomy for the call outcome pipeline.

Dispatch errors (unknown type, validation, handler defect) are recovered at
the dispatch boundary and returned to the caller. Persistence errors roll
back the unit of work and propagate for retry. Scoring and reconciliation
errors are contained and only surface through logs and metrics.
"""


class CallOutcomeError(Exception):
    """Base exception for call outcome operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class UnknownOutcomeType(CallOutcomeError):
    """No handler is registered for the requested outcome type."""

    def __init__(self, outcome_type: str):
        super().__init__(
            f"Unknown outcome type: {outcome_type}", operation="dispatch", recoverable=False
        )
        self.outcome_type = outcome_type


class ValidationFailed(CallOutcomeError):
    """Disposition input rejected by the handler's validate step."""

    def __init__(self, outcome_type: str, errors: list[str], warnings: list[str] | None = None):
        super().__init__(
            f"Validation failed for {outcome_type}: {'; '.join(errors)}",
            operation="validate",
            recoverable=True,
        )
        self.outcome_type = outcome_type
        self.errors = list(errors)
        self.warnings = list(warnings or [])


class OutcomeExecutionFailed(CallOutcomeError):
    """Handler execute step reported failure or raised."""

    def __init__(self, outcome_type: str, reason: str):
        super().__init__(
            f"Outcome handler {outcome_type} failed: {reason}",
            operation="execute",
            recoverable=False,
        )
        self.outcome_type = outcome_type
        self.reason = reason


class ScoringDegraded(CallOutcomeError):
    """Scoring could not resolve an outcome; the delta is treated as 0."""

    def __init__(self, outcome_type: str):
        super().__init__(
            f"No scoring rule for outcome: {outcome_type}", operation="score", recoverable=True
        )
        self.outcome_type = outcome_type


class TransitionPersistenceError(CallOutcomeError):
    """Storage failure while committing a disposition; the whole unit rolled back."""

    def __init__(
        self,
        message: str,
        session_id: str | None = None,
        operation: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message, operation=operation, recoverable=recoverable)
        self.session_id = session_id


class ReconciliationRepairFailed(CallOutcomeError):
    """The leak monitor could not repair a specific audit entry."""

    def __init__(self, audit_id: str, user_id: int, reason: str):
        super().__init__(
            f"Recovery failed for audit entry {audit_id} (user {user_id}): {reason}",
            operation="reconcile",
            recoverable=True,
        )
        self.audit_id = audit_id
        self.user_id = user_id
        self.reason = reason
