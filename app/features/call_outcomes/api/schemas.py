"""
Call outcome API request and response models.
Used by the router for input validation and output formatting.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..domain.models import CallEndedEvent, DispositionSubmission, NextAction


class CallEventPayload(BaseModel):
    """Terminal telephony event attached to a disposition."""

    call_sid: str | None = Field(default=None, description="Telephony provider call id")
    duration_seconds: int | None = Field(default=None, ge=0, description="Call duration")
    connected_at: datetime | None = None
    ended_at: datetime | None = None


class DispositionRequest(BaseModel):
    """Agent disposition for a finished call."""

    agent_id: int = Field(..., description="Agent recording the outcome")
    outcome_type: str = Field(..., min_length=1, description="One of the registered outcome types")
    notes: str | None = Field(default=None, max_length=5000)
    callback_datetime: datetime | None = None
    callback_reason: str | None = Field(default=None, max_length=500)
    documents_requested: list[str] = Field(default_factory=list)
    missed_call_time: datetime | None = None
    reason: str | None = Field(default=None, max_length=500)
    confirmation_sent: bool | None = None
    send_confirmation: bool = False
    legal_review: bool = False
    magic_link_sent: bool = False
    call_event: CallEventPayload | None = None

    def to_submission(self, session_id: str) -> DispositionSubmission:
        return DispositionSubmission(
            session_id=session_id,
            agent_id=self.agent_id,
            outcome_type=self.outcome_type,
            notes=self.notes,
            callback_datetime=self.callback_datetime,
            callback_reason=self.callback_reason,
            documents_requested=list(self.documents_requested),
            missed_call_time=self.missed_call_time,
            reason=self.reason,
            confirmation_sent=self.confirmation_sent,
            send_confirmation=self.send_confirmation,
            legal_review=self.legal_review,
            magic_link_sent=self.magic_link_sent,
        )

    def to_call_event(self, session_id: str) -> CallEndedEvent | None:
        if self.call_event is None:
            return None
        return CallEndedEvent(
            session_id=session_id,
            call_sid=self.call_event.call_sid,
            duration_seconds=self.call_event.duration_seconds,
            connected_at=self.call_event.connected_at,
            ended_at=self.call_event.ended_at,
        )


class NextActionResponse(BaseModel):
    type: str
    description: str
    required: bool
    priority: str
    due_date: datetime | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_action(cls, action: NextAction) -> "NextActionResponse":
        return cls(
            type=action.type,
            description=action.description,
            required=action.required,
            priority=action.priority,
            due_date=action.due_date,
            parameters=dict(action.parameters),
        )


class DispositionResponse(BaseModel):
    session_id: str
    user_id: int
    outcome_type: str
    outcome_id: str
    final_score: int
    score_adjustment: int
    is_fresh_start: bool
    converted: bool
    conversion_type: str | None = None
    conversion_id: str | None = None
    needs_manual_review: bool = False
    next_call_delay_hours: float
    callback_datetime: datetime | None = None
    callback_id: str | None = None
    next_actions: list[NextActionResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ScoringRuleResponse(BaseModel):
    score_delta: int
    triggers_conversion: bool
    description: str


class OutcomeTypeResponse(BaseModel):
    outcome_type: str
    display_name: str
    description: str
    category: str
    scoring_rule: ScoringRuleResponse
    required_fields: list[str] = Field(default_factory=list)


class ScoreExplainRequest(BaseModel):
    user_id: int
    current_score: int = Field(default=0, ge=0)
    has_existing_record: bool = True
    current_queue_type: str | None = None
    previous_queue_type: str | None = None
    last_outcome: str | None = None
    total_attempts: int = Field(default=0, ge=0)
    requirements_changed_date: datetime | None = None
    last_reset_date: datetime | None = None
    user_created_at: datetime | None = None

    @field_validator("requirements_changed_date", "last_reset_date", "user_created_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Naive datetimes are taken as UTC so mixed inputs stay comparable."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v
