"""
Disposition service - records the outcome of a finished call.

One database transaction per call session:
outcome record -> callbacks -> score -> queue/conversion -> outbound actions
-> audit entry. Any storage failure rolls the whole unit back.
"""

from dataclasses import dataclass, field

import psycopg

from app.db.helpers import DatabaseError
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import TransitionPersistenceError
from ..domain.models import (
    CallEndedEvent,
    CallOutcomeContext,
    Callback,
    CallSession,
    ConversionRecord,
    DispositionSubmission,
    OutcomeRecord,
    OutcomeResult,
    OutcomeType,
    QueueTransitionAuditEntry,
    UserCallScore,
)
from ..domain.payloads import payload_from_submission
from ..handlers import OutcomeHandlerRegistry, outcome_registry
from ..handlers.base import OutcomeHandler
from ..repository.outcome_repository import CallOutcomeRepository, call_outcome_repository
from ..repository.score_repository import ScoreRepository, score_repository
from ..repository.user_status_repository import UserStatusRepository, user_status_repository
from ..scoring.service import PriorityScore, PriorityScoringService, ScoringContext, priority_scoring_service
from ..transitions.policy import TransitionDecision, decide_transition
from .conversion_logger import ConversionLogger, conversion_logger
from .transition_audit import TransitionAuditWriter, transition_audit_writer

logger = get_logger(__name__)

PREVIOUS_OUTCOME_LOOKBACK = 10


@dataclass(slots=True)
class DispositionOutcome:
    """What a committed disposition changed."""

    session_id: str
    user_id: int
    result: OutcomeResult
    score: PriorityScore
    decision: TransitionDecision
    outcome_id: str
    audit_id: str
    conversion_id: str | None = None
    callback_id: str | None = None
    callbacks_closed: int = 0
    actions_queued: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def converted(self) -> bool:
        return self.decision.convert


class DispositionService:
    def __init__(
        self,
        db=None,
        registry: OutcomeHandlerRegistry | None = None,
        outcomes: CallOutcomeRepository | None = None,
        scores: ScoreRepository | None = None,
        user_status: UserStatusRepository | None = None,
        scoring: PriorityScoringService | None = None,
        conversions: ConversionLogger | None = None,
        audit: TransitionAuditWriter | None = None,
    ):
        self.db = db or db_pool
        self.registry = registry or outcome_registry
        self.outcomes = outcomes or call_outcome_repository
        self.scores = scores or score_repository
        self.user_status = user_status or user_status_repository
        self.scoring = scoring or priority_scoring_service
        self.conversions = conversions or conversion_logger
        self.audit = audit or transition_audit_writer

    async def record_outcome(
        self, submission: DispositionSubmission, call_event: CallEndedEvent | None = None
    ) -> DispositionOutcome:
        """
        Dispatch, score and persist one disposition.

        Raises:
            UnknownOutcomeType, ValidationFailed, OutcomeExecutionFailed:
                rejected before anything is written.
            TransitionPersistenceError: missing or already disposed session,
                or a storage failure (the transaction was rolled back).
        """
        outcome_type = OutcomeType.parse(submission.outcome_type)
        handler = self.registry.get_handler(outcome_type)
        payload = payload_from_submission(outcome_type, submission)

        try:
            async with self.db.transaction() as conn:
                session = await self._load_session(conn, submission.session_id)
                context = await self._build_context(conn, session, submission, call_event)

                result = self.registry.dispatch(outcome_type, context, payload)

                if call_event:
                    await self.outcomes.apply_call_event(conn, call_event)

                return await self._persist(conn, session, context, handler, result)

        except (DatabaseError, psycopg.Error) as e:
            logger.error(
                "Disposition rolled back",
                session_id=submission.session_id,
                outcome_type=outcome_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransitionPersistenceError(
                f"Failed to persist outcome for session {submission.session_id}: {e}",
                session_id=submission.session_id,
                operation="persist",
                recoverable=getattr(e, "recoverable", True),
            ) from e

    async def _load_session(self, conn, session_id: str) -> CallSession:
        session = await self.outcomes.get_session(conn, session_id)
        if session is None:
            raise TransitionPersistenceError(
                f"Call session {session_id} not found",
                session_id=session_id,
                operation="load_session",
                recoverable=False,
            )

        if session.last_outcome_type or await self.outcomes.has_outcome(conn, session_id):
            raise TransitionPersistenceError(
                f"Call session {session_id} already has an outcome recorded",
                session_id=session_id,
                operation="already_disposed",
                recoverable=False,
            )
        return session

    async def _build_context(
        self,
        conn,
        session: CallSession,
        submission: DispositionSubmission,
        call_event: CallEndedEvent | None,
    ) -> CallOutcomeContext:
        previous = await self.outcomes.recent_outcome_types(
            conn, session.user_id, PREVIOUS_OUTCOME_LOOKBACK
        )
        duration = session.duration_seconds
        call_sid = session.call_sid
        started_at = session.started_at
        if call_event:
            duration = call_event.duration_seconds if call_event.duration_seconds is not None else duration
            call_sid = call_event.call_sid or call_sid
            started_at = call_event.connected_at or started_at

        return CallOutcomeContext(
            session_id=session.id,
            user_id=session.user_id,
            agent_id=submission.agent_id,
            call_duration_seconds=duration,
            call_started_at=started_at,
            call_sid=call_sid,
            previous_outcomes=previous,
        )

    async def _persist(
        self,
        conn,
        session: CallSession,
        context: CallOutcomeContext,
        handler: OutcomeHandler,
        result: OutcomeResult,
    ) -> DispositionOutcome:
        user_id = session.user_id
        captured_at = context.captured_at

        outcome_id = await self.outcomes.insert_outcome(
            conn,
            OutcomeRecord(
                session_id=session.id,
                user_id=user_id,
                agent_id=context.agent_id,
                outcome_type=result.outcome_type,
                notes=result.notes,
                captured_at=captured_at,
                score_adjustment=result.score_adjustment,
                next_call_delay_hours=result.next_call_delay_hours,
                magic_link_sent=result.magic_link_sent,
                documents_requested=list(result.documents_requested),
            ),
        )
        await self.outcomes.update_session_outcome(
            conn, session.id, result, context.agent_id, captured_at
        )

        # A new disposition settles every open callback for the user
        callbacks_closed = await self.outcomes.complete_open_callbacks(conn, user_id)
        callback_id = None
        if result.callback_datetime is not None:
            callback_id = await self.outcomes.create_callback(
                conn,
                Callback(
                    user_id=user_id,
                    scheduled_for=result.callback_datetime,
                    reason=result.callback_reason or handler.display_name,
                    original_session_id=session.id,
                ),
            )

        existing = await self.scores.get_score(conn, user_id)
        queue_type = session.source_queue_type or (existing.current_queue_type if existing else None)
        score = await self._score(conn, user_id, existing, queue_type, result)
        decision = decide_transition(score, result, handler, max_score=self.scoring.max_score)

        conversion_id = None
        if decision.convert:
            conversion, _ = await self.conversions.log_conversion(
                conn,
                ConversionRecord(
                    user_id=user_id,
                    previous_queue_type=queue_type or "unknown",
                    conversion_type=decision.conversion_type,
                    conversion_reason=decision.conversion_reason
                    or f"Outcome: {result.outcome_type.value}, final score: {score.final_score}",
                    final_score=score.final_score,
                    total_attempts=(existing.total_attempts if existing else 0) + 1,
                    converted_at=captured_at,
                    source="call_outcome",
                    primary_agent_id=context.agent_id,
                ),
            )
            conversion_id = conversion.id

        await self.scores.upsert_score(
            conn,
            UserCallScore(
                user_id=user_id,
                current_score=score.final_score,
                is_active=not decision.convert,
                current_queue_type=queue_type,
                last_reset_date=captured_at if score.is_fresh_start else (existing.last_reset_date if existing else None),
                last_outcome=result.outcome_type.value,
                total_attempts=(existing.total_attempts if existing else 0) + 1,
                last_call_at=captured_at,
            ),
        )

        if decision.close_queue_status:
            await self.scores.close_open_entries(conn, user_id, decision.close_queue_status)

        actions_queued = await self.outcomes.insert_actions(
            conn, session.id, user_id, result.next_actions
        )

        audit_id = await self.audit.record(
            conn,
            QueueTransitionAuditEntry(
                user_id=user_id,
                from_queue=queue_type,
                to_queue=None if decision.convert else queue_type,
                reason=f"Call outcome: {result.outcome_type.value}",
                source="call_outcome",
                agent_id=context.agent_id,
                session_id=session.id,
                conversion_id=conversion_id,
                conversion_logged=decision.convert,
                timestamp=captured_at,
                metadata={
                    "outcome_type": result.outcome_type.value,
                    "final_score": score.final_score,
                    "needs_manual_review": decision.needs_manual_review,
                    "scoring_degraded": score.scoring_degraded,
                },
            ),
        )

        logger.info(
            "Call outcome recorded",
            session_id=session.id,
            user_id=user_id,
            outcome_type=result.outcome_type.value,
            final_score=score.final_score,
            converted=decision.convert,
            queue_status=decision.close_queue_status,
            needs_manual_review=decision.needs_manual_review,
            callback_scheduled=callback_id is not None,
        )

        warnings = list(result.warnings)
        if score.scoring_degraded:
            warnings.append("Scoring degraded - score unchanged")
        if decision.needs_manual_review:
            warnings.append("Score at or above maximum - flagged for manual review")

        return DispositionOutcome(
            session_id=session.id,
            user_id=user_id,
            result=result,
            score=score,
            decision=decision,
            outcome_id=outcome_id,
            audit_id=audit_id,
            conversion_id=conversion_id,
            callback_id=callback_id,
            callbacks_closed=callbacks_closed,
            actions_queued=actions_queued,
            warnings=warnings,
        )

    async def _score(
        self,
        conn,
        user_id: int,
        existing: UserCallScore | None,
        queue_type: str | None,
        result: OutcomeResult,
    ) -> PriorityScore:
        requirements_changed = await self.user_status.get_requirements_changed_date(conn, user_id)
        user_created_at = await self.user_status.get_user_created_at(conn, user_id)

        context = ScoringContext(
            user_id=user_id,
            current_score=existing.current_score if existing else 0,
            has_existing_record=existing is not None,
            current_queue_type=queue_type,
            previous_queue_type=existing.current_queue_type if existing else None,
            last_outcome=result.outcome_type.value,
            total_attempts=existing.total_attempts if existing else 0,
            requirements_changed_date=requirements_changed,
            last_reset_date=existing.last_reset_date if existing else None,
            user_created_at=user_created_at or (existing.created_at if existing else None),
        )
        try:
            return self.scoring.calculate_priority(context)
        except Exception as e:
            logger.warning(
                "Scoring failed, keeping current score",
                user_id=user_id,
                outcome_type=result.outcome_type.value,
                error=str(e),
            )
            return PriorityScore(
                user_id=user_id,
                final_score=context.current_score,
                scoring_degraded=True,
            )


disposition_service = DispositionService()
