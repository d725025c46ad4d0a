"""
Universal queue transition service.

The single chokepoint for queue-type changes that do not come from a call
disposition (signature received, requirements fulfilled, admin moves).
Conversion eligibility is re-derived from the case system with the same
predicate the leak monitor uses.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.db.helpers import DatabaseError
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

from ..domain.models import OUTSTANDING_REQUESTS, UNSIGNED_USERS, ConversionRecord, QueueTransitionAuditEntry
from ..repository.score_repository import ScoreRepository, score_repository
from ..repository.user_status_repository import UserStatusRepository, user_status_repository
from ..transitions.policy import ConversionDecision, should_log_conversion
from .conversion_logger import ConversionLogger, conversion_logger
from .transition_audit import TransitionAuditWriter, transition_audit_writer

logger = get_logger(__name__)


@dataclass(slots=True)
class QueueTransitionRequest:
    user_id: int
    from_queue: str | None
    to_queue: str | None
    reason: str
    source: str
    agent_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    skip_conversion_check: bool = False


@dataclass(slots=True)
class QueueTransitionResult:
    success: bool
    transitioned: bool
    conversion_logged: bool = False
    conversion_id: str | None = None
    audit_trail: bool = False
    error: str | None = None


class QueueTransitionService:
    def __init__(
        self,
        db=None,
        scores: ScoreRepository | None = None,
        user_status: UserStatusRepository | None = None,
        conversions: ConversionLogger | None = None,
        audit: TransitionAuditWriter | None = None,
    ):
        self.db = db or db_pool
        self.scores = scores or score_repository
        self.user_status = user_status or user_status_repository
        self.conversions = conversions or conversion_logger
        self.audit = audit or transition_audit_writer

    async def transition_user_queue(self, request: QueueTransitionRequest) -> QueueTransitionResult:
        if not request.user_id or not request.reason or not request.source:
            return QueueTransitionResult(
                success=False,
                transitioned=False,
                error="Missing required fields: user_id, reason, source",
            )

        if request.from_queue == request.to_queue:
            return QueueTransitionResult(
                success=True, transitioned=False, error="No queue change detected"
            )

        now = datetime.now(UTC)
        try:
            async with self.db.transaction() as conn:
                conversion_id = None
                if not request.skip_conversion_check:
                    decision = await self._check_conversion_eligibility(conn, request)
                    if decision.should_log:
                        score = await self.scores.get_score(conn, request.user_id)
                        conversion, _ = await self.conversions.log_conversion(
                            conn,
                            ConversionRecord(
                                user_id=request.user_id,
                                previous_queue_type=request.from_queue,
                                conversion_type=decision.conversion_type,
                                conversion_reason=f"{decision.reason} | {request.reason}",
                                final_score=score.current_score if score else 0,
                                total_attempts=score.total_attempts if score else 0,
                                converted_at=now,
                                source=request.source,
                                primary_agent_id=request.agent_id,
                            ),
                        )
                        conversion_id = conversion.id

                updated = await self.scores.update_queue_type(conn, request.user_id, request.to_queue)

                await self.audit.record(
                    conn,
                    QueueTransitionAuditEntry(
                        user_id=request.user_id,
                        from_queue=request.from_queue,
                        to_queue=request.to_queue,
                        reason=request.reason,
                        source=request.source,
                        agent_id=request.agent_id,
                        conversion_id=conversion_id,
                        conversion_logged=conversion_id is not None,
                        timestamp=now,
                        metadata=dict(request.metadata),
                    ),
                )

            return QueueTransitionResult(
                success=True,
                transitioned=updated > 0,
                conversion_logged=conversion_id is not None,
                conversion_id=conversion_id,
                audit_trail=True,
            )

        except DatabaseError as e:
            logger.error(
                "Queue transition failed",
                user_id=request.user_id,
                from_queue=request.from_queue,
                to_queue=request.to_queue,
                error=str(e),
            )
            return QueueTransitionResult(success=False, transitioned=False, error=str(e))

    async def _check_conversion_eligibility(self, conn, request: QueueTransitionRequest) -> ConversionDecision:
        if request.from_queue not in (UNSIGNED_USERS, OUTSTANDING_REQUESTS):
            return ConversionDecision(False)

        status = await self.user_status.get_user_status(conn, request.user_id)
        if status is None:
            logger.warning("User not found for conversion check", user_id=request.user_id)
            return ConversionDecision(False)

        decision = should_log_conversion(request.from_queue, request.to_queue, status)
        if decision.should_log:
            logger.info(
                "Conversion eligible",
                user_id=request.user_id,
                from_queue=request.from_queue,
                to_queue=request.to_queue,
                conversion_type=str(decision.conversion_type),
            )
        return decision

    async def bulk_transition_users(self, requests: list[QueueTransitionRequest]) -> dict[str, int]:
        successful = failed = conversions_logged = 0
        for request in requests:
            result = await self.transition_user_queue(request)
            if result.success:
                successful += 1
                if result.conversion_logged:
                    conversions_logged += 1
            else:
                failed += 1

        return {
            "processed": len(requests),
            "successful": successful,
            "failed": failed,
            "conversions_logged": conversions_logged,
        }

    async def emergency_transition(
        self,
        user_id: int,
        from_queue: str | None,
        to_queue: str | None,
        admin_reason: str,
        admin_id: int | None = None,
    ) -> QueueTransitionResult:
        """Admin override: moves the user without checking for a conversion."""
        return await self.transition_user_queue(
            QueueTransitionRequest(
                user_id=user_id,
                from_queue=from_queue,
                to_queue=to_queue,
                reason=f"EMERGENCY: {admin_reason}",
                source="admin_emergency",
                agent_id=admin_id,
                skip_conversion_check=True,
                metadata={"emergency": True, "timestamp": datetime.now(UTC).isoformat()},
            )
        )


queue_transition_service = QueueTransitionService()
