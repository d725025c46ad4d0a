"""
Queue transition audit writer.

Every queue change is written to both structured logs (searchable) and the
queue_transition_audit table (append-only, trusted by the leak monitor).
Unlike access logging, a failed audit insert fails the surrounding unit of
work: a transition without an audit row is invisible to reconciliation.
"""

import psycopg

from app.infrastructure.observability.logging import get_logger

from ..domain.models import QueueTransitionAuditEntry
from ..repository.conversion_repository import ConversionRepository, conversion_repository

logger = get_logger(__name__)


class TransitionAuditWriter:
    def __init__(self, repository: ConversionRepository | None = None):
        self.repository = repository or conversion_repository

    async def record(self, conn: psycopg.AsyncConnection, entry: QueueTransitionAuditEntry) -> str:
        logger.info(
            "Queue transition",
            user_id=entry.user_id,
            from_queue=entry.from_queue,
            to_queue=entry.to_queue,
            source=entry.source,
            reason=entry.reason,
            agent_id=entry.agent_id,
            session_id=entry.session_id,
            conversion_logged=entry.conversion_logged,
            conversion_id=entry.conversion_id,
        )
        try:
            return await self.repository.insert_audit(conn, entry)
        except Exception as e:
            logger.error(
                "Failed to write queue transition audit",
                error=str(e),
                error_type=type(e).__name__,
                user_id=entry.user_id,
                from_queue=entry.from_queue,
                to_queue=entry.to_queue,
                source=entry.source,
            )
            raise


transition_audit_writer = TransitionAuditWriter()
