"""
Persistence for conversions, the queue transition audit trail and the leak
monitor's metrics.
"""

from datetime import datetime, timedelta
from typing import Any

import psycopg
from psycopg.types.json import Jsonb

from app.db.helpers import execute_query, fetch_all, fetch_one
from app.infrastructure.observability.logging import get_logger

from ..domain.models import ConversionRecord, QueueTransitionAuditEntry
from ..transitions.policy import LEAK_PATTERNS

logger = get_logger(__name__)


class ConversionRepository:
    CONVERSION_COLUMNS = """
        id, user_id, previous_queue_type, conversion_type, conversion_reason,
        final_score, total_attempts, converted_at, primary_agent_id, source
    """
    AUDIT_COLUMNS = """
        id, user_id, from_queue, to_queue, reason, source, agent_id, session_id,
        conversion_id, conversion_logged, timestamp, metadata
    """

    @staticmethod
    def _row_to_conversion(row: dict | None) -> ConversionRecord | None:
        if not row:
            return None
        return ConversionRecord(
            id=str(row["id"]),
            user_id=row["user_id"],
            previous_queue_type=row["previous_queue_type"],
            conversion_type=row["conversion_type"],
            conversion_reason=row["conversion_reason"],
            final_score=row["final_score"],
            total_attempts=row["total_attempts"],
            converted_at=row["converted_at"],
            primary_agent_id=row.get("primary_agent_id"),
            source=row["source"],
        )

    @staticmethod
    def _row_to_audit(row: dict) -> QueueTransitionAuditEntry:
        return QueueTransitionAuditEntry(
            id=str(row["id"]),
            user_id=row["user_id"],
            from_queue=row.get("from_queue"),
            to_queue=row.get("to_queue"),
            reason=row["reason"],
            source=row["source"],
            agent_id=row.get("agent_id"),
            session_id=str(row["session_id"]) if row.get("session_id") else None,
            conversion_id=str(row["conversion_id"]) if row.get("conversion_id") else None,
            conversion_logged=row["conversion_logged"],
            timestamp=row["timestamp"],
            metadata=dict(row.get("metadata") or {}),
        )

    # --- conversions --------------------------------------------------------

    async def find_conversion_near(
        self,
        conn: psycopg.AsyncConnection,
        user_id: int,
        at: datetime,
        window: timedelta,
    ) -> ConversionRecord | None:
        row = await fetch_one(
            f"""
            SELECT {self.CONVERSION_COLUMNS}
            FROM conversions
            WHERE user_id = %s AND converted_at BETWEEN %s AND %s
            ORDER BY converted_at DESC
            LIMIT 1
            """,
            (user_id, at - window, at + window),
            connection=conn,
        )
        return self._row_to_conversion(row)

    async def insert_conversion(self, conn: psycopg.AsyncConnection, record: ConversionRecord) -> str:
        row = await fetch_one(
            """
            INSERT INTO conversions (
                user_id, previous_queue_type, conversion_type, conversion_reason,
                final_score, total_attempts, primary_agent_id, source, converted_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                record.user_id,
                record.previous_queue_type,
                str(record.conversion_type),
                record.conversion_reason,
                record.final_score,
                record.total_attempts,
                record.primary_agent_id,
                record.source,
                record.converted_at,
            ),
            connection=conn,
        )
        return str(row["id"])

    # --- queue transition audit ---------------------------------------------

    async def insert_audit(self, conn: psycopg.AsyncConnection, entry: QueueTransitionAuditEntry) -> str:
        row = await fetch_one(
            """
            INSERT INTO queue_transition_audit (
                user_id, from_queue, to_queue, reason, source, agent_id,
                session_id, conversion_id, conversion_logged, timestamp, metadata
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                entry.user_id,
                entry.from_queue,
                entry.to_queue,
                entry.reason,
                entry.source,
                entry.agent_id,
                entry.session_id,
                entry.conversion_id,
                entry.conversion_logged,
                entry.timestamp,
                Jsonb(entry.metadata),
            ),
            connection=conn,
        )
        return str(row["id"])

    async def find_suspicious_transitions(
        self,
        conn: psycopg.AsyncConnection,
        since: datetime,
        match_window: timedelta,
    ) -> list[QueueTransitionAuditEntry]:
        """
        Audit entries matching a leak pattern that never logged a conversion
        and have no conversion for the user near the transition time.
        """
        pattern_sql = " OR ".join(
            "(qta.from_queue = %s AND qta.to_queue IS NULL)"
            if to_queue is None
            else "(qta.from_queue = %s AND qta.to_queue = %s)"
            for _, to_queue in LEAK_PATTERNS
        )
        pattern_params: list[Any] = []
        for from_queue, to_queue in LEAK_PATTERNS:
            pattern_params.append(from_queue)
            if to_queue is not None:
                pattern_params.append(to_queue)

        rows = await fetch_all(
            f"""
            SELECT {", ".join("qta." + c.strip() for c in self.AUDIT_COLUMNS.split(","))}
            FROM queue_transition_audit qta
            WHERE qta.timestamp >= %s
              AND qta.conversion_logged = FALSE
              AND COALESCE((qta.metadata ->> 'verified_no_conversion')::boolean, FALSE) = FALSE
              AND COALESCE((qta.metadata ->> 'recovery_failed')::boolean, FALSE) = FALSE
              AND ({pattern_sql})
              AND NOT EXISTS (
                  SELECT 1 FROM conversions c
                  WHERE c.user_id = qta.user_id
                    AND c.converted_at BETWEEN qta.timestamp - %s AND qta.timestamp + %s
              )
            ORDER BY qta.timestamp ASC
            """,
            (since, *pattern_params, match_window, match_window),
            connection=conn,
        )
        return [self._row_to_audit(row) for row in rows]

    async def mark_recovered(
        self, conn: psycopg.AsyncConnection, audit_id: str, conversion_id: str, recovered_at: datetime
    ) -> int:
        return await execute_query(
            """
            UPDATE queue_transition_audit
            SET conversion_logged = TRUE,
                conversion_id = %s,
                metadata = metadata || %s
            WHERE id = %s
            """,
            (
                conversion_id,
                Jsonb({"recovered_by": "leak_monitor", "recovered_at": recovered_at.isoformat()}),
                audit_id,
            ),
            connection=conn,
        )

    async def mark_verified_no_conversion(
        self, conn: psycopg.AsyncConnection, audit_id: str, verified_at: datetime
    ) -> int:
        return await execute_query(
            "UPDATE queue_transition_audit SET metadata = metadata || %s WHERE id = %s",
            (
                Jsonb({"verified_no_conversion": True, "verified_at": verified_at.isoformat()}),
                audit_id,
            ),
            connection=conn,
        )

    async def mark_recovery_failed(
        self,
        conn: psycopg.AsyncConnection,
        audit_id: str,
        error: str,
        failed_at: datetime,
        max_attempts: int,
    ) -> int:
        """
        Count a failed repair. The entry stays eligible for rescans until
        max_attempts failures, then it is tagged recovery_failed for good.
        """
        return await execute_query(
            """
            UPDATE queue_transition_audit
            SET metadata = metadata || jsonb_build_object(
                'recovery_attempts', COALESCE((metadata ->> 'recovery_attempts')::int, 0) + 1,
                'recovery_failed', COALESCE((metadata ->> 'recovery_attempts')::int, 0) + 1 >= %s,
                'error', %s::text,
                'failed_at', %s::text
            )
            WHERE id = %s
            """,
            (max_attempts, error, failed_at.isoformat(), audit_id),
            connection=conn,
        )

    # --- monitor metrics ----------------------------------------------------

    async def insert_metrics(
        self,
        conn: psycopg.AsyncConnection,
        timestamp: datetime,
        potential_leaks: int,
        recovered: int,
        unrecovered: int,
        execution_time_ms: int,
    ) -> None:
        await execute_query(
            """
            INSERT INTO conversion_monitoring_metrics (
                timestamp, potential_leaks, recovered_conversions, unrecovered_leaks, execution_time_ms
            )
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (timestamp) DO NOTHING
            """,
            (timestamp, potential_leaks, recovered, unrecovered, execution_time_ms),
            connection=conn,
        )

    async def aggregate_metrics(self, conn: psycopg.AsyncConnection, since: datetime) -> dict[str, Any]:
        row = await fetch_one(
            """
            SELECT COUNT(*) AS total_checks,
                   COALESCE(SUM(potential_leaks), 0) AS total_leaks,
                   COALESCE(SUM(recovered_conversions), 0) AS total_recovered,
                   COALESCE(SUM(unrecovered_leaks), 0) AS total_unrecovered,
                   COALESCE(AVG(execution_time_ms), 0) AS avg_execution_time_ms
            FROM conversion_monitoring_metrics
            WHERE timestamp >= %s
            """,
            (since,),
            connection=conn,
        )
        return dict(row or {})


conversion_repository = ConversionRepository()
