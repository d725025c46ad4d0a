"""
Persistence for call sessions, disposition records, callbacks and the
outbound action records consumed by the notification dispatcher.

Every method takes the connection of the caller's unit of work so all
writes for one disposition commit or roll back together.
"""

from collections.abc import Iterable
from datetime import UTC, datetime

import psycopg
from psycopg.types.json import Jsonb

from app.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from app.infrastructure.observability.logging import get_logger

from ..domain.models import (
    CALLBACK_COMPLETED,
    OPEN_CALLBACK_STATUSES,
    CallEndedEvent,
    Callback,
    CallSession,
    NextAction,
    OutcomeRecord,
    OutcomeResult,
)

logger = get_logger(__name__)


class CallOutcomeRepository:
    """Call session and disposition persistence."""

    SESSION_COLUMNS = """
        id, user_id, agent_id, source_queue_type, twilio_call_sid,
        started_at, duration_seconds, last_outcome_type
    """

    @staticmethod
    def _row_to_session(row: dict | None) -> CallSession | None:
        if not row:
            return None
        return CallSession(
            id=str(row["id"]),
            user_id=row["user_id"],
            agent_id=row["agent_id"],
            source_queue_type=row.get("source_queue_type"),
            call_sid=row.get("twilio_call_sid"),
            started_at=row.get("started_at"),
            duration_seconds=row.get("duration_seconds"),
            last_outcome_type=row.get("last_outcome_type"),
        )

    async def get_session(self, conn: psycopg.AsyncConnection, session_id: str) -> CallSession | None:
        row = await fetch_one(
            f"SELECT {self.SESSION_COLUMNS} FROM call_sessions WHERE id = %s FOR UPDATE",
            (session_id,),
            connection=conn,
        )
        return self._row_to_session(row)

    async def has_outcome(self, conn: psycopg.AsyncConnection, session_id: str) -> bool:
        found = await fetch_val(
            "SELECT EXISTS (SELECT 1 FROM call_outcomes WHERE call_session_id = %s)",
            (session_id,),
            connection=conn,
        )
        return bool(found)

    async def apply_call_event(self, conn: psycopg.AsyncConnection, event: CallEndedEvent) -> None:
        """Copy telephony facts onto the session without overwriting known values."""
        await execute_query(
            """
            UPDATE call_sessions
            SET twilio_call_sid = COALESCE(%s, twilio_call_sid),
                duration_seconds = COALESCE(%s, duration_seconds),
                connected_at = COALESCE(%s, connected_at),
                ended_at = COALESCE(%s, ended_at),
                status = 'completed',
                updated_at = NOW()
            WHERE id = %s
            """,
            (
                event.call_sid,
                event.duration_seconds,
                event.connected_at,
                event.ended_at,
                event.session_id,
            ),
            connection=conn,
        )

    async def recent_outcome_types(
        self, conn: psycopg.AsyncConnection, user_id: int, limit: int = 10
    ) -> list[str]:
        """Most recent first."""
        rows = await fetch_all(
            """
            SELECT outcome_type
            FROM call_outcomes
            WHERE user_id = %s
            ORDER BY captured_at DESC
            LIMIT %s
            """,
            (user_id, limit),
            connection=conn,
        )
        return [row["outcome_type"] for row in rows]

    async def insert_outcome(self, conn: psycopg.AsyncConnection, record: OutcomeRecord) -> str:
        row = await fetch_one(
            """
            INSERT INTO call_outcomes (
                call_session_id, user_id, recorded_by_agent_id, outcome_type,
                outcome_notes, score_adjustment, next_call_delay_hours,
                magic_link_sent, documents_requested, captured_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                record.session_id,
                record.user_id,
                record.agent_id,
                record.outcome_type.value,
                record.notes,
                record.score_adjustment,
                record.next_call_delay_hours,
                record.magic_link_sent,
                list(record.documents_requested),
                record.captured_at,
            ),
            connection=conn,
        )
        return str(row["id"])

    async def update_session_outcome(
        self,
        conn: psycopg.AsyncConnection,
        session_id: str,
        result: OutcomeResult,
        agent_id: int,
        captured_at: datetime,
    ) -> None:
        """Denormalized last-outcome cache on the session row."""
        await execute_query(
            """
            UPDATE call_sessions
            SET last_outcome_type = %s,
                last_outcome_notes = %s,
                last_outcome_agent_id = %s,
                last_outcome_at = %s,
                magic_link_sent = magic_link_sent OR %s,
                callback_scheduled = %s,
                follow_up_required = %s,
                updated_at = NOW()
            WHERE id = %s
            """,
            (
                result.outcome_type.value,
                result.notes,
                agent_id,
                captured_at,
                result.magic_link_sent,
                result.callback_datetime is not None,
                any(action.required for action in result.next_actions),
                session_id,
            ),
            connection=conn,
        )

    async def complete_open_callbacks(self, conn: psycopg.AsyncConnection, user_id: int) -> int:
        return await execute_query(
            """
            UPDATE callbacks
            SET status = %s, completed_at = %s
            WHERE user_id = %s AND status = ANY(%s)
            """,
            (CALLBACK_COMPLETED, datetime.now(UTC), user_id, list(OPEN_CALLBACK_STATUSES)),
            connection=conn,
        )

    async def create_callback(self, conn: psycopg.AsyncConnection, callback: Callback) -> str:
        row = await fetch_one(
            """
            INSERT INTO callbacks (user_id, scheduled_for, callback_reason, original_call_session_id, status)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                callback.user_id,
                callback.scheduled_for,
                callback.reason,
                callback.original_session_id,
                callback.status,
            ),
            connection=conn,
        )
        return str(row["id"])

    async def insert_actions(
        self,
        conn: psycopg.AsyncConnection,
        session_id: str,
        user_id: int,
        actions: Iterable[NextAction],
    ) -> int:
        count = 0
        for action in actions:
            await execute_query(
                """
                INSERT INTO outbound_actions (
                    session_id, user_id, action_type, description,
                    required, priority, due_date, parameters
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    session_id,
                    user_id,
                    action.type,
                    action.description,
                    action.required,
                    action.priority,
                    action.due_date,
                    Jsonb(action.parameters),
                ),
                connection=conn,
            )
            count += 1
        return count


call_outcome_repository = CallOutcomeRepository()
