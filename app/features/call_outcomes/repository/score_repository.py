"""
Persistence for user call scores and call queue entries.
"""

import psycopg

from app.db.helpers import execute_query, fetch_all, fetch_one

from ..domain.models import OPEN_QUEUE_STATUSES, QueueEntry, UserCallScore


class ScoreRepository:
    SCORE_COLUMNS = """
        user_id, current_score, is_active, current_queue_type, last_reset_date,
        last_outcome, total_attempts, last_call_at, created_at
    """

    @staticmethod
    def _row_to_score(row: dict | None) -> UserCallScore | None:
        if not row:
            return None
        return UserCallScore(
            user_id=row["user_id"],
            current_score=row["current_score"],
            is_active=row["is_active"],
            current_queue_type=row.get("current_queue_type"),
            last_reset_date=row.get("last_reset_date"),
            last_outcome=row.get("last_outcome"),
            total_attempts=row.get("total_attempts") or 0,
            last_call_at=row.get("last_call_at"),
            created_at=row.get("created_at"),
        )

    async def get_score(self, conn: psycopg.AsyncConnection, user_id: int) -> UserCallScore | None:
        row = await fetch_one(
            f"SELECT {self.SCORE_COLUMNS} FROM user_call_scores WHERE user_id = %s FOR UPDATE",
            (user_id,),
            connection=conn,
        )
        return self._row_to_score(row)

    async def upsert_score(self, conn: psycopg.AsyncConnection, score: UserCallScore) -> None:
        await execute_query(
            """
            INSERT INTO user_call_scores (
                user_id, current_score, is_active, current_queue_type, last_reset_date,
                last_outcome, total_attempts, last_call_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE
            SET current_score = EXCLUDED.current_score,
                is_active = EXCLUDED.is_active,
                current_queue_type = EXCLUDED.current_queue_type,
                last_reset_date = EXCLUDED.last_reset_date,
                last_outcome = EXCLUDED.last_outcome,
                total_attempts = EXCLUDED.total_attempts,
                last_call_at = EXCLUDED.last_call_at,
                updated_at = NOW()
            """,
            (
                score.user_id,
                score.current_score,
                score.is_active,
                score.current_queue_type,
                score.last_reset_date,
                score.last_outcome,
                score.total_attempts,
                score.last_call_at,
            ),
            connection=conn,
        )

    async def update_queue_type(
        self, conn: psycopg.AsyncConnection, user_id: int, queue_type: str | None
    ) -> int:
        return await execute_query(
            """
            UPDATE user_call_scores
            SET current_queue_type = %s, last_queue_check = NOW(), updated_at = NOW()
            WHERE user_id = %s
            """,
            (queue_type, user_id),
            connection=conn,
        )

    async def get_open_entries(self, conn: psycopg.AsyncConnection, user_id: int) -> list[QueueEntry]:
        rows = await fetch_all(
            """
            SELECT id, user_id, queue_type, priority_score, status, queue_reason
            FROM call_queue
            WHERE user_id = %s AND status = ANY(%s)
            """,
            (user_id, list(OPEN_QUEUE_STATUSES)),
            connection=conn,
        )
        return [
            QueueEntry(
                id=str(row["id"]),
                user_id=row["user_id"],
                queue_type=row["queue_type"],
                priority_score=row["priority_score"],
                status=row["status"],
                queue_reason=row.get("queue_reason"),
            )
            for row in rows
        ]

    async def close_open_entries(
        self, conn: psycopg.AsyncConnection, user_id: int, status: str
    ) -> int:
        return await execute_query(
            """
            UPDATE call_queue
            SET status = %s, updated_at = NOW()
            WHERE user_id = %s AND status = ANY(%s)
            """,
            (status, user_id, list(OPEN_QUEUE_STATUSES)),
            connection=conn,
        )


score_repository = ScoreRepository()
