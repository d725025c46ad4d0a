"""
Read-only access to the upstream case system (users, claims, requirements).

This is the source of truth for signature and requirement status; score and
queue rows are caches that may lag behind it.
"""

from datetime import datetime

import psycopg

from app.db.helpers import fetch_all, fetch_one

from ..domain.models import UserStatus
from ..transitions.policy import count_valid_pending_requirements


class UserStatusRepository:
    async def get_user_status(self, conn: psycopg.AsyncConnection, user_id: int) -> UserStatus | None:
        user = await fetch_one(
            "SELECT id, current_signature_file_id FROM users WHERE id = %s",
            (user_id,),
            connection=conn,
        )
        if not user:
            return None

        requirements = await fetch_all(
            """
            SELECT cr.document_type, cr.claim_requirement_reason AS requirement_reason
            FROM claim_requirements cr
            JOIN claims c ON c.id = cr.claim_id
            WHERE c.user_id = %s AND cr.status = 'PENDING'
            """,
            (user_id,),
            connection=conn,
        )

        return UserStatus(
            user_id=user_id,
            has_signature=user.get("current_signature_file_id") is not None,
            pending_requirements=count_valid_pending_requirements(requirements),
        )

    async def get_requirements_changed_date(
        self, conn: psycopg.AsyncConnection, user_id: int
    ) -> datetime | None:
        row = await fetch_one(
            """
            SELECT MAX(cr.created_at) AS changed_at
            FROM claim_requirements cr
            JOIN claims c ON c.id = cr.claim_id
            WHERE c.user_id = %s AND cr.status = 'PENDING'
            """,
            (user_id,),
            connection=conn,
        )
        return row.get("changed_at") if row else None

    async def get_user_created_at(self, conn: psycopg.AsyncConnection, user_id: int) -> datetime | None:
        row = await fetch_one(
            "SELECT created_at FROM users WHERE id = %s", (user_id,), connection=conn
        )
        return row.get("created_at") if row else None


user_status_repository = UserStatusRepository()
