"""
Conversion logging with duplicate suppression.

Disposition, queue transitions and the leak monitor can all race to record
the same queue exit; only the first write within the match window counts.
"""

from dataclasses import replace
from datetime import timedelta

import psycopg

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.models import ConversionRecord
from ..repository.conversion_repository import ConversionRepository, conversion_repository

logger = get_logger(__name__)


class ConversionLogger:
    def __init__(
        self,
        repository: ConversionRepository | None = None,
        match_window: timedelta | None = None,
    ):
        self.repository = repository or conversion_repository
        self.match_window = match_window or timedelta(minutes=settings.LEAK_MATCH_WINDOW_MINUTES)

    async def log_conversion(
        self, conn: psycopg.AsyncConnection, record: ConversionRecord
    ) -> tuple[ConversionRecord, bool]:
        """
        Write a conversion unless one already exists for the user within the
        window around record.converted_at.

        Returns:
            (conversion, created): the stored record (new or existing) and
            whether this call wrote it.
        """
        existing = await self.repository.find_conversion_near(
            conn, record.user_id, record.converted_at, self.match_window
        )
        if existing:
            logger.info(
                "Conversion already recorded, skipping duplicate",
                user_id=record.user_id,
                conversion_id=existing.id,
                source=record.source,
            )
            return existing, False

        conversion_id = await self.repository.insert_conversion(conn, record)
        logger.info(
            "Conversion recorded",
            user_id=record.user_id,
            conversion_id=conversion_id,
            conversion_type=str(record.conversion_type),
            previous_queue_type=record.previous_queue_type,
            source=record.source,
        )
        return replace(record, id=conversion_id), True


conversion_logger = ConversionLogger()
