"""
Conversion leak monitor.

Runs on a fixed interval outside any disposition transaction. Each run scans
recent queue transition audit entries for exits that normally imply a
conversion but never logged one, re-derives the user's real status from the
case system and either backfills the conversion or marks the entry as
verified. Repaired and verified entries are never rescanned. A failed repair
is retried on later scans until it has failed max_recovery_attempts times.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.db.pool import db_pool
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import ReconciliationRepairFailed
from ..domain.models import ConversionRecord, QueueTransitionAuditEntry
from ..repository.conversion_repository import ConversionRepository, conversion_repository
from ..repository.score_repository import ScoreRepository, score_repository
from ..repository.user_status_repository import UserStatusRepository, user_status_repository
from ..services.conversion_logger import ConversionLogger
from ..transitions.policy import should_log_conversion

logger = get_logger(__name__)

RECOVERY_SOURCE = "leak_monitor"


class LeakMonitorMetrics:
    """Metrics tracking for one leak monitor run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self._started = time.monotonic()
        self.potential_leaks = 0
        self.recovered = 0
        self.verified_no_conversion = 0
        self.deferred = 0
        self.unrecovered = 0
        self.execution_time_ms = 0
        self.errors: list[dict] = []

    def record_recovered(self, entry: QueueTransitionAuditEntry, conversion_id: str):
        self.recovered += 1
        logger.info(
            "Recovered missing conversion",
            leak_run=True,
            audit_id=entry.id,
            user_id=entry.user_id,
            conversion_id=conversion_id,
            from_queue=entry.from_queue,
            to_queue=entry.to_queue,
        )

    def record_verified(self, entry: QueueTransitionAuditEntry):
        self.verified_no_conversion += 1
        logger.debug(
            "Transition verified, no conversion warranted",
            leak_run=True,
            audit_id=entry.id,
            user_id=entry.user_id,
        )

    def record_deferred(self, entry: QueueTransitionAuditEntry):
        self.deferred += 1
        logger.warning(
            "User not found in case system, leaving transition for the next scan",
            leak_run=True,
            audit_id=entry.id,
            user_id=entry.user_id,
        )

    def record_failure(self, error: ReconciliationRepairFailed):
        self.unrecovered += 1
        self.errors.append(
            {
                "audit_id": error.audit_id,
                "user_id": error.user_id,
                "error": error.reason,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        logger.error(
            "Conversion recovery failed",
            leak_run=True,
            audit_id=error.audit_id,
            user_id=error.user_id,
            error=error.reason,
        )

    def finalize(self):
        self.execution_time_ms = int((time.monotonic() - self._started) * 1000)

    def to_dict(self) -> dict:
        return {
            "potential_leaks": self.potential_leaks,
            "recovered": self.recovered,
            "unrecovered": self.unrecovered,
            "verified_no_conversion": self.verified_no_conversion,
            "deferred": self.deferred,
            "execution_time_ms": self.execution_time_ms,
            "timestamp": self.start_time.isoformat(),
            "errors_count": len(self.errors),
        }


class ConversionLeakMonitor:
    """
    Background reconciliation loop for missed conversion writes.

    Holds its own run guard and timer task; construct once and hand it to the
    worker or the application lifespan.
    """

    def __init__(
        self,
        db=None,
        conversions: ConversionRepository | None = None,
        scores: ScoreRepository | None = None,
        user_status: UserStatusRepository | None = None,
        conversion_logger: ConversionLogger | None = None,
        interval_seconds: float | None = None,
        scan_window: timedelta | None = None,
        match_window: timedelta | None = None,
        max_recovery_attempts: int | None = None,
    ):
        config = settings.get_leak_monitor_config()
        self.db = db or db_pool
        self.conversions = conversions or conversion_repository
        self.scores = scores or score_repository
        self.user_status = user_status or user_status_repository
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else config["interval_seconds"]
        )
        self.scan_window = scan_window or timedelta(minutes=config["scan_window_minutes"])
        self.match_window = match_window or timedelta(minutes=config["match_window_minutes"])
        self.max_recovery_attempts = max_recovery_attempts or config["max_recovery_attempts"]
        self.conversion_logger = conversion_logger or ConversionLogger(
            self.conversions, match_window=self.match_window
        )

        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = LeakMonitorMetrics()
        self._task: asyncio.Task | None = None

    async def run_once(self) -> dict:
        """
        Run a single detection and repair pass.

        Returns:
            Dict with potential_leaks, recovered, unrecovered, execution_time_ms
            and timestamp. An overlapping call returns all zeros.
        """
        if self.is_running:
            logger.info("Leak detection already running, skipping this iteration")
            skipped = LeakMonitorMetrics()
            skipped.finalize()
            return {**skipped.to_dict(), "skipped": True}

        try:
            self.is_running = True
            self.job_metrics.reset()

            candidates = await self._find_suspicious_transitions()
            self.job_metrics.potential_leaks = len(candidates)

            for entry in candidates:
                await self._reconcile(entry)

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            metrics = self.job_metrics.to_dict()

            if self.job_metrics.unrecovered:
                logger.error(
                    "CONVERSION LEAK ALERT: unrecoverable leaks detected",
                    leak_run=True,
                    unrecovered=self.job_metrics.unrecovered,
                    errors=self.job_metrics.errors,
                )

            await self._record_metrics()

            if candidates:
                logger.info("Leak detection completed", leak_run=True, **metrics)
            return metrics

        finally:
            self.is_running = False

    async def _find_suspicious_transitions(self) -> list[QueueTransitionAuditEntry]:
        since = datetime.now(UTC) - self.scan_window
        try:
            async with self.db.connection() as conn:
                return await self.conversions.find_suspicious_transitions(conn, since, self.match_window)
        except Exception as e:
            logger.error(
                "Failed to scan for suspicious transitions",
                leak_run=True,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

    async def _reconcile(self, entry: QueueTransitionAuditEntry) -> None:
        try:
            async with self.db.transaction() as conn:
                status = await self.user_status.get_user_status(conn, entry.user_id)
                if status is None:
                    self.job_metrics.record_deferred(entry)
                    return
                decision = should_log_conversion(entry.from_queue, entry.to_queue, status)

                now = datetime.now(UTC)
                if decision.should_log:
                    score = await self.scores.get_score(conn, entry.user_id)
                    conversion, _ = await self.conversion_logger.log_conversion(
                        conn,
                        ConversionRecord(
                            user_id=entry.user_id,
                            previous_queue_type=entry.from_queue,
                            conversion_type=decision.conversion_type,
                            conversion_reason=f"Recovered missing conversion from {entry.source}",
                            final_score=score.current_score if score else 0,
                            total_attempts=score.total_attempts if score else 0,
                            # Backdated to the transition time
                            converted_at=entry.timestamp,
                            source=RECOVERY_SOURCE,
                            primary_agent_id=entry.agent_id,
                        ),
                    )
                    await self.conversions.mark_recovered(conn, entry.id, conversion.id, now)
                else:
                    await self.conversions.mark_verified_no_conversion(conn, entry.id, now)

        except Exception as e:
            failure = ReconciliationRepairFailed(entry.id, entry.user_id, str(e))
            self.job_metrics.record_failure(failure)
            await self._tag_failure(entry, failure)
            return

        if decision.should_log:
            self.job_metrics.record_recovered(entry, conversion.id)
        else:
            self.job_metrics.record_verified(entry)

    async def _tag_failure(self, entry: QueueTransitionAuditEntry, failure: ReconciliationRepairFailed) -> None:
        try:
            async with self.db.transaction() as conn:
                await self.conversions.mark_recovery_failed(
                    conn, entry.id, failure.reason, datetime.now(UTC), self.max_recovery_attempts
                )
        except Exception as e:
            logger.error(
                "Failed to tag audit entry with recovery failure",
                leak_run=True,
                audit_id=entry.id,
                error=str(e),
            )

    async def _record_metrics(self) -> None:
        m = self.job_metrics
        try:
            async with self.db.transaction() as conn:
                await self.conversions.insert_metrics(
                    conn,
                    m.start_time,
                    m.potential_leaks,
                    m.recovered,
                    m.unrecovered,
                    m.execution_time_ms,
                )
        except Exception as e:
            logger.warning("Could not record leak monitor metrics", leak_run=True, error=str(e))

    async def get_health_metrics(self, hours_back: int = 24) -> dict:
        """Aggregated monitor health for the dashboard."""
        since = datetime.now(UTC) - timedelta(hours=hours_back)
        try:
            async with self.db.connection() as conn:
                row = await self.conversions.aggregate_metrics(conn, since)
        except Exception as e:
            logger.error("Failed to load leak monitor health metrics", error=str(e))
            row = {}

        total_recovered = int(row.get("total_recovered") or 0)
        total_unrecovered = int(row.get("total_unrecovered") or 0)
        # Verified and deferred entries are not leaks
        attempted = total_recovered + total_unrecovered
        return {
            "total_checks": int(row.get("total_checks") or 0),
            "total_leaks": int(row.get("total_leaks") or 0),
            "total_recovered": total_recovered,
            "total_unrecovered": total_unrecovered,
            "recovery_rate": round(total_recovered / attempted * 100, 2) if attempted else 100.0,
            "avg_execution_time_ms": round(float(row.get("avg_execution_time_ms") or 0), 2),
        }

    def get_job_status(self) -> dict:
        return {
            "job_name": "conversion_leak_monitor",
            "is_running": self.is_running,
            "is_scheduled": self._task is not None and not self._task.done(),
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_seconds": self.interval_seconds,
            "scan_window_minutes": self.scan_window.total_seconds() / 60,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    async def run_forever(self) -> None:
        """Run immediately, then every interval. Exceptions never escape the loop."""
        logger.info(
            "Starting conversion leak monitor",
            interval_seconds=self.interval_seconds,
            scan_window_minutes=self.scan_window.total_seconds() / 60,
        )
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(
                    "Error in conversion leak monitor loop",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            logger.warning("Conversion leak monitor already started")
            return self._task
        self._task = asyncio.create_task(self.run_forever(), name="conversion_leak_monitor")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Conversion leak monitor stopped")


conversion_leak_monitor = ConversionLeakMonitor()


async def start_conversion_leak_monitor() -> None:
    """Worker entrypoint: run the monitor loop in the foreground."""
    await conversion_leak_monitor.run_forever()
