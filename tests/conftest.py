import copy
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from app.features.call_outcomes.domain.models import (
    CALLBACK_COMPLETED,
    OPEN_CALLBACK_STATUSES,
    OPEN_QUEUE_STATUSES,
    CallSession,
    QueueEntry,
    UserCallScore,
    UserStatus,
)
from app.features.call_outcomes.handlers import outcome_registry
from app.features.call_outcomes.jobs.leak_monitor_job import ConversionLeakMonitor
from app.features.call_outcomes.scoring.service import PriorityScoringService
from app.features.call_outcomes.services.conversion_logger import ConversionLogger
from app.features.call_outcomes.services.disposition_service import DispositionService
from app.features.call_outcomes.services.queue_transition_service import QueueTransitionService
from app.features.call_outcomes.services.transition_audit import TransitionAuditWriter
from app.features.call_outcomes.transitions.policy import is_leak_pattern

FAKE_CONN = object()


class FakeStore:
    """In-memory stand-in for the tables the repositories touch."""

    def __init__(self):
        self.sessions: dict[str, CallSession] = {}
        self.outcomes = []
        self.scores: dict[int, UserCallScore] = {}
        self.queue: list[QueueEntry] = []
        self.callbacks = []
        self.conversions = []
        self.audit = []
        self.actions: list[dict] = []
        self.metrics: list[dict] = []
        self.user_status: dict[int, UserStatus] = {}
        self.requirements_changed: dict[int, datetime] = {}
        self.user_created: dict[int, datetime] = {}
        self.seq = 0

    def next_id(self, prefix: str) -> str:
        self.seq += 1
        return f"{prefix}-{self.seq}"

    def add_session(self, session_id="session-1", user_id=1, agent_id=7, queue_type="unsigned_users", **kwargs):
        session = CallSession(
            id=session_id,
            user_id=user_id,
            agent_id=agent_id,
            source_queue_type=queue_type,
            duration_seconds=kwargs.pop("duration_seconds", 120),
            **kwargs,
        )
        self.sessions[session_id] = session
        return session

    def add_queue_entry(self, user_id=1, queue_type="unsigned_users", status="pending"):
        entry = QueueEntry(
            id=self.next_id("queue"),
            user_id=user_id,
            queue_type=queue_type,
            priority_score=0,
            status=status,
        )
        self.queue.append(entry)
        return entry


class FakeDatabase:
    """Transactional fake: a failed unit of work restores the store snapshot."""

    def __init__(self, store: FakeStore):
        self.store = store
        self.transactions = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy(self.store.__dict__)
        self.transactions += 1
        try:
            yield FAKE_CONN
        except BaseException:
            self.store.__dict__.clear()
            self.store.__dict__.update(snapshot)
            self.rollbacks += 1
            raise

    @asynccontextmanager
    async def connection(self):
        yield FAKE_CONN


class FakeCallOutcomeRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_session(self, conn, session_id):
        return self.store.sessions.get(session_id)

    async def has_outcome(self, conn, session_id):
        return any(o.session_id == session_id for o in self.store.outcomes)

    async def apply_call_event(self, conn, event):
        session = self.store.sessions[event.session_id]
        if event.call_sid:
            session.call_sid = event.call_sid
        if event.duration_seconds is not None:
            session.duration_seconds = event.duration_seconds

    async def recent_outcome_types(self, conn, user_id, limit=10):
        rows = sorted(
            (o for o in self.store.outcomes if o.user_id == user_id),
            key=lambda o: o.captured_at,
            reverse=True,
        )
        return [o.outcome_type.value for o in rows[:limit]]

    async def insert_outcome(self, conn, record):
        record = replace(record, id=self.store.next_id("outcome"))
        self.store.outcomes.append(record)
        return record.id

    async def update_session_outcome(self, conn, session_id, result, agent_id, captured_at):
        self.store.sessions[session_id].last_outcome_type = result.outcome_type.value

    async def complete_open_callbacks(self, conn, user_id):
        closed = 0
        for callback in self.store.callbacks:
            if callback.user_id == user_id and callback.status in OPEN_CALLBACK_STATUSES:
                callback.status = CALLBACK_COMPLETED
                closed += 1
        return closed

    async def create_callback(self, conn, callback):
        callback = replace(callback, id=self.store.next_id("callback"))
        self.store.callbacks.append(callback)
        return callback.id

    async def insert_actions(self, conn, session_id, user_id, actions):
        actions = list(actions)
        for action in actions:
            self.store.actions.append(
                {"session_id": session_id, "user_id": user_id, "type": action.type, "status": "pending"}
            )
        return len(actions)


class FakeScoreRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_score(self, conn, user_id):
        return self.store.scores.get(user_id)

    async def upsert_score(self, conn, score):
        previous = self.store.scores.get(score.user_id)
        created_at = previous.created_at if previous else datetime.now(UTC)
        self.store.scores[score.user_id] = replace(score, created_at=created_at)

    async def update_queue_type(self, conn, user_id, queue_type):
        score = self.store.scores.get(user_id)
        if score is None:
            return 0
        score.current_queue_type = queue_type
        return 1

    async def get_open_entries(self, conn, user_id):
        return [e for e in self.store.queue if e.user_id == user_id and e.status in OPEN_QUEUE_STATUSES]

    async def close_open_entries(self, conn, user_id, status):
        entries = await self.get_open_entries(conn, user_id)
        for entry in entries:
            entry.status = status
        return len(entries)


class FakeConversionRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def find_conversion_near(self, conn, user_id, at, window):
        matches = [
            c
            for c in self.store.conversions
            if c.user_id == user_id and at - window <= c.converted_at <= at + window
        ]
        return matches[-1] if matches else None

    async def insert_conversion(self, conn, record):
        record = replace(record, id=self.store.next_id("conversion"))
        self.store.conversions.append(record)
        return record.id

    async def insert_audit(self, conn, entry):
        entry = replace(entry, id=self.store.next_id("audit"), metadata=dict(entry.metadata))
        self.store.audit.append(entry)
        return entry.id

    async def find_suspicious_transitions(self, conn, since, match_window):
        found = []
        for entry in self.store.audit:
            if entry.timestamp < since or entry.conversion_logged:
                continue
            if entry.metadata.get("verified_no_conversion") or entry.metadata.get("recovery_failed"):
                continue
            if not is_leak_pattern(entry.from_queue, entry.to_queue):
                continue
            if await self.find_conversion_near(conn, entry.user_id, entry.timestamp, match_window):
                continue
            found.append(entry)
        return found

    def _audit(self, audit_id):
        return next(e for e in self.store.audit if e.id == audit_id)

    async def mark_recovered(self, conn, audit_id, conversion_id, recovered_at):
        entry = self._audit(audit_id)
        entry.conversion_logged = True
        entry.conversion_id = conversion_id
        entry.metadata["recovered_by"] = "leak_monitor"
        return 1

    async def mark_verified_no_conversion(self, conn, audit_id, verified_at):
        self._audit(audit_id).metadata["verified_no_conversion"] = True
        return 1

    async def mark_recovery_failed(self, conn, audit_id, error, failed_at, max_attempts):
        entry = self._audit(audit_id)
        attempts = entry.metadata.get("recovery_attempts", 0) + 1
        entry.metadata["recovery_attempts"] = attempts
        entry.metadata["recovery_failed"] = attempts >= max_attempts
        entry.metadata["error"] = error
        return 1

    async def insert_metrics(self, conn, timestamp, potential_leaks, recovered, unrecovered, execution_time_ms):
        self.store.metrics.append(
            {
                "timestamp": timestamp,
                "potential_leaks": potential_leaks,
                "recovered_conversions": recovered,
                "unrecovered_leaks": unrecovered,
                "execution_time_ms": execution_time_ms,
            }
        )

    async def aggregate_metrics(self, conn, since):
        rows = [m for m in self.store.metrics if m["timestamp"] >= since]
        return {
            "total_checks": len(rows),
            "total_leaks": sum(m["potential_leaks"] for m in rows),
            "total_recovered": sum(m["recovered_conversions"] for m in rows),
            "total_unrecovered": sum(m["unrecovered_leaks"] for m in rows),
            "avg_execution_time_ms": (
                sum(m["execution_time_ms"] for m in rows) / len(rows) if rows else 0
            ),
        }


class FakeUserStatusRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_user_status(self, conn, user_id):
        return self.store.user_status.get(user_id)

    async def get_requirements_changed_date(self, conn, user_id):
        return self.store.requirements_changed.get(user_id)

    async def get_user_created_at(self, conn, user_id):
        return self.store.user_created.get(user_id)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def fake_db(store):
    return FakeDatabase(store)


@pytest.fixture
def outcome_repo(store):
    return FakeCallOutcomeRepository(store)


@pytest.fixture
def score_repo(store):
    return FakeScoreRepository(store)


@pytest.fixture
def conversion_repo(store):
    return FakeConversionRepository(store)


@pytest.fixture
def user_status_repo(store):
    return FakeUserStatusRepository(store)


@pytest.fixture
def conversion_logger(conversion_repo):
    return ConversionLogger(conversion_repo, match_window=timedelta(minutes=5))


@pytest.fixture
def disposition_service(fake_db, outcome_repo, score_repo, user_status_repo, conversion_repo, conversion_logger):
    return DispositionService(
        db=fake_db,
        registry=outcome_registry,
        outcomes=outcome_repo,
        scores=score_repo,
        user_status=user_status_repo,
        scoring=PriorityScoringService(max_score=200),
        conversions=conversion_logger,
        audit=TransitionAuditWriter(conversion_repo),
    )


@pytest.fixture
def queue_transition_service(fake_db, score_repo, user_status_repo, conversion_repo, conversion_logger):
    return QueueTransitionService(
        db=fake_db,
        scores=score_repo,
        user_status=user_status_repo,
        conversions=conversion_logger,
        audit=TransitionAuditWriter(conversion_repo),
    )


@pytest.fixture
def leak_monitor(fake_db, conversion_repo, score_repo, user_status_repo):
    return ConversionLeakMonitor(
        db=fake_db,
        conversions=conversion_repo,
        scores=score_repo,
        user_status=user_status_repo,
        interval_seconds=60,
        scan_window=timedelta(minutes=2),
        match_window=timedelta(minutes=5),
        max_recovery_attempts=3,
    )
