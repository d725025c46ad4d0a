import pytest

from app.db.helpers import DatabaseError
from app.features.call_outcomes.domain.models import ConversionType, UserCallScore, UserStatus
from app.features.call_outcomes.services import QueueTransitionRequest


def _request(**overrides) -> QueueTransitionRequest:
    base = {
        "user_id": 1,
        "from_queue": "unsigned_users",
        "to_queue": None,
        "reason": "Signature received from case system",
        "source": "case_sync",
    }
    base.update(overrides)
    return QueueTransitionRequest(**base)


@pytest.fixture
def scored_user(store):
    store.scores[1] = UserCallScore(
        user_id=1, current_score=18, current_queue_type="unsigned_users", total_attempts=3
    )
    store.user_status[1] = UserStatus(user_id=1, has_signature=True, pending_requirements=1)
    return store.scores[1]


@pytest.mark.asyncio
async def test_signature_exit_logs_conversion(store, scored_user, queue_transition_service):
    result = await queue_transition_service.transition_user_queue(_request())

    assert result.success is True
    assert result.transitioned is True
    assert result.conversion_logged is True
    assert result.audit_trail is True

    conversion = store.conversions[0]
    assert conversion.id == result.conversion_id
    assert conversion.conversion_type == ConversionType.SIGNATURE_OBTAINED
    assert conversion.final_score == 18
    assert conversion.total_attempts == 3
    assert conversion.conversion_reason.endswith("Signature received from case system")

    assert scored_user.current_queue_type is None
    assert store.audit[0].conversion_logged is True
    assert store.audit[0].conversion_id == result.conversion_id


@pytest.mark.asyncio
async def test_unsigned_to_outstanding_is_not_a_conversion(store, scored_user, queue_transition_service):
    result = await queue_transition_service.transition_user_queue(
        _request(to_queue="outstanding_requests")
    )

    assert result.transitioned is True
    assert result.conversion_logged is False
    assert store.conversions == []
    assert scored_user.current_queue_type == "outstanding_requests"
    assert store.audit[0].conversion_logged is False


@pytest.mark.asyncio
async def test_duplicate_conversion_is_suppressed(store, scored_user, queue_transition_service):
    first = await queue_transition_service.transition_user_queue(_request())
    store.scores[1].current_queue_type = "unsigned_users"
    second = await queue_transition_service.transition_user_queue(_request(reason="Replayed sync"))

    assert len(store.conversions) == 1
    assert second.conversion_id == first.conversion_id
    assert len(store.audit) == 2


@pytest.mark.asyncio
async def test_same_queue_is_a_no_op(store, scored_user, queue_transition_service):
    result = await queue_transition_service.transition_user_queue(
        _request(to_queue="unsigned_users")
    )

    assert result.success is True
    assert result.transitioned is False
    assert result.error == "No queue change detected"
    assert store.audit == []


@pytest.mark.asyncio
async def test_missing_fields_are_rejected(queue_transition_service):
    result = await queue_transition_service.transition_user_queue(_request(reason=""))

    assert result.success is False
    assert "Missing required fields" in result.error


@pytest.mark.asyncio
async def test_emergency_transition_skips_conversion_check(store, scored_user, queue_transition_service):
    result = await queue_transition_service.emergency_transition(
        1, "unsigned_users", None, "Data correction", admin_id=99
    )

    assert result.success is True
    assert result.conversion_logged is False
    assert store.conversions == []
    audit = store.audit[0]
    assert audit.source == "admin_emergency"
    assert audit.reason == "EMERGENCY: Data correction"
    assert audit.metadata["emergency"] is True


@pytest.mark.asyncio
async def test_storage_failure_returns_error_and_rolls_back(
    store, scored_user, fake_db, conversion_repo, queue_transition_service, monkeypatch
):
    async def failing_insert_audit(conn, entry):
        raise DatabaseError("audit insert failed", "insert_audit")

    monkeypatch.setattr(conversion_repo, "insert_audit", failing_insert_audit)

    result = await queue_transition_service.transition_user_queue(_request())

    assert result.success is False
    assert result.error == "audit insert failed"
    assert fake_db.rollbacks == 1
    assert store.conversions == []
    assert store.scores[1].current_queue_type == "unsigned_users"


@pytest.mark.asyncio
async def test_bulk_transition_counts(store, scored_user, queue_transition_service):
    store.scores[2] = UserCallScore(user_id=2, current_queue_type="outstanding_requests")
    store.user_status[2] = UserStatus(user_id=2, has_signature=True, pending_requirements=2)

    summary = await queue_transition_service.bulk_transition_users(
        [
            _request(),
            _request(user_id=2, from_queue="outstanding_requests"),
            _request(user_id=3, source=""),
        ]
    )

    assert summary == {"processed": 3, "successful": 2, "failed": 1, "conversions_logged": 1}
    assert len(store.audit) == 2
