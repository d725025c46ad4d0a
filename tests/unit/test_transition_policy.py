from datetime import UTC, datetime, timedelta

from app.features.call_outcomes.domain.models import (
    CallOutcomeContext,
    ConversionType,
    OutcomeType,
    UserStatus,
)
from app.features.call_outcomes.domain.payloads import CallbackData, DoNotContactData, NotInterestedData
from app.features.call_outcomes.handlers import outcome_registry
from app.features.call_outcomes.scoring import PriorityScore
from app.features.call_outcomes.transitions import (
    count_valid_pending_requirements,
    decide_transition,
    is_leak_pattern,
    should_log_conversion,
)

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _dispatch(outcome_type, data=None):
    context = CallOutcomeContext(
        session_id="session-1", user_id=42, agent_id=7, call_duration_seconds=90, captured_at=NOW
    )
    return outcome_registry.dispatch(outcome_type, context, data), outcome_registry.get_handler(outcome_type)


def test_triggering_outcome_converts_with_handler_hint():
    result, handler = _dispatch(OutcomeType.DO_NOT_CONTACT, DoNotContactData(notes="stop calling"))
    score = PriorityScore(user_id=42, final_score=200, is_bounded=True)

    decision = decide_transition(score, result, handler)

    assert decision.convert is True
    assert decision.conversion_type == ConversionType.OPTED_OUT
    assert decision.close_queue_status == "converted"
    assert decision.needs_manual_review is False


def test_high_score_without_conversion_outcome_stays_active():
    result, handler = _dispatch(OutcomeType.NOT_INTERESTED, NotInterestedData(notes="no thanks"))
    score = PriorityScore(user_id=42, final_score=290)

    decision = decide_transition(score, result, handler)

    assert decision.convert is False
    assert decision.needs_manual_review is True
    assert decision.close_queue_status is None


def test_callback_completes_queue_entry():
    result, handler = _dispatch(
        OutcomeType.CALL_BACK, CallbackData(callback_datetime=NOW + timedelta(hours=2))
    )
    score = PriorityScore(user_id=42, final_score=3)

    decision = decide_transition(score, result, handler)

    assert decision.convert is False
    assert decision.schedule_callback is True
    assert decision.close_queue_status == "completed"


def test_bounded_score_at_maximum_converts_on_threshold():
    result, handler = _dispatch(OutcomeType.HUNG_UP)
    score = PriorityScore(user_id=42, final_score=200, is_bounded=True)

    decision = decide_transition(score, result, handler)

    assert decision.convert is True
    assert decision.conversion_type == ConversionType.SCORE_THRESHOLD


def test_leak_patterns():
    assert is_leak_pattern("unsigned_users", None)
    assert is_leak_pattern("unsigned_users", "outstanding_requests")
    assert is_leak_pattern("outstanding_requests", None)
    assert not is_leak_pattern("outstanding_requests", "unsigned_users")
    assert not is_leak_pattern(None, None)


def test_signature_obtained_is_a_conversion():
    status = UserStatus(user_id=42, has_signature=True, pending_requirements=3)

    decision = should_log_conversion("unsigned_users", None, status)

    assert decision.should_log is True
    assert decision.conversion_type == ConversionType.SIGNATURE_OBTAINED


def test_unsigned_to_outstanding_is_not_a_conversion():
    status = UserStatus(user_id=42, has_signature=True, pending_requirements=3)

    assert should_log_conversion("unsigned_users", "outstanding_requests", status).should_log is False


def test_requirements_completed_only_when_nothing_pending():
    done = UserStatus(user_id=42, has_signature=True, pending_requirements=0)
    pending = UserStatus(user_id=42, has_signature=True, pending_requirements=1)

    decision = should_log_conversion("outstanding_requests", None, done)

    assert decision.conversion_type == ConversionType.REQUIREMENTS_COMPLETED
    assert should_log_conversion("outstanding_requests", None, pending).should_log is False


def test_unsigned_exit_without_signature_is_not_a_conversion():
    status = UserStatus(user_id=42, has_signature=False, pending_requirements=0)

    assert should_log_conversion("unsigned_users", None, status).should_log is False


def test_excluded_requirements_do_not_block_completion():
    requirements = [
        {"document_type": "signature", "requirement_reason": None},
        {"document_type": "CFA", "requirement_reason": None},
        {"document_type": "vehicle_registration", "requirement_reason": "needed"},
        {"document_type": "id_document", "requirement_reason": "base requirement for claim."},
        {"document_type": "id_document", "requirement_reason": "Address mismatch"},
        {"document_type": "bank_statement", "requirement_reason": None},
    ]

    assert count_valid_pending_requirements(requirements) == 2
