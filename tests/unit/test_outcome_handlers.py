from datetime import UTC, datetime, timedelta

import pytest

from app.features.call_outcomes.domain.errors import (
    OutcomeExecutionFailed,
    UnknownOutcomeType,
    ValidationFailed,
)
from app.features.call_outcomes.domain.models import (
    CallOutcomeContext,
    ConversionType,
    OutcomeType,
)
from app.features.call_outcomes.domain.payloads import (
    BadNumberData,
    CallbackData,
    CompletedFormData,
    DoNotContactData,
    MightCompleteData,
    MissedCallData,
    NoAnswerData,
    NoClaimData,
    build_payload,
)
from app.features.call_outcomes.handlers import (
    OutcomeHandlerRegistry,
    build_default_registry,
    make_handler,
    outcome_registry,
    triggers_conversion,
)
from app.features.call_outcomes.handlers.base import validation_result

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _context(**overrides) -> CallOutcomeContext:
    base = {
        "session_id": "session-1",
        "user_id": 42,
        "agent_id": 7,
        "call_duration_seconds": 120,
        "captured_at": NOW,
    }
    base.update(overrides)
    return CallOutcomeContext(**base)


def _action_types(result) -> list[str]:
    return [action.type for action in result.next_actions]


def test_default_registry_covers_every_outcome_type():
    registry = build_default_registry()

    assert set(registry.registered_types()) == set(OutcomeType)
    for handler in registry.handlers():
        assert handler.scoring_rule is not None
        assert handler.display_name


def test_score_adjustments_match_catalog():
    expected = {
        OutcomeType.COMPLETED_FORM: 0,
        OutcomeType.GOING_TO_COMPLETE: 3,
        OutcomeType.MIGHT_COMPLETE: 3,
        OutcomeType.CALL_BACK: 3,
        OutcomeType.MISSED_CALL: 0,
        OutcomeType.NO_ANSWER: 10,
        OutcomeType.HUNG_UP: 25,
        OutcomeType.BAD_NUMBER: 50,
        OutcomeType.NOT_INTERESTED: 100,
        OutcomeType.NO_CLAIM: 200,
        OutcomeType.DO_NOT_CONTACT: 200,
    }
    for outcome_type, delta in expected.items():
        assert outcome_registry.get_score_adjustment(outcome_type) == delta


def test_only_terminal_outcomes_trigger_conversion():
    triggering = {t for t in OutcomeType if triggers_conversion(t)}

    assert triggering == {
        OutcomeType.COMPLETED_FORM,
        OutcomeType.NO_CLAIM,
        OutcomeType.DO_NOT_CONTACT,
    }
    assert triggers_conversion(None) is False
    assert triggers_conversion("voicemail") is False


def test_unknown_outcome_type_is_rejected():
    with pytest.raises(UnknownOutcomeType):
        outcome_registry.get_handler("voicemail")

    assert outcome_registry.has_handler("voicemail") is False


def test_wrong_payload_type_fails_execution():
    with pytest.raises(OutcomeExecutionFailed):
        outcome_registry.dispatch(OutcomeType.NO_ANSWER, _context(), CallbackData())


def test_validation_failure_skips_execute():
    calls = []

    def _actions(context, data):
        calls.append(data)
        return []

    handler = make_handler(
        OutcomeType.HUNG_UP,
        validate=lambda context, data: validation_result(["always wrong"], ["heads up"]),
        delay_hours=lambda context, data: 1.0,
        next_actions=_actions,
    )
    registry = OutcomeHandlerRegistry([handler])

    with pytest.raises(ValidationFailed) as exc_info:
        registry.dispatch(OutcomeType.HUNG_UP, _context())

    assert exc_info.value.errors == ["always wrong"]
    assert exc_info.value.warnings == ["heads up"]
    assert calls == []


def test_last_registration_wins():
    replacement = make_handler(
        OutcomeType.HUNG_UP,
        validate=lambda context, data: validation_result([], []),
        delay_hours=lambda context, data: 99.0,
    )
    registry = build_default_registry()
    registry.register(replacement)

    result = registry.dispatch(OutcomeType.HUNG_UP, _context())

    assert result.next_call_delay_hours == 99.0
    assert registry.get_handler("hung_up") is replacement


def test_handler_exception_becomes_execution_failure():
    def _boom(context, data):
        raise RuntimeError("broken handler")

    handler = make_handler(
        OutcomeType.HUNG_UP,
        validate=lambda context, data: validation_result([], []),
        delay_hours=_boom,
    )
    registry = OutcomeHandlerRegistry([handler])

    with pytest.raises(OutcomeExecutionFailed) as exc_info:
        registry.dispatch(OutcomeType.HUNG_UP, _context())

    assert "broken handler" in exc_info.value.reason


def test_call_back_schedules_at_requested_time():
    callback_at = NOW + timedelta(hours=2)

    result = outcome_registry.dispatch(
        OutcomeType.CALL_BACK,
        _context(),
        CallbackData(callback_datetime=callback_at),
    )

    assert result.success is True
    assert result.score_adjustment == 3
    assert result.next_call_delay_hours == pytest.approx(2.0)
    assert result.callback_datetime == callback_at
    assert result.callback_reason == "Customer requested callback"
    assert result.conversions == []
    assert _action_types(result) == ["schedule_callback", "send_sms"]
    assert result.next_actions[0].priority == "high"


@pytest.mark.parametrize(
    "callback_at",
    [None, NOW - timedelta(minutes=5), NOW],
)
def test_call_back_requires_future_datetime(callback_at):
    with pytest.raises(ValidationFailed):
        outcome_registry.dispatch(
            OutcomeType.CALL_BACK, _context(), CallbackData(callback_datetime=callback_at)
        )


def test_naive_callback_datetime_is_treated_as_utc():
    naive = (NOW + timedelta(hours=3)).replace(tzinfo=None)

    payload = build_payload(OutcomeType.CALL_BACK, {"callback_datetime": naive, "notes": "  "})

    assert payload.callback_datetime.tzinfo is UTC
    assert payload.notes is None


def test_do_not_contact_without_notes_is_rejected():
    with pytest.raises(ValidationFailed) as exc_info:
        outcome_registry.dispatch(
            OutcomeType.DO_NOT_CONTACT, _context(), DoNotContactData(reason="asked")
        )

    assert exc_info.value.errors == [
        "Notes are required for do-not-contact outcomes (compliance record)"
    ]


def test_do_not_contact_opts_out_with_warnings():
    result = outcome_registry.dispatch(
        OutcomeType.DO_NOT_CONTACT,
        _context(call_duration_seconds=10),
        DoNotContactData(notes="Customer asked us to stop calling", send_confirmation=True, legal_review=True),
    )

    assert result.conversions[0].type == ConversionType.OPTED_OUT
    assert result.next_call_delay_hours == 0
    assert _action_types(result) == [
        "remove_from_queue",
        "update_user_data",
        "send_sms",
        "flag_for_review",
    ]
    # missing reason, unknown confirmation state, short call
    assert len(result.warnings) == 3


@pytest.mark.parametrize(
    ("age", "expected_delay"),
    [
        (timedelta(minutes=20), 0.0),
        (timedelta(hours=2), 0.25),
        (timedelta(hours=6), 0.5),
    ],
)
def test_missed_call_delay_by_age(age, expected_delay):
    result = outcome_registry.dispatch(
        OutcomeType.MISSED_CALL,
        _context(call_duration_seconds=0),
        MissedCallData(missed_call_time=NOW - age),
    )

    assert result.next_call_delay_hours == expected_delay
    assert result.callback_datetime == NOW + timedelta(hours=expected_delay)
    assert result.next_actions[0].priority == "critical"


def test_missed_call_rejects_future_time_and_warns_when_stale():
    with pytest.raises(ValidationFailed):
        outcome_registry.dispatch(
            OutcomeType.MISSED_CALL,
            _context(),
            MissedCallData(missed_call_time=NOW + timedelta(minutes=1)),
        )

    result = outcome_registry.dispatch(
        OutcomeType.MISSED_CALL,
        _context(call_duration_seconds=2),
        MissedCallData(missed_call_time=NOW - timedelta(hours=30)),
    )
    assert result.warnings == ["Missed call is more than 24 hours old"]


@pytest.mark.parametrize(
    ("previous", "expected_delay", "expected_actions"),
    [
        ([], 4.0, []),
        (["no_answer"], 24.0, []),
        (["no_answer", "no_answer"], 48.0, ["send_sms"]),
        (["no_answer"] * 4, 48.0, ["send_sms", "escalate"]),
        (["hung_up", "no_answer", "no_answer"], 4.0, []),
    ],
)
def test_no_answer_backs_off_and_escalates(previous, expected_delay, expected_actions):
    result = outcome_registry.dispatch(
        OutcomeType.NO_ANSWER, _context(previous_outcomes=previous), NoAnswerData()
    )

    assert result.next_call_delay_hours == expected_delay
    assert _action_types(result) == expected_actions


def test_repeated_hang_up_is_flagged():
    first = outcome_registry.dispatch(OutcomeType.HUNG_UP, _context())
    repeat = outcome_registry.dispatch(OutcomeType.HUNG_UP, _context(previous_outcomes=["hung_up"]))

    assert first.next_actions == []
    assert _action_types(repeat) == ["flag_for_review"]
    assert repeat.next_call_delay_hours == 24


def test_might_complete_without_callback_flags_for_review():
    result = outcome_registry.dispatch(
        OutcomeType.MIGHT_COMPLETE, _context(), MightCompleteData(magic_link_sent=True)
    )

    assert result.next_call_delay_hours == 0
    assert _action_types(result) == ["flag_for_review"]
    assert result.warnings == ["No follow-up time provided - a default follow-up will be used"]


@pytest.mark.parametrize(
    ("minutes_ahead", "expected_hours"),
    [(150, 3), (30, 1), (144, 2), (210, 4)],
)
def test_might_complete_rounds_callback_delay_half_up(minutes_ahead, expected_hours):
    result = outcome_registry.dispatch(
        OutcomeType.MIGHT_COMPLETE,
        _context(),
        MightCompleteData(callback_datetime=NOW + timedelta(minutes=minutes_ahead)),
    )

    assert result.next_call_delay_hours == expected_hours


def test_going_to_complete_defaults_to_next_day():
    result = outcome_registry.dispatch(OutcomeType.GOING_TO_COMPLETE, _context())

    assert result.next_call_delay_hours == 24
    assert _action_types(result) == ["send_magic_link", "send_sms"]


def test_completed_form_records_documents():
    result = outcome_registry.dispatch(
        OutcomeType.COMPLETED_FORM,
        _context(call_duration_seconds=15),
        CompletedFormData(documents_requested=["payslip"]),
    )

    assert result.conversions[0].type == ConversionType.COMPLETED
    assert "update_user_data" in _action_types(result)
    assert result.documents_requested == ["payslip"]
    assert len(result.warnings) == 1


def test_no_claim_is_no_longer_eligible():
    result = outcome_registry.dispatch(
        OutcomeType.NO_CLAIM, _context(), NoClaimData(notes="Never had finance")
    )

    assert result.conversions[0].type == ConversionType.NO_LONGER_ELIGIBLE
    assert result.next_actions[0].type == "remove_from_queue"
    assert result.warnings == []


def test_bad_number_without_reason_warns():
    result = outcome_registry.dispatch(OutcomeType.BAD_NUMBER, _context(), BadNumberData())

    assert result.next_call_delay_hours == 48
    assert len(result.warnings) == 1
    assert _action_types(result) == ["update_user_data", "flag_for_review"]
