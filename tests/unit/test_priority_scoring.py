from datetime import UTC, datetime, timedelta

import pytest

from app.features.call_outcomes.scoring import (
    PriorityScoringService,
    ScoringContext,
    score_band,
)

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


def _build_context(**overrides) -> ScoringContext:
    base = {
        "user_id": 42,
        "current_score": 40,
        "has_existing_record": True,
        "current_queue_type": "unsigned_users",
        "previous_queue_type": "unsigned_users",
        "last_outcome": "no_answer",
        "total_attempts": 2,
    }
    base.update(overrides)
    return ScoringContext(**base)


@pytest.fixture
def scoring():
    return PriorityScoringService(max_score=200)


def test_adds_outcome_delta_to_current_score(scoring):
    score = scoring.calculate_priority(_build_context())

    assert score.final_score == 50
    assert score.is_fresh_start is False
    assert score.factor("outcome_adjustment").value == 10


def test_first_contact_starts_from_zero(scoring):
    score = scoring.calculate_priority(
        _build_context(has_existing_record=False, current_score=150, last_outcome="call_back")
    )

    assert score.is_fresh_start is True
    assert score.final_score == 3
    assert score.factor("fresh_start") is not None


def test_queue_change_starts_from_zero(scoring):
    score = scoring.calculate_priority(
        _build_context(current_score=120, previous_queue_type="outstanding_requests")
    )

    assert score.is_fresh_start is True
    assert score.final_score == 10


def test_requirements_changed_after_last_reset_starts_from_zero(scoring):
    changed = _build_context(
        current_score=80,
        requirements_changed_date=NOW,
        last_reset_date=NOW - timedelta(days=3),
        user_created_at=NOW - timedelta(days=30),
    )
    unchanged = _build_context(
        current_score=80,
        requirements_changed_date=NOW - timedelta(days=5),
        last_reset_date=NOW - timedelta(days=3),
    )
    no_anchor = _build_context(current_score=80, requirements_changed_date=NOW)

    assert scoring.calculate_priority(changed).final_score == 10
    assert scoring.calculate_priority(unchanged).final_score == 90
    assert scoring.calculate_priority(no_anchor).final_score == 90


@pytest.mark.parametrize(
    ("attempts", "penalty"),
    [(0, 0), (5, 0), (6, 1), (10, 5), (11, 3), (14, 12)],
)
def test_attempt_penalty(scoring, attempts, penalty):
    assert scoring.attempt_penalty(attempts) == penalty


def test_attempt_penalty_is_added(scoring):
    score = scoring.calculate_priority(_build_context(total_attempts=8))

    assert score.final_score == 40 + 10 + 3
    assert score.factor("attempt_penalty").value == 3


def test_conversion_outcomes_are_capped(scoring):
    score = scoring.calculate_priority(_build_context(current_score=150, last_outcome="do_not_contact"))

    assert score.final_score == 200
    assert score.is_bounded is True
    assert score.factor("score_cap") is not None
    assert score.needs_manual_review is False


def test_non_conversion_outcomes_may_exceed_maximum(scoring):
    score = scoring.calculate_priority(_build_context(current_score=190, last_outcome="not_interested"))

    assert score.final_score == 290
    assert score.is_bounded is False
    assert score.needs_manual_review is True


def test_score_never_goes_negative(scoring):
    score = scoring.calculate_priority(_build_context(current_score=-20, last_outcome="completed_form"))

    assert score.final_score == 0


def test_unknown_outcome_degrades_without_raising(scoring):
    score = scoring.calculate_priority(_build_context(last_outcome="voicemail"))

    assert score.final_score == 40
    assert score.scoring_degraded is True
    assert score.factor("outcome_adjustment").value == 0


def test_no_outcome_keeps_current_score(scoring):
    score = scoring.calculate_priority(_build_context(last_outcome=None))

    assert score.final_score == 40
    assert score.factor("outcome_adjustment") is None


def test_explain_score_reports_band_and_factors(scoring):
    explained = scoring.explain_score(_build_context())

    assert explained["final_score"] == 50
    assert explained["band"] == "warm"
    assert [f["name"] for f in explained["factors"]] == ["base_score", "outcome_adjustment"]
    assert len(explained["rules"]) == 5


@pytest.mark.parametrize(
    ("score", "band"),
    [(0, "red_hot"), (10, "red_hot"), (11, "warm"), (100, "lukewarm"), (199, "cold"), (200, "frozen")],
)
def test_score_band(score, band):
    assert score_band(score) == band
