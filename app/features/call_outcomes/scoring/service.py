"""
Priority scoring engine - turns disposition history into a bounded priority.

Lower score means higher calling urgency. Scores for conversion outcomes are
clamped into [0, MAX_SCORE]; other outcomes are only floored at 0 and may
exceed MAX_SCORE, which flags the user for manual review instead of
removing them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import ScoringDegraded
from ..handlers.catalog import get_scoring_rule

logger = get_logger(__name__)


@dataclass(slots=True)
class ScoringContext:
    user_id: int
    current_score: int = 0
    has_existing_record: bool = False
    current_queue_type: str | None = None
    previous_queue_type: str | None = None
    last_outcome: str | None = None
    total_attempts: int = 0
    requirements_changed_date: datetime | None = None
    last_reset_date: datetime | None = None
    user_created_at: datetime | None = None


@dataclass(slots=True)
class ScoreFactor:
    name: str
    value: int
    reason: str


@dataclass(slots=True)
class PriorityScore:
    user_id: int
    final_score: int
    factors: list[ScoreFactor] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    is_fresh_start: bool = False
    is_bounded: bool = False
    scoring_degraded: bool = False

    @property
    def needs_manual_review(self) -> bool:
        return any(f.name == "high_score_warning" for f in self.factors)

    def factor(self, name: str) -> ScoreFactor | None:
        return next((f for f in self.factors if f.name == name), None)


SCORE_BANDS: tuple[tuple[int, str], ...] = (
    (10, "red_hot"),
    (50, "warm"),
    (100, "lukewarm"),
    (199, "cold"),
)


def score_band(score: int) -> str:
    """Dashboard band for a score; anything at or past the ceiling is frozen."""
    for upper, label in SCORE_BANDS:
        if score <= upper:
            return label
    return "frozen"


class PriorityScoringService:
    ATTEMPT_PENALTY_SOFT_START = 5
    ATTEMPT_PENALTY_HARD_START = 10
    HARD_PENALTY_MULTIPLIER = 3

    def __init__(self, max_score: int | None = None):
        self.max_score = max_score if max_score is not None else settings.MAX_SCORE

    def calculate_priority(self, context: ScoringContext) -> PriorityScore:
        """Compute the next priority score. Never raises for unknown outcomes."""
        factors: list[ScoreFactor] = []
        fresh_start, fresh_reason = self._is_fresh_start(context)

        if fresh_start:
            score = 0
            factors.append(ScoreFactor("fresh_start", 0, fresh_reason))
        else:
            score = context.current_score
            factors.append(ScoreFactor("base_score", score, "Continuing from current score"))

        delta, triggers, degraded = self._outcome_delta(context)
        if context.last_outcome:
            score += delta
            factors.append(
                ScoreFactor(
                    "outcome_adjustment",
                    delta,
                    f"Outcome {context.last_outcome}" + (" (unknown, no change)" if degraded else ""),
                )
            )

        penalty = self.attempt_penalty(context.total_attempts)
        if penalty:
            score += penalty
            factors.append(
                ScoreFactor("attempt_penalty", penalty, f"{context.total_attempts} attempts")
            )

        if triggers:
            if score >= self.max_score:
                factors.append(
                    ScoreFactor("score_cap", self.max_score, "Conversion outcome capped at maximum")
                )
            score = min(max(score, 0), self.max_score)
        else:
            score = max(score, 0)
            if score >= self.max_score:
                factors.append(
                    ScoreFactor(
                        "high_score_warning",
                        score,
                        "Score at or above maximum without a conversion outcome - needs manual review",
                    )
                )

        logger.debug(
            "Priority score calculated",
            user_id=context.user_id,
            final_score=score,
            fresh_start=fresh_start,
            last_outcome=context.last_outcome,
        )
        return PriorityScore(
            user_id=context.user_id,
            final_score=score,
            factors=factors,
            is_fresh_start=fresh_start,
            is_bounded=triggers,
            scoring_degraded=degraded,
        )

    def explain_score(self, context: ScoringContext) -> dict[str, Any]:
        score = self.calculate_priority(context)
        return {
            "user_id": score.user_id,
            "final_score": score.final_score,
            "band": score_band(score.final_score),
            "is_fresh_start": score.is_fresh_start,
            "needs_manual_review": score.needs_manual_review,
            "calculated_at": score.calculated_at.isoformat(),
            "factors": [
                {"name": f.name, "value": f.value, "reason": f.reason} for f in score.factors
            ],
            "rules": [
                "Fresh start (score 0) on first contact, queue change or new requirements",
                "Outcome adjustments are added to the current score",
                f"Attempts above {self.ATTEMPT_PENALTY_SOFT_START} add 1 per attempt, "
                f"above {self.ATTEMPT_PENALTY_HARD_START} add {self.HARD_PENALTY_MULTIPLIER} per attempt",
                f"Conversion outcomes are capped at {self.max_score}",
                f"Other outcomes at or above {self.max_score} are flagged for manual review",
            ],
        }

    def attempt_penalty(self, total_attempts: int) -> int:
        if total_attempts > self.ATTEMPT_PENALTY_HARD_START:
            return self.HARD_PENALTY_MULTIPLIER * (total_attempts - self.ATTEMPT_PENALTY_HARD_START)
        if total_attempts > self.ATTEMPT_PENALTY_SOFT_START:
            return total_attempts - self.ATTEMPT_PENALTY_SOFT_START
        return 0

    @staticmethod
    def _is_fresh_start(context: ScoringContext) -> tuple[bool, str]:
        if not context.has_existing_record:
            return True, "First contact attempt"

        if context.current_queue_type != context.previous_queue_type:
            return True, f"Queue changed from {context.previous_queue_type} to {context.current_queue_type}"

        if context.requirements_changed_date:
            anchors = [d for d in (context.last_reset_date, context.user_created_at) if d]
            if anchors and context.requirements_changed_date > max(anchors):
                return True, "Requirements changed since last reset"

        return False, ""

    @staticmethod
    def _outcome_delta(context: ScoringContext) -> tuple[int, bool, bool]:
        """Returns (delta, triggers_conversion, degraded)."""
        if not context.last_outcome:
            return 0, False, False
        try:
            rule = get_scoring_rule(context.last_outcome)
        except ScoringDegraded as e:
            logger.warning(
                "Unknown outcome in scoring, no score change",
                user_id=context.user_id,
                outcome_type=e.outcome_type,
            )
            return 0, False, True
        return rule.score_delta, rule.triggers_conversion, False


priority_scoring_service = PriorityScoringService()
