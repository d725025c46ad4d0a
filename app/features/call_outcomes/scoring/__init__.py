"""
Priority scoring package.

Ranks users in the calling queue from their disposition history.
"""

from .service import (
    PriorityScore,
    PriorityScoringService,
    ScoreFactor,
    ScoringContext,
    priority_scoring_service,
    score_band,
)

__all__ = [
    "PriorityScore",
    "PriorityScoringService",
    "ScoreFactor",
    "ScoringContext",
    "priority_scoring_service",
    "score_band",
]
