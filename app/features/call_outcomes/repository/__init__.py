from .conversion_repository import ConversionRepository, conversion_repository
from .outcome_repository import CallOutcomeRepository, call_outcome_repository
from .score_repository import ScoreRepository, score_repository
from .user_status_repository import UserStatusRepository, user_status_repository

__all__ = [
    "CallOutcomeRepository",
    "ConversionRepository",
    "ScoreRepository",
    "UserStatusRepository",
    "call_outcome_repository",
    "conversion_repository",
    "score_repository",
    "user_status_repository",
]
