# Application Mastery Package
from .difficulty import DifficultyParams, DifficultyService, is_difficult, rank_difficult
from .review_service import ReviewService
from .scoring import apply_outcome, score_delta

__all__ = [
    "apply_outcome",
    "score_delta",
    "ReviewService",
    "DifficultyParams",
    "DifficultyService",
    "is_difficult",
    "rank_difficult",
]
