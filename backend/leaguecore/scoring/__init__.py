"""Score calculation and ranking for completed matches."""

from .calculator import compute_score, numeric_value, score_from_stats
from .ranking import primary_key, rank_participants

__all__ = [
    "compute_score",
    "numeric_value",
    "score_from_stats",
    "primary_key",
    "rank_participants",
]
