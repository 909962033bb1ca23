"""Transaction matching engine."""

from .scoring import MatchScorer, Reason, ScoreResult, amount_difference, day_difference, score
from .tax_id import extract_tax_id, normalize_tax_id

__all__ = [
    "MatchScorer",
    "Reason",
    "ScoreResult",
    "score",
    "amount_difference",
    "day_difference",
    "extract_tax_id",
    "normalize_tax_id",
]
