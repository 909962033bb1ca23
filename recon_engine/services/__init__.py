"""Services for reconciliation."""

from .anomalies import AnomalyDetector
from .confirmation import ConfirmationService
from .learning import PatternLearner
from .reconcile import ReconciliationEngine
from .store import RecordStore
from .suggestions import SuggestionService

__all__ = [
    "RecordStore",
    "SuggestionService",
    "ReconciliationEngine",
    "ConfirmationService",
    "PatternLearner",
    "AnomalyDetector",
]
