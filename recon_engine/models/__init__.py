"""Database models."""

from .recon import (
    AlertKind,
    AlertSeverity,
    AlertState,
    AnomalyAlert,
    BankTransaction,
    Base,
    Document,
    LearnedPattern,
    MatchRecord,
    ReconciliationState,
)

__all__ = [
    "Base",
    "BankTransaction",
    "Document",
    "MatchRecord",
    "LearnedPattern",
    "AnomalyAlert",
    "ReconciliationState",
    "AlertKind",
    "AlertSeverity",
    "AlertState",
]
