"""SQLAlchemy models for reconciliation."""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class ReconciliationState(str, Enum):
    """Reconciliation state of a transaction or match record."""

    PENDING = "pending"
    MATCHED = "matched"
    PARTIAL = "partial"
    UNMATCHED = "unmatched"
    MANUAL = "manual"


class AlertKind(str, Enum):
    """Types of anomaly alerts."""

    UNUSUAL_AMOUNT = "unusual_amount"
    NEW_COUNTERPARTY = "new_counterparty"
    POSSIBLE_DUPLICATE = "possible_duplicate"
    DIFFERENT_PATTERN = "different_pattern"
    RECONCILIATION_FAILED = "reconciliation_failed"


class AlertSeverity(str, Enum):
    """Alert severity."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertState(str, Enum):
    """Alert review state."""

    OPEN = "open"
    REVIEWED = "reviewed"
    DISMISSED = "dismissed"
    RESOLVED = "resolved"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class BankTransaction(Base):
    """Bank account transaction delivered by upstream ingestion."""

    __tablename__ = "bank_transactions"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    client_id: Mapped[str | None] = mapped_column(String(100))
    bank: Mapped[str | None] = mapped_column(String(100))

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_description: Mapped[str | None] = mapped_column(Text)
    reference: Mapped[str | None] = mapped_column(String(255))

    # Signed, minor currency units
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100))

    # NULL is treated as pending
    reconciliation_state: Mapped[str | None] = mapped_column(String(20))
    matched_document_id: Mapped[str | None] = mapped_column(String(100))

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_bank_tx_client_date", "client_id", "date"),
        Index("idx_bank_tx_client_state", "client_id", "reconciliation_state"),
    )

    @property
    def matching_text(self) -> str:
        """Upper-cased description used for scoring and fingerprinting."""
        return (self.normalized_description or self.description or "").upper()

    def __repr__(self) -> str:
        return f"<BankTransaction {self.id} {self.date} {self.amount}>"


class Document(Base):
    """Accounting document (invoice, receipt). Read-only for this engine."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    folio: Mapped[str] = mapped_column(String(100), nullable=False)
    issue_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    issuer_tax_id: Mapped[str] = mapped_column(String(20), nullable=False)
    issuer_name: Mapped[str | None] = mapped_column(String(255))
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Bumped whenever the document is consumed by a match
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_documents_client_date", "client_id", "issue_date"),)

    def __repr__(self) -> str:
        return f"<Document {self.id} {self.document_type} {self.folio} {self.total_amount}>"


class MatchRecord(Base):
    """Authoritative reconciliation outcome for a transaction."""

    __tablename__ = "match_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(100), nullable=False)
    document_id: Mapped[str | None] = mapped_column(String(100))
    client_id: Mapped[str] = mapped_column(String(100), nullable=False)

    confidence: Mapped[Decimal] = mapped_column(Numeric(3, 2), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_diff: Mapped[int | None] = mapped_column(BigInteger)
    day_diff: Mapped[int | None] = mapped_column(Integer)
    reasons: Mapped[list[str]] = mapped_column(JSON, default=list)
    period: Mapped[str | None] = mapped_column(String(7))

    # Manual confirmation
    confirmed_by: Mapped[str | None] = mapped_column(String(100))
    confirmed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_match_records_tx", "transaction_id"),
        Index("idx_match_records_client_state", "client_id", "state"),
    )

    def __repr__(self) -> str:
        return f"<MatchRecord {self.id} {self.transaction_id} {self.state} {self.confidence}>"


class LearnedPattern(Base):
    """Description fingerprint learned from manual confirmations."""

    __tablename__ = "learned_patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(255), nullable=False)

    # Context captured from the first confirmation
    counterparty_tax_id: Mapped[str | None] = mapped_column(String(20))
    category: Mapped[str | None] = mapped_column(String(100))
    document_type: Mapped[str | None] = mapped_column(String(50))

    times_applied: Mapped[int] = mapped_column(Integer, default=0)
    last_applied: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    score_boost: Mapped[Decimal | None] = mapped_column(Numeric(3, 2))
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_patterns_client_fingerprint", "client_id", "fingerprint"),)

    def __repr__(self) -> str:
        return f"<LearnedPattern {self.id} {self.fingerprint!r} x{self.times_applied}>"


class AnomalyAlert(Base):
    """Alert raised by the anomaly detector."""

    __tablename__ = "anomaly_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(String(20), default=AlertState.OPEN.value)

    reference_amount: Mapped[int | None] = mapped_column(BigInteger)
    detected_amount: Mapped[int | None] = mapped_column(BigInteger)
    transaction_id: Mapped[str | None] = mapped_column(String(100))
    document_id: Mapped[str | None] = mapped_column(String(100))
    extra: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    # Review
    resolved_by: Mapped[str | None] = mapped_column(String(100))
    resolved_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    resolution_notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_alerts_client_kind_tx", "client_id", "kind", "transaction_id"),
        Index("idx_alerts_state", "state"),
    )

    def __repr__(self) -> str:
        return f"<AnomalyAlert {self.id} {self.kind} {self.severity} {self.state}>"
