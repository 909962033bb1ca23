"""Record store adapter - indexed reads and atomic writes over the database session."""

import calendar
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recon_engine.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from recon_engine.models.recon import (
    AnomalyAlert,
    BankTransaction,
    Document,
    LearnedPattern,
    MatchRecord,
    ReconciliationState,
)

logger = logging.getLogger(__name__)

PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def period_bounds(period: str) -> tuple[date, date]:
    """Convert a YYYY-MM period into its first and last calendar day."""
    match = PERIOD_PATTERN.match(period or "")
    if not match:
        raise ValidationError(f"Invalid period {period!r}, expected YYYY-MM")

    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid period {period!r}, month out of range")

    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class RecordStore:
    """Repository for transactions, documents, match records, patterns and alerts.

    Every engine operation wraps its writes in ``atomic()`` so that either all
    of its changes are committed or none are.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator["RecordStore"]:
        """Commit on success, roll back on any error."""
        try:
            yield self
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    # Transactions
    async def get_transaction(self, transaction_id: str) -> BankTransaction:
        transaction = await self.session.get(BankTransaction, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    async def list_transactions(
        self,
        client_id: str,
        period: str | None = None,
        states: list[str] | None = None,
        include_unset: bool = False,
    ) -> list[BankTransaction]:
        """Transactions for a client, oldest first.

        Args:
            client_id: Owning client
            period: Optional YYYY-MM period
            states: Restrict to these reconciliation states
            include_unset: With ``states``, also include rows with no state
        """
        query = select(BankTransaction).where(BankTransaction.client_id == client_id)

        if period:
            start, end = period_bounds(period)
            query = query.where(BankTransaction.date >= start, BankTransaction.date <= end)

        if states is not None:
            condition = BankTransaction.reconciliation_state.in_(states)
            if include_unset:
                condition = or_(condition, BankTransaction.reconciliation_state.is_(None))
            query = query.where(condition)

        query = query.order_by(BankTransaction.date, BankTransaction.id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_pending_transactions(
        self, client_id: str, period: str | None = None
    ) -> list[BankTransaction]:
        return await self.list_transactions(
            client_id,
            period=period,
            states=[ReconciliationState.PENDING.value],
            include_unset=True,
        )

    async def list_client_ids(self) -> list[str]:
        result = await self.session.execute(
            select(BankTransaction.client_id)
            .where(BankTransaction.client_id.is_not(None))
            .distinct()
            .order_by(BankTransaction.client_id)
        )
        return list(result.scalars().all())

    async def update_transaction(
        self,
        transaction: BankTransaction,
        *,
        check_version: bool = False,
        **values,
    ) -> None:
        """Write transaction fields and bump its version.

        With ``check_version`` the write only applies if nobody else changed
        the row since it was loaded; otherwise ConcurrencyConflictError.
        """
        query = update(BankTransaction).where(BankTransaction.id == transaction.id)
        if check_version:
            query = query.where(BankTransaction.version == transaction.version)

        result = await self.session.execute(
            query.values(version=BankTransaction.version + 1, **values).execution_options(
                synchronize_session="evaluate"
            )
        )
        if check_version and result.rowcount == 0:
            raise ConcurrencyConflictError(f"Transaction {transaction.id} changed concurrently")

    # Documents
    async def get_document(self, document_id: str) -> Document:
        document = await self.session.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    async def list_documents(self, client_id: str) -> list[Document]:
        """Documents for a client, ordered by issue date then id."""
        result = await self.session.execute(
            select(Document)
            .where(Document.client_id == client_id)
            .order_by(Document.issue_date, Document.id)
        )
        return list(result.scalars().all())

    async def consume_document(self, document: Document, *, check_version: bool = False) -> None:
        """Bump the document version to mark it consumed by a match."""
        query = update(Document).where(Document.id == document.id)
        if check_version:
            query = query.where(Document.version == document.version)

        result = await self.session.execute(
            query.values(version=Document.version + 1).execution_options(
                synchronize_session="evaluate"
            )
        )
        if check_version and result.rowcount == 0:
            raise ConcurrencyConflictError(f"Document {document.id} consumed concurrently")

    # Match records
    async def get_match_record(self, match_record_id: int) -> MatchRecord:
        record = await self.session.get(MatchRecord, match_record_id)
        if record is None:
            raise NotFoundError("Match record", match_record_id)
        return record

    async def find_match_record_for_transaction(self, transaction_id: str) -> MatchRecord | None:
        """Most recent match record for a transaction."""
        result = await self.session.execute(
            select(MatchRecord)
            .where(MatchRecord.transaction_id == transaction_id)
            .order_by(MatchRecord.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_match_records(
        self,
        client_id: str,
        state: str | None = None,
        period: str | None = None,
        limit: int | None = None,
    ) -> list[MatchRecord]:
        """Match records for a client, newest first."""
        query = select(MatchRecord).where(MatchRecord.client_id == client_id)
        if state:
            query = query.where(MatchRecord.state == state)
        if period:
            query = query.where(MatchRecord.period.startswith(period))

        query = query.order_by(MatchRecord.id.desc())
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def consumed_document_ids(self, client_id: str) -> set[str]:
        """Document IDs already bound to a matched record for the client."""
        result = await self.session.execute(
            select(MatchRecord.document_id).where(
                MatchRecord.client_id == client_id,
                MatchRecord.state == ReconciliationState.MATCHED.value,
                MatchRecord.document_id.is_not(None),
            )
        )
        return set(result.scalars().all())

    async def delete_match_record(self, record: MatchRecord) -> None:
        await self.session.delete(record)

    # Learned patterns
    async def list_active_patterns(self, client_id: str) -> list[LearnedPattern]:
        result = await self.session.execute(
            select(LearnedPattern)
            .where(LearnedPattern.client_id == client_id, LearnedPattern.active.is_(True))
            .order_by(LearnedPattern.id)
        )
        return list(result.scalars().all())

    async def find_active_pattern(self, client_id: str, fingerprint: str) -> LearnedPattern | None:
        result = await self.session.execute(
            select(LearnedPattern)
            .where(
                LearnedPattern.client_id == client_id,
                LearnedPattern.fingerprint == fingerprint,
                LearnedPattern.active.is_(True),
            )
            .order_by(LearnedPattern.id)
            .limit(1)
        )
        return result.scalars().first()

    # Alerts
    async def get_alert(self, alert_id: int) -> AnomalyAlert:
        alert = await self.session.get(AnomalyAlert, alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        return alert

    async def existing_alert_keys(self, client_id: str) -> set[tuple[str, str]]:
        """(kind, transaction_id) pairs that already have an alert for the client."""
        result = await self.session.execute(
            select(AnomalyAlert.kind, AnomalyAlert.transaction_id).where(
                AnomalyAlert.client_id == client_id,
                AnomalyAlert.transaction_id.is_not(None),
            )
        )
        return {(kind, transaction_id) for kind, transaction_id in result.all()}

    async def list_alerts(
        self,
        client_id: str | None = None,
        state: str | None = None,
        severity: str | None = None,
        limit: int | None = None,
    ) -> list[AnomalyAlert]:
        """Alerts, newest first."""
        query = select(AnomalyAlert)
        if client_id:
            query = query.where(AnomalyAlert.client_id == client_id)
        if state:
            query = query.where(AnomalyAlert.state == state)
        if severity:
            query = query.where(AnomalyAlert.severity == severity)

        query = query.order_by(AnomalyAlert.id.desc())
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    def add(self, instance) -> None:
        self.session.add(instance)

    async def flush(self) -> None:
        await self.session.flush()
