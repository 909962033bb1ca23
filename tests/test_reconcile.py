"""Tests for the batch reconciliation engine."""

from datetime import date
from decimal import Decimal

import pytest
from factories import CLIENT_ID, make_document, make_transaction
from sqlalchemy import select, update

from recon_engine.errors import ConcurrencyConflictError, ValidationError
from recon_engine.models.recon import BankTransaction, MatchRecord
from recon_engine.services import ReconciliationEngine, RecordStore
from recon_engine.services.reconcile import priority_order


async def get_records(session) -> list[MatchRecord]:
    result = await session.execute(select(MatchRecord).order_by(MatchRecord.id))
    return list(result.scalars().all())


async def reload(session, transaction_id: str) -> BankTransaction:
    return await session.get(BankTransaction, transaction_id, populate_existing=True)


class ConflictOnceStore(RecordStore):
    """Simulates a concurrent writer touching a transaction after it was loaded."""

    def __init__(self, session):
        super().__init__(session)
        self.conflicts_left = 1

    async def list_pending_transactions(self, client_id, period=None):
        transactions = await super().list_pending_transactions(client_id, period)
        if self.conflicts_left and transactions:
            self.conflicts_left -= 1
            await self.session.execute(
                update(BankTransaction)
                .where(BankTransaction.id == transactions[0].id)
                .values(version=BankTransaction.version + 1)
                .execution_options(synchronize_session=False)
            )
        return transactions


class AlwaysConflictStore(RecordStore):
    async def update_transaction(self, transaction, *, check_version=False, **values):
        raise ConcurrencyConflictError(f"Transaction {transaction.id} changed concurrently")


class TestPriorityOrder:
    """Tests for batch processing order."""

    def test_largest_absolute_amount_first(self):
        transactions = [
            make_transaction("TX-1", 500),
            make_transaction("TX-2", -9000),
            make_transaction("TX-3", 1200),
        ]

        assert [t.id for t in priority_order(transactions)] == ["TX-2", "TX-3", "TX-1"]

    def test_ties_by_date_then_id(self):
        transactions = [
            make_transaction("TX-C", 100, tx_date=date(2026, 1, 2)),
            make_transaction("TX-B", 100, tx_date=date(2026, 1, 1)),
            make_transaction("TX-A", -100, tx_date=date(2026, 1, 2)),
        ]

        assert [t.id for t in priority_order(transactions)] == ["TX-B", "TX-A", "TX-C"]


class TestReconciliationEngine:
    """Tests for ReconciliationEngine."""

    @pytest.mark.asyncio
    async def test_classifies_matched_partial_unmatched(self, store, seed, db_session):
        """Test each pending transaction is classified and recorded once."""
        await seed(
            make_transaction("TX-1", -100000),
            make_transaction("TX-2", -200000),
            make_transaction("TX-3", -5000, tx_date=date(2026, 3, 1)),
            make_document("DOC-1", 100000),
            make_document("DOC-2", 201000, issue_date=date(2026, 1, 18)),
        )

        result = await ReconciliationEngine(store).reconcile(CLIENT_ID)

        assert result.total == 3
        assert result.matched == 1
        assert result.partial == 1
        assert result.unmatched == 1
        assert result.attempts == 1

        tx1 = await reload(db_session, "TX-1")
        assert tx1.reconciliation_state == "matched"
        assert tx1.matched_document_id == "DOC-1"

        tx2 = await reload(db_session, "TX-2")
        assert tx2.reconciliation_state == "partial"
        assert tx2.matched_document_id is None

        tx3 = await reload(db_session, "TX-3")
        assert tx3.reconciliation_state == "unmatched"

        records = {r.transaction_id: r for r in await get_records(db_session)}
        assert len(records) == 3

        assert records["TX-1"].state == "matched"
        assert records["TX-1"].document_id == "DOC-1"
        assert records["TX-1"].confidence == Decimal("0.70")
        assert records["TX-1"].reasons == ["exact amount", "date exact"]
        assert records["TX-1"].period == "2026-01"

        # Best candidate is kept on partial records for review
        assert records["TX-2"].state == "partial"
        assert records["TX-2"].document_id == "DOC-2"
        assert records["TX-2"].confidence == Decimal("0.50")
        assert records["TX-2"].day_diff == 3

        assert records["TX-3"].state == "unmatched"
        assert records["TX-3"].document_id is None
        assert records["TX-3"].confidence == Decimal("0.00")
        assert records["TX-3"].amount_diff is None

    @pytest.mark.asyncio
    async def test_document_consumed_once(self, store, seed, db_session):
        """Test two identical transactions cannot both match one document."""
        await seed(
            make_transaction("TX-A", -100000),
            make_transaction("TX-B", -100000),
            make_document("DOC-1", 100000),
        )

        result = await ReconciliationEngine(store).reconcile(CLIENT_ID)

        assert result.matched == 1
        matched = [r for r in await get_records(db_session) if r.state == "matched"]
        assert [(r.transaction_id, r.document_id) for r in matched] == [("TX-A", "DOC-1")]

    @pytest.mark.asyncio
    async def test_larger_transaction_wins_contested_document(self, store, seed, db_session):
        """Test the larger transaction is assigned first."""
        await seed(
            make_transaction("TX-1", -99500),
            make_transaction("TX-2", -100000),
            make_document("DOC-1", 100000),
        )

        await ReconciliationEngine(store).reconcile(CLIENT_ID)

        assert (await reload(db_session, "TX-2")).matched_document_id == "DOC-1"
        assert (await reload(db_session, "TX-1")).reconciliation_state == "unmatched"

    @pytest.mark.asyncio
    async def test_previously_matched_documents_skipped(self, store, seed, db_session):
        await seed(
            make_transaction("TX-1", -100000),
            make_document("DOC-1", 100000),
            MatchRecord(
                transaction_id="TX-OLD",
                document_id="DOC-1",
                client_id=CLIENT_ID,
                confidence=Decimal("1.00"),
                state="matched",
                reasons=[],
            ),
        )

        result = await ReconciliationEngine(store).reconcile(CLIENT_ID)

        assert result.matched == 0
        assert result.unmatched == 1

    @pytest.mark.asyncio
    async def test_only_pending_transactions(self, store, seed):
        """Test classified transactions are left alone on later runs."""
        await seed(
            make_transaction("TX-1", -100000),
            make_transaction("TX-2", -300, reconciliation_state="unmatched"),
            make_transaction("TX-3", -400, reconciliation_state="pending"),
            make_document("DOC-1", 100000),
        )

        engine = ReconciliationEngine(store)
        first = await engine.reconcile(CLIENT_ID)
        second = await engine.reconcile(CLIENT_ID)

        assert first.total == 2
        assert second.total == 0

    @pytest.mark.asyncio
    async def test_period_filter(self, store, seed):
        await seed(
            make_transaction("TX-JAN", -100000, tx_date=date(2026, 1, 31)),
            make_transaction("TX-FEB", -100000, tx_date=date(2026, 2, 1)),
            make_document("DOC-1", 100000, issue_date=date(2026, 2, 1)),
        )

        result = await ReconciliationEngine(store).reconcile(CLIENT_ID, "2026-02")

        assert result.period == "2026-02"
        assert result.total == 1
        assert result.matched == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("period", ["2026-13", "202602", "26-02", "2026-2"])
    async def test_invalid_period(self, store, period):
        with pytest.raises(ValidationError):
            await ReconciliationEngine(store).reconcile(CLIENT_ID, period)

    @pytest.mark.asyncio
    async def test_empty_client(self, store):
        result = await ReconciliationEngine(store).reconcile("nobody")

        assert result.total == 0
        assert result.matched == 0

    @pytest.mark.asyncio
    async def test_retries_after_concurrent_change(self, db_session, seed):
        """Test a version conflict rolls back the run and retries it."""
        await seed(
            make_transaction("TX-1", -100000),
            make_transaction("TX-2", -5000),
            make_document("DOC-1", 100000),
        )

        store = ConflictOnceStore(db_session)
        result = await ReconciliationEngine(store).reconcile(CLIENT_ID)

        assert result.attempts == 2
        assert result.matched == 1
        assert len(await get_records(db_session)) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, db_session, seed):
        await seed(make_transaction("TX-1", -100000), make_document("DOC-1", 100000))

        store = AlwaysConflictStore(db_session)
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await ReconciliationEngine(store, max_retries=2).reconcile(CLIENT_ID)

        assert exc_info.value.attempts == 2
        assert await get_records(db_session) == []
        assert (await reload(db_session, "TX-1")).reconciliation_state is None


class TestMatchingStats:
    """Tests for stats and unmatched listing."""

    @pytest.mark.asyncio
    async def test_matching_stats(self, store, seed):
        await seed(
            make_transaction("TX-1", -1000, reconciliation_state="matched"),
            make_transaction("TX-2", 3000, reconciliation_state="matched"),
            make_transaction("TX-3", -500, reconciliation_state="partial"),
            make_transaction("TX-4", 200, reconciliation_state="unmatched"),
            make_transaction("TX-5", 100),
            make_transaction("TX-6", 100, reconciliation_state="pending"),
        )

        stats = await ReconciliationEngine(store).matching_stats(CLIENT_ID)

        assert stats.total == 6
        assert stats.matched == 2
        assert stats.partial == 1
        assert stats.unmatched == 1
        assert stats.pending == 2
        assert stats.total_amount == 4900
        assert stats.reconciled_amount == 4000
        assert stats.pending_amount == 900
        assert stats.match_rate == 33

    @pytest.mark.asyncio
    async def test_matching_stats_empty(self, store):
        stats = await ReconciliationEngine(store).matching_stats(CLIENT_ID)

        assert stats.total == 0
        assert stats.match_rate == 0

    @pytest.mark.asyncio
    async def test_list_unmatched_newest_first(self, store, seed):
        await seed(
            make_transaction("TX-1", 100, tx_date=date(2026, 1, 1)),
            make_transaction("TX-2", 100, tx_date=date(2026, 1, 3), reconciliation_state="unmatched"),
            make_transaction("TX-3", 100, tx_date=date(2026, 1, 2), reconciliation_state="matched"),
            make_transaction("TX-4", 100, tx_date=date(2026, 1, 2), reconciliation_state="pending"),
        )

        unmatched = await ReconciliationEngine(store).list_unmatched(CLIENT_ID)

        assert [t.id for t in unmatched] == ["TX-2", "TX-4", "TX-1"]
