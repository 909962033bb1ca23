"""Tests for manual confirmation, rejection and undo."""

from datetime import date
from decimal import Decimal

import pytest
from factories import CLIENT_ID, make_document, make_transaction
from sqlalchemy import select

from recon_engine.errors import NotFoundError
from recon_engine.models.recon import BankTransaction, Document, LearnedPattern, MatchRecord
from recon_engine.services import ConfirmationService, ReconciliationEngine, SuggestionService


async def reload(session, model, id):
    return await session.get(model, id, populate_existing=True)


async def get_records(session) -> list[MatchRecord]:
    result = await session.execute(select(MatchRecord).order_by(MatchRecord.id))
    return list(result.scalars().all())


class TestConfirm:
    """Tests for ConfirmationService.confirm."""

    @pytest.mark.asyncio
    async def test_confirm_creates_record(self, store, seed, db_session):
        await seed(
            make_transaction("TX-1", -98000, tx_date=date(2026, 1, 20), description="PAGO ACME SERVICIOS"),
            make_document("DOC-1", 100000, issue_date=date(2026, 1, 15)),
        )

        record = await ConfirmationService(store).confirm("TX-1", "DOC-1", user_id="ana", notes="ok")

        assert record.id is not None
        assert record.state == "matched"
        assert record.confidence == Decimal("1.00")
        assert record.document_id == "DOC-1"
        assert record.amount_diff == 2000
        assert record.day_diff == 5
        assert record.confirmed_by == "ana"
        assert record.confirmed_at is not None
        assert record.notes == "ok"
        assert record.period == "2026-01"
        assert record.reasons == []

        tx = await reload(db_session, BankTransaction, "TX-1")
        assert tx.reconciliation_state == "matched"
        assert tx.matched_document_id == "DOC-1"

        doc = await reload(db_session, Document, "DOC-1")
        assert doc.version == 2

    @pytest.mark.asyncio
    async def test_confirm_overrides_batch_record(self, store, seed, db_session):
        """Test confirming a partial match updates the existing record in place."""
        await seed(
            make_transaction("TX-1", -200000),
            make_document("DOC-1", 201000, issue_date=date(2026, 1, 18)),
        )
        await ReconciliationEngine(store).reconcile(CLIENT_ID)
        [batch_record] = await get_records(db_session)
        assert batch_record.state == "partial"

        record = await ConfirmationService(store).confirm("TX-1", "DOC-1")

        records = await get_records(db_session)
        assert len(records) == 1
        assert record.id == batch_record.id
        assert record.state == "matched"
        assert record.confidence == Decimal("1.00")

    @pytest.mark.asyncio
    async def test_confirmed_document_no_longer_suggested(self, store, seed):
        await seed(
            make_transaction("TX-1", -100000),
            make_transaction("TX-2", -100000),
            make_document("DOC-1", 100000),
        )

        await ConfirmationService(store).confirm("TX-1", "DOC-1")

        assert await SuggestionService(store).suggest("TX-2") == []

    @pytest.mark.asyncio
    async def test_confirm_learns_pattern(self, store, seed, db_session):
        await seed(
            make_transaction("TX-1", -100000, description="PAGO ACME SERVICIOS"),
            make_document("DOC-1", 100000),
        )

        await ConfirmationService(store).confirm("TX-1", "DOC-1")

        result = await db_session.execute(select(LearnedPattern))
        [pattern] = result.scalars().all()
        assert pattern.fingerprint == "PAGO ACME SERVICIOS"
        assert pattern.times_applied == 1

    @pytest.mark.asyncio
    async def test_confirm_unknown_transaction(self, store, seed):
        await seed(make_document("DOC-1", 100000))

        with pytest.raises(NotFoundError):
            await ConfirmationService(store).confirm("MISSING", "DOC-1")

    @pytest.mark.asyncio
    async def test_confirm_unknown_document(self, store, seed, db_session):
        await seed(make_transaction("TX-1", -100000))

        with pytest.raises(NotFoundError):
            await ConfirmationService(store).confirm("TX-1", "MISSING")

        assert await get_records(db_session) == []

    @pytest.mark.asyncio
    async def test_confirm_transaction_without_client(self, store, seed, db_session):
        await seed(make_transaction("TX-1", -100000, client_id=None), make_document("DOC-1", 100000))

        with pytest.raises(NotFoundError):
            await ConfirmationService(store).confirm("TX-1", "DOC-1")

        tx = await reload(db_session, BankTransaction, "TX-1")
        assert tx.reconciliation_state is None


class TestReject:
    """Tests for ConfirmationService.reject."""

    @pytest.mark.asyncio
    async def test_reject_without_record(self, store, seed, db_session):
        await seed(make_transaction("TX-1", -100000))

        tx = await ConfirmationService(store).reject("TX-1", notes="not ours")

        assert tx.reconciliation_state == "unmatched"
        assert await get_records(db_session) == []

    @pytest.mark.asyncio
    async def test_reject_patches_existing_record(self, store, seed, db_session):
        await seed(
            make_transaction("TX-1", -200000),
            make_document("DOC-1", 201000, issue_date=date(2026, 1, 18)),
        )
        await ReconciliationEngine(store).reconcile(CLIENT_ID)

        await ConfirmationService(store).reject("TX-1", notes="wrong supplier")

        [record] = await get_records(db_session)
        assert record.state == "unmatched"
        assert record.notes == "wrong supplier"

        tx = await reload(db_session, BankTransaction, "TX-1")
        assert tx.reconciliation_state == "unmatched"
        assert tx.matched_document_id is None

    @pytest.mark.asyncio
    async def test_reject_unknown_transaction(self, store):
        with pytest.raises(NotFoundError):
            await ConfirmationService(store).reject("MISSING")


class TestUndo:
    """Tests for ConfirmationService.undo."""

    @pytest.mark.asyncio
    async def test_undo_restores_pending(self, store, seed, db_session):
        """Test undo after confirm returns the transaction to pending and frees the document."""
        await seed(
            make_transaction("TX-1", -100000, description="PAGO ACME SERVICIOS"),
            make_document("DOC-1", 100000),
        )
        service = ConfirmationService(store)
        record = await service.confirm("TX-1", "DOC-1")

        tx = await service.undo(record.id)

        assert tx.reconciliation_state == "pending"
        assert tx.matched_document_id is None
        assert await get_records(db_session) == []

        suggestions = await SuggestionService(store).suggest("TX-1")
        assert suggestions[0].document.id == "DOC-1"

        # Learned patterns survive undo
        result = await db_session.execute(select(LearnedPattern))
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_undo_then_reconcile_again(self, store, seed):
        await seed(make_transaction("TX-1", -100000), make_document("DOC-1", 100000))
        engine = ReconciliationEngine(store)
        await engine.reconcile(CLIENT_ID)
        records = await store.list_match_records(CLIENT_ID)

        await ConfirmationService(store).undo(records[0].id)
        result = await engine.reconcile(CLIENT_ID)

        assert result.total == 1
        assert result.matched == 1

    @pytest.mark.asyncio
    async def test_undo_unknown_record(self, store):
        with pytest.raises(NotFoundError):
            await ConfirmationService(store).undo(999)
