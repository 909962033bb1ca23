"""Manual confirmation, rejection and undo of matches."""

import logging
from datetime import UTC, datetime
from decimal import Decimal

from recon_engine.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from recon_engine.errors import NotFoundError
from recon_engine.models.recon import BankTransaction, MatchRecord, ReconciliationState
from recon_engine.services.learning import PatternLearner
from recon_engine.services.matching import amount_difference, day_difference
from recon_engine.services.store import RecordStore

logger = logging.getLogger(__name__)

MANUAL_CONFIDENCE = Decimal("1.00")


class ConfirmationService:
    """Commits or reverts human decisions on matches.

    A confirmation always wins over any earlier automatic classification and
    feeds the pattern learner. Undo reverts the transaction but keeps learned
    patterns.
    """

    def __init__(self, store: RecordStore, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.store = store
        self.learner = PatternLearner(store, config)

    async def confirm(
        self,
        transaction_id: str,
        document_id: str,
        user_id: str | None = None,
        notes: str | None = None,
    ) -> MatchRecord:
        """Confirm a transaction/document match.

        Args:
            transaction_id: Transaction being reconciled
            document_id: Supporting document
            user_id: Who confirmed
            notes: Free-text notes

        Returns:
            The upserted MatchRecord

        Raises:
            NotFoundError: Transaction or document missing, or transaction has no client
        """
        async with self.store.atomic():
            transaction = await self.store.get_transaction(transaction_id)
            document = await self.store.get_document(document_id)

            client_id = transaction.client_id
            if not client_id:
                raise NotFoundError("Client for transaction", transaction_id)

            now = datetime.now(UTC)
            record = await self.store.find_match_record_for_transaction(transaction_id)

            if record is None:
                record = MatchRecord(
                    transaction_id=transaction_id,
                    client_id=client_id,
                    period=transaction.date.strftime("%Y-%m"),
                    reasons=[],
                )
                self.store.add(record)

            record.document_id = document_id
            record.state = ReconciliationState.MATCHED.value
            record.confidence = MANUAL_CONFIDENCE
            record.amount_diff = amount_difference(transaction, document)
            record.day_diff = day_difference(transaction, document)
            record.confirmed_by = user_id
            record.confirmed_at = now
            record.notes = notes
            record.updated_at = now

            await self.store.update_transaction(
                transaction,
                reconciliation_state=ReconciliationState.MATCHED.value,
                matched_document_id=document_id,
            )
            await self.store.consume_document(document)

            await self.learner.learn_from_confirmation(transaction, document, client_id)
            await self.store.flush()

        logger.info(f"Confirmed {transaction_id} -> {document_id} by {user_id or 'unknown user'}")
        return record

    async def reject(self, transaction_id: str, notes: str | None = None) -> BankTransaction:
        """Mark a transaction unmatched and record why.

        Any existing match record is kept and patched, not deleted.

        Raises:
            NotFoundError: Transaction missing
        """
        async with self.store.atomic():
            transaction = await self.store.get_transaction(transaction_id)

            await self.store.update_transaction(
                transaction,
                reconciliation_state=ReconciliationState.UNMATCHED.value,
                matched_document_id=None,
            )

            record = await self.store.find_match_record_for_transaction(transaction_id)
            if record is not None:
                record.state = ReconciliationState.UNMATCHED.value
                record.notes = notes
                record.updated_at = datetime.now(UTC)

        logger.info(f"Rejected match suggestions for {transaction_id}")
        return transaction

    async def undo(self, match_record_id: int) -> BankTransaction:
        """Revert a match: transaction back to pending, record deleted.

        Raises:
            NotFoundError: Match record missing
        """
        async with self.store.atomic():
            record = await self.store.get_match_record(match_record_id)
            transaction = await self.store.get_transaction(record.transaction_id)

            await self.store.update_transaction(
                transaction,
                reconciliation_state=ReconciliationState.PENDING.value,
                matched_document_id=None,
            )
            await self.store.delete_match_record(record)

        logger.info(f"Undid match record {match_record_id} for {record.transaction_id}")
        return transaction
