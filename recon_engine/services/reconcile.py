"""Batch reconciliation engine - greedy assignment of transactions to documents."""

import heapq
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from recon_engine.config import DEFAULT_MATCHING_CONFIG, MatchingConfig, settings
from recon_engine.errors import ConcurrencyConflictError
from recon_engine.models.recon import (
    BankTransaction,
    Document,
    LearnedPattern,
    MatchRecord,
    ReconciliationState,
)
from recon_engine.services.matching import MatchScorer, ScoreResult
from recon_engine.services.store import RecordStore, period_bounds

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Result of a batch reconciliation run."""

    client_id: str
    period: str | None = None
    total: int = 0
    matched: int = 0
    partial: int = 0
    unmatched: int = 0
    attempts: int = 1
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "client_id": self.client_id,
            "period": self.period,
            "total": self.total,
            "matched": self.matched,
            "partial": self.partial,
            "unmatched": self.unmatched,
        }


@dataclass
class MatchingStats:
    """Reconciliation progress for a client."""

    total: int
    matched: int
    partial: int
    unmatched: int
    pending: int
    total_amount: int
    reconciled_amount: int
    pending_amount: int
    match_rate: int


def priority_order(transactions: Sequence[BankTransaction]) -> Iterator[BankTransaction]:
    """Yield transactions in batch processing order.

    Largest absolute amount first; equal amounts go oldest first, then by id.
    Large transactions are the least ambiguous, and consuming their documents
    early keeps them away from the smaller ones processed later.
    """
    heap = [(-abs(t.amount), t.date, t.id, t) for t in transactions]
    heapq.heapify(heap)
    while heap:
        yield heapq.heappop(heap)[-1]


class ReconciliationEngine:
    """Runs batch matching for all pending transactions of a client.

    Flow:
    1. Load pending transactions (optionally for one YYYY-MM period)
    2. Load documents and the set already consumed by matched records
    3. Load active learned patterns once
    4. Assign each transaction, in priority order, to its best unconsumed document
    5. Classify as matched / partial / unmatched and persist one MatchRecord each

    The run is one unit of work. If a concurrent writer changes a transaction
    or consumes a document first, the unit is rolled back and retried.
    """

    def __init__(
        self,
        store: RecordStore,
        config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
        max_retries: int | None = None,
    ):
        """Initialize engine.

        Args:
            store: Record store bound to the request session
            config: Scoring weights and classification thresholds
            max_retries: Attempts before giving up on concurrent conflicts
        """
        self.store = store
        self.config = config
        self.max_retries = max_retries or settings.reconcile_max_retries
        self.scorer = MatchScorer(config)

    async def reconcile(self, client_id: str, period: str | None = None) -> ReconciliationResult:
        """Run batch reconciliation for a client.

        Args:
            client_id: Client to reconcile
            period: Optional YYYY-MM period filter

        Returns:
            ReconciliationResult with aggregate counts

        Raises:
            ValidationError: Malformed period
            ConcurrencyConflictError: Conflicts persisted on every attempt
        """
        if period:
            period_bounds(period)

        start_time = datetime.now(UTC)

        for attempt in range(1, self.max_retries + 1):
            try:
                async with self.store.atomic():
                    result = await self._run(client_id, period)
            except ConcurrencyConflictError as e:
                logger.warning(
                    f"Reconciliation conflict for client {client_id} "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                continue

            result.attempts = attempt
            result.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()
            logger.info(
                f"Reconciled client {client_id} period {period or 'all'}: "
                f"{result.total} transactions, {result.matched} matched, "
                f"{result.partial} partial, {result.unmatched} unmatched"
            )
            return result

        logger.error(f"Reconciliation for client {client_id} gave up after {self.max_retries} attempts")
        raise ConcurrencyConflictError(
            f"Reconciliation for client {client_id} kept conflicting with concurrent writes",
            attempts=self.max_retries,
        )

    async def _run(self, client_id: str, period: str | None) -> ReconciliationResult:
        transactions = await self.store.list_pending_transactions(client_id, period)
        result = ReconciliationResult(client_id=client_id, period=period, total=len(transactions))

        if not transactions:
            return result

        documents = await self.store.list_documents(client_id)
        consumed = await self.store.consumed_document_ids(client_id)
        patterns = await self.store.list_active_patterns(client_id)
        logger.info(
            f"Matching {len(transactions)} transactions against "
            f"{len(documents) - len(consumed)} available documents for client {client_id}"
        )

        for transaction in priority_order(transactions):
            document, best = self._best_candidate(transaction, documents, consumed, patterns)
            state = self._classify(document, best)

            if state == ReconciliationState.MATCHED:
                consumed.add(document.id)
                await self.store.consume_document(document, check_version=True)
                result.matched += 1
            elif state == ReconciliationState.PARTIAL:
                result.partial += 1
            else:
                result.unmatched += 1

            await self.store.update_transaction(
                transaction,
                check_version=True,
                reconciliation_state=state.value,
                matched_document_id=document.id if state == ReconciliationState.MATCHED else None,
            )

            self.store.add(
                MatchRecord(
                    transaction_id=transaction.id,
                    document_id=document.id if document else None,
                    client_id=client_id,
                    confidence=best.confidence if best else Decimal("0.00"),
                    state=state.value,
                    amount_diff=best.amount_diff if best else None,
                    day_diff=best.day_diff if best else None,
                    reasons=best.reasons if best else [],
                    period=transaction.date.strftime("%Y-%m"),
                )
            )

        await self.store.flush()
        return result

    def _best_candidate(
        self,
        transaction: BankTransaction,
        documents: Sequence[Document],
        consumed: set[str],
        patterns: Sequence[LearnedPattern],
    ) -> tuple[Document | None, ScoreResult | None]:
        """Highest scoring unconsumed document; the first one wins ties."""
        best_document: Document | None = None
        best: ScoreResult | None = None

        for document in documents:
            if document.id in consumed:
                continue

            result = self.scorer.score(transaction, document, patterns)
            if result.confidence > (best.confidence if best else Decimal("0.00")):
                best_document = document
                best = result

        return best_document, best

    def _classify(self, document: Document | None, best: ScoreResult | None) -> ReconciliationState:
        if document is None or best is None:
            return ReconciliationState.UNMATCHED
        if best.confidence >= self.config.match_threshold:
            return ReconciliationState.MATCHED
        if best.confidence >= self.config.partial_threshold:
            return ReconciliationState.PARTIAL
        return ReconciliationState.UNMATCHED

    async def matching_stats(self, client_id: str, period: str | None = None) -> MatchingStats:
        """Counts and amounts by reconciliation state."""
        transactions = await self.store.list_transactions(client_id, period=period)

        def count(state: ReconciliationState) -> int:
            return sum(1 for t in transactions if t.reconciliation_state == state.value)

        total = len(transactions)
        matched = count(ReconciliationState.MATCHED)
        pending = sum(
            1
            for t in transactions
            if t.reconciliation_state in (None, ReconciliationState.PENDING.value)
        )

        total_amount = sum(abs(t.amount) for t in transactions)
        reconciled_amount = sum(
            abs(t.amount)
            for t in transactions
            if t.reconciliation_state == ReconciliationState.MATCHED.value
        )

        return MatchingStats(
            total=total,
            matched=matched,
            partial=count(ReconciliationState.PARTIAL),
            unmatched=count(ReconciliationState.UNMATCHED),
            pending=pending,
            total_amount=total_amount,
            reconciled_amount=reconciled_amount,
            pending_amount=total_amount - reconciled_amount,
            match_rate=round(matched / total * 100) if total else 0,
        )

    async def list_unmatched(self, client_id: str, period: str | None = None) -> list[BankTransaction]:
        """Pending and unmatched transactions, newest first."""
        transactions = await self.store.list_transactions(
            client_id,
            period=period,
            states=[ReconciliationState.PENDING.value, ReconciliationState.UNMATCHED.value],
            include_unset=True,
        )
        return sorted(transactions, key=lambda t: (t.date, t.id), reverse=True)
