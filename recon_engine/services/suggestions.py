"""Ranked match suggestions for a single transaction."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from recon_engine.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from recon_engine.models.recon import Document
from recon_engine.services.matching import MatchScorer
from recon_engine.services.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class Suggestion:
    """A candidate document for a transaction."""

    document: Document
    confidence: Decimal
    reasons: list[str] = field(default_factory=list)
    amount_diff: int = 0
    day_diff: int = 0


class SuggestionService:
    """Ranks a client's unconsumed documents against one transaction."""

    def __init__(self, store: RecordStore, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.store = store
        self.config = config
        self.scorer = MatchScorer(config)

    async def suggest(self, transaction_id: str, limit: int | None = None) -> list[Suggestion]:
        """Top candidates for a transaction, best first.

        Only documents scoring above the suggestion threshold are returned.
        Equal scores keep document order (issue date, then id).

        Raises:
            NotFoundError: If the transaction does not exist
        """
        limit = limit or self.config.suggestion_limit
        transaction = await self.store.get_transaction(transaction_id)

        client_id = transaction.client_id
        if not client_id:
            return []

        documents = await self.store.list_documents(client_id)
        consumed = await self.store.consumed_document_ids(client_id)
        patterns = await self.store.list_active_patterns(client_id)

        candidates = []
        for document in documents:
            if document.id in consumed:
                continue

            result = self.scorer.score(transaction, document, patterns)
            if result.confidence > self.config.suggestion_threshold:
                candidates.append(
                    Suggestion(
                        document=document,
                        confidence=result.confidence,
                        reasons=result.reasons,
                        amount_diff=result.amount_diff,
                        day_diff=result.day_diff,
                    )
                )

        # sorted() is stable, so ties keep document order
        candidates = sorted(candidates, key=lambda c: c.confidence, reverse=True)

        logger.debug(f"{len(candidates)} candidates above threshold for {transaction_id}")
        return candidates[:limit]
