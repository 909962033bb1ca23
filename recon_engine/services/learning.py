"""Pattern learning from confirmed matches."""

import logging
from datetime import UTC, datetime

from recon_engine.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from recon_engine.models.recon import BankTransaction, Document, LearnedPattern
from recon_engine.services.store import RecordStore

logger = logging.getLogger(__name__)


def extract_fingerprint(
    transaction: BankTransaction,
    max_tokens: int = 3,
    min_token_length: int = 3,
    min_length: int = 5,
) -> str | None:
    """Extract a short counterparty key from a transaction description.

    Upper-cases the normalized (or raw) description, keeps the first
    ``max_tokens`` whitespace tokens longer than two characters and joins them
    with a single space. Returns None when the result is too short to be a
    useful signal.
    """
    tokens = [t for t in transaction.matching_text.split() if len(t) >= min_token_length]
    fingerprint = " ".join(tokens[:max_tokens])

    if len(fingerprint) < min_length:
        return None
    return fingerprint


class PatternLearner:
    """Learns description fingerprints from confirmed matches.

    When a match is confirmed, the learner either bumps the usage counter of
    the client's existing pattern for the fingerprint or creates a new one
    with a fixed score boost. The scorer later adds that boost to any
    transaction whose description contains the fingerprint.
    """

    def __init__(self, store: RecordStore, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.store = store
        self.config = config

    async def learn_from_confirmation(
        self,
        transaction: BankTransaction,
        document: Document,
        client_id: str,
    ) -> LearnedPattern | None:
        """Learn the transaction's fingerprint.

        Args:
            transaction: The confirmed transaction
            document: Document it was confirmed against
            client_id: Owning client

        Returns:
            The created or updated pattern, or None if the description is too weak
        """
        fingerprint = extract_fingerprint(transaction)
        if fingerprint is None:
            logger.debug(f"Skipping pattern learning for {transaction.id}: weak description")
            return None

        now = datetime.now(UTC)
        pattern = await self.store.find_active_pattern(client_id, fingerprint)

        if pattern is not None:
            pattern.times_applied = (pattern.times_applied or 0) + 1
            pattern.last_applied = now
            logger.info(
                f"Pattern {fingerprint!r} reinforced for client {client_id} "
                f"({pattern.times_applied} confirmations)"
            )
            return pattern

        pattern = LearnedPattern(
            client_id=client_id,
            fingerprint=fingerprint,
            counterparty_tax_id=document.issuer_tax_id,
            category=transaction.category,
            document_type=document.document_type,
            times_applied=1,
            last_applied=now,
            score_boost=self.config.default_pattern_boost,
            active=True,
        )
        self.store.add(pattern)
        await self.store.flush()
        logger.info(f"Learned new pattern {fingerprint!r} for client {client_id}")
        return pattern

    async def list_patterns(self, client_id: str) -> list[LearnedPattern]:
        """Active patterns for a client."""
        return await self.store.list_active_patterns(client_id)
