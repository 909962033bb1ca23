"""Confidence scoring for transaction/document pairs."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from recon_engine.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from recon_engine.models.recon import BankTransaction, Document, LearnedPattern

from .tax_id import extract_tax_id, normalize_tax_id


class Reason:
    """Stable tags recorded for every contributing score component."""

    EXACT_AMOUNT = "exact amount"
    AMOUNT_WITHIN_1_PCT = "amount within 1%"
    AMOUNT_WITHIN_5_PCT = "amount within 5%"
    DATE_EXACT = "date exact"
    DATE_WITHIN_2_DAYS = "date within 2 days"
    DATE_WITHIN_5_DAYS = "date within 5 days"
    TAX_ID_MATCH = "tax-id match"
    FOLIO_MATCH = "folio match"
    ISSUER_NAME_MATCH = "issuer name match"
    LEARNED_PATTERN = "learned pattern"


@dataclass
class ScoreResult:
    """Outcome of scoring one transaction against one document."""

    confidence: Decimal
    reasons: list[str] = field(default_factory=list)
    amount_diff: int = 0
    day_diff: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "confidence": str(self.confidence),
            "reasons": self.reasons,
            "amount_diff": self.amount_diff,
            "day_diff": self.day_diff,
        }


def amount_difference(transaction: BankTransaction, document: Document) -> int:
    """Absolute difference between the unsigned amounts, in minor units."""
    return abs(abs(transaction.amount) - abs(document.total_amount or 0))


def day_difference(transaction: BankTransaction, document: Document) -> int:
    """Absolute calendar-day distance between transaction and issue date."""
    return abs((transaction.date - document.issue_date).days)


class MatchScorer:
    """Weighted multi-factor scorer.

    Components, in evaluation order:
    - Amount (40%): exact, within 1%, within 5%
    - Date (30%): same day, within 2 days, within 5 days
    - Tax ID in description equals the document issuer (20%)
    - Transaction reference and document folio overlap (10%)
    - Issuer name prefix appears in description (5%)
    - First matching learned pattern adds its boost (default 10%)

    Components only ever add; the total is capped at 1.0.
    """

    def __init__(self, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.config = config

    def score(
        self,
        transaction: BankTransaction,
        document: Document,
        patterns: Sequence[LearnedPattern] = (),
    ) -> ScoreResult:
        """Score a transaction against a document.

        Args:
            transaction: Bank transaction
            document: Candidate document
            patterns: Active learned patterns for the owning client

        Returns:
            ScoreResult with confidence in [0, 1] and the reasons that contributed
        """
        text = transaction.matching_text
        total = Decimal("0.00")
        reasons: list[str] = []

        amount_diff = amount_difference(transaction, document)
        weight, reason = self._amount_component(amount_diff, abs(document.total_amount or 0))
        if reason:
            total += weight
            reasons.append(reason)

        day_diff = day_difference(transaction, document)
        weight, reason = self._date_component(day_diff)
        if reason:
            total += weight
            reasons.append(reason)

        if self._check_tax_id_match(text, document):
            total += self.config.tax_id_weight
            reasons.append(Reason.TAX_ID_MATCH)

        if self._check_folio_match(transaction, document):
            total += self.config.folio_weight
            reasons.append(Reason.FOLIO_MATCH)

        if self._check_issuer_name_match(text, document):
            total += self.config.issuer_name_weight
            reasons.append(Reason.ISSUER_NAME_MATCH)

        boost = self._pattern_boost(text, patterns)
        if boost is not None:
            total += boost
            reasons.append(Reason.LEARNED_PATTERN)

        return ScoreResult(
            confidence=min(total, self.config.max_confidence),
            reasons=reasons,
            amount_diff=amount_diff,
            day_diff=day_diff,
        )

    def _amount_component(self, diff: int, document_amount: int) -> tuple[Decimal, str | None]:
        if diff == 0:
            return self.config.amount_exact_weight, Reason.EXACT_AMOUNT

        # A zero document amount can only match exactly
        if document_amount == 0:
            return Decimal("0.00"), None

        ratio = Decimal(diff) / Decimal(document_amount)
        if ratio <= self.config.amount_close_tolerance:
            return self.config.amount_close_weight, Reason.AMOUNT_WITHIN_1_PCT
        if ratio <= self.config.amount_near_tolerance:
            return self.config.amount_near_weight, Reason.AMOUNT_WITHIN_5_PCT
        return Decimal("0.00"), None

    def _date_component(self, days: int) -> tuple[Decimal, str | None]:
        if days == 0:
            return self.config.date_exact_weight, Reason.DATE_EXACT
        if days <= self.config.date_close_days:
            return self.config.date_close_weight, Reason.DATE_WITHIN_2_DAYS
        if days <= self.config.date_near_days:
            return self.config.date_near_weight, Reason.DATE_WITHIN_5_DAYS
        return Decimal("0.00"), None

    def _check_tax_id_match(self, text: str, document: Document) -> bool:
        tax_id = extract_tax_id(text)
        if tax_id is None:
            return False
        return tax_id == normalize_tax_id(document.issuer_tax_id)

    def _check_folio_match(self, transaction: BankTransaction, document: Document) -> bool:
        if not transaction.reference or not document.folio:
            return False

        ref = transaction.reference.lower()
        folio = document.folio.lower()
        return ref in folio or folio in ref

    def _check_issuer_name_match(self, text: str, document: Document) -> bool:
        name = (document.issuer_name or "").upper()
        if not name:
            return False
        return name[: self.config.issuer_name_prefix] in text

    def _pattern_boost(self, text: str, patterns: Sequence[LearnedPattern]) -> Decimal | None:
        """Boost of the first pattern whose fingerprint occurs in the text."""
        for pattern in patterns:
            fingerprint = (pattern.fingerprint or "").upper()
            if fingerprint and fingerprint in text:
                if pattern.score_boost is None:
                    return self.config.default_pattern_boost
                return Decimal(str(pattern.score_boost))
        return None


def score(
    transaction: BankTransaction,
    document: Document,
    patterns: Sequence[LearnedPattern] = (),
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> ScoreResult:
    """Score a (transaction, document) pair with the given configuration."""
    return MatchScorer(config).score(transaction, document, patterns)
