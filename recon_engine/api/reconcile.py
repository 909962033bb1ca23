"""Reconciliation API endpoints."""

from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from recon_engine.database import get_session
from recon_engine.models.recon import BankTransaction, LearnedPattern, MatchRecord
from recon_engine.services import (
    ConfirmationService,
    PatternLearner,
    ReconciliationEngine,
    RecordStore,
    SuggestionService,
)

router = APIRouter(prefix="/api/recon", tags=["reconciliation"])


class ReconcileRequest(BaseModel):
    """Request to run batch reconciliation."""

    period: str | None = None


class ReconcileResponse(BaseModel):
    """Aggregate counts from a batch run."""

    client_id: str
    period: str | None
    total: int
    matched: int
    partial: int
    unmatched: int


class ConfirmRequest(BaseModel):
    """Manual confirmation of a match."""

    document_id: str
    user_id: str | None = None
    notes: str | None = None


class RejectRequest(BaseModel):
    """Manual rejection of suggested matches."""

    notes: str | None = None


class DocumentResponse(BaseModel):
    """Document information."""

    id: str
    document_type: str
    folio: str
    issue_date: date
    issuer_tax_id: str
    issuer_name: str | None
    total_amount: int


class SuggestionResponse(BaseModel):
    """A ranked candidate document."""

    document: DocumentResponse
    confidence: float
    reasons: list[str]
    amount_diff: int
    day_diff: int


class TransactionResponse(BaseModel):
    """Transaction information."""

    id: str
    client_id: str | None
    date: date
    description: str
    reference: str | None
    amount: int
    category: str | None
    reconciliation_state: str | None
    matched_document_id: str | None


class MatchRecordResponse(BaseModel):
    """Match record information."""

    id: int
    transaction_id: str
    document_id: str | None
    client_id: str
    confidence: float
    state: str
    amount_diff: int | None
    day_diff: int | None
    reasons: list[str]
    period: str | None
    confirmed_by: str | None
    confirmed_at: datetime | None
    notes: str | None


class MatchingStatsResponse(BaseModel):
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


class PatternResponse(BaseModel):
    """Learned pattern information."""

    id: int
    fingerprint: str
    counterparty_tax_id: str | None
    category: str | None
    document_type: str | None
    times_applied: int
    last_applied: datetime | None
    score_boost: float | None
    active: bool


def get_store(session: Annotated[AsyncSession, Depends(get_session)]) -> RecordStore:
    return RecordStore(session)


StoreDep = Annotated[RecordStore, Depends(get_store)]


def _transaction_response(t: BankTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=t.id,
        client_id=t.client_id,
        date=t.date,
        description=t.description,
        reference=t.reference,
        amount=t.amount,
        category=t.category,
        reconciliation_state=t.reconciliation_state,
        matched_document_id=t.matched_document_id,
    )


def _match_record_response(r: MatchRecord) -> MatchRecordResponse:
    return MatchRecordResponse(
        id=r.id,
        transaction_id=r.transaction_id,
        document_id=r.document_id,
        client_id=r.client_id,
        confidence=float(r.confidence),
        state=r.state,
        amount_diff=r.amount_diff,
        day_diff=r.day_diff,
        reasons=list(r.reasons or []),
        period=r.period,
        confirmed_by=r.confirmed_by,
        confirmed_at=r.confirmed_at,
        notes=r.notes,
    )


def _pattern_response(p: LearnedPattern) -> PatternResponse:
    return PatternResponse(
        id=p.id,
        fingerprint=p.fingerprint,
        counterparty_tax_id=p.counterparty_tax_id,
        category=p.category,
        document_type=p.document_type,
        times_applied=p.times_applied or 0,
        last_applied=p.last_applied,
        score_boost=float(p.score_boost) if p.score_boost is not None else None,
        active=p.active,
    )


@router.get("/transactions/{transaction_id}/suggestions", response_model=list[SuggestionResponse])
async def get_suggestions(
    transaction_id: str,
    store: StoreDep,
    limit: int = Query(3, ge=1, le=20),
):
    """Top candidate documents for a transaction."""
    suggestions = await SuggestionService(store).suggest(transaction_id, limit=limit)
    return [
        SuggestionResponse(
            document=DocumentResponse(
                id=s.document.id,
                document_type=s.document.document_type,
                folio=s.document.folio,
                issue_date=s.document.issue_date,
                issuer_tax_id=s.document.issuer_tax_id,
                issuer_name=s.document.issuer_name,
                total_amount=s.document.total_amount,
            ),
            confidence=float(s.confidence),
            reasons=s.reasons,
            amount_diff=s.amount_diff,
            day_diff=s.day_diff,
        )
        for s in suggestions
    ]


@router.post("/clients/{client_id}/reconcile", response_model=ReconcileResponse)
async def run_reconciliation(
    client_id: str,
    store: StoreDep,
    request: ReconcileRequest | None = None,
):
    """Run batch matching for all pending transactions of a client."""
    period = request.period if request else None
    result = await ReconciliationEngine(store).reconcile(client_id, period)
    return ReconcileResponse(**result.to_dict())


@router.post("/transactions/{transaction_id}/confirm", response_model=MatchRecordResponse)
async def confirm_match(transaction_id: str, request: ConfirmRequest, store: StoreDep):
    """Confirm a transaction/document match and learn from it."""
    record = await ConfirmationService(store).confirm(
        transaction_id,
        request.document_id,
        user_id=request.user_id,
        notes=request.notes,
    )
    return _match_record_response(record)


@router.post("/transactions/{transaction_id}/reject", response_model=TransactionResponse)
async def reject_match(
    transaction_id: str,
    store: StoreDep,
    request: RejectRequest | None = None,
):
    """Mark a transaction as unmatched."""
    notes = request.notes if request else None
    transaction = await ConfirmationService(store).reject(transaction_id, notes=notes)
    return _transaction_response(transaction)


@router.delete("/matches/{match_record_id}", response_model=TransactionResponse)
async def undo_match(match_record_id: int, store: StoreDep):
    """Undo a match and return the transaction to pending."""
    transaction = await ConfirmationService(store).undo(match_record_id)
    return _transaction_response(transaction)


@router.get("/clients/{client_id}/stats", response_model=MatchingStatsResponse)
async def get_matching_stats(
    client_id: str,
    store: StoreDep,
    period: str | None = Query(None, description="YYYY-MM"),
):
    """Reconciliation statistics for a client."""
    stats = await ReconciliationEngine(store).matching_stats(client_id, period)
    return MatchingStatsResponse(**stats.__dict__)


@router.get("/clients/{client_id}/unmatched", response_model=list[TransactionResponse])
async def list_unmatched(
    client_id: str,
    store: StoreDep,
    period: str | None = Query(None, description="YYYY-MM"),
):
    """Transactions still waiting for a match, newest first."""
    transactions = await ReconciliationEngine(store).list_unmatched(client_id, period)
    return [_transaction_response(t) for t in transactions]


@router.get("/clients/{client_id}/matches", response_model=list[MatchRecordResponse])
async def list_match_records(
    client_id: str,
    store: StoreDep,
    state: str | None = Query(None),
    period: str | None = Query(None),
    limit: int | None = Query(None, le=1000),
):
    """Match records for a client, newest first."""
    records = await store.list_match_records(client_id, state=state, period=period, limit=limit)
    return [_match_record_response(r) for r in records]


@router.get("/clients/{client_id}/patterns", response_model=list[PatternResponse])
async def list_patterns(client_id: str, store: StoreDep):
    """Active learned patterns for a client."""
    patterns = await PatternLearner(store).list_patterns(client_id)
    return [_pattern_response(p) for p in patterns]
