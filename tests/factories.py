"""Builders for test transactions and documents."""

from datetime import date

from recon_engine.models.recon import BankTransaction, Document

CLIENT_ID = "client-1"


def make_transaction(
    id: str,
    amount: int,
    tx_date: date = date(2026, 1, 15),
    description: str = "TRANSFERENCIA",
    client_id: str | None = CLIENT_ID,
    **kwargs,
) -> BankTransaction:
    return BankTransaction(
        id=id,
        client_id=client_id,
        date=tx_date,
        description=description,
        amount=amount,
        **kwargs,
    )


def make_document(
    id: str,
    total_amount: int,
    issue_date: date = date(2026, 1, 15),
    folio: str = "1000",
    issuer_tax_id: str = "76123456-7",
    client_id: str = CLIENT_ID,
    **kwargs,
) -> Document:
    return Document(
        id=id,
        client_id=client_id,
        document_type="invoice",
        folio=folio,
        issue_date=issue_date,
        issuer_tax_id=issuer_tax_id,
        total_amount=total_amount,
        **kwargs,
    )

