"""Create reconciliation tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create bank_transactions table
    op.create_table(
        "bank_transactions",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("client_id", sa.String(100), nullable=True),
        sa.Column("bank", sa.String(100), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("normalized_description", sa.Text(), nullable=True),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("reconciliation_state", sa.String(20), nullable=True),
        sa.Column("matched_document_id", sa.String(100), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_index("idx_bank_tx_client_date", "bank_transactions", ["client_id", "date"])
    op.create_index(
        "idx_bank_tx_client_state", "bank_transactions", ["client_id", "reconciliation_state"]
    )

    # Create documents table
    op.create_table(
        "documents",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("folio", sa.String(100), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("issuer_tax_id", sa.String(20), nullable=False),
        sa.Column("issuer_name", sa.String(255), nullable=True),
        sa.Column("total_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_index("idx_documents_client_date", "documents", ["client_id", "issue_date"])

    # Create match_records table
    op.create_table(
        "match_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(100), nullable=False),
        sa.Column("document_id", sa.String(100), nullable=True),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("confidence", sa.Numeric(3, 2), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("amount_diff", sa.BigInteger(), nullable=True),
        sa.Column("day_diff", sa.Integer(), nullable=True),
        sa.Column("reasons", sa.JSON(), nullable=True),
        sa.Column("period", sa.String(7), nullable=True),
        sa.Column("confirmed_by", sa.String(100), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_index("idx_match_records_tx", "match_records", ["transaction_id"])
    op.create_index("idx_match_records_client_state", "match_records", ["client_id", "state"])

    # Create learned_patterns table
    op.create_table(
        "learned_patterns",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("fingerprint", sa.String(255), nullable=False),
        sa.Column("counterparty_tax_id", sa.String(20), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("document_type", sa.String(50), nullable=True),
        sa.Column("times_applied", sa.Integer(), server_default="0"),
        sa.Column("last_applied", sa.DateTime(timezone=True), nullable=True),
        sa.Column("score_boost", sa.Numeric(3, 2), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_index(
        "idx_patterns_client_fingerprint", "learned_patterns", ["client_id", "fingerprint"]
    )

    # Create anomaly_alerts table
    op.create_table(
        "anomaly_alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("state", sa.String(20), server_default="open"),
        sa.Column("reference_amount", sa.BigInteger(), nullable=True),
        sa.Column("detected_amount", sa.BigInteger(), nullable=True),
        sa.Column("transaction_id", sa.String(100), nullable=True),
        sa.Column("document_id", sa.String(100), nullable=True),
        sa.Column("extra", sa.JSON(), nullable=True),
        sa.Column("resolved_by", sa.String(100), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_index(
        "idx_alerts_client_kind_tx", "anomaly_alerts", ["client_id", "kind", "transaction_id"]
    )
    op.create_index("idx_alerts_state", "anomaly_alerts", ["state"])


def downgrade() -> None:
    op.drop_table("anomaly_alerts")
    op.drop_table("learned_patterns")
    op.drop_table("match_records")
    op.drop_table("documents")
    op.drop_table("bank_transactions")
