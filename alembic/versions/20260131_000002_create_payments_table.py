"""Create payments table

Revision ID: 20260131_000002
Revises: 20260131_000001
Create Date: 2026-01-31

Payment capture records; immutable apart from the refunded status.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20260131_000002"
down_revision: Union[str, None] = "20260131_000001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("invoice_id", sa.String(36), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column(
            "method",
            sa.Enum("cash", "gcash", "bank", "card", "paypal", name="payment_method"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_usd", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "status",
            sa.Enum("posted", "verified", "refunded", "failed", name="payment_status"),
            nullable=False,
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("external_reference", sa.String(64), nullable=True),
        sa.Column("raw", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["invoice_id"],
            ["invoices.id"],
            name="fk_payments_invoice_id",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("external_reference", name="uq_payments_external_reference"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])
    op.create_index("ix_payments_status", "payments", ["status"])


def downgrade() -> None:
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_invoice_id", table_name="payments")
    op.drop_table("payments")
