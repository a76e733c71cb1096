"""create partner commission ledger

Revision ID: a3f1c9e27b10
Revises:
Create Date: 2026-10-19 10:12:31.402118
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a3f1c9e27b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# commission_type è condiviso da partners e partner_earnings:
# tipi creati una volta sola, le colonne usano create_type=False
partner_status = postgresql.ENUM(
    "pending", "active", "inactive", "suspended", name="partner_status", create_type=False
)
partner_type = postgresql.ENUM(
    "affiliate", "reseller", "agency", "white_label", name="partner_type", create_type=False
)
commission_type = postgresql.ENUM(
    "percentage", "fixed", "tiered", name="commission_type", create_type=False
)
subscription_status = postgresql.ENUM(
    "active", "inactive", "cancelled", "trial", "pending", name="subscription_status", create_type=False
)
earning_status = postgresql.ENUM(
    "pending", "approved", "paid", "cancelled", "on_hold", name="earning_status", create_type=False
)

ENUMS = (partner_status, partner_type, commission_type, subscription_status, earning_status)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """
    Crea le 4 tabelle del ledger commissioni:
    partners, partner_clients, partner_earnings, partner_earning_events.
    """
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # -----------------------------
    # partners
    # -----------------------------
    op.create_table(
        "partners",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("document", sa.String(length=50), nullable=True),
        sa.Column("status", partner_status, server_default=sa.text("'pending'"), nullable=False),
        sa.Column("partner_type", partner_type, server_default=sa.text("'affiliate'"), nullable=False),
        sa.Column("commission_rate", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("commission_type", commission_type, server_default=sa.text("'percentage'"), nullable=False),
        sa.Column("parent_partner_id", sa.Integer(), sa.ForeignKey("partners.id"), nullable=True),
        sa.Column("address", sa.JSON(), nullable=True),
        sa.Column("bank_info", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_partners_email"),
    )
    op.create_index(op.f("ix_partners_id"), "partners", ["id"], unique=False)
    op.create_index(op.f("ix_partners_status"), "partners", ["status"], unique=False)
    op.create_index(op.f("ix_partners_parent_partner_id"), "partners", ["parent_partner_id"], unique=False)

    # -----------------------------
    # partner_clients
    # -----------------------------
    op.create_table(
        "partner_clients",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.Integer(), sa.ForeignKey("partners.id"), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("client_email", sa.String(length=255), nullable=False),
        sa.Column("client_phone", sa.String(length=50), nullable=True),
        sa.Column("client_company", sa.String(length=255), nullable=True),
        sa.Column("client_document", sa.String(length=50), nullable=True),
        sa.Column("subscription_plan", sa.String(length=100), nullable=True),
        sa.Column("subscription_value", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("subscription_status", subscription_status, server_default=sa.text("'pending'"), nullable=False),
        sa.Column("referral_code", sa.String(length=100), nullable=True),
        sa.Column("referral_source", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("total_paid", sa.Numeric(precision=12, scale=2), server_default=sa.text("0"), nullable=False),
        sa.Column("first_payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payment_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("partner_id", "client_email", name="uq_partner_clients_partner_email"),
    )
    op.create_index(op.f("ix_partner_clients_id"), "partner_clients", ["id"], unique=False)
    op.create_index(op.f("ix_partner_clients_partner_id"), "partner_clients", ["partner_id"], unique=False)
    op.create_index(
        op.f("ix_partner_clients_subscription_status"), "partner_clients", ["subscription_status"], unique=False
    )

    # -----------------------------
    # partner_earnings
    # -----------------------------
    op.create_table(
        "partner_earnings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.Integer(), sa.ForeignKey("partners.id"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("partner_clients.id"), nullable=True),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("original_amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("commission_rate", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("commission_type", commission_type, nullable=True),
        sa.Column("status", earning_status, server_default=sa.text("'pending'"), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.String(length=100), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index(op.f("ix_partner_earnings_id"), "partner_earnings", ["id"], unique=False)
    op.create_index(op.f("ix_partner_earnings_partner_id"), "partner_earnings", ["partner_id"], unique=False)
    op.create_index(op.f("ix_partner_earnings_client_id"), "partner_earnings", ["client_id"], unique=False)
    op.create_index(op.f("ix_partner_earnings_status"), "partner_earnings", ["status"], unique=False)
    op.create_index(op.f("ix_partner_earnings_created_at"), "partner_earnings", ["created_at"], unique=False)

    # -----------------------------
    # partner_earning_events (append-only)
    # -----------------------------
    op.create_table(
        "partner_earning_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("earning_id", sa.Integer(), sa.ForeignKey("partner_earnings.id"), nullable=False),
        sa.Column("partner_id", sa.Integer(), sa.ForeignKey("partners.id"), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("from_status", sa.String(length=20), nullable=True),
        sa.Column("to_status", sa.String(length=20), nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f("ix_partner_earning_events_id"), "partner_earning_events", ["id"], unique=False)
    op.create_index(
        op.f("ix_partner_earning_events_earning_id"), "partner_earning_events", ["earning_id"], unique=False
    )
    op.create_index(
        op.f("ix_partner_earning_events_partner_id"), "partner_earning_events", ["partner_id"], unique=False
    )


def downgrade() -> None:
    op.drop_table("partner_earning_events")
    op.drop_table("partner_earnings")
    op.drop_table("partner_clients")
    op.drop_table("partners")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
