"""create paddle billing tables

Revision ID: 5b2e8d41c7a9
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5b2e8d41c7a9"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create plans, organisations, the webhook claim ledger, and billing invoices."""
    op.create_table(
        "plans",
        sa.Column("id", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("monthly_price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("paddle_price_id", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_plans_paddle_price_id"), "plans", ["paddle_price_id"], unique=True)

    op.create_table(
        "organisations",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("plan_id", sa.String(length=50), nullable=False, server_default="free"),
        sa.Column("paddle_customer_id", sa.String(length=255), nullable=True),
        sa.Column("paddle_subscription_id", sa.String(length=255), nullable=True),
        sa.Column("subscription_status", sa.String(length=50), nullable=False, server_default="inactive"),
        sa.Column("current_period_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paddle_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["plan_id"], ["plans.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_organisations_paddle_customer_id"), "organisations", ["paddle_customer_id"], unique=False)
    op.create_index(
        op.f("ix_organisations_paddle_subscription_id"), "organisations", ["paddle_subscription_id"], unique=False
    )

    op.create_table(
        "paddle_webhook_events",
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="processing"),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("event_id"),
    )

    op.create_table(
        "billing_invoices",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("organisation_id", sa.String(length=255), nullable=False),
        sa.Column("paddle_transaction_id", sa.String(length=255), nullable=False),
        sa.Column("paddle_invoice_id", sa.String(length=255), nullable=True),
        sa.Column("invoice_number", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("currency_code", sa.String(length=10), nullable=True),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("billed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoice_url", sa.String(length=2048), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("paddle_transaction_id"),
    )
    op.create_index(op.f("ix_billing_invoices_organisation_id"), "billing_invoices", ["organisation_id"], unique=False)


def downgrade() -> None:
    """Drop billing tables."""
    op.drop_index(op.f("ix_billing_invoices_organisation_id"), table_name="billing_invoices")
    op.drop_table("billing_invoices")
    op.drop_table("paddle_webhook_events")
    op.drop_index(op.f("ix_organisations_paddle_subscription_id"), table_name="organisations")
    op.drop_index(op.f("ix_organisations_paddle_customer_id"), table_name="organisations")
    op.drop_table("organisations")
    op.drop_index(op.f("ix_plans_paddle_price_id"), table_name="plans")
    op.drop_table("plans")
