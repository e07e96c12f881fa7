"""BillingInvoice model: one row per Paddle transaction."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.db.base import Base


class BillingInvoice(Base):
    __tablename__ = "billing_invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organisation_id = Column(String(255), ForeignKey("organisations.id"), nullable=False, index=True)

    paddle_transaction_id = Column(String(255), unique=True, nullable=False)
    paddle_invoice_id = Column(String(255), nullable=True)
    invoice_number = Column(String(255), nullable=True)

    status = Column(String(50), nullable=False)
    currency_code = Column(String(10), nullable=True)
    total_amount_cents = Column(Integer, nullable=False, default=0)
    billed_at = Column(DateTime(timezone=True), nullable=True)
    invoice_url = Column(String(2048), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
