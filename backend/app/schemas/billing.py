"""Billing Pydantic schemas for API requests and responses."""

from pydantic import BaseModel


class CheckoutRequest(BaseModel):
    plan_id: str = ""


class CheckoutResponse(BaseModel):
    checkout_url: str | None = None
    plan_name: str
    plan_updated: bool = False


class PortalResponse(BaseModel):
    portal_url: str


class BillingOverview(BaseModel):
    plan_id: str
    plan_display_name: str
    monthly_price_cents: int
    subscription_status: str
    billing_enabled: bool
    has_customer_account: bool
    subscription_id: str | None = None
    current_period_ends_at: str | None = None  # RFC 3339, UTC


class BillingOverviewResponse(BaseModel):
    billing: BillingOverview


class InvoiceEntry(BaseModel):
    invoice_number: str
    status: str
    currency_code: str
    total_amount_cents: int
    invoice_url: str
    invoice_available: bool
    billed_at: str | None = None  # YYYY-MM-DD
    billed_at_timestamp: str | None = None  # RFC 3339, UTC


class InvoiceListResponse(BaseModel):
    invoices: list[InvoiceEntry]


class WebhookAckResponse(BaseModel):
    status: str = "ok"
    message: str
