"""Re-export all models so Base.metadata sees them."""

from app.db.models.billing_invoice import BillingInvoice
from app.db.models.organisation import Organisation
from app.db.models.paddle_webhook_event import PaddleWebhookEvent
from app.db.models.plan import Plan

__all__ = [
    "BillingInvoice",
    "Organisation",
    "PaddleWebhookEvent",
    "Plan",
]
