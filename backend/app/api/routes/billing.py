"""Billing routes: overview, invoices, Paddle checkout/portal, and the Paddle webhook."""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select, update

from app.core.auth import OrgUser, require_org_admin, require_org_user
from app.core.config import get_settings
from app.core.exceptions import PaddleAPIError
from app.db.base import get_session_factory
from app.db.models.billing_invoice import BillingInvoice
from app.db.models.organisation import Organisation
from app.db.models.plan import Plan
from app.integrations.paddle import PaddleClient
from app.schemas.billing import (
    BillingOverview,
    BillingOverviewResponse,
    CheckoutRequest,
    CheckoutResponse,
    InvoiceEntry,
    InvoiceListResponse,
    PortalResponse,
    WebhookAckResponse,
)
from app.services.paddle_webhook_service import PaddleWebhookService, WebhookOutcome

logger = structlog.get_logger(__name__)

router = APIRouter()

INVOICE_LIST_LIMIT = 50


# ── Helpers ─────────────────────────────────────────────────────────


def _as_utc(value: datetime) -> datetime:
    """Stored timestamps may come back naive (SQLite); they are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _rfc3339(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_paddle_client() -> PaddleClient:
    return PaddleClient()


# ── Endpoints ───────────────────────────────────────────────────────


@router.get("/billing", response_model=BillingOverviewResponse)
async def get_billing_overview(user: OrgUser = Depends(require_org_user)):
    """Return the organisation's plan and Paddle subscription state."""
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(Organisation, Plan)
            .join(Plan, Organisation.plan_id == Plan.id)
            .where(Organisation.id == user.organisation_id)
        )
        row = result.one_or_none()

    if row is None:
        raise HTTPException(status_code=404, detail="Organisation not found")

    organisation, plan = row._tuple()
    overview = BillingOverview(
        plan_id=plan.id,
        plan_display_name=plan.display_name,
        monthly_price_cents=plan.monthly_price_cents,
        subscription_status=organisation.subscription_status,
        billing_enabled=get_settings().billing_enabled,
        has_customer_account=bool((organisation.paddle_customer_id or "").strip()),
        subscription_id=organisation.paddle_subscription_id,
        current_period_ends_at=(
            _rfc3339(organisation.current_period_ends_at) if organisation.current_period_ends_at else None
        ),
    )
    return BillingOverviewResponse(billing=overview)


@router.get("/billing/invoices", response_model=InvoiceListResponse)
async def list_billing_invoices(user: OrgUser = Depends(require_org_user)):
    """Return the organisation's most recent invoices, newest billed first."""
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(BillingInvoice)
            .where(BillingInvoice.organisation_id == user.organisation_id)
            .order_by(BillingInvoice.billed_at.desc().nulls_last(), BillingInvoice.created_at.desc())
            .limit(INVOICE_LIST_LIMIT)
        )
        invoices = result.scalars().all()

    entries = []
    for invoice in invoices:
        url = (invoice.invoice_url or "").strip()
        entry = InvoiceEntry(
            invoice_number=invoice.invoice_number or "",
            status=invoice.status,
            currency_code=(invoice.currency_code or "").strip().upper(),
            total_amount_cents=invoice.total_amount_cents,
            invoice_url=invoice.invoice_url or "",
            invoice_available=bool(url),
        )
        if invoice.billed_at is not None:
            billed_at = _as_utc(invoice.billed_at)
            entry.billed_at = billed_at.date().isoformat()
            entry.billed_at_timestamp = _rfc3339(billed_at)
        entries.append(entry)

    return InvoiceListResponse(invoices=entries)


@router.post("/billing/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    body: CheckoutRequest,
    user: OrgUser = Depends(require_org_admin),
    paddle: PaddleClient = Depends(get_paddle_client),
):
    """Switch to a free plan directly, or create a Paddle checkout for a paid one."""
    plan_id = body.plan_id.strip()
    if not plan_id:
        raise HTTPException(status_code=400, detail="plan_id is required")

    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(select(Plan).where(Plan.id == plan_id, Plan.is_active.is_(True)))
        plan = result.scalar_one_or_none()
        if plan is None:
            raise HTTPException(status_code=400, detail="Plan not found")

        # Free tier changes are applied immediately without checkout
        if plan.monthly_price_cents == 0:
            await session.execute(
                update(Organisation)
                .where(Organisation.id == user.organisation_id)
                .values(plan_id=plan.id, updated_at=datetime.now(UTC))
            )
            await session.commit()
            logger.info("organisation_plan_updated", organisation_id=user.organisation_id, plan_id=plan.id)
            return CheckoutResponse(plan_name=plan.display_name, plan_updated=True)

    if not get_settings().billing_enabled:
        raise HTTPException(status_code=503, detail="Billing is not configured")
    if not (plan.paddle_price_id or "").strip():
        raise HTTPException(status_code=400, detail=f"Plan '{plan.name}' is not configured for checkout")

    try:
        checkout_url = await paddle.create_checkout(
            plan.paddle_price_id,
            {
                "organisation_id": user.organisation_id,
                "requested_by": user.user_id,
                "plan_id": plan.id,
            },
        )
    except PaddleAPIError as exc:
        logger.error(
            "paddle_checkout_failed",
            organisation_id=user.organisation_id,
            plan_id=plan.id,
            error=str(exc),
        )
        raise HTTPException(status_code=500, detail="Failed to create checkout transaction") from exc

    return CheckoutResponse(checkout_url=checkout_url, plan_name=plan.display_name)


@router.post("/billing/portal", response_model=PortalResponse)
async def create_portal_session(
    user: OrgUser = Depends(require_org_admin),
    paddle: PaddleClient = Depends(get_paddle_client),
):
    """Create a Paddle customer portal session and return the URL."""
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(Organisation.paddle_customer_id).where(Organisation.id == user.organisation_id)
        )
        customer_id = (result.scalar_one_or_none() or "").strip()

    if not customer_id:
        raise HTTPException(status_code=400, detail="No active billing customer found for this organisation")

    return_url = f"{get_settings().app_url.rstrip('/')}/settings/billing"
    try:
        portal_url = await paddle.create_portal_session(customer_id, return_url)
    except PaddleAPIError as exc:
        logger.error("paddle_portal_failed", organisation_id=user.organisation_id, error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to create billing portal session") from exc

    return PortalResponse(portal_url=portal_url)


@router.post("/webhooks/paddle", response_model=WebhookAckResponse)
async def paddle_webhook(request: Request):
    """Handle Paddle webhook events with signature verification and claim-based idempotency.

    Rejections surface as BillingError subclasses; billing_error_handler maps
    them to 503/401/400/500, and any non-2xx tells Paddle to redeliver later.
    """
    body = await request.body()
    service = PaddleWebhookService(get_settings(), get_session_factory())
    result = await service.handle(body, request.headers.get("paddle-signature"))

    if result.outcome is WebhookOutcome.DUPLICATE:
        return WebhookAckResponse(message="Webhook already processed")
    return WebhookAckResponse(message="Webhook processed successfully")
