"""BillingReconciler: applies verified Paddle events to organisation and invoice state."""

from datetime import UTC, datetime
from enum import StrEnum

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.base import dialect_insert
from app.db.models.billing_invoice import BillingInvoice
from app.db.models.organisation import Organisation
from app.db.models.plan import Plan
from app.domain.paddle_payloads import (
    EventFamily,
    event_family,
    extract_invoice_snapshot,
    extract_subscription_update,
)
from app.services.organisation_resolver import Resolution

logger = structlog.get_logger(__name__)


class ReconcileAction(StrEnum):
    SUBSCRIPTION_MERGED = "subscription_merged"
    INVOICE_UPSERTED = "invoice_upserted"
    SKIPPED = "skipped"
    IGNORED = "ignored"


class BillingReconciler:
    """Tagged dispatch over the two event families this service understands.

    - subscription.*: merge into the organisation row; incoming blanks never
      clear stored values, unknown Paddle prices never change the plan.
    - transaction.*: overwrite-upsert of the invoice row keyed by transaction id.
    - anything else: ignored.

    Each family writes with one statement, so redelivery converges.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def apply(self, event_type: str, data: dict, resolution: Resolution) -> ReconcileAction:
        family = event_family(event_type)
        if family is EventFamily.SUBSCRIPTION:
            return await self.apply_subscription(data, resolution)
        if family is EventFamily.TRANSACTION:
            return await self.apply_transaction(data, resolution)

        logger.debug("paddle_event_type_ignored", event_type=event_type)
        return ReconcileAction.IGNORED

    async def apply_subscription(self, data: dict, resolution: Resolution) -> ReconcileAction:
        sub = extract_subscription_update(data, resolution.subscription_id)
        now = datetime.now(UTC)

        changes: dict = {
            "subscription_status": sub.status,
            "paddle_updated_at": now,
            "updated_at": now,
        }
        if sub.customer_id:
            changes["paddle_customer_id"] = sub.customer_id
        if sub.subscription_id:
            changes["paddle_subscription_id"] = sub.subscription_id
        if sub.period_ends_at is not None:
            changes["current_period_ends_at"] = sub.period_ends_at
        if sub.price_id:
            matched_plan = (
                select(Plan.id)
                .where(Plan.paddle_price_id == sub.price_id)
                .limit(1)
                .scalar_subquery()
            )
            changes["plan_id"] = func.coalesce(matched_plan, Organisation.plan_id)

        async with self.session_factory() as session:
            result = await session.execute(
                update(Organisation)
                .where(Organisation.id == resolution.organisation_id)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount == 0:
            logger.warning(
                "subscription_update_organisation_missing",
                organisation_id=resolution.organisation_id,
                subscription_id=sub.subscription_id,
            )
        else:
            logger.info(
                "subscription_state_merged",
                organisation_id=resolution.organisation_id,
                subscription_id=sub.subscription_id,
                status=sub.status,
                price_id=sub.price_id or None,
            )
        return ReconcileAction.SUBSCRIPTION_MERGED

    async def apply_transaction(self, data: dict, resolution: Resolution) -> ReconcileAction:
        invoice = extract_invoice_snapshot(data)
        if invoice is None:
            logger.info("transaction_without_id_skipped", organisation_id=resolution.organisation_id)
            return ReconcileAction.SKIPPED

        now = datetime.now(UTC)
        async with self.session_factory() as session:
            stmt = dialect_insert(session, BillingInvoice).values(
                organisation_id=resolution.organisation_id,
                paddle_transaction_id=invoice.transaction_id,
                paddle_invoice_id=invoice.invoice_id or None,
                invoice_number=invoice.invoice_number or None,
                status=invoice.status,
                currency_code=invoice.currency_code or None,
                total_amount_cents=invoice.total_amount_cents,
                billed_at=invoice.billed_at,
                invoice_url=invoice.invoice_url or None,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["paddle_transaction_id"],
                set_={
                    "paddle_invoice_id": stmt.excluded.paddle_invoice_id,
                    "invoice_number": stmt.excluded.invoice_number,
                    "status": stmt.excluded.status,
                    "currency_code": stmt.excluded.currency_code,
                    "total_amount_cents": stmt.excluded.total_amount_cents,
                    "billed_at": stmt.excluded.billed_at,
                    "invoice_url": stmt.excluded.invoice_url,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)
            await session.commit()

        logger.info(
            "invoice_upserted",
            organisation_id=resolution.organisation_id,
            transaction_id=invoice.transaction_id,
            status=invoice.status,
            total_amount_cents=invoice.total_amount_cents,
        )
        return ReconcileAction.INVOICE_UPSERTED
