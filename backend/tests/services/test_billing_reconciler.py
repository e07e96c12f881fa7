"""Tests for BillingReconciler merge and upsert semantics."""

from datetime import UTC, datetime

import pytest
from sqlalchemy import func, select

from app.db.models.billing_invoice import BillingInvoice
from app.db.models.organisation import Organisation
from app.services.billing_reconciler import BillingReconciler, ReconcileAction
from app.services.organisation_resolver import Resolution, ResolutionSource

pytestmark = pytest.mark.integration


def _resolution(org_id: str, subscription_id: str = "", customer_id: str = "") -> Resolution:
    return Resolution(
        organisation_id=org_id,
        customer_id=customer_id,
        subscription_id=subscription_id,
        source=ResolutionSource.CUSTOM_DATA,
    )


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; stored values are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


async def _load_org(session_factory, org_id: str) -> Organisation:
    async with session_factory() as session:
        result = await session.execute(select(Organisation).where(Organisation.id == org_id))
        return result.scalar_one()


async def _load_invoices(session_factory, org_id: str) -> list[BillingInvoice]:
    async with session_factory() as session:
        result = await session.execute(
            select(BillingInvoice).where(BillingInvoice.organisation_id == org_id)
        )
        return list(result.scalars().all())


@pytest.fixture
def reconciler(session_factory) -> BillingReconciler:
    return BillingReconciler(session_factory)


class TestDispatch:
    async def test_other_families_are_ignored(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_ignore")

        action = await reconciler.apply("customer.updated", {"id": "ctm_1"}, _resolution("org_ignore"))

        assert action is ReconcileAction.IGNORED
        org = await _load_org(session_factory, "org_ignore")
        assert org.subscription_status == "inactive"


class TestSubscriptionMerge:
    async def test_full_update(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_sub")

        action = await reconciler.apply(
            "subscription.updated",
            {
                "id": "sub_1",
                "customer_id": "ctm_1",
                "status": "active",
                "next_billed_at": "2025-01-01T00:00:00Z",
                "items": [{"price": {"id": "pri_test_pro"}}],
            },
            _resolution("org_sub", subscription_id="sub_1", customer_id="ctm_1"),
        )

        assert action is ReconcileAction.SUBSCRIPTION_MERGED
        org = await _load_org(session_factory, "org_sub")
        assert org.subscription_status == "active"
        assert org.paddle_subscription_id == "sub_1"
        assert org.paddle_customer_id == "ctm_1"
        assert _as_utc(org.current_period_ends_at) == datetime(2025, 1, 1, tzinfo=UTC)
        assert org.plan_id == "pro"
        assert org.paddle_updated_at is not None

    async def test_blank_fields_never_clear_stored_values(self, reconciler, make_organisation, session_factory):
        """Event A sets status and period end; event B only carries a price."""
        await make_organisation("org_merge")

        await reconciler.apply(
            "subscription.created",
            {
                "id": "sub_m",
                "customer_id": "ctm_m",
                "status": "trialing",
                "next_billed_at": "2025-05-01T00:00:00Z",
            },
            _resolution("org_merge", subscription_id="sub_m"),
        )
        await reconciler.apply(
            "subscription.updated",
            {"status": "trialing", "items": [{"price_id": "pri_test_business"}]},
            _resolution("org_merge"),
        )

        org = await _load_org(session_factory, "org_merge")
        assert org.subscription_status == "trialing"
        assert org.paddle_subscription_id == "sub_m"
        assert org.paddle_customer_id == "ctm_m"
        assert org.current_period_ends_at is not None
        assert org.plan_id == "business"

    async def test_empty_status_with_new_price_yields_active_on_new_plan(
        self, reconciler, make_organisation, session_factory
    ):
        await make_organisation("org_ab")

        await reconciler.apply(
            "subscription.created",
            {"id": "sub_ab", "status": "active", "items": [{"price": {"id": "pri_test_pro"}}]},
            _resolution("org_ab", subscription_id="sub_ab"),
        )
        await reconciler.apply(
            "subscription.updated",
            {"status": "", "items": [{"price": {"id": "pri_test_business"}}]},
            _resolution("org_ab"),
        )

        org = await _load_org(session_factory, "org_ab")
        assert org.subscription_status == "active"
        assert org.plan_id == "business"
        assert org.paddle_subscription_id == "sub_ab"

    async def test_empty_status_overwrites_past_due_with_active(
        self, reconciler, make_organisation, session_factory
    ):
        """An empty status normalises to "active" and is written like any other status."""
        await make_organisation("org_dunning")

        await reconciler.apply(
            "subscription.updated",
            {"id": "sub_d", "status": "past_due"},
            _resolution("org_dunning", subscription_id="sub_d"),
        )
        assert (await _load_org(session_factory, "org_dunning")).subscription_status == "past_due"

        await reconciler.apply("subscription.updated", {"id": "sub_d"}, _resolution("org_dunning", subscription_id="sub_d"))

        assert (await _load_org(session_factory, "org_dunning")).subscription_status == "active"

    async def test_unknown_price_keeps_plan(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_price", plan_id="starter")

        await reconciler.apply(
            "subscription.updated",
            {"id": "sub_p", "status": "active", "items": [{"price": {"id": "pri_not_in_catalog"}}]},
            _resolution("org_price", subscription_id="sub_p"),
        )

        org = await _load_org(session_factory, "org_price")
        assert org.plan_id == "starter"
        assert org.subscription_status == "active"

    async def test_unknown_status_is_stored_as_unknown(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_status")

        await reconciler.apply(
            "subscription.updated",
            {"id": "sub_s", "status": "weird_status"},
            _resolution("org_status", subscription_id="sub_s"),
        )

        org = await _load_org(session_factory, "org_status")
        assert org.subscription_status == "unknown"

    async def test_missing_organisation_is_a_no_op(self, reconciler, session_factory):
        action = await reconciler.apply(
            "subscription.updated",
            {"id": "sub_ghost", "status": "active"},
            _resolution("org_ghost", subscription_id="sub_ghost"),
        )

        assert action is ReconcileAction.SUBSCRIPTION_MERGED
        async with session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(Organisation))
        assert count == 0

    async def test_redelivery_converges(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_again")
        data = {
            "id": "sub_a",
            "customer_id": "ctm_a",
            "status": "past_due",
            "items": [{"price": {"id": "pri_test_starter"}}],
        }

        await reconciler.apply("subscription.updated", data, _resolution("org_again", subscription_id="sub_a"))
        first = await _load_org(session_factory, "org_again")
        await reconciler.apply("subscription.updated", data, _resolution("org_again", subscription_id="sub_a"))
        second = await _load_org(session_factory, "org_again")

        for column in ("subscription_status", "paddle_subscription_id", "paddle_customer_id", "plan_id"):
            assert getattr(first, column) == getattr(second, column)


class TestTransactionUpsert:
    async def test_insert_then_overwrite(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_txn")
        resolution = _resolution("org_txn", subscription_id="sub_t")

        action = await reconciler.apply(
            "transaction.billed",
            {
                "id": "txn_1",
                "status": "billed",
                "currency_code": "USD",
                "billed_at": "2025-02-01T00:00:00Z",
                "details": {"invoice_number": "INV-1", "totals": {"grand_total": "4900"}},
            },
            resolution,
        )
        assert action is ReconcileAction.INVOICE_UPSERTED

        await reconciler.apply(
            "transaction.completed",
            {
                "id": "txn_1",
                "invoice_id": "inv_1",
                "status": "completed",
                "currency_code": "USD",
                "billed_at": "2025-02-01T00:00:00Z",
                "invoice_url": "https://paddle.test/inv_1.pdf",
                "details": {"invoice_number": "INV-1", "totals": {"grand_total": "4900"}},
            },
            resolution,
        )

        invoices = await _load_invoices(session_factory, "org_txn")
        assert len(invoices) == 1
        invoice = invoices[0]
        assert invoice.paddle_transaction_id == "txn_1"
        assert invoice.paddle_invoice_id == "inv_1"
        assert invoice.status == "completed"
        assert invoice.total_amount_cents == 4900
        assert invoice.invoice_number == "INV-1"
        assert invoice.invoice_url == "https://paddle.test/inv_1.pdf"

    async def test_identical_redelivery_leaves_one_row(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_dup")
        data = {"id": "txn_dup", "status": "paid", "details": {"totals": {"total": "1999"}}}

        await reconciler.apply("transaction.paid", data, _resolution("org_dup"))
        await reconciler.apply("transaction.paid", data, _resolution("org_dup"))

        invoices = await _load_invoices(session_factory, "org_dup")
        assert [i.total_amount_cents for i in invoices] == [1999]

    async def test_missing_transaction_id_skips(self, reconciler, make_organisation, session_factory):
        await make_organisation("org_skip")

        action = await reconciler.apply("transaction.completed", {"status": "completed"}, _resolution("org_skip"))

        assert action is ReconcileAction.SKIPPED
        assert await _load_invoices(session_factory, "org_skip") == []
