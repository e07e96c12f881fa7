"""Tests for plan catalog seeding."""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import select, update

from app.db.models.plan import Plan
from app.db.seed import configured_price_ids, seed_plans

pytestmark = pytest.mark.integration


async def _plans(session_factory) -> dict[str, Plan]:
    async with session_factory() as session:
        result = await session.execute(select(Plan))
        return {plan.id: plan for plan in result.scalars().all()}


async def test_default_plans_seeded(engine, session_factory):
    plans = await _plans(session_factory)

    assert set(plans) == {"free", "starter", "pro", "business"}
    assert plans["free"].paddle_price_id is None
    assert plans["pro"].paddle_price_id == "pri_test_pro"
    assert plans["business"].monthly_price_cents == 14900


async def test_reseeding_is_idempotent(engine, session_factory):
    await seed_plans()
    await seed_plans()

    assert len(await _plans(session_factory)) == 4


async def test_existing_price_id_is_not_overwritten(engine, session_factory):
    async with session_factory() as session:
        await session.execute(update(Plan).where(Plan.id == "pro").values(paddle_price_id="pri_operator_set"))
        await session.execute(update(Plan).where(Plan.id == "starter").values(paddle_price_id=None))
        await session.commit()

    await seed_plans()

    plans = await _plans(session_factory)
    assert plans["pro"].paddle_price_id == "pri_operator_set"
    assert plans["starter"].paddle_price_id == "pri_test_starter"


def test_configured_price_ids_strips_values():
    settings = MagicMock(paddle_price_starter=" pri_a ", paddle_price_pro="", paddle_price_business="pri_c")

    with patch("app.db.seed.get_settings", return_value=settings):
        assert configured_price_ids() == {"starter": "pri_a", "pro": "", "business": "pri_c"}
