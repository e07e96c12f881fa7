"""Idempotent seed data for the plan catalog."""

from sqlalchemy import select

from app.core.config import get_settings
from app.db.base import get_session_factory
from app.db.models.plan import Plan

PLANS = [
    {
        "id": "free",
        "name": "free",
        "display_name": "Free",
        "monthly_price_cents": 0,
        "price_setting": None,
    },
    {
        "id": "starter",
        "name": "starter",
        "display_name": "Starter",
        "monthly_price_cents": 1900,
        "price_setting": "paddle_price_starter",
    },
    {
        "id": "pro",
        "name": "pro",
        "display_name": "Pro",
        "monthly_price_cents": 4900,
        "price_setting": "paddle_price_pro",
    },
    {
        "id": "business",
        "name": "business",
        "display_name": "Business",
        "monthly_price_cents": 14900,
        "price_setting": "paddle_price_business",
    },
]


def configured_price_ids() -> dict[str, str]:
    """Map plan id -> Paddle price id for every paid plan (empty string when unset)."""
    settings = get_settings()
    return {
        plan["id"]: getattr(settings, plan["price_setting"]).strip()
        for plan in PLANS
        if plan["price_setting"]
    }


async def seed_plans() -> None:
    """Insert default plans if missing and fill in Paddle price ids from settings.

    An existing price id is never overwritten; operators may have changed it.
    """
    factory = get_session_factory()
    price_ids = configured_price_ids()

    async with factory() as session:
        for plan_data in PLANS:
            result = await session.execute(select(Plan).where(Plan.id == plan_data["id"]))
            existing = result.scalar_one_or_none()
            price_id = price_ids.get(plan_data["id"]) or None

            if existing is None:
                session.add(
                    Plan(
                        id=plan_data["id"],
                        name=plan_data["name"],
                        display_name=plan_data["display_name"],
                        monthly_price_cents=plan_data["monthly_price_cents"],
                        paddle_price_id=price_id,
                    )
                )
            elif price_id and not existing.paddle_price_id:
                existing.paddle_price_id = price_id

        await session.commit()
