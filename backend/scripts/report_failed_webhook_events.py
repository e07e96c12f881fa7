"""Report Paddle webhook events whose processing failed.

Failed claims are not re-run by Paddle redelivery unless
PADDLE_WEBHOOK_RECLAIM_FAILED is enabled; this lists them for an operator.
"""

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import get_settings
from app.db.models.paddle_webhook_event import PaddleWebhookEvent


async def main() -> None:
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.connect() as conn:
        result = await conn.execute(
            select(
                PaddleWebhookEvent.event_id,
                PaddleWebhookEvent.event_type,
                PaddleWebhookEvent.received_at,
                PaddleWebhookEvent.error_message,
            )
            .where(PaddleWebhookEvent.status == "failed")
            .order_by(PaddleWebhookEvent.received_at)
        )
        rows = result.fetchall()

    print(f"Found {len(rows)} failed webhook event(s):")
    for row in rows:
        print(f"  {row.event_id} | {row.event_type} | received={row.received_at} | error={str(row.error_message)[:120]}")

    if rows and not settings.paddle_webhook_reclaim_failed:
        print("\nPADDLE_WEBHOOK_RECLAIM_FAILED is off: redelivery will not re-run these events.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
