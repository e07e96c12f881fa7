"""WebhookEventLedger: exactly-once claims over at-least-once Paddle deliveries."""

from datetime import UTC, datetime
from enum import StrEnum

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.base import dialect_insert
from app.db.models.paddle_webhook_event import PaddleWebhookEvent

logger = structlog.get_logger(__name__)


class ClaimStatus(StrEnum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class WebhookEventLedger:
    """Durable claim table keyed by Paddle event_id.

    Mutual exclusion comes from the primary key on ``paddle_webhook_events``:
    the claim is a single INSERT ... ON CONFLICT DO NOTHING, so concurrent
    deliveries of the same event (in any process) see exactly one winner.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def claim(self, event_id: str, event_type: str, *, reclaim_failed: bool = False) -> bool:
        """Claim an event for processing.

        Args:
            event_id: Paddle event id
            event_type: Paddle event type, stored for diagnostics
            reclaim_failed: Also take over a row previously finalized as failed

        Returns:
            True if this caller owns the event and must reconcile it,
            False if another delivery already claimed it.

        Store errors propagate; the webhook must answer non-2xx so Paddle redelivers.
        """
        async with self.session_factory() as session:
            stmt = (
                dialect_insert(session, PaddleWebhookEvent)
                .values(
                    event_id=event_id,
                    event_type=event_type,
                    status=ClaimStatus.PROCESSING.value,
                    received_at=datetime.now(UTC),
                )
                .on_conflict_do_nothing(index_elements=["event_id"])
                .returning(PaddleWebhookEvent.event_id)
            )
            claimed = (await session.execute(stmt)).scalar_one_or_none() is not None

            if not claimed and reclaim_failed:
                result = await session.execute(
                    update(PaddleWebhookEvent)
                    .where(
                        PaddleWebhookEvent.event_id == event_id,
                        PaddleWebhookEvent.status == ClaimStatus.FAILED.value,
                    )
                    .values(
                        status=ClaimStatus.PROCESSING.value,
                        received_at=datetime.now(UTC),
                        processed_at=None,
                        error_message=None,
                    )
                    .returning(PaddleWebhookEvent.event_id)
                    .execution_options(synchronize_session=False)
                )
                claimed = result.scalar_one_or_none() is not None
                if claimed:
                    logger.info("paddle_webhook_failed_event_reclaimed", event_id=event_id, event_type=event_type)

            await session.commit()
            return claimed

    async def finalize(self, event_id: str, status: ClaimStatus, error_message: str | None = None) -> None:
        """Record the terminal status of a claimed event.

        Best-effort audit write: failures are logged and never raised, the
        reconciliation outcome has already been decided.
        """
        try:
            async with self.session_factory() as session:
                await session.execute(
                    update(PaddleWebhookEvent)
                    .where(PaddleWebhookEvent.event_id == event_id)
                    .values(
                        status=status.value,
                        processed_at=datetime.now(UTC),
                        error_message=error_message or None,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error(
                "paddle_webhook_finalize_failed",
                event_id=event_id,
                status=status.value,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def get(self, event_id: str) -> PaddleWebhookEvent | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PaddleWebhookEvent).where(PaddleWebhookEvent.event_id == event_id)
            )
            return result.scalar_one_or_none()
