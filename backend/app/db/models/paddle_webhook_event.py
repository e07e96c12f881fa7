"""PaddleWebhookEvent model: the claim ledger for inbound webhook deliveries."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String, Text

from app.db.base import Base


class PaddleWebhookEvent(Base):
    """One row per Paddle event_id.

    Inserted once with status ``processing`` (the claim), then updated to
    ``processed`` or ``failed``. Rows are never deleted.
    """

    __tablename__ = "paddle_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="processing")
    received_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    processed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
