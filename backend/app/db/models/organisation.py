"""Organisation model: the billing-relevant projection of a tenant."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class Organisation(Base):
    """Tenant record owned by the account subsystem.

    The webhook reconciler only ever merges non-empty values into the
    Paddle columns; ``subscription_status`` is always one of
    ``app.domain.paddle_payloads.SUBSCRIPTION_STATUSES``.
    """

    __tablename__ = "organisations"

    id = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False, default="")

    plan_id = Column(String(50), ForeignKey("plans.id"), nullable=False, default="free")
    plan = relationship("Plan", back_populates="organisations")

    # Paddle
    paddle_customer_id = Column(String(255), nullable=True, index=True)
    paddle_subscription_id = Column(String(255), nullable=True, index=True)
    subscription_status = Column(String(50), nullable=False, default="inactive")
    current_period_ends_at = Column(DateTime(timezone=True), nullable=True)
    paddle_updated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
