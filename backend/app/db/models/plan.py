"""Plan model: the local plan catalog mapped to Paddle prices."""

from sqlalchemy import Boolean, Column, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class Plan(Base):
    __tablename__ = "plans"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    display_name = Column(String(100), nullable=False)

    # Pricing (cents); 0 = free tier, switched without checkout
    monthly_price_cents = Column(Integer, nullable=False, default=0)

    # Paddle price the webhook reconciler maps back to this plan
    paddle_price_id = Column(String(255), unique=True, nullable=True, index=True)

    is_active = Column(Boolean, nullable=False, default=True)

    organisations = relationship("Organisation", back_populates="plan")
