from sqlalchemy import Column, Integer, String, DateTime, Index, UniqueConstraint
from kenflash.clock import utc_now
from kenflash.database import Base
import enum

class SubscriptionStatus(enum.Enum):
    active = "active"

class Subscription(Base):
    """One grant of timed access purchased for an email address."""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(320), nullable=False)
    plan = Column(String(100), nullable=False)
    expiry_time = Column(DateTime(timezone=True), nullable=False)
    transaction_ref = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.active.value)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("transaction_ref", name="uq_subscriptions_transaction_ref"),
        Index("ix_subscriptions_email_expiry", "email", "expiry_time"),
    )
