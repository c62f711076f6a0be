from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index, text
from sqlalchemy.orm import relationship
from voiceflow.core.timeutils import utcnow, to_iso8601
from voiceflow.db.base import Base

# Statuses that make a row the user's "current" subscription
CURRENT_STATUS_SQL = "status IN ('active', 'trialing', 'past_due')"


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id"), nullable=False)

    # Only present once the gateway has created them
    razorpay_subscription_id = Column(String, unique=True, nullable=True)
    razorpay_customer_id = Column(String, nullable=True)

    status = Column(String(20), nullable=False, default="created")
    billing_cycle = Column(String(10), nullable=False, default="monthly")  # monthly | yearly

    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    extra = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    plan = relationship("SubscriptionPlan", lazy="joined")

    # At most one current row per user
    __table_args__ = (
        Index(
            "uq_user_subscriptions_current",
            "user_id",
            unique=True,
            postgresql_where=text(CURRENT_STATUS_SQL),
            sqlite_where=text(CURRENT_STATUS_SQL),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan_id": self.plan_id,
            "plan_name": self.plan.name if self.plan else None,
            "razorpay_subscription_id": self.razorpay_subscription_id,
            "razorpay_customer_id": self.razorpay_customer_id,
            "status": self.status,
            "billing_cycle": self.billing_cycle,
            "current_period_start": to_iso8601(self.current_period_start),
            "current_period_end": to_iso8601(self.current_period_end),
            "cancelled_at": to_iso8601(self.cancelled_at),
            "ended_at": to_iso8601(self.ended_at),
            "metadata": dict(self.extra or {}),
            "created_at": to_iso8601(self.created_at),
        }
