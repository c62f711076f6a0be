from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Numeric
from voiceflow.core.timeutils import utcnow, to_iso8601
from voiceflow.db.base import Base


class PaymentRecord(Base):
    """One row per payment attempt, created with the gateway order."""
    __tablename__ = "payment_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("user_subscriptions.id"), nullable=True)

    razorpay_order_id = Column(String, nullable=True, index=True)
    razorpay_payment_id = Column(String, nullable=True, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    status = Column(String(20), nullable=False, default="created")  # created | authorized | captured | failed | refunded
    method = Column(String(30), nullable=True)
    description = Column(String, nullable=True)
    receipt = Column(String, nullable=True)

    extra = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "razorpay_order_id": self.razorpay_order_id,
            "razorpay_payment_id": self.razorpay_payment_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "status": self.status,
            "method": self.method,
            "description": self.description,
            "receipt": self.receipt,
            "created_at": to_iso8601(self.created_at),
        }
