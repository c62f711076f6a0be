import uuid
from sqlalchemy import Column, String, Numeric, Boolean, DateTime, JSON
from voiceflow.core.timeutils import utcnow
from voiceflow.db.base import Base


class SubscriptionPlan(Base):
    """
    Priced tier reference data (Free, Pro, Enterprise).

    ``limits`` maps a resource type to its monthly allowance; -1 means unlimited.
    """
    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(50), unique=True, nullable=False)
    description = Column(String, nullable=True)
    price_monthly = Column(Numeric(10, 2), nullable=False, default=0)
    price_yearly = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="INR")
    features = Column(JSON, nullable=False, default=list)
    limits = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_monthly": float(self.price_monthly or 0),
            "price_yearly": float(self.price_yearly) if self.price_yearly is not None else None,
            "currency": self.currency,
            "features": list(self.features or []),
            "limits": dict(self.limits or {}),
        }
