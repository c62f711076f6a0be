from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, Text
from voiceflow.core.timeutils import utcnow
from voiceflow.db.base import Base


class WebhookEvent(Base):
    """
    Audit trail of gateway webhook deliveries.

    Written before dispatch and marked processed afterwards, keyed by one
    delivery id for both writes.
    """
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, unique=True, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)
    account_id = Column(String, nullable=True)
    payload = Column(JSON, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
