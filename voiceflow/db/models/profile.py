from sqlalchemy import Column, String, DateTime
from voiceflow.core.timeutils import utcnow
from voiceflow.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)  # user id from the auth provider
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)

    # Cached from the current subscription, never authoritative
    subscription_tier = Column(String(20), default="free", nullable=False)  # free | pro | enterprise

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
