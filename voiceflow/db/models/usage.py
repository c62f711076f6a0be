from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from voiceflow.db.base import Base


class UsageTracking(Base):
    """
    Per-user, per-resource usage counter for one calendar month.
    """
    __tablename__ = "usage_tracking"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    resource_type = Column(String, nullable=False)  # "transcription_hours", "projects", "api_calls"
    usage_count = Column(Integer, default=0, nullable=False)
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_usage_user_resource_period", "user_id", "resource_type", "period_start"),
    )
