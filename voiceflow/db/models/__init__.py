"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from voiceflow.db.models.profile import Profile
from voiceflow.db.models.plan import SubscriptionPlan
from voiceflow.db.models.subscription import UserSubscription
from voiceflow.db.models.payment import PaymentRecord
from voiceflow.db.models.webhook_event import WebhookEvent
from voiceflow.db.models.usage import UsageTracking

__all__ = [
    "Profile",
    "SubscriptionPlan",
    "UserSubscription",
    "PaymentRecord",
    "WebhookEvent",
    "UsageTracking",
]
