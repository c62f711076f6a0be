"""
Subscription state store.

Accessors for plans, user subscriptions, payment records and the webhook
event log, plus the profile tier sync. Each mutating function commits its own
unit of work.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from voiceflow.core.timeutils import utcnow, to_iso8601
from voiceflow.db.models.plan import SubscriptionPlan
from voiceflow.db.models.subscription import UserSubscription
from voiceflow.db.models.payment import PaymentRecord
from voiceflow.db.models.profile import Profile
from voiceflow.db.models.webhook_event import WebhookEvent
from voiceflow.services.subscription_state import (
    CURRENT_STATUSES,
    ENTITLED_STATUSES,
    PaymentStatus,
    SubscriptionEvent,
    SubscriptionStatus,
    is_entitled,
    next_status,
)

logger = logging.getLogger(__name__)

TIER_BY_PLAN_NAME = {"pro": "pro", "enterprise": "enterprise"}


class SubscriptionConflict(Exception):
    """A transition would give the user a second current subscription."""


# ---------------------------------------------------------
# Plans
# ---------------------------------------------------------
def get_subscription_plans(db: Session) -> List[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.price_monthly.asc())
        .all()
    )


def get_subscription_plan(db: Session, plan_id: str) -> Optional[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.id == plan_id, SubscriptionPlan.is_active.is_(True))
        .first()
    )


def get_subscription_plan_by_name(db: Session, name: str) -> Optional[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(func.lower(SubscriptionPlan.name) == name.lower(), SubscriptionPlan.is_active.is_(True))
        .first()
    )


# ---------------------------------------------------------
# User subscriptions
# ---------------------------------------------------------
def get_user_subscription(db: Session, user_id: str) -> Optional[UserSubscription]:
    """The user's current subscription: newest row in a current status."""
    return (
        db.query(UserSubscription)
        .filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status.in_([s.value for s in CURRENT_STATUSES]),
        )
        .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
        .first()
    )


def get_subscription_by_gateway_id(db: Session, razorpay_subscription_id: str) -> Optional[UserSubscription]:
    return (
        db.query(UserSubscription)
        .filter(UserSubscription.razorpay_subscription_id == razorpay_subscription_id)
        .first()
    )


def create_user_subscription(db: Session, **fields: Any) -> UserSubscription:
    subscription = UserSubscription(**fields)
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    logger.info(
        f"Subscription created: id={subscription.id}, user_id={subscription.user_id}, "
        f"status={subscription.status}, billing_cycle={subscription.billing_cycle}"
    )
    return subscription


def update_user_subscription(db: Session, subscription_id: int, updates: Dict[str, Any]) -> Optional[UserSubscription]:
    subscription = db.query(UserSubscription).filter(UserSubscription.id == subscription_id).first()
    if not subscription:
        logger.warning(f"Subscription not found for update: id={subscription_id}")
        return None
    for field, value in updates.items():
        setattr(subscription, field, value)
    db.commit()
    db.refresh(subscription)
    return subscription


def apply_subscription_event(
    db: Session,
    razorpay_subscription_id: str,
    event: SubscriptionEvent,
    updates: Optional[Dict[str, Any]] = None,
) -> Optional[UserSubscription]:
    """
    Move the subscription with the given gateway id through ``event``.

    A missing row is a no-op (returns None). ``updates`` are written together
    with the new status.

    Raises:
        IllegalTransition: the row's status cannot accept ``event``; nothing is written
        SubscriptionConflict: the user already has another current subscription;
            the transaction is rolled back
    """
    subscription = get_subscription_by_gateway_id(db, razorpay_subscription_id)
    if not subscription:
        logger.warning(f"{event.value}: no subscription for razorpay_subscription_id={razorpay_subscription_id}")
        return None

    previous = subscription.status
    target = next_status(previous, event, razorpay_subscription_id).value
    user_id = subscription.user_id
    subscription.status = target
    for field, value in (updates or {}).items():
        setattr(subscription, field, value)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise SubscriptionConflict(
            f"Subscription {razorpay_subscription_id} cannot become {target}: "
            f"user {user_id} already has a current subscription"
        ) from e
    db.refresh(subscription)

    logger.info(
        f"Subscription {event.value}: id={subscription.id}, razorpay_subscription_id={razorpay_subscription_id}, "
        f"status {previous} -> {subscription.status}"
    )
    return subscription


# ---------------------------------------------------------
# Payment history
# ---------------------------------------------------------
def create_payment_record(db: Session, **fields: Any) -> PaymentRecord:
    record = PaymentRecord(**fields)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_payment_record(
    db: Session,
    razorpay_payment_id: Optional[str],
    razorpay_order_id: Optional[str] = None,
) -> Optional[PaymentRecord]:
    """Locate a payment by gateway payment id, falling back to the order it was created for."""
    record = None
    if razorpay_payment_id:
        record = (
            db.query(PaymentRecord)
            .filter(PaymentRecord.razorpay_payment_id == razorpay_payment_id)
            .first()
        )
    if record is None and razorpay_order_id:
        record = (
            db.query(PaymentRecord)
            .filter(PaymentRecord.razorpay_order_id == razorpay_order_id)
            .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
            .first()
        )
    return record


def update_payment_record(
    db: Session,
    razorpay_payment_id: Optional[str],
    updates: Dict[str, Any],
    razorpay_order_id: Optional[str] = None,
) -> Optional[PaymentRecord]:
    """
    Update a payment record. ``metadata`` in ``updates`` is merged into the
    stored metadata rather than replacing it.
    """
    record = get_payment_record(db, razorpay_payment_id, razorpay_order_id)
    if not record:
        logger.warning(
            f"Payment record not found: razorpay_payment_id={razorpay_payment_id}, "
            f"razorpay_order_id={razorpay_order_id}"
        )
        return None

    updates = dict(updates)
    metadata = updates.pop("metadata", None)
    if metadata:
        record.extra = {**(record.extra or {}), **metadata}
    if razorpay_payment_id and not record.razorpay_payment_id:
        record.razorpay_payment_id = razorpay_payment_id
    for field, value in updates.items():
        setattr(record, field, value)
    db.commit()
    db.refresh(record)

    logger.info(f"Payment record updated: id={record.id}, payment_id={record.razorpay_payment_id}, status={record.status}")
    return record


def get_user_payment_history(db: Session, user_id: str, limit: int = 10) -> List[PaymentRecord]:
    return (
        db.query(PaymentRecord)
        .filter(PaymentRecord.user_id == user_id)
        .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
        .limit(limit)
        .all()
    )


# ---------------------------------------------------------
# Webhook event log
# ---------------------------------------------------------
def log_webhook_event(
    db: Session,
    event_id: str,
    event_type: str,
    account_id: Optional[str],
    payload: Dict[str, Any],
) -> WebhookEvent:
    """
    Record a delivery before dispatch. A redelivery of a known ``event_id``
    resets the existing row to unprocessed.
    """
    entry = db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first()
    if entry:
        logger.info(f"Webhook redelivery: event_id={event_id}, event_type={event_type}")
        entry.payload = payload
        entry.processed = False
        entry.processed_at = None
        entry.error_message = None
    else:
        entry = WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            account_id=account_id,
            payload=payload,
            processed=False,
        )
        db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def mark_webhook_event_processed(db: Session, event_id: str, error_message: Optional[str] = None) -> Optional[WebhookEvent]:
    entry = db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first()
    if not entry:
        logger.error(f"Webhook event not found when marking processed: event_id={event_id}")
        return None
    entry.processed = True
    entry.processed_at = utcnow()
    entry.error_message = error_message
    db.commit()
    db.refresh(entry)
    return entry


# ---------------------------------------------------------
# Profile tier
# ---------------------------------------------------------
def tier_for_subscription(subscription: Optional[UserSubscription]) -> str:
    if not subscription or not is_entitled(subscription.status):
        return "free"
    plan_name = (subscription.plan.name if subscription.plan else "").lower()
    return TIER_BY_PLAN_NAME.get(plan_name, "free")


def sync_profile_subscription_tier(db: Session, user_id: str) -> str:
    """Recompute ``Profile.subscription_tier`` from the current subscription. Idempotent."""
    tier = tier_for_subscription(get_user_subscription(db, user_id))

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        logger.warning(f"Profile not found for tier sync: user_id={user_id}")
        return tier

    if profile.subscription_tier != tier:
        logger.info(f"Profile tier changed: user_id={user_id}, {profile.subscription_tier} -> {tier}")
    profile.subscription_tier = tier
    db.commit()
    return tier


# ---------------------------------------------------------
# Maintenance
# ---------------------------------------------------------
def cleanup_expired_subscriptions(db: Session, now: Optional[datetime] = None) -> int:
    """Expire current subscriptions whose period has ended and re-sync their profiles."""
    now = now or utcnow()
    lapsed = (
        db.query(UserSubscription)
        .filter(
            UserSubscription.status.in_([SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value]),
            UserSubscription.current_period_end.isnot(None),
            UserSubscription.current_period_end < now,
        )
        .all()
    )
    for subscription in lapsed:
        subscription.status = next_status(subscription.status, SubscriptionEvent.PERIOD_ELAPSED).value
        subscription.ended_at = subscription.ended_at or now
    db.commit()

    for user_id in {subscription.user_id for subscription in lapsed}:
        sync_profile_subscription_tier(db, user_id)

    if lapsed:
        logger.info(f"Expired {len(lapsed)} lapsed subscription(s)")
    return len(lapsed)


def get_subscription_stats(db: Session) -> Dict[str, Any]:
    """Entitled subscriptions grouped by plan and billing cycle, plus captured revenue."""
    rows = (
        db.query(SubscriptionPlan.name, UserSubscription.billing_cycle, func.count(UserSubscription.id))
        .join(SubscriptionPlan, SubscriptionPlan.id == UserSubscription.plan_id)
        .filter(UserSubscription.status.in_([s.value for s in ENTITLED_STATUSES]))
        .group_by(SubscriptionPlan.name, UserSubscription.billing_cycle)
        .all()
    )
    subscriptions = [
        {"plan": plan_name, "billing_cycle": billing_cycle, "count": int(count)}
        for plan_name, billing_cycle, count in rows
    ]

    revenue_total, payment_count = (
        db.query(func.coalesce(func.sum(PaymentRecord.amount), 0), func.count(PaymentRecord.id))
        .filter(PaymentRecord.status == PaymentStatus.CAPTURED.value)
        .one()
    )
    last_payment = (
        db.query(func.max(PaymentRecord.created_at))
        .filter(PaymentRecord.status == PaymentStatus.CAPTURED.value)
        .scalar()
    )

    return {
        "subscriptions": subscriptions,
        "revenue": {
            "total": float(revenue_total or 0),
            "payments": int(payment_count),
            "last_payment_at": to_iso8601(last_payment),
        },
    }
