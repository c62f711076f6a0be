"""
Usage tracking and plan limit checks.

Usage is counted per user, per resource type, per calendar month. Limits come
from the plan behind the user's current subscription; -1 means unlimited.
"""
import logging
from typing import Dict, NamedTuple, Optional

from sqlalchemy.orm import Session

from voiceflow.core.timeutils import month_bounds
from voiceflow.db.models.plan import SubscriptionPlan
from voiceflow.db.models.usage import UsageTracking
from voiceflow.services.subscription_state import is_entitled
from voiceflow.services.subscription_store import (
    get_subscription_plan_by_name,
    get_user_subscription,
    tier_for_subscription,
)

logger = logging.getLogger(__name__)

UNLIMITED = -1


class UsageCheck(NamedTuple):
    can_use: bool
    current_usage: int
    limit: Optional[int]


def get_effective_plan(db: Session, user_id: str) -> Optional[SubscriptionPlan]:
    """Plan of the current subscription, or the Free plan when there is none."""
    subscription = get_user_subscription(db, user_id)
    if subscription and subscription.plan:
        return subscription.plan
    return get_subscription_plan_by_name(db, "free")


def get_current_usage(db: Session, user_id: str, resource_type: str) -> Optional[UsageTracking]:
    period_start, _ = month_bounds()
    return (
        db.query(UsageTracking)
        .filter(
            UsageTracking.user_id == user_id,
            UsageTracking.resource_type == resource_type,
            UsageTracking.period_start == period_start,
        )
        .first()
    )


def increment_usage(db: Session, user_id: str, resource_type: str, increment_by: int = 1) -> UsageTracking:
    usage = get_current_usage(db, user_id, resource_type)
    if usage is None:
        period_start, period_end = month_bounds()
        usage = UsageTracking(
            user_id=user_id,
            resource_type=resource_type,
            usage_count=increment_by,
            period_start=period_start,
            period_end=period_end,
        )
        db.add(usage)
    else:
        usage.usage_count = usage.usage_count + increment_by
    db.commit()
    db.refresh(usage)

    logger.info(
        f"Usage recorded: user_id={user_id}, resource={resource_type}, "
        f"amount={increment_by}, total={usage.usage_count}"
    )
    return usage


def check_usage_limit(db: Session, user_id: str, resource_type: str) -> UsageCheck:
    """
    Whether the user may consume more of ``resource_type`` this month.

    Unlimited (-1) resources are always usable. A resource the plan does not
    list is not usable.
    """
    plan = get_effective_plan(db, user_id)
    if plan is None:
        return UsageCheck(False, 0, 0)

    limit = (plan.limits or {}).get(resource_type)
    if limit == UNLIMITED:
        return UsageCheck(True, 0, UNLIMITED)

    usage = get_current_usage(db, user_id, resource_type)
    used = usage.usage_count if usage else 0

    if limit is None:
        logger.debug(f"Resource not offered by plan: user_id={user_id}, resource={resource_type}, plan={plan.name}")
        return UsageCheck(False, used, None)

    return UsageCheck(used < limit, used, limit)


def is_subscription_active(db: Session, user_id: str) -> bool:
    subscription = get_user_subscription(db, user_id)
    return subscription is not None and is_entitled(subscription.status)


def get_subscription_tier(db: Session, user_id: str) -> str:
    return tier_for_subscription(get_user_subscription(db, user_id))


def can_access_feature(db: Session, user_id: str, feature_name: str) -> bool:
    """Case-insensitive substring match against the current plan's feature list."""
    subscription = get_user_subscription(db, user_id)
    if not subscription or not subscription.plan:
        return False
    needle = feature_name.lower()
    return any(needle in feature.lower() for feature in (subscription.plan.features or []))


def get_usage_for_response(db: Session, user_id: str) -> Dict:
    """
    Usage data formatted for GET /me/usage.
    """
    plan = get_effective_plan(db, user_id)
    period_start, _ = month_bounds()

    resources = []
    for resource_type, limit in sorted(((plan.limits or {}) if plan else {}).items()):
        check = check_usage_limit(db, user_id, resource_type)
        usage = get_current_usage(db, user_id, resource_type)
        used = usage.usage_count if usage else 0
        unlimited = limit == UNLIMITED
        resources.append({
            "resource": resource_type,
            "limit": None if unlimited else limit,
            "used": used,
            "remaining": None if unlimited else max(0, limit - used),
            "unlimited": unlimited,
            "can_use": check.can_use,
        })

    return {
        "plan": plan.name if plan else None,
        "tier": get_subscription_tier(db, user_id),
        "month_key": period_start.strftime("%Y-%m"),
        "resources": resources,
    }
