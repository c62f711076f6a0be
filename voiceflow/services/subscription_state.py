"""
Subscription lifecycle.

Every status change driven by the gateway goes through ``next_status``, which
only accepts the legal predecessor states for the incoming event. Re-applying
an event to the state it already produced is legal, so redelivered webhooks
are harmless.
"""
import enum
from typing import Dict, FrozenSet, Optional, Tuple, Union


class SubscriptionStatus(str, enum.Enum):
    CREATED = "created"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    HALTED = "halted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentStatus(str, enum.Enum):
    CREATED = "created"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"


class SubscriptionEvent(str, enum.Enum):
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    AUTHENTICATED = "subscription.authenticated"
    ACTIVATED = "subscription.activated"
    CHARGED = "subscription.charged"
    COMPLETED = "subscription.completed"
    CANCELLED = "subscription.cancelled"
    PAUSED = "subscription.paused"
    RESUMED = "subscription.resumed"
    HALTED = "subscription.halted"
    # Raised by the maintenance job, never by the gateway
    PERIOD_ELAPSED = "period.elapsed"


# Rows in these states are the user's "current" subscription
CURRENT_STATUSES: Tuple[SubscriptionStatus, ...] = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)

# States that grant the plan's tier
ENTITLED_STATUSES: Tuple[SubscriptionStatus, ...] = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.AUTHENTICATED,
)

S = SubscriptionStatus
E = SubscriptionEvent

# event -> (target status or None for "unchanged", legal predecessors)
TRANSITIONS: Dict[SubscriptionEvent, Tuple[Optional[SubscriptionStatus], FrozenSet[SubscriptionStatus]]] = {
    E.PAYMENT_CAPTURED: (S.ACTIVE, frozenset({S.CREATED, S.AUTHENTICATED, S.ACTIVE, S.PAST_DUE, S.HALTED})),
    E.PAYMENT_FAILED: (S.HALTED, frozenset({S.CREATED, S.AUTHENTICATED, S.ACTIVE, S.PAST_DUE, S.HALTED})),
    E.AUTHENTICATED: (S.AUTHENTICATED, frozenset({S.CREATED, S.AUTHENTICATED})),
    E.ACTIVATED: (S.ACTIVE, frozenset({S.CREATED, S.AUTHENTICATED, S.ACTIVE})),
    E.CHARGED: (None, frozenset({S.AUTHENTICATED, S.ACTIVE, S.PAST_DUE, S.HALTED})),
    E.COMPLETED: (S.EXPIRED, frozenset({S.AUTHENTICATED, S.ACTIVE, S.PAST_DUE, S.PAUSED, S.HALTED, S.EXPIRED})),
    E.CANCELLED: (S.CANCELLED, frozenset({
        S.CREATED, S.AUTHENTICATED, S.ACTIVE, S.PAST_DUE, S.PAUSED, S.HALTED, S.CANCELLED,
    })),
    E.PAUSED: (S.PAUSED, frozenset({S.ACTIVE, S.PAUSED})),
    E.RESUMED: (S.ACTIVE, frozenset({S.PAUSED, S.ACTIVE})),
    E.HALTED: (S.HALTED, frozenset({S.AUTHENTICATED, S.ACTIVE, S.PAST_DUE, S.HALTED})),
    E.PERIOD_ELAPSED: (S.EXPIRED, frozenset({S.ACTIVE, S.PAST_DUE})),
}


class IllegalTransition(Exception):
    """An event arrived for a subscription in a state that cannot accept it."""

    def __init__(self, current: SubscriptionStatus, event: SubscriptionEvent, subscription_ref: str = ""):
        self.current = current
        self.event = event
        self.subscription_ref = subscription_ref
        ref = f" for subscription {subscription_ref}" if subscription_ref else ""
        super().__init__(f"Illegal transition{ref}: {event.value} while {current.value}")


def next_status(
    current: Union[SubscriptionStatus, str],
    event: Union[SubscriptionEvent, str],
    subscription_ref: str = "",
) -> SubscriptionStatus:
    """
    Resolve the status that ``event`` moves a subscription in ``current`` to.

    Raises:
        IllegalTransition: ``current`` is not a legal predecessor for ``event``
        ValueError: unknown status or event string
    """
    current = SubscriptionStatus(current)
    event = SubscriptionEvent(event)
    target, allowed_from = TRANSITIONS[event]
    if current not in allowed_from:
        raise IllegalTransition(current, event, subscription_ref)
    return current if target is None else target


def is_entitled(status: Union[SubscriptionStatus, str, None]) -> bool:
    if status is None:
        return False
    return getattr(status, "value", status) in {s.value for s in ENTITLED_STATUSES}
