"""
Razorpay webhook event handlers.

Each handler performs one small mutation for one event type. ``EVENT_HANDLERS``
is the dispatch table; ``process_webhook_event`` wraps dispatch with the
webhook event log.
"""
import logging
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from voiceflow.core.timeutils import epoch_to_datetime, utcnow
from voiceflow.services.subscription_state import IllegalTransition, PaymentStatus, SubscriptionEvent
from voiceflow.services.subscription_store import (
    SubscriptionConflict,
    apply_subscription_event,
    log_webhook_event,
    mark_webhook_event_processed,
    sync_profile_subscription_tier,
    update_payment_record,
)

logger = logging.getLogger(__name__)


def _payment_entity(event: Dict) -> Optional[Dict]:
    return ((event.get("payload") or {}).get("payment") or {}).get("entity")


def _subscription_entity(event: Dict) -> Optional[Dict]:
    entity = ((event.get("payload") or {}).get("subscription") or {}).get("entity")
    if entity is None:
        return None
    if not isinstance(entity, dict) or not entity.get("id"):
        logger.warning(f"Subscription entity without id: event_type={event.get('event')}")
        return None
    return entity


def _notes(entity: Dict) -> Dict:
    # Razorpay sends an empty list when an entity has no notes
    notes = entity.get("notes")
    return notes if isinstance(notes, dict) else {}


def _period_updates(subscription: Dict) -> Dict:
    return {
        "current_period_start": epoch_to_datetime(subscription.get("current_start")),
        "current_period_end": epoch_to_datetime(subscription.get("current_end")),
    }


def _sync_noted_user(db: Session, entity: Dict) -> None:
    user_id = _notes(entity).get("userId")
    if user_id:
        sync_profile_subscription_tier(db, user_id)


# ---------------------------------------------------------
# Payment events
# ---------------------------------------------------------
def handle_payment_authorized(event: Dict, db: Session) -> None:
    payment = _payment_entity(event)
    if not payment:
        return

    logger.info(f"Payment authorized: payment_id={payment.get('id')}")

    update_payment_record(db, payment.get("id"), {
        "status": PaymentStatus.AUTHORIZED.value,
        "method": payment.get("method"),
        "metadata": {"payment": payment},
    }, razorpay_order_id=payment.get("order_id"))


def handle_payment_captured(event: Dict, db: Session) -> None:
    payment = _payment_entity(event)
    if not payment:
        return

    logger.info(f"Payment captured: payment_id={payment.get('id')}")

    update_payment_record(db, payment.get("id"), {
        "status": PaymentStatus.CAPTURED.value,
        "method": payment.get("method"),
        "metadata": {"payment": payment},
    }, razorpay_order_id=payment.get("order_id"))

    subscription_id = _notes(payment).get("subscriptionId")
    if subscription_id:
        apply_subscription_event(db, subscription_id, SubscriptionEvent.PAYMENT_CAPTURED)
        _sync_noted_user(db, payment)


def handle_payment_failed(event: Dict, db: Session) -> None:
    payment = _payment_entity(event)
    if not payment:
        return

    logger.warning(f"Payment failed: payment_id={payment.get('id')}")

    update_payment_record(db, payment.get("id"), {
        "status": PaymentStatus.FAILED.value,
        "metadata": {"payment": payment},
    }, razorpay_order_id=payment.get("order_id"))

    subscription_id = _notes(payment).get("subscriptionId")
    if subscription_id:
        apply_subscription_event(db, subscription_id, SubscriptionEvent.PAYMENT_FAILED)


# ---------------------------------------------------------
# Subscription events
# ---------------------------------------------------------
def handle_subscription_authenticated(event: Dict, db: Session) -> None:
    subscription = _subscription_entity(event)
    if not subscription:
        return

    apply_subscription_event(db, subscription["id"], SubscriptionEvent.AUTHENTICATED, _period_updates(subscription))


def handle_subscription_activated(event: Dict, db: Session) -> None:
    subscription = _subscription_entity(event)
    if not subscription:
        return

    apply_subscription_event(db, subscription["id"], SubscriptionEvent.ACTIVATED, _period_updates(subscription))
    _sync_noted_user(db, subscription)


def handle_subscription_charged(event: Dict, db: Session) -> None:
    """Renewal charge: refreshes the period bounds only."""
    subscription = _subscription_entity(event)
    if not subscription:
        return

    apply_subscription_event(db, subscription["id"], SubscriptionEvent.CHARGED, _period_updates(subscription))


def handle_subscription_completed(event: Dict, db: Session) -> None:
    subscription = _subscription_entity(event)
    if not subscription:
        return

    apply_subscription_event(db, subscription["id"], SubscriptionEvent.COMPLETED, {
        "ended_at": epoch_to_datetime(subscription.get("ended_at")) or utcnow(),
    })
    _sync_noted_user(db, subscription)


def handle_subscription_cancelled(event: Dict, db: Session) -> None:
    subscription = _subscription_entity(event)
    if not subscription:
        return

    ended_at = epoch_to_datetime(subscription.get("ended_at"))
    updates = {"cancelled_at": utcnow()}
    # A later delivery without ended_at must not erase a known one
    if ended_at:
        updates["ended_at"] = ended_at
    apply_subscription_event(db, subscription["id"], SubscriptionEvent.CANCELLED, updates)

    # Cancel-at-cycle-end keeps the tier until the gateway reports ended_at
    if ended_at:
        _sync_noted_user(db, subscription)


def handle_subscription_paused(event: Dict, db: Session) -> None:
    subscription = _subscription_entity(event)
    if not subscription:
        return

    apply_subscription_event(db, subscription["id"], SubscriptionEvent.PAUSED)


def handle_subscription_resumed(event: Dict, db: Session) -> None:
    subscription = _subscription_entity(event)
    if not subscription:
        return

    apply_subscription_event(db, subscription["id"], SubscriptionEvent.RESUMED, _period_updates(subscription))
    _sync_noted_user(db, subscription)


def handle_subscription_halted(event: Dict, db: Session) -> None:
    subscription = _subscription_entity(event)
    if not subscription:
        return

    apply_subscription_event(db, subscription["id"], SubscriptionEvent.HALTED)
    _sync_noted_user(db, subscription)


EVENT_HANDLERS: Dict[str, Callable[[Dict, Session], None]] = {
    "payment.authorized": handle_payment_authorized,
    "payment.captured": handle_payment_captured,
    "payment.failed": handle_payment_failed,
    "subscription.authenticated": handle_subscription_authenticated,
    "subscription.activated": handle_subscription_activated,
    "subscription.charged": handle_subscription_charged,
    "subscription.completed": handle_subscription_completed,
    "subscription.cancelled": handle_subscription_cancelled,
    "subscription.paused": handle_subscription_paused,
    "subscription.resumed": handle_subscription_resumed,
    "subscription.halted": handle_subscription_halted,
}


def process_webhook_event(db: Session, event_id: str, event: Dict) -> Optional[str]:
    """
    Log, dispatch and mark one verified webhook delivery.

    ``event_id`` identifies the delivery and is used for both the log insert
    and the processed update.

    Returns:
        None on success or for ignored events, otherwise the rejection message
        of an illegal transition or a conflicting current subscription
        (recorded on the log row). Redelivery cannot change either outcome.

    Raises:
        Exception: whatever the handler raised, after the log row has been
        marked processed with the error message
    """
    event_type = event.get("event", "")
    log_webhook_event(db, event_id, event_type, event.get("account_id"), event)

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled webhook event: event_type={event_type}, event_id={event_id}")
        mark_webhook_event_processed(db, event_id)
        return None

    logger.info(f"Processing webhook event: event_type={event_type}, event_id={event_id}")

    try:
        handler(event, db)
    except (IllegalTransition, SubscriptionConflict) as e:
        db.rollback()
        logger.warning(f"Rejected webhook event: event_id={event_id}: {e}")
        mark_webhook_event_processed(db, event_id, error_message=str(e))
        return str(e)
    except Exception as e:
        db.rollback()
        logger.exception(f"Error processing webhook event: event_type={event_type}, event_id={event_id}")
        mark_webhook_event_processed(db, event_id, error_message=str(e) or e.__class__.__name__)
        raise

    mark_webhook_event_processed(db, event_id)
    return None
