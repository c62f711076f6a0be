"""
Tests for webhook dispatch and the per-event handlers.
"""
import pytest
from datetime import timezone
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from voiceflow.core.timeutils import epoch_to_datetime
from voiceflow.db.base import Base
from voiceflow.db.init_db import seed_plans
from voiceflow.db.models.payment import PaymentRecord
from voiceflow.db.models.profile import Profile
from voiceflow.db.models.subscription import UserSubscription
from voiceflow.db.models.webhook_event import WebhookEvent
from voiceflow.services import webhook_service
from voiceflow.services.subscription_store import (
    create_payment_record,
    create_user_subscription,
    get_subscription_plan_by_name,
)
from voiceflow.services.webhook_service import process_webhook_event


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    seed_plans(db)
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def profile(db):
    profile = Profile(id="user_1", email="test@example.com", name="Test User")
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def gateway_subscription(db, profile):
    """A Pro subscription created through checkout, waiting for the gateway."""
    plan = get_subscription_plan_by_name(db, "pro")
    return create_user_subscription(
        db,
        user_id=profile.id,
        plan_id=plan.id,
        razorpay_subscription_id="sub_test_1",
        razorpay_customer_id="cust_test_1",
        status="created",
        billing_cycle="monthly",
    )


def subscription_event(event_type, status="active", **entity):
    entity = {
        "id": "sub_test_1",
        "status": status,
        "current_start": 1760000000,
        "current_end": 1762600000,
        "notes": {"userId": "user_1"},
        **entity,
    }
    return {
        "event": event_type,
        "account_id": "acc_test",
        "payload": {"subscription": {"entity": entity}},
    }


def payment_event(event_type, **entity):
    entity = {"id": "pay_test_1", "order_id": "order_test_1", "method": "card", "notes": [], **entity}
    return {
        "event": event_type,
        "account_id": "acc_test",
        "payload": {"payment": {"entity": entity}},
    }


def _as_utc(value):
    # SQLite drops the offset on the way back
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _row(db):
    db.expire_all()
    return db.query(UserSubscription).filter(UserSubscription.razorpay_subscription_id == "sub_test_1").one()


def _log(db, event_id):
    db.expire_all()
    return db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).one()


def _tier(db):
    db.expire_all()
    return db.query(Profile).filter(Profile.id == "user_1").one().subscription_tier


def test_unknown_event_is_logged_and_processed(db):
    assert process_webhook_event(db, "evt_1", {"event": "refund.created", "payload": {}}) is None
    entry = _log(db, "evt_1")
    assert entry.processed is True
    assert entry.error_message is None


def test_activated_sets_period_and_tier(db, gateway_subscription):
    assert process_webhook_event(db, "evt_1", subscription_event("subscription.activated")) is None

    row = _row(db)
    assert row.status == "active"
    assert row.current_period_start is not None
    assert row.current_period_end is not None
    assert _tier(db) == "pro"
    assert _log(db, "evt_1").processed is True


def test_activated_twice_is_idempotent(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    assert process_webhook_event(db, "evt_1", subscription_event("subscription.activated")) is None

    assert _row(db).status == "active"
    assert _tier(db) == "pro"
    assert db.query(WebhookEvent).count() == 1


def test_charged_refreshes_period_only(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    process_webhook_event(db, "evt_2", subscription_event("subscription.charged", current_end=1765200000))

    row = _row(db)
    assert row.status == "active"
    assert _as_utc(row.current_period_end) == epoch_to_datetime(1765200000)


def test_cancelled_with_ended_at_downgrades_tier(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    process_webhook_event(db, "evt_2", subscription_event("subscription.cancelled", status="cancelled", ended_at=1762600000))

    row = _row(db)
    assert row.status == "cancelled"
    assert row.cancelled_at is not None
    assert row.ended_at is not None
    assert _tier(db) == "free"


def test_cancelled_at_cycle_end_keeps_tier(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    process_webhook_event(db, "evt_2", subscription_event("subscription.cancelled", status="cancelled", ended_at=None))

    row = _row(db)
    assert row.status == "cancelled"
    assert row.ended_at is None
    assert _tier(db) == "pro"


def test_completed_expires_and_sets_ended_at(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    process_webhook_event(db, "evt_2", subscription_event("subscription.completed", status="completed"))

    row = _row(db)
    assert row.status == "expired"
    assert row.ended_at is not None
    assert _tier(db) == "free"


def test_pause_and_resume(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    process_webhook_event(db, "evt_2", subscription_event("subscription.paused", status="paused"))
    assert _row(db).status == "paused"

    process_webhook_event(db, "evt_3", subscription_event("subscription.resumed"))
    assert _row(db).status == "active"
    assert _tier(db) == "pro"


def test_halted_downgrades_tier(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    process_webhook_event(db, "evt_2", subscription_event("subscription.halted", status="halted"))

    assert _row(db).status == "halted"
    assert _tier(db) == "free"


def test_illegal_transition_is_recorded_not_raised(db, gateway_subscription):
    rejection = process_webhook_event(db, "evt_1", subscription_event("subscription.paused", status="paused"))

    assert rejection is not None
    assert "subscription.paused" in rejection
    assert _row(db).status == "created"
    entry = _log(db, "evt_1")
    assert entry.processed is True
    assert entry.error_message == rejection


def test_subscription_event_for_unknown_subscription(db):
    event = subscription_event("subscription.activated", id="sub_missing")
    assert process_webhook_event(db, "evt_1", event) is None
    assert _log(db, "evt_1").error_message is None


def test_payment_captured_updates_record(db, profile):
    create_payment_record(
        db, user_id=profile.id, razorpay_order_id="order_test_1", amount=Decimal("29"), status="created",
        extra={"planId": "plan_1"},
    )
    process_webhook_event(db, "evt_1", payment_event("payment.captured"))

    db.expire_all()
    record = db.query(PaymentRecord).one()
    assert record.status == "captured"
    assert record.razorpay_payment_id == "pay_test_1"
    assert record.method == "card"
    assert record.extra["planId"] == "plan_1"


def test_payment_captured_without_matching_subscription_does_not_raise(db, profile):
    event = payment_event("payment.captured", notes={"subscriptionId": "sub_missing", "userId": "user_1"})
    assert process_webhook_event(db, "evt_1", event) is None
    assert _log(db, "evt_1").error_message is None


def test_payment_captured_reactivates_halted_subscription(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    process_webhook_event(db, "evt_2", subscription_event("subscription.halted", status="halted"))

    event = payment_event("payment.captured", notes={"subscriptionId": "sub_test_1", "userId": "user_1"})
    process_webhook_event(db, "evt_3", event)

    assert _row(db).status == "active"
    assert _tier(db) == "pro"


def test_payment_failed_marks_record_and_halts(db, gateway_subscription):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
    create_payment_record(
        db, user_id="user_1", razorpay_order_id="order_test_1", amount=Decimal("29"), status="created"
    )

    event = payment_event("payment.failed", notes={"subscriptionId": "sub_test_1"})
    process_webhook_event(db, "evt_2", event)

    db.expire_all()
    assert db.query(PaymentRecord).one().status == "failed"
    assert _row(db).status == "halted"


def test_handler_error_is_recorded_and_reraised(db, monkeypatch):
    def explode(event, db):
        raise RuntimeError("database unavailable")

    monkeypatch.setitem(webhook_service.EVENT_HANDLERS, "payment.captured", explode)

    with pytest.raises(RuntimeError):
        process_webhook_event(db, "evt_1", payment_event("payment.captured"))

    entry = _log(db, "evt_1")
    assert entry.processed is True
    assert entry.error_message == "database unavailable"


def test_activation_conflicting_with_current_subscription_is_recorded(db, gateway_subscription):
    """A checkout payment already made another row current for the same user."""
    plan = get_subscription_plan_by_name(db, "pro")
    existing = create_user_subscription(db, user_id="user_1", plan_id=plan.id, status="active")

    for attempt in range(2):
        rejection = process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))
        assert rejection is not None
        assert "already has a current subscription" in rejection
        entry = _log(db, "evt_1")
        assert entry.processed is True
        assert entry.error_message == rejection

    assert _row(db).status == "created"
    db.expire_all()
    assert db.query(UserSubscription).filter(UserSubscription.id == existing.id).one().status == "active"


def test_payment_authorized_updates_record(db, profile):
    create_payment_record(
        db, user_id=profile.id, razorpay_order_id="order_test_1", amount=Decimal("29"), status="created",
        extra={"planId": "plan_1", "billingCycle": "monthly"},
    )
    assert process_webhook_event(db, "evt_1", payment_event("payment.authorized", method="upi")) is None

    db.expire_all()
    record = db.query(PaymentRecord).one()
    assert record.status == "authorized"
    assert record.method == "upi"
    assert record.razorpay_payment_id == "pay_test_1"
    assert record.extra["planId"] == "plan_1"
    assert record.extra["payment"]["id"] == "pay_test_1"


def test_authenticated_writes_period_bounds(db, gateway_subscription):
    event = subscription_event("subscription.authenticated", status="authenticated")
    assert process_webhook_event(db, "evt_1", event) is None

    row = _row(db)
    assert row.status == "authenticated"
    assert _as_utc(row.current_period_start) == epoch_to_datetime(1760000000)
    assert _as_utc(row.current_period_end) == epoch_to_datetime(1762600000)


@pytest.mark.parametrize("first_ended_at,second_ended_at", [
    (None, 1762600000),
    (1762600000, None),
])
def test_cancelled_deliveries_sync_tier_once(db, gateway_subscription, monkeypatch, first_ended_at, second_ended_at):
    process_webhook_event(db, "evt_1", subscription_event("subscription.activated"))

    synced = []
    original_sync = webhook_service.sync_profile_subscription_tier

    def recording_sync(db, user_id):
        synced.append(user_id)
        return original_sync(db, user_id)

    monkeypatch.setattr(webhook_service, "sync_profile_subscription_tier", recording_sync)

    first = subscription_event("subscription.cancelled", status="cancelled", ended_at=first_ended_at)
    second = subscription_event("subscription.cancelled", status="cancelled", ended_at=second_ended_at)
    assert process_webhook_event(db, "evt_2", first) is None
    assert process_webhook_event(db, "evt_2", second) is None

    assert synced == ["user_1"]
    row = _row(db)
    assert row.status == "cancelled"
    assert _as_utc(row.ended_at) == epoch_to_datetime(1762600000)
    assert _tier(db) == "free"


def test_subscription_entity_without_id_is_skipped(db, gateway_subscription):
    event = subscription_event("subscription.activated")
    del event["payload"]["subscription"]["entity"]["id"]

    assert process_webhook_event(db, "evt_1", event) is None
    assert _log(db, "evt_1").error_message is None
    assert _row(db).status == "created"
