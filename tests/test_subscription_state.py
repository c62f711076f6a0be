"""
Unit tests for the subscription lifecycle table.
"""
import pytest

from voiceflow.services.subscription_state import (
    IllegalTransition,
    SubscriptionEvent,
    SubscriptionStatus,
    TRANSITIONS,
    is_entitled,
    next_status,
)


def test_every_event_has_a_transition():
    assert set(TRANSITIONS) == set(SubscriptionEvent)


@pytest.mark.parametrize("current,event,expected", [
    ("created", "subscription.authenticated", "authenticated"),
    ("created", "subscription.activated", "active"),
    ("authenticated", "subscription.activated", "active"),
    ("active", "subscription.paused", "paused"),
    ("paused", "subscription.resumed", "active"),
    ("active", "subscription.halted", "halted"),
    ("halted", "payment.captured", "active"),
    ("active", "payment.failed", "halted"),
    ("active", "subscription.cancelled", "cancelled"),
    ("active", "subscription.completed", "expired"),
    ("past_due", "period.elapsed", "expired"),
])
def test_legal_transitions(current, event, expected):
    assert next_status(current, event) == SubscriptionStatus(expected)


def test_charged_keeps_status():
    assert next_status("active", SubscriptionEvent.CHARGED) == SubscriptionStatus.ACTIVE
    assert next_status("halted", SubscriptionEvent.CHARGED) == SubscriptionStatus.HALTED


def test_reapplying_an_event_is_idempotent():
    """Every event that lands in a status is accepted again from that status."""
    for event, (target, allowed_from) in TRANSITIONS.items():
        if target is not None and event != SubscriptionEvent.PERIOD_ELAPSED:
            assert target in allowed_from, event


@pytest.mark.parametrize("current,event", [
    ("cancelled", "subscription.activated"),
    ("expired", "subscription.resumed"),
    ("created", "subscription.paused"),
    ("cancelled", "payment.captured"),
    ("paused", "subscription.charged"),
])
def test_illegal_transitions_raise(current, event):
    with pytest.raises(IllegalTransition) as exc:
        next_status(current, event, "sub_abc")
    assert exc.value.current == SubscriptionStatus(current)
    assert exc.value.event == SubscriptionEvent(event)
    assert "sub_abc" in str(exc.value)
    assert event in str(exc.value)


def test_unknown_event_is_a_value_error():
    with pytest.raises(ValueError):
        next_status("active", "subscription.exploded")


def test_is_entitled():
    assert is_entitled("active")
    assert is_entitled(SubscriptionStatus.AUTHENTICATED)
    assert not is_entitled("cancelled")
    assert not is_entitled("past_due")
    assert not is_entitled(None)
