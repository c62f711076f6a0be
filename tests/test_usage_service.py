"""
Unit tests for usage tracking and plan limits.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from voiceflow.db.base import Base
from voiceflow.db.init_db import seed_plans
from voiceflow.db.models.plan import SubscriptionPlan
from voiceflow.db.models.profile import Profile
from voiceflow.services.subscription_store import create_user_subscription, get_subscription_plan_by_name
from voiceflow.services.usage_service import (
    UNLIMITED,
    can_access_feature,
    check_usage_limit,
    get_current_usage,
    get_effective_plan,
    get_subscription_tier,
    get_usage_for_response,
    increment_usage,
    is_subscription_active,
)


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
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    seed_plans(db)
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def test_user(db):
    profile = Profile(id="user_1", email="test@example.com", name="Test User")
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def pro_subscription(db, test_user):
    plan = get_subscription_plan_by_name(db, "pro")
    return create_user_subscription(db, user_id=test_user.id, plan_id=plan.id, status="active")


def test_effective_plan_falls_back_to_free(db, test_user):
    assert get_effective_plan(db, test_user.id).name == "Free"
    assert get_subscription_tier(db, test_user.id) == "free"
    assert not is_subscription_active(db, test_user.id)


def test_effective_plan_pro(db, pro_subscription):
    assert get_effective_plan(db, "user_1").name == "Pro"
    assert get_subscription_tier(db, "user_1") == "pro"
    assert is_subscription_active(db, "user_1")


def test_increment_usage_accumulates(db, test_user):
    assert get_current_usage(db, test_user.id, "transcription_hours") is None
    increment_usage(db, test_user.id, "transcription_hours")
    usage = increment_usage(db, test_user.id, "transcription_hours", increment_by=2)
    assert usage.usage_count == 3


def test_free_plan_limit_reached(db, test_user):
    increment_usage(db, test_user.id, "transcription_hours", increment_by=4)
    assert check_usage_limit(db, test_user.id, "transcription_hours") == (True, 4, 5)

    increment_usage(db, test_user.id, "transcription_hours")
    assert check_usage_limit(db, test_user.id, "transcription_hours") == (False, 5, 5)


def test_unlimited_is_always_usable(db, pro_subscription):
    increment_usage(db, "user_1", "transcription_hours", increment_by=10000)
    check = check_usage_limit(db, "user_1", "transcription_hours")
    assert check.can_use is True
    assert check.limit == UNLIMITED


def test_resource_missing_from_plan_is_not_usable(db, test_user):
    check = check_usage_limit(db, test_user.id, "api_calls")
    assert check.can_use is False
    assert check.limit is None


def test_no_plan_at_all(db, test_user):
    db.query(SubscriptionPlan).update({"is_active": False})
    db.commit()
    assert check_usage_limit(db, test_user.id, "projects") == (False, 0, 0)


def test_can_access_feature(db, pro_subscription):
    assert can_access_feature(db, "user_1", "speaker identification")
    assert not can_access_feature(db, "user_1", "API access")


def test_can_access_feature_without_subscription(db, test_user):
    assert not can_access_feature(db, test_user.id, "Basic transcription")


def test_get_usage_for_response_free(db, test_user):
    increment_usage(db, test_user.id, "projects", increment_by=2)
    data = get_usage_for_response(db, test_user.id)

    assert data["plan"] == "Free"
    assert data["tier"] == "free"
    assert len(data["month_key"]) == 7
    projects = [r for r in data["resources"] if r["resource"] == "projects"][0]
    assert projects == {
        "resource": "projects",
        "limit": 3,
        "used": 2,
        "remaining": 1,
        "unlimited": False,
        "can_use": True,
    }


def test_get_usage_for_response_unlimited(db, pro_subscription):
    data = get_usage_for_response(db, "user_1")
    hours = [r for r in data["resources"] if r["resource"] == "transcription_hours"][0]
    assert hours["unlimited"] is True
    assert hours["limit"] is None
    assert hours["remaining"] is None
    assert hours["can_use"] is True
