"""
Billing service for Razorpay checkout.

Creates orders and subscriptions for the hosted checkout widget and runs the
synchronous verify-payment path the client calls right after checkout.
"""
import logging
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from voiceflow.core.logging_config import sanitize_log_data
from voiceflow.core.timeutils import billing_period_end, utcnow
from voiceflow.db.models.plan import SubscriptionPlan
from voiceflow.db.models.profile import Profile
from voiceflow.services.gateway import (
    RazorpayGateway,
    convert_to_paise,
    describe_gateway_error,
    generate_receipt,
)
from voiceflow.services.subscription_state import PaymentStatus, SubscriptionStatus
from voiceflow.services.subscription_store import (
    create_payment_record,
    create_user_subscription,
    get_subscription_plan,
    get_user_subscription,
    sync_profile_subscription_tier,
    update_payment_record,
)

logger = logging.getLogger(__name__)

# Billing cycles a recurring gateway subscription runs for before renewal is required
TOTAL_BILLING_CYCLES = {"monthly": 120, "yearly": 10}


class BillingError(Exception):
    """Base class for billing failures surfaced to the client."""
    status_code = 500


class InvalidRequest(BillingError):
    status_code = 400


class NotFound(BillingError):
    status_code = 404


class GatewayFailure(BillingError):
    status_code = 500


def plan_amount(plan: SubscriptionPlan, billing_cycle: str) -> Decimal:
    """Price for one cycle; yearly falls back to ten months of the monthly price."""
    monthly = Decimal(plan.price_monthly or 0)
    if billing_cycle == "yearly":
        return Decimal(plan.price_yearly) if plan.price_yearly is not None else monthly * 10
    return monthly


def _paid_plan(db: Session, plan_id: str, purpose: str) -> SubscriptionPlan:
    plan = get_subscription_plan(db, plan_id)
    if not plan:
        raise NotFound("Subscription plan not found")
    if plan.name.lower() == "free":
        raise InvalidRequest(f"Free plan does not require {purpose}")
    return plan


def create_order(
    db: Session,
    gateway: RazorpayGateway,
    profile: Profile,
    plan_id: str,
    billing_cycle: str = "monthly",
) -> Dict:
    """
    Create a Razorpay order for a one-off plan purchase and record the pending payment.

    Raises:
        NotFound: plan missing or inactive
        InvalidRequest: free plan
        GatewayFailure: Razorpay rejected the order
    """
    plan = _paid_plan(db, plan_id, "payment")

    amount = plan_amount(plan, billing_cycle)
    amount_in_paise = convert_to_paise(amount)
    receipt = generate_receipt("VF")
    description = f"{plan.name} Plan - {billing_cycle} billing"
    notes = {
        "planId": plan.id,
        "billingCycle": billing_cycle,
        "userId": profile.id,
        "userEmail": profile.email,
        "planName": plan.name,
    }

    try:
        order = gateway.create_order(amount_in_paise, gateway.currency, receipt, notes)
    except Exception as e:
        logger.error(f"Razorpay order creation failed: user_id={profile.id}, notes={sanitize_log_data(notes)}: {e}")
        raise GatewayFailure(describe_gateway_error(e)) from e

    create_payment_record(
        db,
        user_id=profile.id,
        razorpay_order_id=order["id"],
        amount=amount,
        currency=gateway.currency,
        status=PaymentStatus.CREATED.value,
        description=description,
        receipt=receipt,
        extra={"planId": plan.id, "billingCycle": billing_cycle, "planName": plan.name},
    )

    logger.info(f"Order created: user_id={profile.id}, order_id={order['id']}, plan={plan.name}, cycle={billing_cycle}")

    return {
        "orderId": order["id"],
        "amount": amount_in_paise,
        "currency": gateway.currency,
        "receipt": receipt,
        "notes": notes,
        "planName": plan.name,
        "billingCycle": billing_cycle,
        "description": description,
        "keyId": gateway.key_id,
    }


def create_subscription(
    db: Session,
    gateway: RazorpayGateway,
    profile: Profile,
    plan_id: str,
    billing_cycle: str = "monthly",
) -> Dict:
    """
    Create the Razorpay customer (and, when a gateway plan is configured, the
    gateway subscription) plus a local subscription row in ``created``.
    """
    existing = get_user_subscription(db, profile.id)
    if existing and existing.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.AUTHENTICATED.value):
        raise InvalidRequest("User already has an active subscription")

    plan = _paid_plan(db, plan_id, "subscription creation")

    try:
        customer = gateway.create_customer(profile.email, profile.name or "Voiceflow User")
    except Exception as e:
        logger.error(f"Razorpay customer creation failed: user_id={profile.id}: {e}")
        raise GatewayFailure(describe_gateway_error(e)) from e

    amount = plan_amount(plan, billing_cycle)
    receipt = generate_receipt("SUB")
    gateway_subscription = None

    gateway_plan_id = gateway.gateway_plan_id(plan.name, billing_cycle)
    if gateway_plan_id:
        try:
            gateway_subscription = gateway.create_subscription(
                gateway_plan_id,
                customer["id"],
                TOTAL_BILLING_CYCLES[billing_cycle],
                notes={"userId": profile.id, "planId": plan.id, "billingCycle": billing_cycle},
            )
        except Exception as e:
            logger.error(f"Razorpay subscription creation failed: user_id={profile.id}, plan={plan.name}: {e}")
            raise GatewayFailure(describe_gateway_error(e)) from e

    subscription = create_user_subscription(
        db,
        user_id=profile.id,
        plan_id=plan.id,
        razorpay_customer_id=customer["id"],
        razorpay_subscription_id=gateway_subscription["id"] if gateway_subscription else None,
        status=SubscriptionStatus.CREATED.value,
        billing_cycle=billing_cycle,
        extra={"receipt": receipt, "amount": float(amount), "currency": gateway.currency},
    )

    return {
        "subscriptionId": subscription.id,
        "razorpaySubscriptionId": subscription.razorpay_subscription_id,
        "customerId": customer["id"],
        "amount": float(amount),
        "currency": gateway.currency,
        "receipt": receipt,
        "planName": plan.name,
        "billingCycle": billing_cycle,
        "description": f"{plan.name} Plan - {billing_cycle} billing",
        "shortUrl": gateway_subscription.get("short_url") if gateway_subscription else None,
    }


def _create_or_get_current(db: Session, user_id: str, plan: SubscriptionPlan, billing_cycle: str, metadata: Dict):
    now = utcnow()
    try:
        return create_user_subscription(
            db,
            user_id=user_id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE.value,
            billing_cycle=billing_cycle,
            current_period_start=now,
            current_period_end=billing_period_end(now, billing_cycle),
            extra=metadata,
        )
    except IntegrityError:
        # A webhook activated another row for this user in the meantime
        db.rollback()
        logger.info(f"Current subscription created concurrently: user_id={user_id}")
        return get_user_subscription(db, user_id)


def verify_payment(
    db: Session,
    gateway: RazorpayGateway,
    user_id: str,
    order_id: Optional[str],
    payment_id: Optional[str],
    signature: Optional[str],
) -> Dict:
    """
    Confirm a completed checkout and grant the purchased plan.

    Raises:
        InvalidRequest: missing fields, bad signature, no plan in the payment
        NotFound: payment record or plan missing
        GatewayFailure: Razorpay lookup failed (payment record marked failed)
    """
    if not order_id or not payment_id or not signature:
        raise InvalidRequest("Missing required payment verification data")

    if not gateway.verify_payment_signature(order_id, payment_id, signature):
        raise InvalidRequest("Invalid payment signature")

    try:
        payment = gateway.fetch_payment(payment_id)
    except Exception as e:
        message = describe_gateway_error(e)
        logger.error(f"Payment verification failed: user_id={user_id}, payment_id={payment_id}: {message}")
        update_payment_record(db, payment_id, {
            "status": PaymentStatus.FAILED.value,
            "metadata": {"error": message},
        }, razorpay_order_id=order_id)
        raise GatewayFailure(message) from e

    status = PaymentStatus.CAPTURED if payment.get("captured") else PaymentStatus.AUTHORIZED
    record = update_payment_record(db, payment_id, {
        "status": status.value,
        "method": payment.get("method"),
        "metadata": {"payment": payment},
    }, razorpay_order_id=order_id)
    if not record:
        raise NotFound("Payment record not found")

    plan_id = (record.extra or {}).get("planId")
    billing_cycle = (record.extra or {}).get("billingCycle") or "monthly"
    if not plan_id:
        raise InvalidRequest("Plan information not found in payment record")

    plan = get_subscription_plan(db, plan_id)
    if not plan:
        raise NotFound("Subscription plan not found")

    subscription = get_user_subscription(db, user_id)
    if not subscription:
        subscription = _create_or_get_current(db, user_id, plan, billing_cycle, {
            "razorpay_payment_id": payment_id,
            "razorpay_order_id": order_id,
        })
        if subscription and record.subscription_id is None:
            record.subscription_id = subscription.id
            db.commit()

    sync_profile_subscription_tier(db, user_id)

    logger.info(f"Payment verified: user_id={user_id}, payment_id={payment_id}, status={status.value}, plan={plan.name}")

    return {
        "success": True,
        "paymentId": payment_id,
        "orderId": order_id,
        "subscription": {
            "id": subscription.id if subscription else None,
            "planName": plan.name,
            "status": subscription.status if subscription else None,
            "billingCycle": billing_cycle,
        },
    }


def cancel_subscription(db: Session, gateway: RazorpayGateway, user_id: str, at_cycle_end: bool = True) -> Dict:
    """
    Ask Razorpay to cancel the user's current gateway subscription.

    The local row changes when the ``subscription.cancelled`` webhook arrives.
    """
    subscription = get_user_subscription(db, user_id)
    if not subscription:
        raise NotFound("No active subscription")
    if not subscription.razorpay_subscription_id:
        raise InvalidRequest("Subscription is not billed through a recurring plan")

    try:
        result = gateway.cancel_subscription(subscription.razorpay_subscription_id, at_cycle_end)
    except Exception as e:
        logger.error(f"Razorpay cancellation failed: user_id={user_id}, subscription_id={subscription.id}: {e}")
        raise GatewayFailure(describe_gateway_error(e)) from e

    return {
        "success": True,
        "subscriptionId": subscription.id,
        "gatewayStatus": result.get("status"),
        "cancelAtCycleEnd": at_cycle_end,
    }
