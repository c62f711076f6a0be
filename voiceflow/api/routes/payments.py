"""
Payment endpoints used by the checkout flow.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from voiceflow.core.auth_dependency import get_current_profile, get_current_user, get_db, get_gateway
from voiceflow.db.models.profile import Profile
from voiceflow.schemas.billing import (
    CancelSubscriptionRequest,
    CreateOrderRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from voiceflow.services import billing_service
from voiceflow.services.billing_service import BillingError
from voiceflow.services.gateway import RazorpayGateway
from voiceflow.services.subscription_store import (
    get_subscription_plans,
    get_user_payment_history,
    get_user_subscription,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


def _raise_http(error: BillingError):
    raise HTTPException(status_code=error.status_code, detail=str(error))


def _require_gateway(gateway: RazorpayGateway):
    if not gateway.configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment provider not configured"
        )


@router.get("/plans")
def list_plans(db: Session = Depends(get_db)):
    """Public plan catalog, cheapest first."""
    plans = get_subscription_plans(db)
    return {"success": True, "plans": [plan.to_dict() for plan in plans]}


@router.post("/create-order")
def create_order(
    body: CreateOrderRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    _require_gateway(gateway)
    try:
        return billing_service.create_order(db, gateway, profile, body.plan_id, body.billing_cycle)
    except BillingError as e:
        _raise_http(e)


@router.post("/create-subscription")
def create_subscription(
    body: CreateOrderRequest,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    _require_gateway(gateway)
    try:
        return billing_service.create_subscription(db, gateway, profile, body.plan_id, body.billing_cycle)
    except BillingError as e:
        _raise_http(e)


@router.get("/create-subscription")
def current_subscription(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    subscription = get_user_subscription(db, user_id)
    return {"subscription": subscription.to_dict() if subscription else None}


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    body: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    """
    Confirm a finished checkout.

    Verifies the checkout signature, refreshes the payment from Razorpay and
    grants the plan if the user has no current subscription yet.
    """
    try:
        return billing_service.verify_payment(
            db,
            gateway,
            user_id,
            body.razorpay_order_id,
            body.razorpay_payment_id,
            body.razorpay_signature,
        )
    except BillingError as e:
        _raise_http(e)


@router.post("/cancel")
def cancel_subscription(
    body: CancelSubscriptionRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    _require_gateway(gateway)
    try:
        return billing_service.cancel_subscription(db, gateway, user_id, body.at_cycle_end)
    except BillingError as e:
        _raise_http(e)


@router.get("/history")
def payment_history(
    limit: int = 10,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    records = get_user_payment_history(db, user_id, limit=min(max(limit, 1), 100))
    return {"payments": [record.to_dict() for record in records]}
