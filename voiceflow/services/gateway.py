"""
Razorpay gateway wrapper.

``RazorpayGateway`` is constructed once by the application lifespan from
configuration and handed to routes through the ``get_gateway`` dependency.
"""
import logging
import secrets
import string
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Union

import razorpay
from razorpay.errors import SignatureVerificationError

from voiceflow.core import config

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred with payment processing"


class RazorpayGateway:
    """Thin, explicitly constructed client over the Razorpay SDK."""

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        webhook_secret: Optional[str] = None,
        currency: str = "INR",
        plan_ids: Optional[Dict[str, str]] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.plan_ids = plan_ids or {}
        self.client = razorpay.Client(auth=(key_id or "", key_secret or ""))

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    # ---------------------------------------------------------
    # Signatures
    # ---------------------------------------------------------
    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check a checkout signature: HMAC-SHA256 of ``order_id|payment_id`` under the key secret."""
        if not (self.key_secret and order_id and payment_id and signature):
            return False
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
            return True
        except SignatureVerificationError:
            logger.warning(f"Payment signature mismatch: order_id={order_id}, payment_id={payment_id}")
            return False

    def verify_webhook_signature(self, body: Union[bytes, str], signature: Optional[str]) -> bool:
        """Check the HMAC-SHA256 of the raw webhook body under the webhook secret."""
        if not self.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET not configured - rejecting webhook")
            return False
        if not signature:
            return False
        if isinstance(body, bytes):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError:
                return False
        try:
            self.client.utility.verify_webhook_signature(body, signature, self.webhook_secret)
            return True
        except SignatureVerificationError:
            return False

    # ---------------------------------------------------------
    # API calls
    # ---------------------------------------------------------
    def create_customer(self, email: str, name: str, contact: Optional[str] = None) -> dict:
        data = {"name": name, "email": email, "fail_existing": "0"}
        if contact:
            data["contact"] = contact
        customer = self.client.customer.create(data=data)
        logger.info(f"Created Razorpay customer: customer_id={customer.get('id')}")
        return customer

    def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[dict] = None) -> dict:
        """Create an order; ``amount`` is in paise."""
        order = self.client.order.create(data={
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        })
        logger.info(f"Created Razorpay order: order_id={order.get('id')}, amount={amount}, receipt={receipt}")
        return order

    def create_subscription(
        self,
        plan_id: str,
        customer_id: str,
        total_count: int,
        notes: Optional[dict] = None,
    ) -> dict:
        subscription = self.client.subscription.create(data={
            "plan_id": plan_id,
            "customer_id": customer_id,
            "customer_notify": 1,
            "total_count": total_count,
            "quantity": 1,
            "notes": {**(notes or {}), "customer_id": customer_id},
        })
        logger.info(f"Created Razorpay subscription: subscription_id={subscription.get('id')}, plan_id={plan_id}")
        return subscription

    def fetch_payment(self, payment_id: str) -> dict:
        return self.client.payment.fetch(payment_id)

    def cancel_subscription(self, subscription_id: str, cancel_at_cycle_end: bool = True) -> dict:
        result = self.client.subscription.cancel(
            subscription_id, data={"cancel_at_cycle_end": 1 if cancel_at_cycle_end else 0}
        )
        logger.info(
            f"Requested Razorpay cancellation: subscription_id={subscription_id}, "
            f"cancel_at_cycle_end={cancel_at_cycle_end}"
        )
        return result

    def gateway_plan_id(self, plan_name: str, billing_cycle: str) -> Optional[str]:
        """Razorpay plan id configured for a local plan and cycle, if any."""
        plan_id = self.plan_ids.get(f"{plan_name.lower()}_{billing_cycle}")
        if not plan_id or plan_id.startswith("plan_your_"):
            # Placeholder values from .env.example
            return None
        return plan_id


def _build_plan_ids() -> Dict[str, str]:
    """Build the gateway plan id mapping from environment variables."""
    mapping = {
        "pro_monthly": config.RAZORPAY_PLAN_PRO_MONTHLY,
        "pro_yearly": config.RAZORPAY_PLAN_PRO_YEARLY,
        "enterprise_monthly": config.RAZORPAY_PLAN_ENTERPRISE_MONTHLY,
        "enterprise_yearly": config.RAZORPAY_PLAN_ENTERPRISE_YEARLY,
    }
    return {key: value for key, value in mapping.items() if value}


def build_gateway() -> RazorpayGateway:
    """Construct the gateway from configuration. Called from the application lifespan."""
    if not (config.RAZORPAY_KEY_ID and config.RAZORPAY_KEY_SECRET):
        logger.warning("RAZORPAY_KEY_ID/RAZORPAY_KEY_SECRET not configured - payment features disabled")
    return RazorpayGateway(
        key_id=config.RAZORPAY_KEY_ID,
        key_secret=config.RAZORPAY_KEY_SECRET,
        webhook_secret=config.RAZORPAY_WEBHOOK_SECRET,
        currency=config.RAZORPAY_CURRENCY,
        plan_ids=_build_plan_ids(),
    )


def convert_to_paise(amount_in_inr: Union[Decimal, float, int]) -> int:
    return int((Decimal(str(amount_in_inr)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_receipt(prefix: str = "VF") -> str:
    """Receipt string ``<prefix>_<epoch ms>_<6 random uppercase chars>``."""
    alphabet = string.ascii_uppercase + string.digits
    random_part = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"{prefix}_{int(time.time() * 1000)}_{random_part}"


def describe_gateway_error(error: Exception) -> str:
    """Best-effort human readable message for a gateway (or network) failure."""
    error_body = getattr(error, "error", None)
    if isinstance(error_body, dict) and error_body.get("description"):
        return error_body["description"]
    message = str(error).strip()
    return message or DEFAULT_ERROR_MESSAGE
