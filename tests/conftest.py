"""
Shared test doubles.

``FakeGateway`` keeps the real signature checks (they run inside the Razorpay
SDK) and replaces every network call with canned responses.
"""
import itertools

import pytest

from voiceflow.services.gateway import RazorpayGateway

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "test_key_secret"
TEST_WEBHOOK_SECRET = "test_webhook_secret"


class FakeGateway(RazorpayGateway):
    def __init__(self, plan_ids=None):
        super().__init__(
            key_id=TEST_KEY_ID,
            key_secret=TEST_KEY_SECRET,
            webhook_secret=TEST_WEBHOOK_SECRET,
            currency="INR",
            plan_ids=plan_ids,
        )
        self.calls = []
        self.payment_response = {"captured": True, "method": "card", "status": "captured"}
        self.fetch_payment_error = None
        self._ids = itertools.count(1)

    def create_customer(self, email, name, contact=None):
        self.calls.append(("create_customer", email, name))
        return {"id": f"cust_test_{next(self._ids)}", "email": email, "name": name}

    def create_order(self, amount, currency, receipt, notes=None):
        self.calls.append(("create_order", amount, currency, receipt, notes))
        return {"id": f"order_test_{next(self._ids)}", "amount": amount, "currency": currency, "receipt": receipt}

    def create_subscription(self, plan_id, customer_id, total_count, notes=None):
        self.calls.append(("create_subscription", plan_id, customer_id, total_count, notes))
        n = next(self._ids)
        return {"id": f"sub_test_{n}", "status": "created", "short_url": f"https://rzp.io/i/test{n}"}

    def fetch_payment(self, payment_id):
        self.calls.append(("fetch_payment", payment_id))
        if self.fetch_payment_error:
            raise self.fetch_payment_error
        return {"id": payment_id, **self.payment_response}

    def cancel_subscription(self, subscription_id, cancel_at_cycle_end=True):
        self.calls.append(("cancel_subscription", subscription_id, cancel_at_cycle_end))
        return {"id": subscription_id, "status": "active" if cancel_at_cycle_end else "cancelled"}


@pytest.fixture
def fake_gateway():
    return FakeGateway()
