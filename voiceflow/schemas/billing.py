"""
Pydantic schemas for payment endpoints.
"""
from typing import Optional
from pydantic import BaseModel, Field


class CreateOrderRequest(BaseModel):
    """Request schema for create-order and create-subscription."""
    plan_id: str = Field(..., alias="planId", description="Subscription plan id")
    billing_cycle: str = Field("monthly", alias="billingCycle", pattern="^(monthly|yearly)$")
    
    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "planId": "5f0c7a7e-3a57-4f1e-9d38-0c8a3f1b2d44",
                "billingCycle": "monthly"
            }
        }


class VerifyPaymentRequest(BaseModel):
    """Checkout callback fields handed back by the Razorpay widget."""
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    
    class Config:
        json_schema_extra = {
            "example": {
                "razorpay_order_id": "order_NxZ1a2b3c4d5e6",
                "razorpay_payment_id": "pay_NxZ9f8e7d6c5b4",
                "razorpay_signature": "9ef4dffbfd84f1318f6739a3ce19f9d85851857ae648f114332d8401e0949a3d"
            }
        }


class CancelSubscriptionRequest(BaseModel):
    at_cycle_end: bool = Field(True, alias="atCycleEnd", description="Cancel when the current cycle ends")
    
    class Config:
        populate_by_name = True


class SubscriptionSummary(BaseModel):
    id: Optional[int] = None
    planName: str
    status: Optional[str] = None
    billingCycle: str


class VerifyPaymentResponse(BaseModel):
    success: bool
    paymentId: str
    orderId: str
    subscription: SubscriptionSummary
