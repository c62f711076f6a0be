import json
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from voiceflow.core.auth_dependency import get_db, get_gateway
from voiceflow.services.gateway import RazorpayGateway
from voiceflow.services.webhook_service import process_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments Webhook"])


@router.post("/webhook")
async def razorpay_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    body = await request.body()
    signature = request.headers.get("x-razorpay-signature")

    # One id per delivery, reused for the log insert and the processed update
    event_id = request.headers.get("x-razorpay-event-id") or f"evt_{uuid.uuid4().hex}"

    if not signature:
        logger.error("Missing Razorpay signature header")
        raise HTTPException(status_code=400, detail="Missing signature")

    if not gateway.verify_webhook_signature(body, signature):
        logger.error(f"Invalid webhook signature: event_id={event_id}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(event, dict) or not isinstance(event.get("event"), str):
        raise HTTPException(status_code=400, detail="Invalid payload")

    try:
        rejection = await run_in_threadpool(process_webhook_event, db, event_id, event)
    except Exception:
        # Logged by the dispatcher; a 500 makes Razorpay redeliver
        raise HTTPException(status_code=500, detail="Error processing webhook")

    if rejection:
        return {"success": True, "ignored": rejection}
    return {"success": True}
