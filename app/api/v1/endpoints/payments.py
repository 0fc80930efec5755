# app/api/v1/endpoints/payments.py
# Razorpay webhook -> purchase activation
#
# Flow:
#   1. Learner checks out -> POST /live-sessions/{id}/checkout (or /schedules/{id}/checkout)
#   2. Learner pays on Razorpay hosted checkout
#   3. Razorpay sends webhook -> POST /payments/webhook -> purchase activated
#   4. Resolver now grants direct_purchase / schedule_enrollment access

import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

import app.db.base  # noqa: F401
from app.core.clock import Clock, get_clock
from app.core.exceptions import InvalidState, NotFound
from app.db.session import get_db
from app.schemas.purchase import WebhookResponse
from app.services import razorpay_service
from app.services.notification_service import Notifier, get_notifier
from app.services.purchases import PurchaseLifecycle

log = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="Razorpay webhook handler",
    include_in_schema=False,  # Hide from public docs -- internal endpoint
)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str = Header(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Handles Razorpay payment events.
    Must be registered in Razorpay dashboard:
      URL: https://your-domain/api/v1/payments/webhook
      Events: payment.captured, payment.failed

    CRITICAL: Verify signature before processing any event.
    Replayed events are safe -- activation is idempotent.
    """
    payload_body = await request.body()

    if not razorpay_service.verify_webhook_signature(payload_body, x_razorpay_signature):
        raise HTTPException(status_code=400, detail="Invalid webhook signature.")

    try:
        event = json.loads(payload_body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload.")

    event_type = event.get("event", "")
    if event_type not in razorpay_service.HANDLED_EVENTS:
        return WebhookResponse(received=True, event=event_type, processed=False)

    reference = razorpay_service.extract_order_reference(event)
    if not reference:
        return WebhookResponse(received=True, event=event_type, processed=False, message="No order id.")

    lifecycle = PurchaseLifecycle(db, clock, notifier=notifier)
    try:
        row = lifecycle.confirm_payment(
            reference,
            captured=event_type == "payment.captured",
            payload=event,
        )
    except (NotFound, InvalidState) as e:
        # Acknowledge so Razorpay stops retrying; nothing we can apply
        log.warning("Webhook %s for %s not applied: %s", event_type, reference, e.message)
        return WebhookResponse(received=True, event=event_type, processed=False, message=e.message)

    return WebhookResponse(
        received=True,
        event=event_type,
        processed=True,
        message=f"Purchase {row.id} is {row.status}.",
    )
