# app/api/v1/endpoints/schedules.py
# Schedule (session bundle) checkout
#
# One active ScheduleEnrollment grants every session in the schedule.

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import app.db.base  # noqa: F401
from app.core.clock import Clock, get_clock
from app.core.dependencies import require_login
from app.core.exceptions import AlreadyEntitled
from app.db.session import get_db
from app.models.user import User
from app.schemas.purchase import CheckoutResponse
from app.services.notification_service import Notifier, get_notifier
from app.services.purchases import PurchaseLifecycle
from app.services.razorpay_service import PaymentProcessor, get_payment_processor

router = APIRouter()


@router.post(
    "/{schedule_id}/checkout",
    response_model=CheckoutResponse,
    summary="Enroll in a whole schedule",
)
def checkout_schedule(
    schedule_id: UUID,
    current_user: User = Depends(require_login),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    processor: PaymentProcessor = Depends(get_payment_processor),
    notifier: Notifier = Depends(get_notifier),
):
    """Free schedules activate immediately; 409 session_full when max_students is reached."""
    lifecycle = PurchaseLifecycle(db, clock, processor=processor, notifier=notifier)
    try:
        result = lifecycle.checkout_schedule(current_user.id, schedule_id)
    except AlreadyEntitled as e:
        return CheckoutResponse(
            kind="schedule",
            purchase_id=e.existing_id,
            status=e.existing_status,
            already_entitled=True,
        )
    return CheckoutResponse(**asdict(result))
