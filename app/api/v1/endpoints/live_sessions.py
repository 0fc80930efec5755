# app/api/v1/endpoints/live_sessions.py
# Live session endpoints: detail, join, leave, register, checkout, excuse
#
# Meeting URL access rules:
#   - Every path goes through EntitlementResolver (no inline checks here)
#   - Detail view returns meeting_url=None unless access is granted
#   - Join returns the URL only after a seat is reserved and attendance saved
#
# Domain errors (NotFound, NotEntitled, SessionFull, ...) bubble up to the
# LiveAccessError handler registered in app/main.py.

from dataclasses import asdict
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

import app.db.base  # noqa: F401
from app.core.clock import Clock, get_clock
from app.core.dependencies import client_ip, get_optional_user, require_instructor, require_login
from app.core.exceptions import AlreadyEntitled
from app.db.session import get_db
from app.models.user import User
from app.schemas.live_session import (
    AccessResponse,
    AttendanceResponse,
    ExcuseRequest,
    JoinRequest,
    JoinResponse,
    LiveSessionDetailResponse,
)
from app.schemas.purchase import CheckoutResponse
from app.services.live_sessions import LiveSessionService, checkout_available
from app.services.notification_service import Notifier, get_notifier
from app.services.purchases import PurchaseLifecycle
from app.services.razorpay_service import PaymentProcessor, get_payment_processor

router = APIRouter()


# ── Detail ────────────────────────────────────────────────────────────────────

@router.get(
    "/{session_id}",
    response_model=LiveSessionDetailResponse,
    summary="Session detail with access decision (meeting link gated)",
)
def get_live_session(
    session_id: UUID,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    learner_id = current_user.id if current_user else None
    detail = LiveSessionService(db, clock).get_detail(learner_id, session_id)
    s = detail.session

    return LiveSessionDetailResponse(
        id=s.id,
        course_id=s.course_id,
        schedule_id=s.schedule_id,
        title=s.title,
        description=s.description,
        scheduled_start=s.scheduled_start,
        scheduled_end=s.scheduled_end,
        duration_minutes=s.duration_minutes,
        status=s.status,
        pricing_type=s.pricing_type,
        price_paise=s.price_paise,
        currency=s.currency,
        is_free_for_all=s.is_free_for_all,
        max_participants=s.max_participants,
        present_count=detail.present_count,
        access=AccessResponse(
            granted=detail.decision.granted,
            reason=detail.decision.reason,
            checkout_available=not detail.decision.granted and checkout_available(s),
        ),
        meeting_url=detail.meeting_url,
        attendance=AttendanceResponse.model_validate(detail.attendance) if detail.attendance else None,
    )


# ── Join / Leave ──────────────────────────────────────────────────────────────

@router.post(
    "/{session_id}/join",
    response_model=JoinResponse,
    summary="Join a live session -- returns the meeting URL",
)
def join_live_session(
    session_id: UUID,
    request: Request,
    payload: Optional[JoinRequest] = None,
    user_agent: Optional[str] = Header(default=None),
    current_user: User = Depends(require_login),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    403 not_entitled  -> purchase / enroll first (checkout_available says if possible)
    409 session_full  -> participant limit reached
    409 invalid_state -> session cancelled / completed / no meeting link yet
    503               -> storage unavailable, retry
    """
    device_type = (payload.device_type if payload else None) or user_agent
    result = LiveSessionService(db, clock).join(
        current_user.id,
        session_id,
        device_type=device_type,
        ip_address=client_ip(request),
    )
    return JoinResponse(
        session_id=session_id,
        meeting_url=result.meeting_url,
        access_reason=result.access_reason,
        attendance=AttendanceResponse.model_validate(result.attendance),
    )


@router.post(
    "/{session_id}/leave",
    response_model=AttendanceResponse,
    summary="Record leaving a live session",
)
def leave_live_session(
    session_id: UUID,
    current_user: User = Depends(require_login),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    attendance = LiveSessionService(db, clock).leave(current_user.id, session_id)
    return AttendanceResponse.model_validate(attendance)


@router.post(
    "/{session_id}/register",
    response_model=AttendanceResponse,
    status_code=201,
    summary="Register for a free session",
)
def register_for_live_session(
    session_id: UUID,
    current_user: User = Depends(require_login),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    attendance = LiveSessionService(db, clock).register(current_user.id, session_id)
    return AttendanceResponse.model_validate(attendance)


@router.post(
    "/{session_id}/excuse",
    response_model=AttendanceResponse,
    summary="Mark a learner's absence as excused (instructor only)",
)
def excuse_absence(
    session_id: UUID,
    payload: ExcuseRequest,
    current_user: User = Depends(require_instructor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    attendance = LiveSessionService(db, clock).excuse(
        current_user, session_id, payload.learner_id, payload.reason, payload.approved
    )
    return AttendanceResponse.model_validate(attendance)


# ── Checkout ──────────────────────────────────────────────────────────────────

@router.post(
    "/{session_id}/checkout",
    response_model=CheckoutResponse,
    summary="Buy a single live session",
)
def checkout_live_session(
    session_id: UUID,
    current_user: User = Depends(require_login),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    processor: PaymentProcessor = Depends(get_payment_processor),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Already bought (or checkout in progress) is not an error: the existing
    purchase comes back with already_entitled=true.
    """
    lifecycle = PurchaseLifecycle(db, clock, processor=processor, notifier=notifier)
    try:
        result = lifecycle.checkout_session(current_user.id, session_id)
    except AlreadyEntitled as e:
        return CheckoutResponse(
            kind="session",
            purchase_id=e.existing_id,
            status=e.existing_status,
            already_entitled=True,
        )
    return CheckoutResponse(**asdict(result))
