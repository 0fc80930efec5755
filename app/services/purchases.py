# app/services/purchases.py
# Purchase / enrollment lifecycle for live sessions and schedules
#
#   checkout  -> Payment(pending) + purchase(pending), committed
#             -> processor.create_charge()
#                 success -> activate now
#                 pending -> wait for the payment.captured webhook
#                 declined-> payment + purchase marked failed
#   activate  -> pending -> active with a conditional UPDATE, so the sales
#                counters move exactly once even when checkout and the
#                webhook race each other
#   refund / cancel -> active -> refunded / cancelled (rows kept for audit)
#
# Only rows in status 'active' grant access (see app.services.entitlement).
# Notifications go out after commit and never affect the outcome.

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.exceptions import AlreadyEntitled, InvalidState, NotFound, SessionFull
from app.models.live_session import LiveSession, Schedule
from app.models.purchase import ScheduleEnrollment, SessionPurchase
from app.models.subscription import Payment
from app.services.notification_service import NotificationSender, Notifier
from app.services.razorpay_service import ChargeResult, PaymentProcessor, RazorpayProcessor

log = logging.getLogger(__name__)

OPEN_STATUSES = ("pending", "active")
PURCHASABLE_SCHEDULE_STATUSES = ("published", "active")

Purchase = Union[SessionPurchase, ScheduleEnrollment]


@dataclass
class CheckoutResult:
    kind: str                               # session | schedule
    purchase_id: UUID
    status: str                             # active | pending | failed
    amount_paise: int = 0
    payment_reference: Optional[str] = None
    error: Optional[str] = None
    already_entitled: bool = False


class PurchaseLifecycle:
    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        processor: Optional[PaymentProcessor] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.clock = clock
        self.processor = processor or RazorpayProcessor()
        self.notifier = notifier or NotificationSender(db)

    # ── Lookups ───────────────────────────────────────────────────────────────

    def _open_session_purchase(self, learner_id: UUID, session_id: UUID) -> Optional[SessionPurchase]:
        return self.db.execute(
            select(SessionPurchase).where(
                SessionPurchase.learner_id == learner_id,
                SessionPurchase.session_id == session_id,
                SessionPurchase.status.in_(OPEN_STATUSES),
            )
        ).scalars().first()

    def _open_schedule_enrollment(self, learner_id: UUID, schedule_id: UUID) -> Optional[ScheduleEnrollment]:
        return self.db.execute(
            select(ScheduleEnrollment).where(
                ScheduleEnrollment.learner_id == learner_id,
                ScheduleEnrollment.schedule_id == schedule_id,
                ScheduleEnrollment.status.in_(OPEN_STATUSES),
            )
        ).scalars().first()

    def _get_session(self, session_id: UUID) -> LiveSession:
        session = self.db.get(LiveSession, session_id)
        if session is None or session.is_deleted:
            raise NotFound("LiveSession", session_id)
        return session

    def _get_schedule(self, schedule_id: UUID) -> Schedule:
        schedule = self.db.get(Schedule, schedule_id)
        if schedule is None or schedule.is_deleted:
            raise NotFound("Schedule", schedule_id)
        return schedule

    def _notify(self, user_id: Optional[UUID], kind: str, payload: Dict[str, Any]) -> None:
        # Runs after commit; a delivery failure must not undo the purchase
        if user_id is None:
            return
        try:
            self.notifier.notify(user_id, kind, payload)
        except Exception as e:
            log.error("Notification %s for user %s failed: %s", kind, user_id, e)

    # ── Pending rows ──────────────────────────────────────────────────────────

    def create_session_purchase(
        self,
        learner_id: UUID,
        session_id: UUID,
        amount_paise: int,
        currency: Optional[str] = None,
        payment_id: Optional[UUID] = None,
    ) -> SessionPurchase:
        """Pending purchase. AlreadyEntitled if a pending/active one exists."""
        session = self._get_session(session_id)
        existing = self._open_session_purchase(learner_id, session_id)
        if existing is not None:
            raise AlreadyEntitled(existing.id, existing.status)

        purchase = SessionPurchase(
            learner_id=learner_id,
            session_id=session_id,
            payment_id=payment_id,
            amount_paise=amount_paise,
            currency=currency or session.currency,
            status="pending",
            purchased_at=self.clock.now(),
        )
        self.db.add(purchase)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent checkout for the same pair
            self.db.rollback()
            existing = self._open_session_purchase(learner_id, session_id)
            if existing is None:
                raise
            raise AlreadyEntitled(existing.id, existing.status)
        return purchase

    def create_schedule_enrollment(
        self,
        learner_id: UUID,
        schedule_id: UUID,
        amount_paise: int,
        currency: Optional[str] = None,
        payment_id: Optional[UUID] = None,
    ) -> ScheduleEnrollment:
        schedule = self._get_schedule(schedule_id)
        existing = self._open_schedule_enrollment(learner_id, schedule_id)
        if existing is not None:
            raise AlreadyEntitled(existing.id, existing.status)

        enrollment = ScheduleEnrollment(
            learner_id=learner_id,
            schedule_id=schedule_id,
            payment_id=payment_id,
            amount_paise=amount_paise,
            currency=currency or schedule.currency,
            status="pending",
            enrolled_at=self.clock.now(),
        )
        self.db.add(enrollment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._open_schedule_enrollment(learner_id, schedule_id)
            if existing is None:
                raise
            raise AlreadyEntitled(existing.id, existing.status)
        return enrollment

    def create_pending_purchase(
        self,
        learner_id: UUID,
        amount_paise: int,
        session_id: Optional[UUID] = None,
        schedule_id: Optional[UUID] = None,
    ) -> UUID:
        """Exactly one of session_id / schedule_id. Returns the new row's id."""
        if (session_id is None) == (schedule_id is None):
            raise ValueError("Pass exactly one of session_id or schedule_id")
        if session_id is not None:
            return self.create_session_purchase(learner_id, session_id, amount_paise).id
        return self.create_schedule_enrollment(learner_id, schedule_id, amount_paise).id

    # ── Activation ────────────────────────────────────────────────────────────

    def _capture_payment(self, payment_id: Optional[UUID]) -> None:
        if payment_id is None:
            return
        self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == "pending")
            .values(status="captured", completed_at=self.clock.now())
            .execution_options(synchronize_session=False)
        )

    def activate_session_purchase(self, purchase_id: UUID) -> SessionPurchase:
        """
        pending -> active. Calling it again on an active purchase is a no-op;
        purchase_count / total_revenue_paise move exactly once.
        """
        purchase = self.db.get(SessionPurchase, purchase_id)
        if purchase is None:
            raise NotFound("SessionPurchase", purchase_id)
        if purchase.status == "active":
            return purchase
        if purchase.status != "pending":
            raise InvalidState(
                f"Cannot activate a {purchase.status} purchase.",
                purchase_id=purchase_id,
            )

        won = self.db.execute(
            update(SessionPurchase)
            .where(SessionPurchase.id == purchase_id, SessionPurchase.status == "pending")
            .values(status="active", activated_at=self.clock.now())
            .execution_options(synchronize_session=False)
        ).rowcount == 1

        if won:
            self.db.execute(
                update(LiveSession)
                .where(LiveSession.id == purchase.session_id)
                .values(
                    purchase_count=LiveSession.purchase_count + 1,
                    total_revenue_paise=LiveSession.total_revenue_paise + purchase.amount_paise,
                )
                .execution_options(synchronize_session=False)
            )
            self._capture_payment(purchase.payment_id)
        self.db.commit()
        self.db.refresh(purchase)

        if not won:
            if purchase.status == "active":
                return purchase
            raise InvalidState(f"Cannot activate a {purchase.status} purchase.", purchase_id=purchase_id)

        log.info("Session purchase activated: %s (learner=%s)", purchase.id, purchase.learner_id)
        session = self.db.get(LiveSession, purchase.session_id)
        self.db.refresh(session)
        payload: Dict[str, Any] = {
            "title": session.title,
            "session_id": session.id,
            "purchase_id": purchase.id,
            "amount_paise": purchase.amount_paise,
            "action_url": f"/live-sessions/{session.id}",
        }
        self._notify(purchase.learner_id, "purchase_completed", payload)
        self._notify(session.instructor_id, "session_sale", payload)
        return purchase

    def activate_schedule_enrollment(self, enrollment_id: UUID) -> ScheduleEnrollment:
        enrollment = self.db.get(ScheduleEnrollment, enrollment_id)
        if enrollment is None:
            raise NotFound("ScheduleEnrollment", enrollment_id)
        if enrollment.status == "active":
            return enrollment
        if enrollment.status != "pending":
            raise InvalidState(
                f"Cannot activate a {enrollment.status} enrollment.",
                enrollment_id=enrollment_id,
            )

        won = self.db.execute(
            update(ScheduleEnrollment)
            .where(ScheduleEnrollment.id == enrollment_id, ScheduleEnrollment.status == "pending")
            .values(status="active", activated_at=self.clock.now())
            .execution_options(synchronize_session=False)
        ).rowcount == 1

        if won:
            self.db.execute(
                update(Schedule)
                .where(Schedule.id == enrollment.schedule_id)
                .values(
                    enrolled_count=Schedule.enrolled_count + 1,
                    total_revenue_paise=Schedule.total_revenue_paise + enrollment.amount_paise,
                )
                .execution_options(synchronize_session=False)
            )
            self._capture_payment(enrollment.payment_id)
        self.db.commit()
        self.db.refresh(enrollment)

        if not won:
            if enrollment.status == "active":
                return enrollment
            raise InvalidState(f"Cannot activate a {enrollment.status} enrollment.", enrollment_id=enrollment_id)

        log.info("Schedule enrollment activated: %s (learner=%s)", enrollment.id, enrollment.learner_id)
        schedule = self.db.get(Schedule, enrollment.schedule_id)
        self.db.refresh(schedule)
        self._notify(enrollment.learner_id, "purchase_completed", {
            "title": schedule.title,
            "schedule_id": schedule.id,
            "enrollment_id": enrollment.id,
            "amount_paise": enrollment.amount_paise,
        })
        return enrollment

    def activate(self, purchase_id: UUID) -> Purchase:
        """Activate whichever kind of row purchase_id names."""
        if self.db.get(SessionPurchase, purchase_id) is not None:
            return self.activate_session_purchase(purchase_id)
        if self.db.get(ScheduleEnrollment, purchase_id) is not None:
            return self.activate_schedule_enrollment(purchase_id)
        raise NotFound("Purchase", purchase_id)

    # ── Failure / revocation ──────────────────────────────────────────────────

    def _fail(self, row: Purchase, payment: Optional[Payment], error: Optional[str]) -> None:
        row.status = "failed"
        if payment is not None:
            payment.status = "failed"
            payment.failure_reason = error
            payment.completed_at = self.clock.now()
        self.db.commit()
        log.warning("Payment declined for %s %s: %s", type(row).__name__, row.id, error)

    def refund_session_purchase(self, purchase_id: UUID) -> SessionPurchase:
        """active -> refunded. The row stays for audit and stops granting access."""
        purchase = self.db.get(SessionPurchase, purchase_id)
        if purchase is None:
            raise NotFound("SessionPurchase", purchase_id)

        now = self.clock.now()
        refunded = self.db.execute(
            update(SessionPurchase)
            .where(SessionPurchase.id == purchase_id, SessionPurchase.status == "active")
            .values(status="refunded", refunded_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if not refunded:
            self.db.rollback()
            raise InvalidState(f"Cannot refund a {purchase.status} purchase.", purchase_id=purchase_id)

        if purchase.payment_id is not None:
            self.db.execute(
                update(Payment)
                .where(Payment.id == purchase.payment_id, Payment.status == "captured")
                .values(status="refunded")
                .execution_options(synchronize_session=False)
            )
        self.db.commit()
        self.db.refresh(purchase)
        log.info("Session purchase refunded: %s", purchase.id)

        session = self.db.get(LiveSession, purchase.session_id)
        self._notify(purchase.learner_id, "purchase_refunded", {
            "title": session.title if session else "",
            "purchase_id": purchase.id,
        })
        return purchase

    def cancel_schedule_enrollment(self, enrollment_id: UUID) -> ScheduleEnrollment:
        """pending/active -> cancelled."""
        enrollment = self.db.get(ScheduleEnrollment, enrollment_id)
        if enrollment is None:
            raise NotFound("ScheduleEnrollment", enrollment_id)
        was_active = enrollment.status == "active"

        cancelled = self.db.execute(
            update(ScheduleEnrollment)
            .where(ScheduleEnrollment.id == enrollment_id, ScheduleEnrollment.status.in_(OPEN_STATUSES))
            .values(status="cancelled", cancelled_at=self.clock.now())
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if not cancelled:
            self.db.rollback()
            raise InvalidState(f"Cannot cancel a {enrollment.status} enrollment.", enrollment_id=enrollment_id)

        self.db.commit()
        self.db.refresh(enrollment)
        log.info("Schedule enrollment cancelled: %s", enrollment.id)

        if was_active:
            schedule = self.db.get(Schedule, enrollment.schedule_id)
            self._notify(enrollment.learner_id, "enrollment_cancelled", {
                "title": schedule.title if schedule else "",
                "enrollment_id": enrollment.id,
            })
        return enrollment

    # ── Checkout ──────────────────────────────────────────────────────────────

    def _new_payment(self, learner_id: UUID, purpose: str, amount_paise: int, currency: str) -> Payment:
        payment = Payment(
            user_id=learner_id,
            purpose=purpose,
            amount_paise=amount_paise,
            currency=currency,
            status="pending",
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def _charge(self, learner_id: UUID, row: Purchase, payment: Payment, kind: str) -> ChargeResult:
        return self.processor.create_charge(
            payment.amount_paise,
            payment.currency,
            {"learner_id": learner_id, "receipt": str(row.id).replace("-", "")[:20], "kind": kind},
        )

    def checkout_session(self, learner_id: UUID, session_id: UUID) -> CheckoutResult:
        """
        Buy one live session. Free, cancelled and completed sessions cannot
        be bought (InvalidState); a second checkout for the same session
        raises AlreadyEntitled pointing at the existing purchase.
        """
        session = self._get_session(session_id)
        if session.status in ("cancelled", "completed"):
            raise InvalidState(f"Session is {session.status}.", session_id=session_id)
        if session.is_free_for_all or session.pricing_type == "free" or session.price_paise <= 0:
            raise InvalidState("Free sessions do not need to be purchased.", session_id=session_id)
        if session.pricing_type != "paid":
            raise InvalidState("This session is only available with a subscription.", session_id=session_id)

        existing = self._open_session_purchase(learner_id, session_id)
        if existing is not None:
            raise AlreadyEntitled(existing.id, existing.status)

        payment = self._new_payment(learner_id, "session", session.price_paise, session.currency)
        purchase = self.create_session_purchase(
            learner_id, session_id, session.price_paise, session.currency, payment_id=payment.id
        )

        charge = self._charge(learner_id, purchase, payment, "session")
        payment.provider_reference = charge.reference
        result = CheckoutResult(
            kind="session",
            purchase_id=purchase.id,
            status="pending",
            amount_paise=purchase.amount_paise,
            payment_reference=charge.reference,
        )

        if charge.success:
            self.db.commit()
            result.status = self.activate_session_purchase(purchase.id).status
        elif charge.pending:
            self.db.commit()
        else:
            self._fail(purchase, payment, charge.error)
            result.status = "failed"
            result.error = charge.error
        return result

    def checkout_schedule(self, learner_id: UUID, schedule_id: UUID) -> CheckoutResult:
        """
        Enroll in a whole schedule. Free schedules activate without a
        charge; full schedules (max_students) raise SessionFull.
        """
        schedule = self._get_schedule(schedule_id)
        if schedule.status not in PURCHASABLE_SCHEDULE_STATUSES or not schedule.is_published:
            raise InvalidState(f"Schedule is {schedule.status}.", schedule_id=schedule_id)

        existing = self._open_schedule_enrollment(learner_id, schedule_id)
        if existing is not None:
            raise AlreadyEntitled(existing.id, existing.status)

        if schedule.max_students is not None and schedule.enrolled_count >= schedule.max_students:
            raise SessionFull(
                "This schedule has reached its student limit.",
                schedule_id=schedule_id,
                max_students=schedule.max_students,
            )

        if schedule.price_paise <= 0:
            enrollment = self.create_schedule_enrollment(learner_id, schedule_id, 0, schedule.currency)
            enrollment = self.activate_schedule_enrollment(enrollment.id)
            return CheckoutResult(kind="schedule", purchase_id=enrollment.id, status=enrollment.status)

        payment = self._new_payment(learner_id, "schedule", schedule.price_paise, schedule.currency)
        enrollment = self.create_schedule_enrollment(
            learner_id, schedule_id, schedule.price_paise, schedule.currency, payment_id=payment.id
        )

        charge = self._charge(learner_id, enrollment, payment, "schedule")
        payment.provider_reference = charge.reference
        result = CheckoutResult(
            kind="schedule",
            purchase_id=enrollment.id,
            status="pending",
            amount_paise=enrollment.amount_paise,
            payment_reference=charge.reference,
        )

        if charge.success:
            self.db.commit()
            result.status = self.activate_schedule_enrollment(enrollment.id).status
        elif charge.pending:
            self.db.commit()
        else:
            self._fail(enrollment, payment, charge.error)
            result.status = "failed"
            result.error = charge.error
        return result

    # ── Webhook ───────────────────────────────────────────────────────────────

    def confirm_payment(self, provider_reference: str, captured: bool, payload: Optional[Dict[str, Any]] = None) -> Purchase:
        """
        Apply a provider confirmation to the purchase behind a payment.
        Replays are harmless: activation is idempotent and failing an
        already-settled row is skipped.
        """
        payment = self.db.execute(
            select(Payment).where(Payment.provider_reference == provider_reference)
        ).scalar_one_or_none()
        if payment is None:
            raise NotFound("Payment", provider_reference)

        row: Optional[Purchase] = self.db.execute(
            select(SessionPurchase).where(SessionPurchase.payment_id == payment.id)
        ).scalar_one_or_none()
        if row is None:
            row = self.db.execute(
                select(ScheduleEnrollment).where(ScheduleEnrollment.payment_id == payment.id)
            ).scalar_one_or_none()
        if row is None:
            raise NotFound("Purchase", provider_reference)

        if payload is not None:
            payment.webhook_payload = payload
            self.db.commit()

        if captured:
            if isinstance(row, SessionPurchase):
                return self.activate_session_purchase(row.id)
            return self.activate_schedule_enrollment(row.id)

        if row.status == "pending":
            error = None
            if payload:
                error = payload.get("payload", {}).get("payment", {}).get("entity", {}).get("error_description")
            self._fail(row, payment, error or "Payment failed")
        return row
