"""
Tests for the purchase / enrollment lifecycle.

Tests cover:
- No second open purchase for the same (learner, session)
- Idempotent activation, sales counters moving exactly once
- Checkout: captured, declined, pending + webhook confirmation
- Sessions that cannot be bought (free, cancelled, subscription-only)
- Schedule checkout: free, paid, full, unpublished
- Refund / cancel revoking access
- Notification failures never undo a purchase
"""

import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import AlreadyEntitled, InvalidState, NotFound, SessionFull
from app.models.purchase import ScheduleEnrollment, SessionPurchase
from app.models.subscription import Payment
from app.services.entitlement import EntitlementResolver
from app.services.purchases import PurchaseLifecycle


@pytest.fixture
def lifecycle(db_session, clock, processor, notifier):
    return PurchaseLifecycle(db_session, clock, processor=processor, notifier=notifier)


def _granted(db, clock, learner, session):
    return EntitlementResolver(db, clock).resolve(learner.id, session.id).granted


def _payment_for(db, row):
    stmt = select(Payment).where(Payment.id == row.payment_id).execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one()


# =============================================================================
# Pending rows and activation
# =============================================================================

class TestActivation:
    def test_pending_purchase_grants_nothing(self, db_session, factory, clock, lifecycle):
        learner = factory.user()
        session = factory.live_session()
        purchase_id = lifecycle.create_pending_purchase(learner.id, session.price_paise, session_id=session.id)

        assert db_session.get(SessionPurchase, purchase_id).status == "pending"
        assert not _granted(db_session, clock, learner, session)

    def test_second_open_purchase_rejected(self, factory, lifecycle):
        learner = factory.user()
        session = factory.live_session()
        first = lifecycle.create_session_purchase(learner.id, session.id, session.price_paise)

        with pytest.raises(AlreadyEntitled) as exc:
            lifecycle.create_session_purchase(learner.id, session.id, session.price_paise)
        assert exc.value.existing_id == first.id
        assert exc.value.existing_status == "pending"

    def test_failed_purchase_does_not_block_a_new_one(self, factory, lifecycle):
        learner = factory.user()
        session = factory.live_session()
        factory.session_purchase(learner, session, status="failed")
        assert lifecycle.create_session_purchase(learner.id, session.id, session.price_paise).status == "pending"

    def test_create_pending_needs_exactly_one_target(self, factory, lifecycle):
        learner = factory.user()
        with pytest.raises(ValueError):
            lifecycle.create_pending_purchase(learner.id, 100)
        with pytest.raises(ValueError):
            lifecycle.create_pending_purchase(learner.id, 100, session_id=uuid.uuid4(), schedule_id=uuid.uuid4())

    def test_activation_is_idempotent(self, db_session, factory, clock, lifecycle, notifier):
        instructor = factory.user(role="instructor")
        learner = factory.user()
        session = factory.live_session(instructor_id=instructor.id)
        purchase = factory.session_purchase(learner, session, status="pending")

        lifecycle.activate_session_purchase(purchase.id)
        again = lifecycle.activate_session_purchase(purchase.id)

        assert again.status == "active"
        assert again.activated_at == clock.now()
        db_session.refresh(session)
        assert session.purchase_count == 1
        assert session.total_revenue_paise == 49900
        assert notifier.kinds() == ["purchase_completed", "session_sale"]
        assert notifier.sent[1][0] == instructor.id
        assert _granted(db_session, clock, learner, session)

    def test_activate_refunded_purchase_rejected(self, factory, lifecycle):
        learner = factory.user()
        session = factory.live_session()
        purchase = factory.session_purchase(learner, session, status="refunded")
        with pytest.raises(InvalidState):
            lifecycle.activate_session_purchase(purchase.id)

    def test_activate_dispatches_by_row_kind(self, db_session, factory, lifecycle):
        learner = factory.user()
        schedule = factory.schedule(sessions=1)
        enrollment = factory.schedule_enrollment(learner, schedule, status="pending")

        assert isinstance(lifecycle.activate(enrollment.id), ScheduleEnrollment)
        db_session.refresh(schedule)
        assert schedule.enrolled_count == 1
        with pytest.raises(NotFound):
            lifecycle.activate(uuid.uuid4())

    def test_failing_notifier_does_not_block_activation(self, db_session, factory, clock, lifecycle, notifier):
        notifier.fail = True
        learner = factory.user()
        session = factory.live_session()

        result = lifecycle.checkout_session(learner.id, session.id)
        assert result.status == "active"
        assert notifier.kinds() == ["purchase_completed"]
        assert _granted(db_session, clock, learner, session)


# =============================================================================
# Session checkout
# =============================================================================

class TestSessionCheckout:
    def test_captured_charge_activates(self, db_session, factory, clock, lifecycle, processor):
        learner = factory.user()
        session = factory.live_session()

        result = lifecycle.checkout_session(learner.id, session.id)

        assert result.status == "active"
        assert result.amount_paise == 49900
        assert result.payment_reference == "pay_test_1"
        assert processor.charges[0][:2] == (49900, "INR")
        purchase = db_session.get(SessionPurchase, result.purchase_id)
        payment = _payment_for(db_session, purchase)
        assert payment.status == "captured"
        assert payment.provider_reference == "pay_test_1"
        assert _granted(db_session, clock, learner, session)

    def test_second_checkout_is_already_entitled(self, factory, lifecycle, processor):
        learner = factory.user()
        session = factory.live_session()
        first = lifecycle.checkout_session(learner.id, session.id)

        with pytest.raises(AlreadyEntitled) as exc:
            lifecycle.checkout_session(learner.id, session.id)
        assert exc.value.existing_id == first.purchase_id
        assert exc.value.existing_status == "active"
        assert len(processor.charges) == 1

    def test_declined_charge_marks_failed(self, db_session, factory, clock, lifecycle, processor):
        learner = factory.user()
        session = factory.live_session()
        processor.decline("Insufficient funds")

        result = lifecycle.checkout_session(learner.id, session.id)

        assert result.status == "failed"
        assert result.error == "Insufficient funds"
        purchase = db_session.get(SessionPurchase, result.purchase_id)
        assert purchase.status == "failed"
        payment = _payment_for(db_session, purchase)
        assert payment.status == "failed"
        assert payment.failure_reason == "Insufficient funds"
        assert not _granted(db_session, clock, learner, session)

        processor.next_result = None
        assert lifecycle.checkout_session(learner.id, session.id).status == "active"

    def test_pending_charge_waits_for_webhook(self, db_session, factory, clock, lifecycle, processor):
        learner = factory.user()
        session = factory.live_session()
        processor.hold("order_abc")

        result = lifecycle.checkout_session(learner.id, session.id)
        assert result.status == "pending"
        assert not _granted(db_session, clock, learner, session)

        with pytest.raises(AlreadyEntitled):
            lifecycle.checkout_session(learner.id, session.id)

        confirmed = lifecycle.confirm_payment("order_abc", captured=True, payload={"event": "payment.captured"})
        assert confirmed.status == "active"
        assert _granted(db_session, clock, learner, session)

        lifecycle.confirm_payment("order_abc", captured=True)
        db_session.refresh(session)
        assert session.purchase_count == 1

    def test_failed_webhook_marks_failed(self, db_session, factory, lifecycle, processor):
        learner = factory.user()
        session = factory.live_session()
        processor.hold("order_xyz")
        result = lifecycle.checkout_session(learner.id, session.id)

        payload = {"payload": {"payment": {"entity": {"error_description": "Bank timeout"}}}}
        row = lifecycle.confirm_payment("order_xyz", captured=False, payload=payload)

        assert row.status == "failed"
        purchase = db_session.get(SessionPurchase, result.purchase_id)
        assert _payment_for(db_session, purchase).failure_reason == "Bank timeout"

    def test_unknown_payment_reference(self, lifecycle):
        with pytest.raises(NotFound):
            lifecycle.confirm_payment("order_missing", captured=True)

    @pytest.mark.parametrize("overrides", [
        {"is_free_for_all": True},
        {"pricing_type": "free", "price_paise": 0},
        {"status": "cancelled"},
        {"status": "completed"},
        {"pricing_type": "subscription_only"},
    ])
    def test_not_purchasable(self, factory, lifecycle, processor, overrides):
        learner = factory.user()
        session = factory.live_session(**overrides)
        with pytest.raises(InvalidState):
            lifecycle.checkout_session(learner.id, session.id)
        assert processor.charges == []

    def test_deleted_session_not_found(self, factory, lifecycle):
        learner = factory.user()
        session = factory.live_session(is_deleted=True)
        with pytest.raises(NotFound):
            lifecycle.checkout_session(learner.id, session.id)


# =============================================================================
# Schedule checkout
# =============================================================================

class TestScheduleCheckout:
    def test_paid_schedule_unlocks_every_session(self, db_session, factory, clock, lifecycle):
        learner = factory.user()
        schedule = factory.schedule(sessions=10)

        result = lifecycle.checkout_schedule(learner.id, schedule.id)

        assert result.kind == "schedule"
        assert result.status == "active"
        db_session.refresh(schedule)
        assert schedule.enrolled_count == 1
        assert schedule.total_revenue_paise == 199900
        assert all(_granted(db_session, clock, learner, s) for s in schedule.sessions)

    def test_free_schedule_skips_processor(self, factory, lifecycle, processor):
        learner = factory.user()
        schedule = factory.schedule(sessions=2, price_paise=0)
        result = lifecycle.checkout_schedule(learner.id, schedule.id)
        assert result.status == "active"
        assert processor.charges == []

    def test_full_schedule_rejected(self, factory, lifecycle):
        schedule = factory.schedule(sessions=1, max_students=1)
        lifecycle.checkout_schedule(factory.user().id, schedule.id)
        with pytest.raises(SessionFull):
            lifecycle.checkout_schedule(factory.user().id, schedule.id)

    def test_unpublished_schedule_rejected(self, factory, lifecycle):
        schedule = factory.schedule(status="draft", is_published=False)
        with pytest.raises(InvalidState):
            lifecycle.checkout_schedule(factory.user().id, schedule.id)

    def test_second_enrollment_already_entitled(self, factory, lifecycle):
        learner = factory.user()
        schedule = factory.schedule(sessions=1)
        first = lifecycle.checkout_schedule(learner.id, schedule.id)
        with pytest.raises(AlreadyEntitled) as exc:
            lifecycle.checkout_schedule(learner.id, schedule.id)
        assert exc.value.existing_id == first.purchase_id

    def test_declined_schedule_charge(self, db_session, factory, lifecycle, processor):
        learner = factory.user()
        schedule = factory.schedule(sessions=1)
        processor.decline()
        result = lifecycle.checkout_schedule(learner.id, schedule.id)
        assert result.status == "failed"
        assert db_session.get(ScheduleEnrollment, result.purchase_id).status == "failed"


# =============================================================================
# Revocation
# =============================================================================

class TestRevocation:
    def test_refund_revokes_access(self, db_session, factory, clock, lifecycle, notifier):
        learner = factory.user()
        session = factory.live_session()
        result = lifecycle.checkout_session(learner.id, session.id)

        refunded = lifecycle.refund_session_purchase(result.purchase_id)

        assert refunded.status == "refunded"
        assert refunded.refunded_at == clock.now()
        assert _payment_for(db_session, refunded).status == "refunded"
        assert not _granted(db_session, clock, learner, session)
        assert "purchase_refunded" in notifier.kinds()
        db_session.refresh(session)
        assert session.purchase_count == 1

    def test_refund_twice_rejected(self, factory, lifecycle):
        learner = factory.user()
        session = factory.live_session()
        result = lifecycle.checkout_session(learner.id, session.id)
        lifecycle.refund_session_purchase(result.purchase_id)
        with pytest.raises(InvalidState):
            lifecycle.refund_session_purchase(result.purchase_id)

    def test_refund_then_buy_again(self, db_session, factory, clock, lifecycle):
        learner = factory.user()
        session = factory.live_session()
        first = lifecycle.checkout_session(learner.id, session.id)
        lifecycle.refund_session_purchase(first.purchase_id)

        second = lifecycle.checkout_session(learner.id, session.id)
        assert second.purchase_id != first.purchase_id
        assert _granted(db_session, clock, learner, session)

    def test_cancel_schedule_enrollment(self, db_session, factory, clock, lifecycle, notifier):
        learner = factory.user()
        schedule = factory.schedule(sessions=3)
        result = lifecycle.checkout_schedule(learner.id, schedule.id)

        cancelled = lifecycle.cancel_schedule_enrollment(result.purchase_id)

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at == clock.now()
        assert not any(_granted(db_session, clock, learner, s) for s in schedule.sessions)
        assert notifier.kinds()[-1] == "enrollment_cancelled"

    def test_cancel_pending_enrollment(self, factory, lifecycle, notifier):
        learner = factory.user()
        schedule = factory.schedule()
        enrollment = factory.schedule_enrollment(learner, schedule, status="pending")
        assert lifecycle.cancel_schedule_enrollment(enrollment.id).status == "cancelled"
        assert notifier.sent == []

    def test_cancel_cancelled_rejected(self, factory, lifecycle):
        learner = factory.user()
        schedule = factory.schedule()
        enrollment = factory.schedule_enrollment(learner, schedule, status="cancelled")
        with pytest.raises(InvalidState):
            lifecycle.cancel_schedule_enrollment(enrollment.id)
