# app/models/subscription.py
# Subscription plans, learner subscriptions, and payment audit trail
# Razorpay manages the billing; we mirror state via webhooks

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class Plan(Base):
    """
    Subscription plan catalogue.
    Seeded by the billing service -- not user-created.
    """
    __tablename__ = "plans"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String(50), unique=True, nullable=False)   # Basic | Plus | Pro
    slug = Column(String(50), unique=True, nullable=False)

    # ── Pricing (paise -- smallest INR unit, like cents) ──────────────────────
    price_monthly_paise = Column(Integer, nullable=False, default=0)

    # ── Features ──────────────────────────────────────────────────────────────
    # Only plans with this flag unlock paid / subscription-only live sessions
    grants_live_access = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    subscriptions = relationship("Subscription", back_populates="plan")

    def __repr__(self) -> str:
        return f"<Plan name={self.name} live={self.grants_live_access}>"


class Subscription(Base):
    """
    A learner's platform subscription.
    Status is mirrored from the billing provider -- never set by this core.

    Only counts for live access while status is active/trialing AND
    current_period_end is still in the future.
    """
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id = Column(
        Uuid(as_uuid=True), ForeignKey("plans.id"), nullable=False
    )

    # ── Status ────────────────────────────────────────────────────────────────
    status = Column(
        Enum(
            "pending",    # Created, payment not yet completed
            "trialing",   # Free trial running
            "active",     # Paid and active
            "past_due",   # Provider retrying a failed charge
            "cancelled",  # Learner cancelled
            "expired",    # End of subscription period
            name="subscription_status_enum",
        ),
        nullable=False,
        default="pending",
        index=True,
    )

    razorpay_subscription_id = Column(String(255), unique=True, nullable=True, index=True)

    # ── Dates ─────────────────────────────────────────────────────────────────
    current_period_start = Column(UTCDateTime, nullable=True)
    current_period_end = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="subscriptions")
    plan = relationship("Plan", back_populates="subscriptions")

    def __repr__(self) -> str:
        return f"<Subscription user={self.user_id} plan={self.plan_id} status={self.status}>"


class Payment(Base):
    """
    Audit trail for every charge attempt behind a session purchase or
    schedule enrollment. Status moves pending -> captured | failed, and
    captured -> refunded.
    """
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # ── What was bought ───────────────────────────────────────────────────────
    purpose = Column(
        Enum("session", "schedule", name="payment_purpose_enum"),
        nullable=False,
    )

    # ── Amount ────────────────────────────────────────────────────────────────
    amount_paise = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    # ── Status ────────────────────────────────────────────────────────────────
    status = Column(
        Enum("pending", "captured", "failed", "refunded", name="payment_status_enum"),
        nullable=False,
        default="pending",
    )

    # ── Provider ──────────────────────────────────────────────────────────────
    provider_reference = Column(String(255), unique=True, nullable=True, index=True)
    failure_reason = Column(Text, nullable=True)

    # ── Raw event (for debugging / disputes) ──────────────────────────────────
    webhook_payload = Column(JSON, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    completed_at = Column(UTCDateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Payment id={self.id} amount=₹{self.amount_paise // 100} status={self.status}>"
