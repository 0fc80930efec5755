# app/models/purchase.py
# Individual live-session purchases and whole-schedule enrollments
#
# Both rows follow the same lifecycle:
#   pending -> active    (payment captured, or free)
#   pending -> failed    (payment declined)
#   active  -> refunded / cancelled
# At most one pending-or-active row may exist per (learner, target); the
# partial unique indexes below enforce that at the storage level.

import uuid

from sqlalchemy import (
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow

_OPEN_STATUSES = text("status IN ('pending', 'active')")


class SessionPurchase(Base):
    __tablename__ = "session_purchases"
    __table_args__ = (
        Index(
            "uq_session_purchase_open",
            "learner_id",
            "session_id",
            unique=True,
            postgresql_where=_OPEN_STATUSES,
            sqlite_where=_OPEN_STATUSES,
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    learner_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("live_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
    )

    # ── Amount (captured at purchase time) ────────────────────────────────────
    amount_paise = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")

    status = Column(
        Enum("pending", "active", "refunded", "failed", name="session_purchase_status_enum"),
        nullable=False,
        default="pending",
        index=True,
    )

    purchased_at = Column(UTCDateTime, nullable=False, default=utcnow)
    activated_at = Column(UTCDateTime, nullable=True)
    refunded_at = Column(UTCDateTime, nullable=True)

    # ── Relationships ─────────────────────────────────────────────────────────
    session = relationship("LiveSession")
    payment = relationship("Payment")

    def __repr__(self) -> str:
        return f"<SessionPurchase learner={self.learner_id} session={self.session_id} status={self.status}>"


class ScheduleEnrollment(Base):
    __tablename__ = "schedule_enrollments"
    __table_args__ = (
        Index(
            "uq_schedule_enrollment_open",
            "learner_id",
            "schedule_id",
            unique=True,
            postgresql_where=_OPEN_STATUSES,
            sqlite_where=_OPEN_STATUSES,
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    learner_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    schedule_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("live_session_schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("payments.id", ondelete="SET NULL"),
        nullable=True,
    )

    amount_paise = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")

    status = Column(
        Enum(
            "pending",
            "active",
            "cancelled",
            "expired",
            "failed",
            name="schedule_enrollment_status_enum",
        ),
        nullable=False,
        default="pending",
        index=True,
    )

    enrolled_at = Column(UTCDateTime, nullable=False, default=utcnow)
    activated_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    # ── Relationships ─────────────────────────────────────────────────────────
    schedule = relationship("Schedule", back_populates="enrollments")
    payment = relationship("Payment")

    def __repr__(self) -> str:
        return f"<ScheduleEnrollment learner={self.learner_id} schedule={self.schedule_id} status={self.status}>"
