# app/models/live_session.py
# Scheduled live sessions, schedule bundles, seat ledger, per-learner
# attendance records and session recordings

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class Schedule(Base):
    """
    A bundle of ordered live sessions sold as one entitlement unit.
    One ScheduleEnrollment grants every session inside it.
    """
    __tablename__ = "live_session_schedules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("courses.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    instructor_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # ── Pricing & sales ───────────────────────────────────────────────────────
    price_paise = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    enrolled_count = Column(Integer, nullable=False, default=0)
    total_revenue_paise = Column(Integer, nullable=False, default=0)
    max_students = Column(Integer, nullable=True)              # Null = unlimited

    # ── Status ────────────────────────────────────────────────────────────────
    status = Column(
        Enum(
            "draft",
            "published",
            "active",
            "completed",
            "cancelled",
            name="schedule_status_enum",
        ),
        nullable=False,
        default="draft",
        index=True,
    )
    is_published = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    sessions = relationship(
        "LiveSession", back_populates="schedule", order_by="LiveSession.schedule_order"
    )
    enrollments = relationship("ScheduleEnrollment", back_populates="schedule")

    def __repr__(self) -> str:
        return f"<Schedule title={self.title!r} status={self.status}>"


class LiveSession(Base):
    """
    A scheduled live class.

    CRITICAL -- meeting link gating:
        meeting_url stores the raw link.
        The API only returns it to learners the resolver has granted.
        This model does NOT enforce access -- app.services.entitlement does.

    Owned by the instructor-side subsystem; this core only bumps the sales
    counters (purchase_count, total_revenue_paise).
    """
    __tablename__ = "live_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    schedule_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("live_session_schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    schedule_order = Column(Integer, nullable=False, default=0)
    instructor_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # ── Details ───────────────────────────────────────────────────────────────
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    meeting_url = Column(String(512), nullable=True)

    # ── Schedule ──────────────────────────────────────────────────────────────
    scheduled_start = Column(UTCDateTime, nullable=False, index=True)
    scheduled_end = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    # ── Status ────────────────────────────────────────────────────────────────
    status = Column(
        Enum(
            "scheduled",   # Not yet started
            "live",        # Instructor started it
            "completed",   # Ended
            "cancelled",   # Instructor cancelled
            name="live_session_status_enum",
        ),
        nullable=False,
        default="scheduled",
        index=True,
    )

    # ── Pricing ───────────────────────────────────────────────────────────────
    pricing_type = Column(
        Enum("free", "paid", "subscription_only", name="live_session_pricing_enum"),
        nullable=False,
        default="free",
    )
    price_paise = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    is_free_for_all = Column(Boolean, nullable=False, default=False)

    # ── Capacity ──────────────────────────────────────────────────────────────
    max_participants = Column(Integer, nullable=True)          # Null = unlimited

    # ── Sales counters ────────────────────────────────────────────────────────
    purchase_count = Column(Integer, nullable=False, default=0)
    total_revenue_paise = Column(Integer, nullable=False, default=0)

    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    course = relationship("Course", back_populates="live_sessions")
    schedule = relationship("Schedule", back_populates="sessions")
    attendances = relationship("Attendance", back_populates="session")
    recordings = relationship("Recording", back_populates="session")
    seats = relationship("SessionSeats", back_populates="session", uselist=False)

    @property
    def is_joinable(self) -> bool:
        return self.status in ("scheduled", "live")

    def __repr__(self) -> str:
        return f"<LiveSession title={self.title!r} status={self.status} pricing={self.pricing_type}>"


class SessionSeats(Base):
    """
    Seat ledger -- one row per live session.

    present_count mirrors the number of learners currently in the room
    (joined_at set, left_at unset).
    It is only ever moved by a conditional UPDATE inside the join unit of
    work, which is what serialises concurrent joiners on the last seat.
    """
    __tablename__ = "live_session_seats"
    __table_args__ = (
        CheckConstraint("present_count >= 0", name="ck_seats_present_non_negative"),
    )

    session_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("live_sessions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    present_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    session = relationship("LiveSession", back_populates="seats")

    def __repr__(self) -> str:
        return f"<SessionSeats session={self.session_id} present={self.present_count}>"


class Attendance(Base):
    """
    Per-learner attendance record for one live session.

    Exactly one row per (session, learner): repeated joins update it.
    Never deleted by the learner -- retained for audit and statistics.
    attendance_status / late_minutes / early_leave_minutes / score are
    derived from the timestamps and recomputed on every join and leave.
    """
    __tablename__ = "live_session_attendances"
    __table_args__ = (
        UniqueConstraint("session_id", "learner_id", name="uq_attendance_session_learner"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("live_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    learner_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # ── Presence ──────────────────────────────────────────────────────────────
    is_present = Column(Boolean, nullable=False, default=False)   # Set on first join, never cleared
    first_joined_at = Column(UTCDateTime, nullable=True)
    joined_at = Column(UTCDateTime, nullable=True)            # Latest join
    left_at = Column(UTCDateTime, nullable=True)
    accumulated_minutes = Column(Integer, nullable=False, default=0)   # Closed cycles
    duration_minutes = Column(Integer, nullable=False, default=0)      # Total time in session

    # ── Derived detail ────────────────────────────────────────────────────────
    attendance_status = Column(
        Enum("present", "late", "absent", "excused", name="attendance_status_enum"),
        nullable=True,
    )
    late_minutes = Column(Integer, nullable=False, default=0)
    early_leave_minutes = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0.0)        # 0-100, reporting only

    # ── Excuse / manual marking ───────────────────────────────────────────────
    excuse_reason = Column(Text, nullable=True)
    excuse_approved = Column(Boolean, nullable=False, default=False)
    marked_by_instructor = Column(Boolean, nullable=False, default=False)

    # ── Device ────────────────────────────────────────────────────────────────
    device_type = Column(String(255), nullable=True)
    ip_address = Column(String(64), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    session = relationship("LiveSession", back_populates="attendances")
    learner = relationship("User", back_populates="attendances")

    def __repr__(self) -> str:
        return (
            f"<Attendance session={self.session_id} learner={self.learner_id} "
            f"present={self.is_present} status={self.attendance_status}>"
        )


class Recording(Base):
    """
    On-demand recording of a live session.
    access_requires_purchase=False -> anyone may watch.
    """
    __tablename__ = "live_session_recordings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("live_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(255), nullable=False)
    video_url = Column(String(1024), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=0)

    is_published = Column(Boolean, nullable=False, default=False)
    access_requires_purchase = Column(Boolean, nullable=False, default=True)
    view_count = Column(Integer, nullable=False, default=0)

    recorded_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    session = relationship("LiveSession", back_populates="recordings")

    def __repr__(self) -> str:
        return f"<Recording title={self.title!r} views={self.view_count}>"
