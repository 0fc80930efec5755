# app/models/user.py
# Minimal identity record for learners, instructors and admins
# Accounts are owned by the upstream identity service; this table mirrors
# the fields the live-session core needs (FK target, notification email).

import uuid

from sqlalchemy import Boolean, Column, Enum, String, Uuid
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # ── Identity ──────────────────────────────────────────────────────────────
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)

    # ── Role ──────────────────────────────────────────────────────────────────
    role = Column(
        Enum("learner", "instructor", "admin", name="user_role_enum"),
        nullable=False,
        default="learner",
    )

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    subscriptions = relationship("Subscription", back_populates="user")
    course_enrollments = relationship("CourseEnrollment", back_populates="learner")
    attendances = relationship("Attendance", back_populates="learner")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
