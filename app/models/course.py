# app/models/course.py
# Courses and learner course enrollments
# Course CRUD lives elsewhere -- this core only reads enrollment status.

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class Course(Base):
    __tablename__ = "courses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    price_paise = Column(Integer, nullable=False, default=0)   # 0 = free course
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    enrollments = relationship("CourseEnrollment", back_populates="course")
    live_sessions = relationship("LiveSession", back_populates="course")

    def __repr__(self) -> str:
        return f"<Course title={self.title!r}>"


class CourseEnrollment(Base):
    """
    Learner <-> Course.
    Grants access to every live session the course owns, but only while
    status='active'. Suspended / cancelled rows are kept for history.
    """
    __tablename__ = "course_enrollments"
    __table_args__ = (
        UniqueConstraint("learner_id", "course_id", name="uq_course_enrollment_pair"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    learner_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = Column(
        Enum(
            "active",
            "suspended",
            "completed",
            "cancelled",
            name="course_enrollment_status_enum",
        ),
        nullable=False,
        default="active",
        index=True,
    )

    enrolled_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # ── Relationships ─────────────────────────────────────────────────────────
    learner = relationship("User", back_populates="course_enrollments")
    course = relationship("Course", back_populates="enrollments")

    def __repr__(self) -> str:
        return f"<CourseEnrollment learner={self.learner_id} course={self.course_id} status={self.status}>"
