# app/models/notification.py
# In-app notification record for live-session events

import uuid

from sqlalchemy import JSON, Boolean, Column, Enum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class Notification(Base):
    """
    In-app notification for a user.
    Created by notification_service.py after purchases commit.
    Email delivery is best-effort via SendGrid; failures land in email_error.
    """
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # ── Type ──────────────────────────────────────────────────────────────────
    notification_type = Column(
        Enum(
            "purchase_completed",   # Learner bought a session or schedule
            "session_sale",         # Instructor sold a seat
            "purchase_refunded",    # Learner's purchase refunded
            "enrollment_cancelled", # Learner's schedule enrollment cancelled
            name="notification_type_enum",
        ),
        nullable=False,
        index=True,
    )

    # ── Content ───────────────────────────────────────────────────────────────
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    action_url = Column(String(512), nullable=True)           # e.g. "/live-sessions/abc123"

    # Named extra_data (not metadata -- reserved by SQLAlchemy)
    extra_data = Column(JSON, nullable=True)
    # Examples:
    #   purchase_completed:  {"session_id": "...", "purchase_id": "..."}
    #   session_sale:        {"session_id": "...", "amount_paise": 49900}

    # ── Read Status ───────────────────────────────────────────────────────────
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(UTCDateTime, nullable=True)

    # ── Email Delivery ────────────────────────────────────────────────────────
    email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(UTCDateTime, nullable=True)
    email_error = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)

    # ── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="notifications")

    def __repr__(self) -> str:
        return (
            f"<Notification user={self.user_id} "
            f"type={self.notification_type} read={self.is_read}>"
        )
