# app/services/notification_service.py
# Creates in-app notifications and sends emails via SendGrid
#
# Usage (after the purchase transaction has committed):
#   notifier = NotificationSender(db)
#   notifier.notify(learner_id, "purchase_completed",
#                   {"title": "Python Basics -- Live Q&A", "session_id": "..."})
#
# Notifications are fire-and-forget: any failure is logged and swallowed
# here so a broken mail provider can never undo a completed purchase.

import logging
from typing import Any, Dict, Optional, Protocol, Tuple
from uuid import UUID

import sendgrid
from fastapi import Depends
from sendgrid.helpers.mail import Mail
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.db.types import utcnow
from app.models.notification import Notification
from app.models.user import User

log = logging.getLogger(__name__)


# ── Notification Types ────────────────────────────────────────────────────────
# kind -> (title template, body template); formatted with the payload dict
TEMPLATES: Dict[str, Any] = {
    "purchase_completed": (
        "You're in: {title}",
        "Your purchase of {title} is confirmed. Join from the session page when it starts.",
    ),
    "session_sale": (
        "New seat sold: {title}",
        "A learner just bought {title} for {amount}.",
    ),
    "purchase_refunded": (
        "Refund processed: {title}",
        "Your purchase of {title} was refunded and access has been removed.",
    ),
    "enrollment_cancelled": (
        "Enrollment cancelled: {title}",
        "Your enrollment in {title} was cancelled.",
    ),
}

# Which types also send an email
EMAIL_TYPES = {
    "purchase_completed",
    "purchase_refunded",
    "enrollment_cancelled",
}


class Notifier(Protocol):
    def notify(self, user_id: UUID, kind: str, payload: Dict[str, Any]) -> None:
        ...


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return ""


def _render(kind: str, payload: Dict[str, Any]) -> Tuple[str, str]:
    title_tpl, body_tpl = TEMPLATES[kind]
    values = _SafeDict(payload)
    if "amount_paise" in payload:
        values["amount"] = f"₹{payload['amount_paise'] / 100:.2f}"
    return title_tpl.format_map(values), body_tpl.format_map(values)


class NotificationSender:
    def __init__(self, db: Session):
        self.db = db

    def notify(self, user_id: Optional[UUID], kind: str, payload: Dict[str, Any]) -> None:
        """
        Create an in-app notification and, for EMAIL_TYPES, send an email.
        Never raises.
        """
        if user_id is None:
            return
        try:
            title, body = _render(kind, payload)
            notification = Notification(
                user_id=user_id,
                notification_type=kind,
                title=title,
                body=body,
                action_url=payload.get("action_url"),
                extra_data={k: str(v) for k, v in payload.items()},
                is_read=False,
            )
            self.db.add(notification)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            log.error("Notification %s for user %s failed: %s", kind, user_id, e)
            return

        if kind in EMAIL_TYPES:
            try:
                self._send_email(notification, title, body)
            except Exception as e:
                # Email failure should never block the main flow
                log.warning("Email notification failed for user %s: %s", user_id, e)
                notification.email_error = str(e)[:1000]
                self.db.commit()

    def _send_email(self, notification: Notification, subject: str, body: str) -> None:
        """
        Send email via SendGrid.
        No-op in dev mode if SENDGRID_API_KEY is not configured.
        """
        if not settings.sendgrid_api_key:
            log.debug("[DEV] Email skipped (no SendGrid key): %s", subject)
            return

        user = self.db.get(User, notification.user_id)
        if not user or not user.email:
            return

        sg = sendgrid.SendGridAPIClient(api_key=settings.sendgrid_api_key)
        message = Mail(
            from_email=(settings.email_from, settings.email_from_name),
            to_emails=user.email,
            subject=f"{settings.app_name}: {subject}",
            plain_text_content=body,
            html_content=_build_email_html(user.full_name, subject, body),
        )
        sg.send(message)

        notification.email_sent = True
        notification.email_sent_at = utcnow()
        self.db.commit()
        log.info("Email sent to %s: %s", user.email, subject)


def _build_email_html(full_name: str, subject: str, body: str) -> str:
    """Simple HTML email template."""
    return f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: auto; padding: 20px;">
    <div style="background: #2563eb; padding: 20px; border-radius: 8px 8px 0 0;">
        <h1 style="color: white; margin: 0;">{settings.app_name}</h1>
    </div>
    <div style="background: #fff; padding: 24px; border: 1px solid #e5e7eb; border-radius: 0 0 8px 8px;">
        <p>Hi {full_name},</p>
        <h2 style="color: #1f2937;">{subject}</h2>
        <p style="color: #4b5563; line-height: 1.6;">{body}</p>
    </div>
</body>
</html>
"""


def get_notifier(db: Session = Depends(get_db)) -> Notifier:
    """FastAPI dependency -- override in tests with a recording notifier."""
    return NotificationSender(db)
