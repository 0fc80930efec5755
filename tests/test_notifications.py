"""
Tests for the notification sender.

Tests cover:
- In-app notification row written with rendered templates
- Email skipped without a SendGrid key, sent with one
- Email failures recorded, never raised
"""

from sqlalchemy import select

from app.core.config import settings
from app.models.notification import Notification
from app.services import notification_service
from app.services.notification_service import NotificationSender


class _FakeSendGrid:
    sent = []

    def __init__(self, api_key):
        self.api_key = api_key

    def send(self, message):
        self.sent.append(message)


class _BrokenSendGrid(_FakeSendGrid):
    def send(self, message):
        raise RuntimeError("401 Unauthorized")


def _notifications(db, user_id):
    return db.execute(select(Notification).where(Notification.user_id == user_id)).scalars().all()


class TestNotificationSender:
    def test_writes_in_app_notification(self, db_session, factory):
        learner = factory.user()
        NotificationSender(db_session).notify(learner.id, "purchase_completed", {
            "title": "Live Q&A",
            "action_url": "/live-sessions/abc",
        })

        [row] = _notifications(db_session, learner.id)
        assert row.notification_type == "purchase_completed"
        assert row.title == "You're in: Live Q&A"
        assert row.action_url == "/live-sessions/abc"
        assert row.email_sent is False

    def test_sale_notification_formats_amount(self, db_session, factory):
        instructor = factory.user(role="instructor")
        NotificationSender(db_session).notify(instructor.id, "session_sale", {"title": "Live Q&A", "amount_paise": 49900})
        [row] = _notifications(db_session, instructor.id)
        assert "₹499.00" in row.body

    def test_sends_email_with_key(self, db_session, factory, monkeypatch):
        monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test")
        monkeypatch.setattr(notification_service.sendgrid, "SendGridAPIClient", _FakeSendGrid)
        _FakeSendGrid.sent = []
        learner = factory.user()

        NotificationSender(db_session).notify(learner.id, "purchase_refunded", {"title": "Live Q&A"})

        [row] = _notifications(db_session, learner.id)
        assert row.email_sent is True
        assert row.email_sent_at is not None
        assert len(_FakeSendGrid.sent) == 1

    def test_email_failure_is_recorded(self, db_session, factory, monkeypatch):
        monkeypatch.setattr(settings, "sendgrid_api_key", "SG.test")
        monkeypatch.setattr(notification_service.sendgrid, "SendGridAPIClient", _BrokenSendGrid)
        learner = factory.user()

        NotificationSender(db_session).notify(learner.id, "purchase_completed", {"title": "Live Q&A"})

        [row] = _notifications(db_session, learner.id)
        assert row.email_sent is False
        assert "401" in row.email_error

    def test_unknown_kind_does_not_raise(self, db_session, factory):
        learner = factory.user()
        NotificationSender(db_session).notify(learner.id, "no_such_kind", {})
        assert _notifications(db_session, learner.id) == []
