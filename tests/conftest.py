"""
Root test configuration and fixtures.

Provides:
- db_engine / db_session: fresh in-memory SQLite database per test
- factory: builders for users, courses, sessions, schedules, subscriptions
- clock: FixedClock pinned to the default session start
- processor / notifier: fakes for the payment processor and notification sender
- client: FastAPI TestClient wired to the test database and fakes
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional, Tuple

# Settings are read at import time -- point them at a throwaway database first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.db.base  # noqa: F401, E402
from app.core.clock import FixedClock  # noqa: E402
from app.db.base_class import Base  # noqa: E402
from app.models.course import Course, CourseEnrollment  # noqa: E402
from app.models.live_session import LiveSession, Recording, Schedule  # noqa: E402
from app.models.purchase import ScheduleEnrollment, SessionPurchase  # noqa: E402
from app.models.subscription import Plan, Subscription  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.razorpay_service import ChargeResult  # noqa: E402

SESSION_START = datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    """SQLite in-memory, one shared connection so every Session sees the same data."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Time & collaborators
# =============================================================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(SESSION_START)


class FakeProcessor:
    """Payment processor double. Succeeds unless told otherwise."""

    def __init__(self):
        self.charges: List[Tuple[int, str, Dict[str, Any]]] = []
        self.next_result: Optional[ChargeResult] = None

    def decline(self, error: str = "Card declined") -> None:
        self.next_result = ChargeResult(success=False, error=error)

    def hold(self, reference: str = "order_test_1") -> None:
        self.next_result = ChargeResult(success=False, pending=True, reference=reference)

    def create_charge(self, amount_paise: int, currency: str, customer: Dict[str, Any]) -> ChargeResult:
        self.charges.append((amount_paise, currency, customer))
        if self.next_result is not None:
            return self.next_result
        return ChargeResult(success=True, reference=f"pay_test_{len(self.charges)}")


class RecordingNotifier:
    """Notification double that remembers every call (optionally failing)."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[Any, str, Dict[str, Any]]] = []
        self.fail = fail

    def notify(self, user_id, kind: str, payload: Dict[str, Any]) -> None:
        self.sent.append((user_id, kind, payload))
        if self.fail:
            raise RuntimeError("mail provider down")

    def kinds(self) -> List[str]:
        return [kind for _, kind, _ in self.sent]


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# Factories
# =============================================================================

class Factory:
    def __init__(self, db: Session):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(self, role: str = "learner", **kwargs) -> User:
        tag = uuid.uuid4().hex[:8]
        defaults = dict(email=f"{role}-{tag}@example.com", full_name=f"{role.title()} {tag}", role=role)
        defaults.update(kwargs)
        return self._save(User(**defaults))

    def course(self, **kwargs) -> Course:
        defaults = dict(title="Python Basics", price_paise=0)
        defaults.update(kwargs)
        return self._save(Course(**defaults))

    def enroll_in_course(self, learner: User, course: Course, status: str = "active") -> CourseEnrollment:
        return self._save(CourseEnrollment(learner_id=learner.id, course_id=course.id, status=status))

    def live_session(self, course: Optional[Course] = None, **kwargs) -> LiveSession:
        course = course or self.course()
        start = kwargs.pop("scheduled_start", SESSION_START)
        duration = kwargs.pop("duration_minutes", 60)
        defaults = dict(
            course_id=course.id,
            title="Live Q&A",
            meeting_url="https://meet.example.com/abc-defg-hij",
            scheduled_start=start,
            scheduled_end=start + timedelta(minutes=duration),
            duration_minutes=duration,
            status="scheduled",
            pricing_type="paid",
            price_paise=49900,
            currency="INR",
            is_free_for_all=False,
        )
        defaults.update(kwargs)
        return self._save(LiveSession(**defaults))

    def schedule(self, course: Optional[Course] = None, sessions: int = 0, **kwargs) -> Schedule:
        course = course or self.course()
        defaults = dict(
            course_id=course.id,
            title="Ten-week bootcamp",
            price_paise=199900,
            currency="INR",
            status="published",
            is_published=True,
        )
        defaults.update(kwargs)
        schedule = self._save(Schedule(**defaults))
        for i in range(sessions):
            self.live_session(
                course=course,
                schedule_id=schedule.id,
                schedule_order=i + 1,
                title=f"Week {i + 1}",
                scheduled_start=SESSION_START + timedelta(days=7 * i),
            )
        return schedule

    def session_purchase(self, learner: User, session: LiveSession, status: str = "active") -> SessionPurchase:
        return self._save(SessionPurchase(
            learner_id=learner.id,
            session_id=session.id,
            amount_paise=session.price_paise,
            status=status,
        ))

    def schedule_enrollment(self, learner: User, schedule: Schedule, status: str = "active") -> ScheduleEnrollment:
        return self._save(ScheduleEnrollment(
            learner_id=learner.id,
            schedule_id=schedule.id,
            amount_paise=schedule.price_paise,
            status=status,
        ))

    def plan(self, grants_live_access: bool = True, **kwargs) -> Plan:
        tag = uuid.uuid4().hex[:6]
        defaults = dict(
            name=f"Pro {tag}",
            slug=f"pro-{tag}",
            price_monthly_paise=99900,
            grants_live_access=grants_live_access,
        )
        defaults.update(kwargs)
        return self._save(Plan(**defaults))

    def subscription(
        self,
        learner: User,
        status: str = "active",
        period_end: Optional[datetime] = None,
        plan: Optional[Plan] = None,
    ) -> Subscription:
        plan = plan or self.plan()
        return self._save(Subscription(
            user_id=learner.id,
            plan_id=plan.id,
            status=status,
            current_period_start=SESSION_START - timedelta(days=15),
            current_period_end=period_end or SESSION_START + timedelta(days=15),
        ))

    def recording(self, session: LiveSession, **kwargs) -> Recording:
        defaults = dict(
            session_id=session.id,
            title=f"{session.title} (recording)",
            video_url="https://cdn.example.com/rec/abc.m3u8",
            duration_minutes=58,
            is_published=True,
            access_requires_purchase=True,
        )
        defaults.update(kwargs)
        return self._save(Recording(**defaults))


@pytest.fixture
def factory(db_session) -> Factory:
    return Factory(db_session)


@pytest.fixture
def factory_for():
    """Factory bound to any Session, e.g. one on a file-backed engine."""
    return Factory


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def client(session_factory, clock, processor, notifier):
    """TestClient with DB, clock, processor and notifier overridden. Lifespan not run."""
    from fastapi.testclient import TestClient

    from app.core.clock import get_clock
    from app.db.session import get_db
    from app.main import app
    from app.services.notification_service import get_notifier
    from app.services.razorpay_service import get_payment_processor

    def _get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_processor] = lambda: processor
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from app.core.security import create_access_token

    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}

    return _headers
