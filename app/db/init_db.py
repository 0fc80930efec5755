# app/db/init_db.py
# Seed local development data
# Run once after migrations: python -m app.db.init_db
#
# Creates:
#   1. Subscription plans (Basic without live access, Plus / Pro with it)
#   2. Demo instructor, course and two live sessions (one free, one paid)
#
# Safe to run repeatedly -- existing rows are left alone.

from datetime import datetime, timedelta, timezone

import app.db.base  # noqa: F401
from app.core.config import settings
from app.db.session import SessionLocal
from app.models.course import Course
from app.models.live_session import LiveSession
from app.models.subscription import Plan
from app.models.user import User

DEMO_INSTRUCTOR_EMAIL = "instructor@liveroom.app"
DEMO_COURSE_TITLE = "Python Basics"

PLANS = [
    {
        "name": "Basic",
        "slug": "basic",
        "price_monthly_paise": 49900,        # 499 rupees
        "grants_live_access": False,
        "description": "Recorded lessons only.",
    },
    {
        "name": "Plus",
        "slug": "plus",
        "price_monthly_paise": 99900,        # 999 rupees
        "grants_live_access": True,
        "description": "Recorded lessons plus every live session.",
    },
    {
        "name": "Pro",
        "slug": "pro",
        "price_monthly_paise": 149900,       # 1499 rupees
        "grants_live_access": True,
        "description": "Everything in Plus with priority support.",
    },
]


def seed_plans(db) -> int:
    """Create the plan catalogue. Returns the number of plans created."""
    created = 0
    for plan_data in PLANS:
        existing = db.query(Plan).filter(Plan.slug == plan_data["slug"]).first()
        if existing:
            print(f"  Plan already exists: {plan_data['name']}")
            continue
        db.add(Plan(**plan_data))
        created += 1
        print(f"  Plan created: {plan_data['name']} (Rs.{plan_data['price_monthly_paise'] // 100}/month)")
    db.flush()
    return created


def seed_demo_course(db, now: datetime) -> Course:
    """Demo instructor + course with a free and a paid session next week."""
    instructor = db.query(User).filter(User.email == DEMO_INSTRUCTOR_EMAIL).first()
    if instructor is None:
        instructor = User(email=DEMO_INSTRUCTOR_EMAIL, full_name="Demo Instructor", role="instructor")
        db.add(instructor)
        db.flush()
        print(f"  Instructor created: {DEMO_INSTRUCTOR_EMAIL}")

    course = db.query(Course).filter(Course.title == DEMO_COURSE_TITLE).first()
    if course is not None:
        print(f"  Course already exists: {DEMO_COURSE_TITLE}")
        return course

    course = Course(title=DEMO_COURSE_TITLE, price_paise=0)
    db.add(course)
    db.flush()

    start = (now + timedelta(days=7)).replace(hour=10, minute=0, second=0, microsecond=0)
    sessions = [
        dict(title="Orientation", pricing_type="free", price_paise=0, is_free_for_all=True),
        dict(title="Live Q&A", pricing_type="paid", price_paise=49900, max_participants=50),
    ]
    for i, extra in enumerate(sessions):
        session_start = start + timedelta(days=i)
        db.add(LiveSession(
            course_id=course.id,
            instructor_id=instructor.id,
            meeting_url=f"https://meet.example.com/demo-{i + 1}",
            scheduled_start=session_start,
            scheduled_end=session_start + timedelta(minutes=60),
            duration_minutes=60,
            currency=settings.default_currency,
            **extra,
        ))
    db.flush()
    print(f"  Course created: {DEMO_COURSE_TITLE} ({len(sessions)} sessions)")
    return course


def init_db() -> None:
    print("Seeding database...")
    db = SessionLocal()
    try:
        print("\n[1/2] Subscription plans")
        seed_plans(db)

        print("\n[2/2] Demo course")
        seed_demo_course(db, datetime.now(timezone.utc))

        db.commit()
        print("\nDone. Database seeded successfully.")
    except Exception as e:
        db.rollback()
        print(f"\nERROR: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    init_db()
