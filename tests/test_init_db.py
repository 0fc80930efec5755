"""
Tests for the local development seed.
"""

from app.db.init_db import PLANS, seed_demo_course, seed_plans
from app.models.live_session import LiveSession
from app.models.subscription import Plan


class TestSeed:
    def test_plans_created_once(self, db_session):
        assert seed_plans(db_session) == len(PLANS)
        assert seed_plans(db_session) == 0
        db_session.commit()

        live = {p.slug for p in db_session.query(Plan).filter(Plan.grants_live_access.is_(True))}
        assert live == {"plus", "pro"}

    def test_demo_course_is_idempotent(self, db_session, clock):
        first = seed_demo_course(db_session, clock.now())
        second = seed_demo_course(db_session, clock.now())
        db_session.commit()

        assert first.id == second.id
        sessions = db_session.query(LiveSession).filter(LiveSession.course_id == first.id).all()
        assert sorted(s.pricing_type for s in sessions) == ["free", "paid"]
        assert all(s.scheduled_start > clock.now() for s in sessions)
