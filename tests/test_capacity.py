"""
Tests for the capacity guard and the join path it protects.

Tests cover:
- Conditional seat reservation up to max_participants
- Unlimited sessions
- Seat release on leave
- Three concurrent joiners racing for two seats (file-backed SQLite)
- Free-for-all sessions still capacity-guarded
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import SessionFull
from app.db.base_class import Base
from app.db.session import build_engine
from app.models.live_session import Attendance
from app.services.capacity import CapacityGuard
from app.services.live_sessions import LiveSessionService


class TestCapacityGuard:
    def test_reserves_up_to_limit(self, db_session, factory):
        session = factory.live_session(max_participants=2)
        guard = CapacityGuard(db_session)
        guard.ensure_ledger(session.id)

        assert guard.try_reserve_slot(session.id)
        assert guard.try_reserve_slot(session.id)
        assert not guard.try_reserve_slot(session.id)
        db_session.commit()
        assert guard.present_count(session.id) == 2

    def test_unlimited_always_reserves(self, db_session, factory):
        session = factory.live_session(max_participants=None)
        guard = CapacityGuard(db_session)
        guard.ensure_ledger(session.id)

        assert all(guard.try_reserve_slot(session.id) for _ in range(25))
        db_session.commit()
        assert guard.present_count(session.id) == 25

    def test_ensure_ledger_is_idempotent(self, db_session, factory):
        session = factory.live_session()
        guard = CapacityGuard(db_session)
        guard.ensure_ledger(session.id)
        guard.ensure_ledger(session.id)
        assert guard.present_count(session.id) == 0

    def test_rollback_releases_reservation(self, db_session, factory):
        session = factory.live_session(max_participants=1)
        guard = CapacityGuard(db_session)
        guard.ensure_ledger(session.id)

        assert guard.try_reserve_slot(session.id)
        db_session.rollback()
        assert guard.present_count(session.id) == 0
        assert guard.try_reserve_slot(session.id)

    def test_release_never_goes_negative(self, db_session, factory):
        session = factory.live_session()
        guard = CapacityGuard(db_session)
        guard.ensure_ledger(session.id)
        guard.release_slot(session.id)
        db_session.commit()
        assert guard.present_count(session.id) == 0


class TestJoinCapacity:
    def test_third_joiner_rejected(self, db_session, factory, clock):
        session = factory.live_session(is_free_for_all=True, max_participants=2)
        learners = [factory.user() for _ in range(3)]
        service = LiveSessionService(db_session, clock)

        service.join(learners[0].id, session.id)
        service.join(learners[1].id, session.id)
        with pytest.raises(SessionFull):
            service.join(learners[2].id, session.id)

        present = db_session.scalar(
            select(func.count()).select_from(Attendance).where(
                Attendance.session_id == session.id, Attendance.is_present.is_(True)
            )
        )
        assert present == 2
        assert service.tracker.get(session.id, learners[2].id) is None

    def test_leave_frees_seat(self, db_session, factory, clock):
        session = factory.live_session(is_free_for_all=True, max_participants=1)
        first, second = factory.user(), factory.user()
        service = LiveSessionService(db_session, clock)

        service.join(first.id, session.id)
        with pytest.raises(SessionFull):
            service.join(second.id, session.id)

        clock.advance(minutes=5)
        service.leave(first.id, session.id)
        service.join(second.id, session.id)
        assert service.capacity.present_count(session.id) == 1

    def test_repeat_join_does_not_take_second_seat(self, db_session, factory, clock):
        session = factory.live_session(is_free_for_all=True, max_participants=1)
        learner = factory.user()
        service = LiveSessionService(db_session, clock)

        service.join(learner.id, session.id)
        clock.advance(minutes=3)
        service.join(learner.id, session.id)
        assert service.capacity.present_count(session.id) == 1


class TestConcurrentJoin:
    def test_three_joiners_two_seats(self, tmp_path, clock, factory_for):
        """Real threads on a file-backed database: exactly two joiners win."""
        engine = build_engine(f"sqlite:///{tmp_path / 'seats.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        seed = Session()
        factory = factory_for(seed)
        course = factory.course()
        session = factory.live_session(course=course, max_participants=2)
        learners = [factory.user() for _ in range(3)]
        for learner in learners:
            factory.enroll_in_course(learner, course)
        CapacityGuard(seed).ensure_ledger(session.id)
        session_id, learner_ids = session.id, [learner.id for learner in learners]
        seed.close()

        barrier = threading.Barrier(len(learner_ids))

        def attempt(learner_id):
            db = Session()
            try:
                barrier.wait(timeout=10)
                LiveSessionService(db, clock).join(learner_id, session_id)
                return "joined"
            except SessionFull:
                return "full"
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=len(learner_ids)) as pool:
            outcomes = list(pool.map(attempt, learner_ids))

        assert sorted(outcomes) == ["full", "joined", "joined"]

        check = Session()
        try:
            assert CapacityGuard(check).present_count(session_id) == 2
            present = check.scalar(
                select(func.count()).select_from(Attendance).where(
                    Attendance.session_id == session_id, Attendance.is_present.is_(True)
                )
            )
            assert present == 2
        finally:
            check.close()
            engine.dispose()
