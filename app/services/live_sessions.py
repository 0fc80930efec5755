# app/services/live_sessions.py
# Join / leave orchestration for live sessions
#
# Join = resolver -> capacity guard -> attendance tracker, where the seat
# reservation and the attendance write commit (or roll back) together.
# Leave touches the tracker only -- no entitlement check, so a learner whose
# access was revoked mid-session can still be checked out.

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.exceptions import InvalidState, NotEntitled, NotFound
from app.models.live_session import Attendance, LiveSession
from app.models.user import User
from app.services.attendance import AttendanceTracker, commit_with_retries
from app.services.capacity import CapacityGuard
from app.services.entitlement import ANONYMOUS, AccessDecision, EntitlementResolver

log = logging.getLogger(__name__)


@dataclass
class SessionDetail:
    session: LiveSession
    decision: AccessDecision
    present_count: int
    attendance: Optional[Attendance] = None

    @property
    def meeting_url(self) -> Optional[str]:
        # Raw link only for granted learners
        return self.session.meeting_url if self.decision.granted else None


@dataclass
class JoinResult:
    meeting_url: str
    attendance: Attendance
    access_reason: str


def checkout_available(session: LiveSession) -> bool:
    return (
        session.pricing_type == "paid"
        and not session.is_free_for_all
        and (session.price_paise or 0) > 0
        and session.status in ("scheduled", "live")
    )


class LiveSessionService:
    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.resolver = EntitlementResolver(db, clock)
        self.capacity = CapacityGuard(db)
        self.tracker = AttendanceTracker(db, clock, capacity=self.capacity)

    def get_detail(self, learner_id: Optional[UUID], session_id: UUID) -> SessionDetail:
        session = self.resolver.get_session(session_id)
        decision = self.resolver.decide_for_session(learner_id, session)
        attendance = self.tracker.get(session.id, learner_id) if learner_id else None
        return SessionDetail(
            session=session,
            decision=decision,
            present_count=self.capacity.present_count(session.id),
            attendance=attendance,
        )

    def join(
        self,
        learner_id: Optional[UUID],
        session_id: UUID,
        device_type: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> JoinResult:
        """
        Raises NotFound, InvalidState, NotEntitled, SessionFull or
        TransientStorageFailure. On success the attendance row is committed.
        """
        session = self.resolver.get_session(session_id)
        if learner_id is None:
            raise NotEntitled(session.id, ANONYMOUS, checkout_available(session))
        if not session.is_joinable:
            raise InvalidState(f"Session is {session.status}.", session_id=session.id)

        decision = self.resolver.decide_for_session(learner_id, session)
        if not decision.granted:
            raise NotEntitled(session.id, decision.reason, checkout_available(session))

        if not session.meeting_url:
            raise InvalidState("Meeting link is not available yet.", session_id=session.id)
        meeting_url = session.meeting_url

        self.capacity.ensure_ledger(session.id)
        attendance = commit_with_retries(
            self.db,
            "record join",
            lambda: self.tracker.record_join(session, learner_id, device_type, ip_address),
            # Two first joins for the same pair race on the unique key; the
            # retry finds the winner's row
            retry_on=(OperationalError, IntegrityError),
        )
        return JoinResult(meeting_url=meeting_url, attendance=attendance, access_reason=decision.reason)

    def leave(self, learner_id: UUID, session_id: UUID) -> Attendance:
        session = self.resolver.get_session(session_id)
        return commit_with_retries(
            self.db,
            "record leave",
            lambda: self.tracker.record_leave(session, learner_id),
        )

    def register(self, learner_id: UUID, session_id: UUID) -> Attendance:
        session = self.resolver.get_session(session_id)
        return commit_with_retries(
            self.db,
            "register",
            lambda: self.tracker.register(session, learner_id),
        )

    def excuse(
        self,
        instructor: User,
        session_id: UUID,
        learner_id: UUID,
        reason: str,
        approved: bool = True,
    ) -> Attendance:
        """
        Only the session's own instructor (or an admin) may excuse; anyone
        else gets NotFound. A learner with no attendance row must exist and
        be entitled to the session.
        """
        session = self.resolver.get_session(session_id)
        if instructor.role != "admin" and session.instructor_id != instructor.id:
            log.info("Excuse refused: user=%s does not teach session=%s", instructor.id, session.id)
            raise NotFound("LiveSession", session_id)

        expected = False
        if self.tracker.get(session.id, learner_id) is None:
            if self.db.get(User, learner_id) is None:
                raise NotFound("User", learner_id)
            expected = self.resolver.decide_for_session(learner_id, session).granted

        return commit_with_retries(
            self.db,
            "excuse absence",
            lambda: self.tracker.excuse(session, learner_id, reason, approved, expected=expected),
        )
