# app/services/attendance.py
# Attendance tracker -- one auditable record per (session, learner)
#
# Join / leave rules:
#   first join        -> row created, seat reserved, first_joined_at stamped
#   join while in room-> no new seat; current cycle folded into the total,
#                        joined_at moves to the latest join
#   rejoin after leave-> seat reserved again, left_at cleared, time accumulates
#   leave             -> left_at stamped, cycle minutes added, seat released
#   leave again       -> no-op
#
# is_present records that the learner attended at all and never goes back to
# False. "In the room" is joined_at set with left_at unset; that is the state
# the seat ledger tracks.
#
# Derived fields (late_minutes, early_leave_minutes, score, attendance_status)
# are recomputed from timestamps on every write. Scores are for reporting
# only and never affect access.

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.exceptions import (
    InvalidState,
    LiveAccessError,
    NotFound,
    SessionFull,
    TransientStorageFailure,
)
from app.models.live_session import Attendance, LiveSession
from app.services.capacity import CapacityGuard

log = logging.getLogger(__name__)

T = TypeVar("T")

# Score weights -- must add up to 100
COMPLETENESS_WEIGHT = 70.0
PUNCTUALITY_WEIGHT = 15.0
STAY_WEIGHT = 15.0


def _whole_minutes(start: datetime, end: datetime) -> int:
    """Floor of elapsed minutes, never negative."""
    return max(0, int((end - start).total_seconds() // 60))


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ── Pure scoring ──────────────────────────────────────────────────────────────

def compute_score(
    duration_minutes: int,
    scheduled_minutes: int,
    late_minutes: int = 0,
    early_leave_minutes: int = 0,
) -> float:
    """
    0-100 attendance score.

        70 x completeness (time present / scheduled length)
      + 15 x punctuality  (1 - late / scheduled length)
      + 15 x stay         (1 - early leave / scheduled length)

    A learner with no recorded time scores 0.
    """
    if duration_minutes <= 0:
        return 0.0
    if scheduled_minutes <= 0:
        return 100.0

    completeness = _clamp(duration_minutes / scheduled_minutes)
    punctuality = _clamp(1 - late_minutes / scheduled_minutes)
    stay = _clamp(1 - early_leave_minutes / scheduled_minutes)

    score = (
        COMPLETENESS_WEIGHT * completeness
        + PUNCTUALITY_WEIGHT * punctuality
        + STAY_WEIGHT * stay
    )
    return round(_clamp(score, 0.0, 100.0), 1)


def derive_status(
    *,
    joined: bool,
    excused: bool,
    late_minutes: int,
    session_ended: bool,
    grace_minutes: int,
) -> Optional[str]:
    """
    present | late | absent | excused, or None while a not-yet-joined
    learner can still turn up.
    """
    if excused:
        return "excused"
    if not joined:
        return "absent" if session_ended else None
    if late_minutes > grace_minutes:
        return "late"
    return "present"


def session_has_ended(session: LiveSession, now: datetime) -> bool:
    return session.status == "completed" or now > session.scheduled_end


def in_room(row: Optional[Attendance]) -> bool:
    return row is not None and row.joined_at is not None and row.left_at is None


# ── Retry helper ──────────────────────────────────────────────────────────────

def commit_with_retries(
    db: Session,
    operation: str,
    work: Callable[[], T],
    attempts: Optional[int] = None,
    retry_on: Tuple[Type[DBAPIError], ...] = (OperationalError,),
) -> T:
    """
    Run work() and commit it as one unit.

    Errors in retry_on (lock timeouts, dropped connections) roll back and
    retry; after the last attempt they surface as TransientStorageFailure.
    Any other storage error is permanent: it rolls back and propagates, as
    do domain errors.
    """
    attempts = attempts or settings.attendance_write_retries
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except LiveAccessError:
            db.rollback()
            raise
        except retry_on as exc:
            db.rollback()
            log.warning(
                "Storage error during %s (attempt %d/%d): %s",
                operation, attempt, attempts, exc,
            )
        except DBAPIError:
            db.rollback()
            raise
    raise TransientStorageFailure(operation, attempts)


# ── Summary ───────────────────────────────────────────────────────────────────

@dataclass
class AttendanceSummary:
    total_sessions: int = 0
    present: int = 0
    late: int = 0
    absent: int = 0
    excused: int = 0
    average_score: float = 0.0

    @property
    def attendance_rate(self) -> float:
        """Share of sessions attended (present or late), 0-100."""
        if not self.total_sessions:
            return 0.0
        return round(100.0 * (self.present + self.late) / self.total_sessions, 1)


class AttendanceTracker:
    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        capacity: Optional[CapacityGuard] = None,
        grace_minutes: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.capacity = capacity or CapacityGuard(db)
        self.grace_minutes = (
            settings.attendance_late_grace_minutes if grace_minutes is None else grace_minutes
        )

    def get(self, session_id: UUID, learner_id: UUID) -> Optional[Attendance]:
        return self.db.execute(
            select(Attendance).where(
                Attendance.session_id == session_id,
                Attendance.learner_id == learner_id,
            )
        ).scalar_one_or_none()

    # ── Derived fields ────────────────────────────────────────────────────────

    def refresh_derived(self, row: Attendance, session: LiveSession, now: Optional[datetime] = None) -> Attendance:
        now = now or self.clock.now()

        if row.first_joined_at is not None:
            row.late_minutes = _whole_minutes(session.scheduled_start, row.first_joined_at)
        else:
            row.late_minutes = 0

        if row.joined_at is not None and row.left_at is not None:
            row.early_leave_minutes = _whole_minutes(row.left_at, session.scheduled_end)
        else:
            row.early_leave_minutes = 0

        row.score = compute_score(
            row.duration_minutes or 0,
            session.duration_minutes,
            row.late_minutes,
            row.early_leave_minutes,
        )
        row.attendance_status = derive_status(
            joined=row.first_joined_at is not None,
            excused=bool(row.excuse_approved),
            late_minutes=row.late_minutes,
            session_ended=session_has_ended(session, now),
            grace_minutes=self.grace_minutes,
        )
        return row

    # ── Join / leave ──────────────────────────────────────────────────────────

    def record_join(
        self,
        session: LiveSession,
        learner_id: UUID,
        device_type: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Attendance:
        """
        Part of the join unit of work -- does not commit. The caller has
        already checked entitlement and created the seat ledger row.
        Raises SessionFull when no seat can be reserved.
        """
        now = self.clock.now()
        row = self.get(session.id, learner_id)

        if in_room(row):
            # Already holding a seat: fold the open cycle, move joined_at
            row.accumulated_minutes = (row.accumulated_minutes or 0) + _whole_minutes(row.joined_at, now)
            row.duration_minutes = row.accumulated_minutes
            row.joined_at = now
        else:
            if not self.capacity.try_reserve_slot(session.id):
                raise SessionFull(session_id=session.id, max_participants=session.max_participants)

            if row is None:
                row = Attendance(
                    session_id=session.id,
                    learner_id=learner_id,
                    accumulated_minutes=0,
                    duration_minutes=0,
                )
                self.db.add(row)

            row.is_present = True
            row.first_joined_at = row.first_joined_at or now
            row.joined_at = now
            row.left_at = None
            row.duration_minutes = row.accumulated_minutes or 0

        if device_type:
            row.device_type = device_type[:255]
        if ip_address:
            row.ip_address = ip_address[:64]

        self.refresh_derived(row, session, now)
        self.db.flush()
        log.info("Join recorded: session=%s learner=%s", session.id, learner_id)
        return row

    def record_leave(self, session: LiveSession, learner_id: UUID) -> Attendance:
        """
        Stamp left_at, bank the minutes and free the seat. is_present is
        left alone. Leaving twice is a no-op. NotFound if the learner never
        joined.
        """
        row = self.get(session.id, learner_id)
        if row is None or row.joined_at is None:
            raise NotFound("Attendance", learner_id)

        if not in_room(row):
            return row

        now = max(self.clock.now(), row.joined_at)
        row.left_at = now
        row.accumulated_minutes = (row.accumulated_minutes or 0) + _whole_minutes(row.joined_at, now)
        row.duration_minutes = row.accumulated_minutes
        self.capacity.release_slot(session.id)

        self.refresh_derived(row, session, now)
        self.db.flush()
        log.info(
            "Leave recorded: session=%s learner=%s duration=%dmin",
            session.id, learner_id, row.duration_minutes,
        )
        return row

    # ── Registration / excuses ────────────────────────────────────────────────

    def register(self, session: LiveSession, learner_id: UUID) -> Attendance:
        """
        Pre-register for a free session. Creates the attendance row without
        a join, so no seat is taken. Registering twice returns the same row.
        """
        if not (session.is_free_for_all or session.pricing_type == "free"):
            raise InvalidState("Only free sessions accept open registration.", session_id=session.id)
        if not session.is_joinable:
            raise InvalidState(f"Session is {session.status}.", session_id=session.id)

        row = self.get(session.id, learner_id)
        if row is not None:
            return row

        row = Attendance(
            session_id=session.id,
            learner_id=learner_id,
            is_present=False,
            accumulated_minutes=0,
            duration_minutes=0,
        )
        self.db.add(row)
        self.refresh_derived(row, session)
        self.db.flush()
        return row

    def excuse(
        self,
        session: LiveSession,
        learner_id: UUID,
        reason: str,
        approved: bool = True,
        expected: bool = False,
    ) -> Attendance:
        """
        Instructor marks an absence (or partial attendance) as excused.

        Updates the learner's existing row. With no row, NotFound unless
        expected=True (the caller has checked the learner was entitled to
        attend), in which case the excused absence is recorded.
        """
        row = self.get(session.id, learner_id)
        if row is None:
            if not expected:
                raise NotFound("Attendance", learner_id)
            row = Attendance(
                session_id=session.id,
                learner_id=learner_id,
                is_present=False,
                accumulated_minutes=0,
                duration_minutes=0,
            )
            self.db.add(row)

        row.excuse_reason = reason
        row.excuse_approved = approved
        row.marked_by_instructor = True
        self.refresh_derived(row, session)
        self.db.flush()
        return row

    # ── History & statistics ──────────────────────────────────────────────────

    def current_status(self, row: Attendance, now: Optional[datetime] = None) -> Optional[str]:
        """Status as of now; a stored None turns "absent" once the session ends."""
        return derive_status(
            joined=row.first_joined_at is not None,
            excused=bool(row.excuse_approved),
            late_minutes=row.late_minutes or 0,
            session_ended=session_has_ended(row.session, now or self.clock.now()),
            grace_minutes=self.grace_minutes,
        )

    def history(self, learner_id: UUID, course_id: Optional[UUID] = None) -> List[Attendance]:
        """
        Learner's attendance rows, newest session first. Read-only: rows
        keep their stored status, use current_status() for display.
        """
        stmt = (
            select(Attendance)
            .join(LiveSession, LiveSession.id == Attendance.session_id)
            .where(Attendance.learner_id == learner_id, LiveSession.is_deleted.is_(False))
            .order_by(LiveSession.scheduled_start.desc())
        )
        if course_id is not None:
            stmt = stmt.where(LiveSession.course_id == course_id)

        return list(self.db.execute(stmt).scalars().all())

    def attendance_summary(self, learner_id: UUID, course_id: Optional[UUID] = None) -> AttendanceSummary:
        rows = self.history(learner_id, course_id)
        now = self.clock.now()
        summary = AttendanceSummary(total_sessions=len(rows))
        for row in rows:
            status = self.current_status(row, now)
            if status in ("present", "late", "absent", "excused"):
                setattr(summary, status, getattr(summary, status) + 1)
        if rows:
            summary.average_score = round(sum(r.score or 0.0 for r in rows) / len(rows), 1)
        return summary
