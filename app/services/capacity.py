# app/services/capacity.py
# Capacity guard -- hard cap on concurrently present joiners per session
#
# The seat ledger (live_session_seats) holds one counter row per session.
# A seat is taken with a single conditional UPDATE:
#
#   UPDATE live_session_seats
#      SET present_count = present_count + 1
#    WHERE session_id = :id AND present_count < :max
#
# The database serialises concurrent writers on that row and re-checks the
# predicate after acquiring it, so at most max_participants joiners win.
# No Python-side lock is ever held across a storage call.
#
# The UPDATE runs inside the caller's transaction: if the attendance write
# that follows fails, the rollback releases the seat as well.

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.live_session import LiveSession, SessionSeats

log = logging.getLogger(__name__)


class CapacityGuard:
    def __init__(self, db: Session):
        self.db = db

    def ensure_ledger(self, session_id: UUID) -> None:
        """
        Create the seat row for a session if it does not exist yet.
        Commits on its own so the row is visible to every concurrent joiner
        before any of them tries to reserve.
        """
        exists = self.db.execute(
            select(SessionSeats.session_id).where(SessionSeats.session_id == session_id)
        ).first()
        if exists is not None:
            return
        self.db.add(SessionSeats(session_id=session_id, present_count=0))
        try:
            self.db.commit()
        except IntegrityError:
            # Another joiner created it first
            self.db.rollback()

    def _max_participants(self, session_id: UUID) -> Optional[int]:
        return self.db.execute(
            select(LiveSession.max_participants).where(LiveSession.id == session_id)
        ).scalar_one_or_none()

    def try_reserve_slot(self, session_id: UUID) -> bool:
        """
        Take one seat. True if reserved, False if the session is full.
        Unlimited sessions (max_participants NULL) always reserve.
        """
        max_participants = self._max_participants(session_id)

        stmt = (
            update(SessionSeats)
            .where(SessionSeats.session_id == session_id)
            .values(present_count=SessionSeats.present_count + 1)
            .execution_options(synchronize_session=False)
        )
        if max_participants is not None:
            stmt = stmt.where(SessionSeats.present_count < max_participants)

        reserved = self.db.execute(stmt).rowcount == 1
        if not reserved:
            log.info("Capacity reached: session=%s max=%s", session_id, max_participants)
        return reserved

    def release_slot(self, session_id: UUID) -> None:
        """Give one seat back (learner left). Never drops below zero."""
        self.db.execute(
            update(SessionSeats)
            .where(SessionSeats.session_id == session_id, SessionSeats.present_count > 0)
            .values(present_count=SessionSeats.present_count - 1)
            .execution_options(synchronize_session=False)
        )

    def present_count(self, session_id: UUID) -> int:
        count = self.db.execute(
            select(SessionSeats.present_count).where(SessionSeats.session_id == session_id)
        ).scalar_one_or_none()
        return count or 0
