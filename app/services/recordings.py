# app/services/recordings.py
# Recording access gate
#
#   access_requires_purchase=False -> anyone may watch
#   otherwise                      -> same resolver decision as the live session
#
# Every granted check counts as one view (atomic SQL increment).

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.exceptions import NotFound
from app.models.live_session import LiveSession, Recording
from app.services.entitlement import EntitlementResolver

log = logging.getLogger(__name__)


class RecordingGate:
    def __init__(self, db: Session, clock: Clock = system_clock, resolver: Optional[EntitlementResolver] = None):
        self.db = db
        self.resolver = resolver or EntitlementResolver(db, clock)

    def get_recording(self, recording_id: UUID) -> Recording:
        recording = self.db.get(Recording, recording_id)
        if recording is None or not recording.is_published:
            raise NotFound("Recording", recording_id)
        return recording

    def _is_allowed(self, learner_id: Optional[UUID], recording: Recording) -> bool:
        if not recording.access_requires_purchase:
            return True
        session = self.db.get(LiveSession, recording.session_id)
        if session is None or session.is_deleted:
            raise NotFound("LiveSession", recording.session_id)
        return self.resolver.decide_for_session(learner_id, session).granted

    def can_view_recording(self, learner_id: Optional[UUID], recording_id: UUID) -> bool:
        """True (and one view counted) if the learner may watch."""
        recording = self.get_recording(recording_id)
        if not self._is_allowed(learner_id, recording):
            log.info("Recording access denied: learner=%s recording=%s", learner_id, recording_id)
            return False

        self.db.execute(
            update(Recording)
            .where(Recording.id == recording_id)
            .values(view_count=Recording.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(recording)
        return True

    def accessible_recordings(self, learner_id: Optional[UUID], course_id: Optional[UUID] = None) -> List[Recording]:
        """Published recordings the learner may watch, newest first. No views counted."""
        stmt = (
            select(Recording)
            .join(LiveSession, LiveSession.id == Recording.session_id)
            .where(Recording.is_published.is_(True), LiveSession.is_deleted.is_(False))
            .order_by(Recording.recorded_at.desc())
        )
        if course_id is not None:
            stmt = stmt.where(LiveSession.course_id == course_id)
        recordings = self.db.execute(stmt).scalars().all()
        return [r for r in recordings if self._is_allowed(learner_id, r)]
