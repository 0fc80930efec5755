# app/api/v1/endpoints/recordings.py
# Recording listing and playback
#
# video_url is only ever returned by /watch, after the gate says yes
# (and the view has been counted).

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import app.db.base  # noqa: F401
from app.core.clock import Clock, get_clock
from app.core.dependencies import get_optional_user
from app.core.exceptions import NotEntitled
from app.db.session import get_db
from app.models.user import User
from app.schemas.recording import RecordingListResponse, RecordingResponse, WatchResponse
from app.services.recordings import RecordingGate

router = APIRouter()


@router.get(
    "/",
    response_model=RecordingListResponse,
    summary="Published recordings the caller may watch",
)
def list_recordings(
    course_id: Optional[UUID] = None,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    learner_id = current_user.id if current_user else None
    recordings = RecordingGate(db, clock).accessible_recordings(learner_id, course_id)
    return RecordingListResponse(
        recordings=[RecordingResponse.model_validate(r) for r in recordings],
        total=len(recordings),
    )


@router.post(
    "/{recording_id}/watch",
    response_model=WatchResponse,
    summary="Open a recording (counts one view)",
)
def watch_recording(
    recording_id: UUID,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    learner_id = current_user.id if current_user else None
    gate = RecordingGate(db, clock)
    if not gate.can_view_recording(learner_id, recording_id):
        recording = gate.get_recording(recording_id)
        raise NotEntitled(recording.session_id, "no_entitlement" if learner_id else "anonymous")

    recording = gate.get_recording(recording_id)
    return WatchResponse(
        recording_id=recording.id,
        video_url=recording.video_url,
        view_count=recording.view_count,
    )
