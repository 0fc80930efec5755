# app/api/v1/endpoints/attendance.py
# Learner's own attendance history and statistics

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import app.db.base  # noqa: F401
from app.core.clock import Clock, get_clock
from app.core.dependencies import require_login
from app.db.session import get_db
from app.models.user import User
from app.schemas.live_session import (
    AttendanceHistoryResponse,
    AttendanceResponse,
    AttendanceSummaryResponse,
)
from app.services.attendance import AttendanceTracker

router = APIRouter()


@router.get(
    "/me",
    response_model=AttendanceHistoryResponse,
    summary="Own attendance records with summary",
)
def my_attendance(
    course_id: Optional[UUID] = None,
    current_user: User = Depends(require_login),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    tracker = AttendanceTracker(db, clock)
    records = tracker.history(current_user.id, course_id)
    summary = tracker.attendance_summary(current_user.id, course_id)
    return AttendanceHistoryResponse(
        summary=AttendanceSummaryResponse(
            total_sessions=summary.total_sessions,
            present=summary.present,
            late=summary.late,
            absent=summary.absent,
            excused=summary.excused,
            average_score=summary.average_score,
            attendance_rate=summary.attendance_rate,
        ),
        records=[
            AttendanceResponse.model_validate(r).model_copy(
                update={"attendance_status": tracker.current_status(r)}
            )
            for r in records
        ],
    )
