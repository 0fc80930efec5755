# app/schemas/live_session.py
# Pydantic request/response models for live session and attendance endpoints

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator


# ── Attendance ────────────────────────────────────────────────────────────────

class AttendanceResponse(BaseModel):
    id: UUID
    session_id: UUID
    learner_id: UUID
    is_present: bool
    first_joined_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    duration_minutes: int
    attendance_status: Optional[str] = None   # present | late | absent | excused
    late_minutes: int
    early_leave_minutes: int
    score: float
    excuse_reason: Optional[str] = None
    excuse_approved: bool

    model_config = {"from_attributes": True}


class AttendanceSummaryResponse(BaseModel):
    total_sessions: int
    present: int
    late: int
    absent: int
    excused: int
    average_score: float
    attendance_rate: float


class AttendanceHistoryResponse(BaseModel):
    summary: AttendanceSummaryResponse
    records: List[AttendanceResponse]


class ExcuseRequest(BaseModel):
    learner_id: UUID
    reason: str
    approved: bool = True

    @field_validator("reason")
    @classmethod
    def reason_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Reason cannot be empty")
        return v


# ── Session ───────────────────────────────────────────────────────────────────

class AccessResponse(BaseModel):
    granted: bool
    reason: str          # free | course_enrollment | direct_purchase | ... | no_entitlement
    checkout_available: bool = False


class LiveSessionDetailResponse(BaseModel):
    id: UUID
    course_id: UUID
    schedule_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    scheduled_start: datetime
    scheduled_end: datetime
    duration_minutes: int
    status: str
    pricing_type: str
    price_paise: int
    currency: str
    is_free_for_all: bool
    max_participants: Optional[int] = None
    present_count: int
    access: AccessResponse
    # None unless access.granted
    meeting_url: Optional[str] = None
    attendance: Optional[AttendanceResponse] = None


class JoinRequest(BaseModel):
    device_type: Optional[str] = None


class JoinResponse(BaseModel):
    session_id: UUID
    meeting_url: str
    access_reason: str
    attendance: AttendanceResponse
