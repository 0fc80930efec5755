# app/schemas/recording.py
# Pydantic response models for recording endpoints

from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel


class RecordingResponse(BaseModel):
    id: UUID
    session_id: UUID
    title: str
    duration_minutes: int
    view_count: int
    access_requires_purchase: bool
    recorded_at: datetime

    model_config = {"from_attributes": True}


class RecordingListResponse(BaseModel):
    recordings: List[RecordingResponse]
    total: int


class WatchResponse(BaseModel):
    recording_id: UUID
    video_url: str
    view_count: int
