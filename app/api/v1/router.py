# app/api/v1/router.py
# Master router -- registers all endpoint routers under /api/v1
# Each endpoint module registers its own router with its own prefix and tags

from fastapi import APIRouter

from app.api.v1.endpoints import (
    attendance,
    live_sessions,
    payments,
    recordings,
    schedules,
)

api_router = APIRouter()

# Live sessions (detail, join/leave, register, checkout)
api_router.include_router(live_sessions.router, prefix="/live-sessions", tags=["Live Sessions"])

# Schedules (bundle checkout)
api_router.include_router(schedules.router, prefix="/schedules", tags=["Schedules"])

# Recordings
api_router.include_router(recordings.router, prefix="/recordings", tags=["Recordings"])

# Attendance
api_router.include_router(attendance.router, prefix="/attendance", tags=["Attendance"])

# Payments (provider webhooks)
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
