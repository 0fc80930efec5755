# app/db/base.py
# Alembic model registry -- imports Base + every model so Alembic detects all tables.
# Do NOT import this file from model files (use app.db.base_class instead).
# This file is imported by:
#   - alembic/env.py        (schema detection)
#   - tests/conftest.py     (create_all)
#   - endpoint modules      (mapper configuration before first query)

from app.db.base_class import Base  # noqa: F401

# ── Import all models here so Alembic can detect them ────────────────────────
# Order matters: parent tables before child tables (foreign key dependencies)

from app.models.user import User                                        # noqa: F401, E402
from app.models.course import Course, CourseEnrollment                  # noqa: F401, E402
from app.models.subscription import Plan, Subscription, Payment         # noqa: F401, E402
from app.models.live_session import (                                   # noqa: F401, E402
    Schedule,
    LiveSession,
    SessionSeats,
    Attendance,
    Recording,
)
from app.models.purchase import SessionPurchase, ScheduleEnrollment     # noqa: F401, E402
from app.models.notification import Notification                        # noqa: F401, E402
