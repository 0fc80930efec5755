# app/db/types.py
# Portable column types shared by every model
#
# PostgreSQL stores timestamptz natively; SQLite (tests, local) stores naive
# strings and hands back naive datetimes. UTCDateTime normalises both sides
# so model code can always compare against an aware "now".

from datetime import datetime, timezone

from sqlalchemy import DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime, always UTC.

    Bind:   aware -> converted to UTC (tz dropped on dialects without tz support)
            naive -> assumed UTC
    Result: naive -> tagged UTC
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Column default for created_at / updated_at audit stamps."""
    return datetime.now(timezone.utc)
