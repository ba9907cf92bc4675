# matterflow/core/timeutils.py
"""UTC helpers shared by the engine.

SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns, so
every value read from the database goes through ``ensure_utc`` before any
arithmetic.
"""
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from start to end (negative when end precedes start)"""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0
