from datetime import datetime, timedelta, timezone
from typing import Optional


class SystemClock:
    """Wall clock in UTC. Services take a clock so expiry windows can be tested."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(SystemClock):
    def __init__(self, at: Optional[datetime] = None):
        self.current = at or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def ensure_aware(value: datetime) -> datetime:
    # Some backends (SQLite) hand back naive datetimes; everything stored is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(expires_at: datetime, now: datetime) -> bool:
    return ensure_aware(expires_at) < now
