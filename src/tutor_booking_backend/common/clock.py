'''
Injectable "current time" so that lead-time checks and presets can be
pinned in tests.
'''
from datetime import datetime, timedelta, timezone


class Clock:
    """Returns the current instant as a timezone-aware UTC datetime."""
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """A clock frozen at a given instant. It can be moved forward by hand."""
    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self.instant

    def advance(self, **kwargs) -> None:
        self.instant = self.instant + timedelta(**kwargs)


_system_clock = SystemClock()

def get_clock() -> Clock:
    """FastAPI dependency providing the application clock."""
    return _system_clock
