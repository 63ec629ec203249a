"""
Injectable time source.

Backoff and next-execution math never read the wall clock directly; they
take a Clock so tests can pin "now".
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of the current instant."""
    
    @abstractmethod
    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        pass


class SystemClock(Clock):
    """Wall clock."""
    
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when told to."""
    
    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)
    
    def now(self) -> datetime:
        return self._now
    
    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)
    
    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (seconds=, minutes=, ...)."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


_default_clock: Clock = SystemClock()


def get_clock() -> Clock:
    """Process-wide default clock."""
    return _default_clock


def set_clock(clock: Clock) -> None:
    """Replace the process-wide default clock."""
    global _default_clock
    _default_clock = clock


def utc_now() -> datetime:
    """Shortcut for get_clock().now()."""
    return _default_clock.now()
