"""
Clock -- the single source of "now" for the contract kernel.

Responsibility:
    Services and selectors receive a Clock by constructor injection and
    never read wall time themselves.  Link expiry is a time predicate
    (``now >= tokens_expire_at``) evaluated on every read and write path,
    so all of those paths must agree on the same instant source.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the only place that touches the
    real time of day.

Audit relevance:
    sent_at, signed_at, fully_executed_at and tokens_expire_at are all
    stamped from an injected Clock, which is what lets the expiry boundary
    be tested to the second.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Injectable time source.  ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time only moves when the test moves it: ``set_time`` jumps to an
    absolute instant, ``advance`` / ``advance_days`` step forward.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _as_utc(start or DEFAULT_TEST_EPOCH)

    def now(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        self._current = _as_utc(instant)

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
