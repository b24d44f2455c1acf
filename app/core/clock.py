"""Injectable time source.

All timestamps are stored as naive UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """A clock frozen at a given instant, advanced manually."""

    def __init__(self, at: datetime) -> None:
        self._at = at.replace(tzinfo=None) if at.tzinfo else at

    def now(self) -> datetime:
        return self._at

    def advance(self, **delta: float) -> None:
        self._at = self._at + timedelta(**delta)
