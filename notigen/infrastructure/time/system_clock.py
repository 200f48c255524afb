"""System clock adapter providing real UTC time.

Conversation timestamps and cache entry times come from here.
For tests, inject a fixed or stepping ClockPort instead.
"""

from __future__ import annotations

from datetime import UTC, datetime

from notigen.application.ports.clock_port import ClockPort


class SystemClock(ClockPort):
    """Production clock adapter returning real system time in UTC."""

    def now(self) -> datetime:  # pragma: no cover - trivial
        return datetime.now(UTC)
