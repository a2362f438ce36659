"""
Promo Core Time — Evaluation Clock
====================================
Promotion windows are checked against one instant per evaluation pass.
That instant is either handed to the engine or read once from a Clock,
never taken from the wall clock inside rule, stacking or action code.

SystemClock serves production; FixedClock pins the instant for tests
and replays.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol, Union


# ══════════════════════════════════════════════════════════════
# PROTOCOL
# ══════════════════════════════════════════════════════════════

class Clock(Protocol):
    def now_utc(self) -> datetime:
        """Timezone-aware current instant."""
        ...  # pragma: no cover


# ══════════════════════════════════════════════════════════════
# CLOCKS
# ══════════════════════════════════════════════════════════════

class SystemClock:
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Pinned instant, moved only by advance().

    Usage:
        clock = FixedClock(datetime(2026, 3, 1, tzinfo=timezone.utc))
        engine = PromotionEngine(catalog, clock=clock)
        clock.advance(timedelta(days=30))   # past a promotion's endDate
    """

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FixedClock needs a timezone-aware instant.")
        self._instant = instant

    def now_utc(self) -> datetime:
        return self._instant

    def advance(self, delta: Union[float, timedelta]) -> datetime:
        """Move forward by seconds or a timedelta; returns the new instant."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self._instant = self._instant + delta
        return self._instant


# Process-wide fallback for engines built without a clock
_default_clock: Clock = SystemClock()


def set_default_clock(clock: Clock) -> None:
    global _default_clock
    _default_clock = clock


def get_default_clock() -> Clock:
    return _default_clock
