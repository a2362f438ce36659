"""
Promo Core Time — Validity Windows
====================================
Pure helpers for promotion validity intervals.
All functions take explicit datetime arguments — no hidden clock access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional


def ensure_aware(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_datetime(value: Any) -> datetime:
    """
    Convert a document date value into an aware datetime.

    Accepts datetime, date (midnight UTC) and ISO-8601 strings
    (a trailing 'Z' is accepted).
    """
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return ensure_aware(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"'{value}' is not an ISO-8601 datetime.") from None
    raise ValueError(f"Cannot interpret {value!r} as a datetime.")


# ══════════════════════════════════════════════════════════════
# VALIDITY WINDOW — Half-open interval [start, end)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValidityWindow:
    """
    A half-open time interval [start, end).

    end=None means the window never closes.
    Invariant: start < end when end is given (enforced at construction).
    """

    start: datetime
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.start.tzinfo is None:
            raise ValueError("ValidityWindow start must be timezone-aware.")
        if self.end is not None:
            if self.end.tzinfo is None:
                raise ValueError("ValidityWindow end must be timezone-aware.")
            if self.end <= self.start:
                raise ValueError(
                    f"ValidityWindow start ({self.start}) must be "
                    f"before end ({self.end})."
                )

    @property
    def open_ended(self) -> bool:
        return self.end is None

    def contains(self, dt: datetime) -> bool:
        """Start inclusive, end exclusive."""
        if dt < self.start:
            return False
        return self.end is None or dt < self.end

    def has_started(self, dt: datetime) -> bool:
        return dt >= self.start

    def has_ended(self, dt: datetime) -> bool:
        return self.end is not None and dt >= self.end
