"""
Tests for core.time — Clock protocol and validity windows.
"""

import pytest
from datetime import date, datetime, timezone, timedelta

from core.time.clock import (
    FixedClock,
    SystemClock,
    get_default_clock,
    set_default_clock,
)
from core.time.temporal import ValidityWindow, coerce_datetime, ensure_aware


START = datetime(2026, 1, 1, tzinfo=timezone.utc)
END = datetime(2026, 2, 1, tzinfo=timezone.utc)


# ── Clock Tests ──────────────────────────────────────────────

class TestSystemClock:
    def test_returns_utc_datetime(self):
        dt = SystemClock().now_utc()
        assert dt.tzinfo == timezone.utc


class TestFixedClock:
    def test_returns_fixed_time(self):
        clock = FixedClock(START)
        assert clock.now_utc() == START
        assert clock.now_utc() == START

    def test_rejects_naive_datetime(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            FixedClock(datetime(2026, 1, 1))

    def test_advance(self):
        clock = FixedClock(START)
        clock.advance(90)
        assert clock.now_utc() == START + timedelta(seconds=90)

    def test_advance_by_timedelta_returns_new_instant(self):
        clock = FixedClock(START)
        assert clock.advance(timedelta(days=31)) == END
        assert clock.now_utc() == END


class TestDefaultClock:
    def test_set_and_get_default(self):
        original = get_default_clock()
        set_default_clock(FixedClock(START))
        try:
            assert get_default_clock().now_utc() == START
        finally:
            set_default_clock(original)


# ── ValidityWindow Tests ─────────────────────────────────────

class TestValidityWindow:
    def test_start_inclusive_end_exclusive(self):
        window = ValidityWindow(start=START, end=END)
        assert window.contains(START)
        assert window.contains(END - timedelta(microseconds=1))
        assert not window.contains(END)
        assert not window.contains(START - timedelta(seconds=1))

    def test_open_ended(self):
        window = ValidityWindow(start=START)
        assert window.open_ended
        assert window.contains(datetime(2099, 1, 1, tzinfo=timezone.utc))
        assert not window.has_ended(datetime(2099, 1, 1, tzinfo=timezone.utc))

    def test_rejects_end_not_after_start(self):
        with pytest.raises(ValueError, match="before end"):
            ValidityWindow(start=START, end=START)

    def test_rejects_naive_bounds(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            ValidityWindow(start=datetime(2026, 1, 1))

    def test_started_and_ended(self):
        window = ValidityWindow(start=START, end=END)
        assert not window.has_started(START - timedelta(days=1))
        assert window.has_started(START)
        assert window.has_ended(END)


class TestCoerceDatetime:
    def test_naive_is_utc(self):
        assert ensure_aware(datetime(2026, 1, 1)) == START

    def test_iso_string_with_z(self):
        assert coerce_datetime("2026-01-01T00:00:00Z") == START

    def test_iso_string_with_offset(self):
        dt = coerce_datetime("2026-01-01T03:00:00+03:00")
        assert dt == START

    def test_date(self):
        assert coerce_datetime(date(2026, 1, 1)) == START

    def test_rejects_garbage(self):
        with pytest.raises(ValueError, match="ISO-8601"):
            coerce_datetime("next tuesday")

    def test_rejects_numbers(self):
        with pytest.raises(ValueError):
            coerce_datetime(1767225600)
