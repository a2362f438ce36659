"""
Promo Core Time — Public API
==============================
Explicit clock protocol and validity windows.
Doctrine: NO datetime.now() in evaluation logic.
"""

from core.time.clock import (
    Clock,
    FixedClock,
    SystemClock,
    get_default_clock,
    set_default_clock,
)
from core.time.temporal import (
    ValidityWindow,
    coerce_datetime,
    ensure_aware,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "get_default_clock",
    "set_default_clock",
    "ValidityWindow",
    "coerce_datetime",
    "ensure_aware",
]
