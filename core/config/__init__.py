"""
Promo Core Config — Public API
================================
Engine tunables, loaded once at startup.
"""

from core.config.settings import (
    DEFAULT_TRIGGER_KEY,
    EngineSettings,
    load_engine_settings,
)

__all__ = [
    "DEFAULT_TRIGGER_KEY",
    "EngineSettings",
    "load_engine_settings",
]
