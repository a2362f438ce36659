"""
Promo Engine — Exceptions
===========================
Structured errors for promotion evaluation.

Errors local to one promotion or condition are contained by the
engine and surfaced as Diagnostics. Only InvalidFactSnapshotError
(bad engine input) reaches the caller of a full evaluation pass.
"""

from __future__ import annotations

from typing import Optional


class PromotionEngineError(Exception):
    """Base error for promotion engine operations."""
    pass


class FactResolutionError(PromotionEngineError):
    """A fact name is unknown or its path resolves to nothing."""

    def __init__(self, fact: str, path: str, reason: str):
        self.fact = fact
        self.path = path
        self.reason = reason
        super().__init__(f"Fact '{fact}' path '{path}': {reason}")


class MalformedRuleError(PromotionEngineError):
    """A condition tree has an invalid shape."""

    def __init__(self, message: str, location: str = "$"):
        self.location = location
        super().__init__(f"{message} (at {location})")


class UnsupportedActionError(PromotionEngineError):
    """No action implementation is registered for an action key."""

    def __init__(self, action_key: str, promotion_id: Optional[str] = None):
        self.action_key = action_key
        self.promotion_id = promotion_id
        super().__init__(
            f"Action '{action_key}' is not supported"
            + (f" (promotion '{promotion_id}')." if promotion_id else ".")
        )


class InvalidActionParametersError(PromotionEngineError):
    """An action's parameters cannot be executed."""

    def __init__(self, action_key: str, message: str):
        self.action_key = action_key
        super().__init__(f"Action '{action_key}': {message}")


class StackingConflictError(PromotionEngineError):
    """Exclusive groups tie on value and need the identifier fallback."""

    def __init__(self, group_keys: tuple, value):
        self.group_keys = group_keys
        self.value = value
        super().__init__(
            f"Exclusive groups {list(group_keys)} tie at value {value}."
        )


class InvalidFactSnapshotError(PromotionEngineError):
    """The fact snapshot handed to the engine is unusable."""

    def __init__(self, message: str, missing_facts: tuple = ()):
        self.missing_facts = missing_facts
        super().__init__(message)


class DuplicateActionError(PromotionEngineError):
    """Action with the same key already registered."""

    def __init__(self, action_key: str):
        self.action_key = action_key
        super().__init__(f"Action '{action_key}' is already registered.")


class RegistryLockedError(PromotionEngineError):
    """Action registry is locked — no modifications allowed."""

    def __init__(self):
        super().__init__(
            "Action Registry is locked after bootstrap. "
            "No dynamic action registration allowed."
        )
