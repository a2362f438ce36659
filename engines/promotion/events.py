"""
Promo Engine — Trigger Events
===============================
Events emitted by offer rules whose conditions pass.

Every event carries params.promotionId so action execution can
correlate the event back to its promotion, whatever the document said.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from engines.promotion.facts import freeze, thaw

# ── Event Types ───────────────────────────────────────────────
EVENT_TRIGGER_ACTION = "triggerAction"

# ── Trigger Keys ──────────────────────────────────────────────
TRIGGER_OFFERS = "offers"


@dataclass(frozen=True)
class TriggerEvent:
    """
    {type, params} pair emitted when a promotion's conditions pass.

    params is frozen at construction.
    """

    type: str
    params: Mapping[str, Any]

    def __post_init__(self):
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string.")
        if not isinstance(self.params, Mapping):
            raise ValueError("Event params must be a mapping.")
        object.__setattr__(self, "params", freeze(self.params))

    @property
    def promotion_id(self) -> Optional[str]:
        return self.params.get("promotionId")

    def to_payload(self) -> dict:
        return {"type": self.type, "params": thaw(self.params)}


def json_ready(value: Any) -> Any:
    """
    Copy a document value into JSON-native types.

    Dates and datetimes become ISO-8601 strings, Decimals become strings,
    sets become sorted lists. Other scalars are stringified.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Mapping):
        return {str(k): json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_ready(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((json_ready(v) for v in value), key=repr)
    if isinstance(value, date):
        return value.isoformat()
    # Decimal and any other scalar
    return str(value)


def build_trigger_event(
    promotion_id: str,
    document: Optional[Mapping[str, Any]] = None,
) -> TriggerEvent:
    """
    Build the event a promotion emits from its offerRule.event document.

    A missing document yields the default triggerAction event. A
    promotionId in the document that disagrees with the owning
    promotion is overwritten. Params are copied into JSON-native types
    so results always serialize.
    """
    document = document or {}
    if not isinstance(document, Mapping):
        raise ValueError("offerRule.event must be an object.")
    params = document.get("params") or {}
    if not isinstance(params, Mapping):
        raise ValueError("offerRule.event.params must be an object.")
    params = json_ready(params)
    params["promotionId"] = promotion_id
    return TriggerEvent(
        type=document.get("type") or EVENT_TRIGGER_ACTION,
        params=params,
    )
