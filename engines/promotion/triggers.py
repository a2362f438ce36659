"""
Promo Engine — Trigger Matcher
================================
Selects the promotions a trigger should (re-)evaluate.

A candidate is enabled, valid at `now` ([startDate, endDate), open end
means unbounded), declares the trigger key, and (when a shop is named)
belongs to that shop.

Candidates come back sorted by promotion_id. Stacking tie-breaks rely
on this order, so it is part of the contract.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional, Tuple

from engines.promotion.models import Promotion

logger = logging.getLogger("promo.triggers")


def match(
    trigger_key: str,
    promotions: Iterable[Promotion],
    now: datetime,
    shop_id: Optional[str] = None,
) -> Tuple[Promotion, ...]:
    """Return candidate promotions for a trigger, in identifier order."""
    if not trigger_key or not isinstance(trigger_key, str):
        raise ValueError("trigger_key must be a non-empty string.")
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware.")

    candidates = []
    for promotion in promotions:
        if shop_id is not None and promotion.shop_id != shop_id:
            continue
        if not promotion.enabled:
            continue
        if not promotion.validity.contains(now):
            continue
        if not promotion.responds_to(trigger_key):
            continue
        candidates.append(promotion)

    candidates.sort(key=lambda p: p.promotion_id)
    logger.debug(
        f"Trigger '{trigger_key}' matched "
        f"{[p.promotion_id for p in candidates]}"
    )
    return tuple(candidates)
