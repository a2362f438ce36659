"""
Promo Engine — Promotion Fixtures
===================================
Sample promotions seeded into the primary shop at bootstrap.

Seeding is idempotent: each fixture is upserted by identifier.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from core.time.clock import Clock, get_default_clock
from engines.promotion.catalog import PromotionCatalog
from engines.promotion.events import EVENT_TRIGGER_ACTION, TRIGGER_OFFERS
from engines.promotion.models import Promotion

SHOP_TYPE_PRIMARY = "primary"

ORDER_PROMOTION_LABEL = (
    "5 percent off your entire order when you spend more then $200"
)


def order_promotion_document(now: datetime) -> Dict[str, Any]:
    return {
        "_id": "orderPromotion",
        "label": ORDER_PROMOTION_LABEL,
        "description": ORDER_PROMOTION_LABEL,
        "enabled": True,
        "triggers": [{"triggerKey": TRIGGER_OFFERS}],
        "offerRule": {
            "name": ORDER_PROMOTION_LABEL,
            "conditions": {
                "any": [{
                    "fact": "cart",
                    "path": "$.merchandiseTotal",
                    "operator": "greaterThanInclusive",
                    "value": 200,
                }],
            },
            "event": {
                "type": EVENT_TRIGGER_ACTION,
                "params": {"promotionId": "orderPromotion"},
            },
        },
        "actions": [{"actionKey": "noop", "actionParameters": {}}],
        "startDate": now,
        "stackAbility": "none",
        "reportAsTaxable": True,
    }


FIXTURE_BUILDERS = (order_promotion_document,)


# ══════════════════════════════════════════════════════════════
# SHOP PROVIDER
# ══════════════════════════════════════════════════════════════

class ShopProvider(Protocol):
    def find_primary_shop_id(self) -> Optional[str]:
        ...


class InMemoryShopProvider:
    """
    Deterministic in-memory provider used by tests/bootstrap.

    Shops are documents with at least _id and shopType.
    """

    def __init__(self, shops: Iterable[Dict[str, Any]] = ()):
        self._shops: Tuple[Dict[str, Any], ...] = tuple(shops)

    def find_primary_shop_id(self) -> Optional[str]:
        for shop in self._shops:
            if shop.get("shopType") == SHOP_TYPE_PRIMARY:
                return shop.get("_id")
        return None


def make_primary_shop(shop_id: Optional[str] = None, name: str = "Primary Shop") -> dict:
    return {
        "_id": shop_id or str(uuid.uuid4()),
        "name": name,
        "shopType": SHOP_TYPE_PRIMARY,
    }


# ══════════════════════════════════════════════════════════════
# LOADER
# ══════════════════════════════════════════════════════════════

def load_promotion_fixtures(
    catalog: PromotionCatalog,
    shop_provider: ShopProvider,
    now: Optional[datetime] = None,
    clock: Optional[Clock] = None,
) -> Tuple[Promotion, ...]:
    """
    Seed fixture promotions into the primary shop.

    No primary shop → nothing is loaded. Every fixture is stamped with
    the shop id, validated, then upserted by identifier.
    """
    shop_id = shop_provider.find_primary_shop_id()
    if not shop_id:
        return ()

    if now is None:
        now = (clock or get_default_clock()).now_utc()

    documents: List[Dict[str, Any]] = []
    for build in FIXTURE_BUILDERS:
        document = build(now)
        document["shopId"] = shop_id
        documents.append(document)
    return catalog.upsert_many(documents)
