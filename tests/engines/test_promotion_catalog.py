"""
Promo Engine — Catalog & Fixture Tests
"""

from __future__ import annotations

import pytest

from core.time.clock import FixedClock
from engines.promotion.catalog import PromotionCatalog
from engines.promotion.fixtures import (
    InMemoryShopProvider,
    load_promotion_fixtures,
    make_primary_shop,
)
from engines.promotion.models import Promotion

from promotion_builders import NOW, promotion_doc


class TestCatalogWrites:
    def test_upsert_accepts_documents_and_promotions(self):
        catalog = PromotionCatalog()
        catalog.upsert(promotion_doc("p1"))
        catalog.upsert(Promotion.from_document(promotion_doc("p2")))
        assert len(catalog) == 2
        assert "p1" in catalog
        assert isinstance(catalog.get("p2"), Promotion)

    def test_upsert_is_idempotent(self):
        catalog = PromotionCatalog()
        catalog.upsert(promotion_doc("p1"))
        catalog.upsert(promotion_doc("p1"))
        assert len(catalog) == 1

    def test_upsert_overwrites(self):
        catalog = PromotionCatalog([promotion_doc("p1")])
        catalog.upsert(promotion_doc("p1", enabled=False))
        assert catalog.get("p1").enabled is False

    def test_invalid_document_leaves_table_untouched(self):
        catalog = PromotionCatalog([promotion_doc("p1")])
        broken = promotion_doc("p2")
        del broken["startDate"]
        with pytest.raises(ValueError):
            catalog.upsert_many([promotion_doc("p3"), broken])
        assert [p.promotion_id for p in catalog.all()] == ["p1"]

    def test_replace_rejects_duplicates(self):
        catalog = PromotionCatalog()
        with pytest.raises(ValueError, match="Duplicate"):
            catalog.replace([promotion_doc("p1"), promotion_doc("p1")])

    def test_replace_swaps_whole_table(self):
        catalog = PromotionCatalog([promotion_doc("p1")])
        catalog.replace([promotion_doc("p2")])
        assert [p.promotion_id for p in catalog.all()] == ["p2"]

    def test_remove(self):
        catalog = PromotionCatalog([promotion_doc("p1")])
        assert catalog.remove("p1") is True
        assert catalog.remove("p1") is False
        assert len(catalog) == 0


class TestCatalogReads:
    def test_all_sorted_by_identifier(self):
        catalog = PromotionCatalog([promotion_doc("c"), promotion_doc("a"), promotion_doc("b")])
        assert [p.promotion_id for p in catalog.all()] == ["a", "b", "c"]

    def test_for_shop(self):
        catalog = PromotionCatalog([
            promotion_doc("b", shop_id="shop-1"),
            promotion_doc("a", shop_id="shop-2"),
            promotion_doc("c", shop_id="shop-1"),
        ])
        assert [p.promotion_id for p in catalog.for_shop("shop-1")] == ["b", "c"]

    def test_snapshot_is_stable_across_writes(self):
        catalog = PromotionCatalog([promotion_doc("p1")])
        before = catalog.snapshot()
        catalog.upsert(promotion_doc("p2"))
        assert list(before) == ["p1"]
        assert sorted(catalog.snapshot()) == ["p1", "p2"]

    def test_snapshot_is_read_only(self):
        catalog = PromotionCatalog([promotion_doc("p1")])
        with pytest.raises(TypeError):
            catalog.snapshot()["p2"] = None


class TestFixtures:
    def test_no_primary_shop_loads_nothing(self):
        catalog = PromotionCatalog()
        provider = InMemoryShopProvider([{"_id": "s1", "shopType": "merchant"}])
        assert load_promotion_fixtures(catalog, provider, now=NOW) == ()
        assert len(catalog) == 0

    def test_order_promotion_seeded_into_primary_shop(self):
        catalog = PromotionCatalog()
        provider = InMemoryShopProvider([make_primary_shop("primary-1")])
        loaded = load_promotion_fixtures(catalog, provider, clock=FixedClock(NOW))

        assert [p.promotion_id for p in loaded] == ["orderPromotion"]
        promotion = catalog.get("orderPromotion")
        assert promotion.shop_id == "primary-1"
        assert promotion.enabled is True
        assert promotion.start_date == NOW
        assert promotion.trigger_keys == ("offers",)
        assert promotion.stack_ability == "none"
        assert promotion.report_as_taxable is True
        assert [a.action_key for a in promotion.actions] == ["noop"]

    def test_seeding_twice_is_idempotent(self):
        catalog = PromotionCatalog()
        provider = InMemoryShopProvider([make_primary_shop("primary-1")])
        load_promotion_fixtures(catalog, provider, now=NOW)
        load_promotion_fixtures(catalog, provider, now=NOW)
        assert len(catalog) == 1
