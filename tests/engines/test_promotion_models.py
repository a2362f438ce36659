"""
Promo Engine — Promotion Document Tests
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from engines.promotion.events import EVENT_TRIGGER_ACTION
from engines.promotion.models import Promotion, StackAbility, Trigger

from promotion_builders import NOW, promotion_doc


class TestFromDocument:
    def test_converts_camel_case_document(self):
        promotion = Promotion.from_document(promotion_doc("p1", stack_ability="all"))
        assert promotion.promotion_id == "p1"
        assert promotion.shop_id == "shop-1"
        assert promotion.trigger_keys == ("offers",)
        assert promotion.stack_ability == StackAbility.ALL
        assert promotion.actions[0].action_key == "noop"
        assert promotion.offer_rule.event.promotion_id == "p1"
        assert promotion.description == "Promotion p1"

    def test_plain_string_triggers(self):
        document = promotion_doc("p1")
        document["triggers"] = ["offers", "checkout"]
        assert Promotion.from_document(document).trigger_keys == ("offers", "checkout")

    def test_naive_and_iso_dates(self):
        document = promotion_doc("p1", start_date="2026-01-01T00:00:00Z")
        document["endDate"] = datetime(2026, 6, 1)
        promotion = Promotion.from_document(document)
        assert promotion.start_date == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert promotion.end_date.tzinfo is not None

    def test_missing_id_rejected(self):
        document = promotion_doc("p1")
        del document["_id"]
        with pytest.raises(ValueError, match="_id"):
            Promotion.from_document(document)

    @pytest.mark.parametrize("shop_id", [None, "", 42])
    def test_shop_is_required(self, shop_id):
        document = promotion_doc("p1")
        document["shopId"] = shop_id
        with pytest.raises(ValueError, match="shopId"):
            Promotion.from_document(document)

    def test_missing_shop_rejected(self):
        document = promotion_doc("p1")
        del document["shopId"]
        with pytest.raises(ValueError, match="shopId"):
            Promotion.from_document(document)

    def test_missing_start_date_rejected(self):
        document = promotion_doc("p1")
        del document["startDate"]
        with pytest.raises(ValueError, match="startDate"):
            Promotion.from_document(document)

    def test_end_before_start_rejected(self):
        with pytest.raises(ValueError, match="before end"):
            Promotion.from_document(
                promotion_doc("p1", start_date=NOW, end_date=NOW - timedelta(days=1))
            )

    def test_non_boolean_enabled_rejected(self):
        document = promotion_doc("p1")
        document["enabled"] = "yes"
        with pytest.raises(ValueError, match="enabled"):
            Promotion.from_document(document)

    def test_malformed_conditions_are_kept_as_defect(self):
        promotion = Promotion.from_document(promotion_doc("p1", conditions={"all": []}))
        assert promotion.offer_rule.is_malformed
        assert "at least one" in promotion.offer_rule.defect

    def test_missing_offer_rule_is_a_defect(self):
        document = promotion_doc("p1")
        del document["offerRule"]
        assert Promotion.from_document(document).offer_rule.is_malformed

    def test_event_params_always_carry_promotion_id(self):
        document = promotion_doc("p1")
        document["offerRule"]["event"] = {"type": EVENT_TRIGGER_ACTION}
        event = Promotion.from_document(document).offer_rule.event
        assert event.params["promotionId"] == "p1"

    def test_event_params_become_json_native(self):
        document = promotion_doc("p1")
        document["offerRule"]["event"]["params"]["issuedAt"] = NOW
        document["offerRule"]["event"]["params"]["budget"] = Decimal("12.50")
        params = Promotion.from_document(document).offer_rule.event.params
        assert params["issuedAt"] == NOW.isoformat()
        assert params["budget"] == "12.50"

    def test_to_document_round_trip(self):
        original = Promotion.from_document(promotion_doc("p1"))
        again = Promotion.from_document(original.to_document())
        assert again == original


class TestActivity:
    def test_disabled_is_never_active(self):
        promotion = Promotion.from_document(promotion_doc("p1", enabled=False))
        assert not promotion.is_active_at(NOW)

    def test_end_date_is_exclusive(self):
        promotion = Promotion.from_document(promotion_doc("p1", end_date=NOW))
        assert not promotion.is_active_at(NOW)
        assert promotion.is_active_at(NOW - timedelta(seconds=1))


class TestTrigger:
    def test_rejects_empty_key(self):
        with pytest.raises(ValueError, match="trigger_key"):
            Trigger.from_document({"triggerKey": ""})
