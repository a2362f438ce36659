"""
Tests for core.config — Engine settings.
"""

import pytest
from decimal import Decimal

from core.config.settings import EngineSettings, load_engine_settings


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings()
        assert settings.required_facts == ("cart",)
        assert settings.default_trigger_key == "offers"
        assert settings.cart_fact == "cart"
        assert settings.money_quantum == Decimal("0.01")

    def test_zero_precision_quantum(self):
        assert EngineSettings(money_precision=0).money_quantum == Decimal("1")

    def test_rejects_bad_depth(self):
        with pytest.raises(ValueError, match="max_condition_depth"):
            EngineSettings(max_condition_depth=0)

    def test_rejects_bad_precision(self):
        with pytest.raises(ValueError, match="money_precision"):
            EngineSettings(money_precision=9)

    def test_rejects_list_of_required_facts(self):
        with pytest.raises(ValueError, match="tuple"):
            EngineSettings(required_facts=["cart"])

    def test_frozen_immutability(self):
        settings = EngineSettings()
        with pytest.raises(AttributeError):
            settings.money_precision = 4


class TestLoadEngineSettings:
    def test_empty_environment_gives_defaults(self):
        assert load_engine_settings({}) == EngineSettings()

    def test_reads_environment(self):
        settings = load_engine_settings({
            "PROMO_REQUIRED_FACTS": "cart, customer",
            "PROMO_MAX_CONDITION_DEPTH": "8",
            "PROMO_MONEY_PRECISION": "3",
            "PROMO_DEFAULT_TRIGGER": "checkout",
            "PROMO_CART_FACT": "basket",
        })
        assert settings.required_facts == ("cart", "customer")
        assert settings.max_condition_depth == 8
        assert settings.money_precision == 3
        assert settings.default_trigger_key == "checkout"
        assert settings.cart_fact == "basket"

    def test_explicitly_empty_required_facts(self):
        settings = load_engine_settings({"PROMO_REQUIRED_FACTS": ""})
        assert settings.required_facts == ()

    def test_non_integer_depth(self):
        with pytest.raises(ValueError, match="PROMO_MAX_CONDITION_DEPTH"):
            load_engine_settings({"PROMO_MAX_CONDITION_DEPTH": "deep"})
