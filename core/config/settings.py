"""
Promo Core Config — Engine Settings
=====================================
Doctrine: No tunables hardcoded in engine logic.
Required facts, tree depth limits and money precision come from
EngineSettings, loaded once at startup and passed in explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional, Tuple


ENV_REQUIRED_FACTS = "PROMO_REQUIRED_FACTS"
ENV_MAX_CONDITION_DEPTH = "PROMO_MAX_CONDITION_DEPTH"
ENV_MONEY_PRECISION = "PROMO_MONEY_PRECISION"
ENV_DEFAULT_TRIGGER = "PROMO_DEFAULT_TRIGGER"
ENV_CART_FACT = "PROMO_CART_FACT"

DEFAULT_REQUIRED_FACTS: Tuple[str, ...] = ("cart",)
DEFAULT_MAX_CONDITION_DEPTH = 32
DEFAULT_MONEY_PRECISION = 2
DEFAULT_TRIGGER_KEY = "offers"
DEFAULT_CART_FACT = "cart"


# ══════════════════════════════════════════════════════════════
# ENGINE SETTINGS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EngineSettings:
    """
    Tunables for one engine instance.

    Fields:
        required_facts:       Root facts every snapshot must carry.
        max_condition_depth:  Deepest condition tree accepted at load.
        money_precision:      Decimal places adjustment amounts round to.
        default_trigger_key:  Trigger used when the caller names none.
        cart_fact:            Fact that actions compute adjustments against.
    """

    required_facts: Tuple[str, ...] = DEFAULT_REQUIRED_FACTS
    max_condition_depth: int = DEFAULT_MAX_CONDITION_DEPTH
    money_precision: int = DEFAULT_MONEY_PRECISION
    default_trigger_key: str = DEFAULT_TRIGGER_KEY
    cart_fact: str = DEFAULT_CART_FACT

    def __post_init__(self) -> None:
        if not isinstance(self.required_facts, tuple):
            raise ValueError("required_facts must be a tuple of fact names.")
        for name in self.required_facts:
            if not name or not isinstance(name, str):
                raise ValueError("required_facts entries must be non-empty strings.")
        if self.max_condition_depth < 1:
            raise ValueError(
                f"max_condition_depth must be >= 1, got {self.max_condition_depth}."
            )
        if not 0 <= self.money_precision <= 6:
            raise ValueError(
                f"money_precision must be between 0 and 6, got {self.money_precision}."
            )
        if not self.default_trigger_key:
            raise ValueError("default_trigger_key must be non-empty.")
        if not self.cart_fact:
            raise ValueError("cart_fact must be non-empty.")

    @property
    def money_quantum(self) -> Decimal:
        """Smallest representable amount, e.g. Decimal('0.01')."""
        return Decimal(1).scaleb(-self.money_precision)


# ══════════════════════════════════════════════════════════════
# ENVIRONMENT LOADER
# ══════════════════════════════════════════════════════════════

def _parse_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got '{raw}'.") from None


def load_engine_settings(
    environ: Optional[Mapping[str, str]] = None,
) -> EngineSettings:
    """
    Build EngineSettings from environment variables.

    PROMO_REQUIRED_FACTS is a comma-separated list; an explicitly empty
    value disables the root-fact requirement.
    """
    if environ is None:
        environ = os.environ

    raw_facts = environ.get(ENV_REQUIRED_FACTS)
    if raw_facts is None:
        required_facts = DEFAULT_REQUIRED_FACTS
    else:
        required_facts = tuple(
            name.strip() for name in raw_facts.split(",") if name.strip()
        )

    return EngineSettings(
        required_facts=required_facts,
        max_condition_depth=_parse_int(
            environ, ENV_MAX_CONDITION_DEPTH, DEFAULT_MAX_CONDITION_DEPTH
        ),
        money_precision=_parse_int(
            environ, ENV_MONEY_PRECISION, DEFAULT_MONEY_PRECISION
        ),
        default_trigger_key=(
            environ.get(ENV_DEFAULT_TRIGGER) or DEFAULT_TRIGGER_KEY
        ),
        cart_fact=environ.get(ENV_CART_FACT) or DEFAULT_CART_FACT,
    )
