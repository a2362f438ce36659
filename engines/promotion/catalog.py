"""
Promo Engine — Promotion Catalog
==================================
Immutable in-memory table of promotions keyed by identifier.

Writers build a new table under a lock and swap it in whole; readers
take the current table reference and never see a half-applied write.
Upserts are idempotent by identifier.
"""

from __future__ import annotations

import logging
from threading import Lock
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from core.config.settings import EngineSettings
from engines.promotion.models import Promotion

logger = logging.getLogger("promo.catalog")

PromotionSource = Union[Promotion, Mapping[str, Any]]


class PromotionCatalog:
    """
    Usage:
        catalog = PromotionCatalog()
        catalog.upsert(promotion_document)
        promotions = catalog.for_shop("shop-1")
    """

    def __init__(
        self,
        promotions: Iterable[PromotionSource] = (),
        settings: Optional[EngineSettings] = None,
    ):
        self._settings = settings or EngineSettings()
        self._write_lock = Lock()
        self._table: Mapping[str, Promotion] = MappingProxyType({})
        promotions = tuple(promotions)
        if promotions:
            self.replace(promotions)

    def _coerce(self, source: PromotionSource) -> Promotion:
        if isinstance(source, Promotion):
            return source
        return Promotion.from_document(
            source, max_depth=self._settings.max_condition_depth
        )

    # ══════════════════════════════════════════════════════════
    # WRITES (copy-on-write, atomic swap)
    # ══════════════════════════════════════════════════════════

    def upsert(self, source: PromotionSource) -> Promotion:
        """Insert or overwrite one promotion by identifier."""
        return self.upsert_many((source,))[0]

    def upsert_many(
        self, sources: Iterable[PromotionSource]
    ) -> Tuple[Promotion, ...]:
        """
        Upsert several promotions as one swap.

        Every source is validated before the table changes; one invalid
        document leaves the catalog untouched.
        """
        promotions = tuple(self._coerce(s) for s in sources)
        with self._write_lock:
            table = dict(self._table)
            for promotion in promotions:
                table[promotion.promotion_id] = promotion
            self._table = MappingProxyType(table)
        logger.info(
            f"Catalog upserted {[p.promotion_id for p in promotions]} "
            f"— {len(table)} promotions"
        )
        return promotions

    def replace(self, sources: Iterable[PromotionSource]) -> None:
        """Swap the whole table (reload)."""
        promotions = tuple(self._coerce(s) for s in sources)
        table = {}
        for promotion in promotions:
            if promotion.promotion_id in table:
                raise ValueError(
                    f"Duplicate promotion '{promotion.promotion_id}' in reload."
                )
            table[promotion.promotion_id] = promotion
        with self._write_lock:
            self._table = MappingProxyType(table)
        logger.info(f"Catalog replaced — {len(table)} promotions")

    def remove(self, promotion_id: str) -> bool:
        with self._write_lock:
            if promotion_id not in self._table:
                return False
            table = dict(self._table)
            del table[promotion_id]
            self._table = MappingProxyType(table)
        logger.info(f"Catalog removed {promotion_id}")
        return True

    # ══════════════════════════════════════════════════════════
    # READS
    # ══════════════════════════════════════════════════════════

    def snapshot(self) -> Mapping[str, Promotion]:
        """The current immutable table."""
        return self._table

    def get(self, promotion_id: str) -> Optional[Promotion]:
        return self._table.get(promotion_id)

    def all(self) -> Tuple[Promotion, ...]:
        table = self._table
        return tuple(table[k] for k in sorted(table))

    def for_shop(self, shop_id: str) -> Tuple[Promotion, ...]:
        return tuple(p for p in self.all() if p.shop_id == shop_id)

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, promotion_id: object) -> bool:
        return promotion_id in self._table
