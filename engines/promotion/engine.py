"""
Promo Engine — Evaluation Engine
==================================
One evaluation pass, end to end:

    facts → FactSnapshot
          → Trigger Matcher   (candidates, identifier order)
          → Rule Engine       (conditions, trigger events)
          → Stacking Resolver (prospective values, applied set)
          → Action Executor   (AdjustmentRecords)

The engine does NOT:
- Persist anything
- Perform I/O
- Read the system clock except through the injected Clock
- Mutate promotions, facts, or any state shared between passes

GUARANTEE: per-promotion problems become Diagnostics. Only invalid
engine input raises (InvalidFactSnapshotError, bad trigger key,
naive `now`, an unscoped pass that spans shops).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from core.config.settings import EngineSettings
from core.time.clock import Clock, get_default_clock
from engines.promotion.actions import ActionExecutor, ActionRegistry
from engines.promotion.catalog import PromotionCatalog, PromotionSource
from engines.promotion.events import TriggerEvent
from engines.promotion.exceptions import InvalidFactSnapshotError
from engines.promotion.facts import FactSnapshot
from engines.promotion.models import (
    AdjustmentRecord,
    AppliedPromotion,
    Diagnostic,
)
from engines.promotion.rules import RuleEngine
from engines.promotion.stacking import StackingCandidate, StackingResolver
from engines.promotion.triggers import match

logger = logging.getLogger("promo.engine")


# ══════════════════════════════════════════════════════════════
# RESULT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EvaluationResult:
    """
    Output of one pass. Pure data; the caller persists it.

    Fields:
        trigger_key:       Trigger that started the pass.
        evaluated_at:      Instant the validity windows were checked at.
        shop_id:           Shop scope, if any.
        candidate_ids:     Promotions the trigger selected.
        events:            One TriggerEvent per promotion whose rule passed.
        applied:           Per-promotion summaries of what was applied.
        adjustments:       Flat AdjustmentRecord sequence, in apply order.
        diagnostics:       Contained failures and stacking notes.
        explanation_tree:  Structured audit trail.
    """

    trigger_key: str
    evaluated_at: datetime
    shop_id: Optional[str]
    candidate_ids: Tuple[str, ...] = ()
    events: Tuple[TriggerEvent, ...] = ()
    applied: Tuple[AppliedPromotion, ...] = ()
    adjustments: Tuple[AdjustmentRecord, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    explanation_tree: dict = field(default_factory=dict)

    @property
    def applied_ids(self) -> Tuple[str, ...]:
        return tuple(a.promotion_id for a in self.applied)

    @property
    def total_discount(self) -> Decimal:
        return sum((a.amount for a in self.adjustments), Decimal("0"))

    @property
    def taxable_discount(self) -> Decimal:
        return sum(
            (a.amount for a in self.adjustments if a.report_as_taxable),
            Decimal("0"),
        )

    @property
    def has_diagnostics(self) -> bool:
        return len(self.diagnostics) > 0

    def diagnostics_for(self, promotion_id: str) -> Tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.promotion_id == promotion_id)

    def to_payload(self) -> dict:
        return {
            "trigger_key": self.trigger_key,
            "evaluated_at": self.evaluated_at.isoformat(),
            "shop_id": self.shop_id,
            "candidate_ids": list(self.candidate_ids),
            "events": [e.to_payload() for e in self.events],
            "applied": [a.to_payload() for a in self.applied],
            "adjustments": [a.to_payload() for a in self.adjustments],
            "diagnostics": [d.to_payload() for d in self.diagnostics],
            "explanation_tree": self.explanation_tree,
        }

    def to_json(self) -> str:
        """Canonical serialization; identical passes give identical bytes."""
        return json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))


# ══════════════════════════════════════════════════════════════
# ENGINE
# ══════════════════════════════════════════════════════════════

class PromotionEngine:
    """
    Usage:
        engine = PromotionEngine(catalog, clock=FixedClock(now))
        result = engine.evaluate("offers", {"cart": cart}, shop_id="shop-1")
        for adjustment in result.adjustments:
            ...
    """

    def __init__(
        self,
        promotions: Union[PromotionCatalog, Iterable[PromotionSource]] = (),
        *,
        clock: Optional[Clock] = None,
        action_registry: Optional[ActionRegistry] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._settings = settings or EngineSettings()
        if isinstance(promotions, PromotionCatalog):
            self._catalog = promotions
        else:
            self._catalog = PromotionCatalog(promotions, settings=self._settings)
        self._clock = clock
        self._rule_engine = RuleEngine()
        self._resolver = StackingResolver()
        self._executor = ActionExecutor(action_registry, self._settings)

    @property
    def catalog(self) -> PromotionCatalog:
        return self._catalog

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def evaluate(
        self,
        trigger_key: Optional[str],
        facts: Any,
        shop_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> EvaluationResult:
        """
        Run one evaluation pass.

        Args:
            trigger_key: Trigger that fired (None → settings default).
            facts:       Mapping of fact name → document, or a FactSnapshot.
            shop_id:     Restrict to one shop's promotions. May be omitted
                         only when every matching promotion has the same shop.
            now:         Evaluation instant. Defaults to the injected clock.

        Raises:
            InvalidFactSnapshotError: facts unusable, missing root facts,
                                      or a cart fact that is not an object.
            ValueError:               empty trigger key, naive `now`, or
                                      no shop_id while several shops match.
        """
        trigger_key = trigger_key or self._settings.default_trigger_key
        snapshot = FactSnapshot.capture(facts, self._settings.required_facts)
        if now is None:
            now = (self._clock or get_default_clock()).now_utc()
        if now.tzinfo is None:
            raise ValueError("Evaluation time must be timezone-aware.")

        cart = self._cart(snapshot)

        table = self._catalog.snapshot()
        candidates = match(trigger_key, table.values(), now, shop_id)
        if shop_id is None:
            shops = sorted({p.shop_id for p in candidates})
            if len(shops) > 1:
                raise ValueError(
                    f"Trigger '{trigger_key}' matched promotions of shops "
                    f"{shops}; pass shop_id to evaluate one shop."
                )

        rule_outcome = self._rule_engine.run(candidates, snapshot)

        stacking_candidates = tuple(
            StackingCandidate(
                promotion=promotion,
                prospective_value=self._executor.prospective_value(promotion, cart),
            )
            for promotion, _ in rule_outcome.passed
        )
        stacking_outcome = self._resolver.resolve(stacking_candidates)
        action_outcome = self._executor.apply(stacking_outcome.applied, cart)

        diagnostics = (
            rule_outcome.diagnostics
            + stacking_outcome.diagnostics
            + action_outcome.diagnostics
        )
        candidate_ids = tuple(p.promotion_id for p in candidates)

        explanation_tree = self._build_explanation(
            trigger_key=trigger_key,
            evaluated_at=now,
            candidate_ids=candidate_ids,
            passed_ids=rule_outcome.passed_ids,
            stacking_candidates=stacking_candidates,
            resolved_ids=stacking_outcome.applied_ids,
            applied=action_outcome.applied_promotions,
            diagnostics=diagnostics,
        )

        logger.info(
            f"Trigger '{trigger_key}' shop={shop_id}: "
            f"{len(candidates)} candidates, "
            f"{len(rule_outcome.passed)} passed, "
            f"{len(action_outcome.applied_promotions)} applied, "
            f"{len(diagnostics)} diagnostics"
        )

        return EvaluationResult(
            trigger_key=trigger_key,
            evaluated_at=now,
            shop_id=shop_id,
            candidate_ids=candidate_ids,
            events=tuple(event for _, event in rule_outcome.passed),
            applied=action_outcome.applied_promotions,
            adjustments=action_outcome.adjustments,
            diagnostics=diagnostics,
            explanation_tree=explanation_tree,
        )

    def _cart(self, snapshot: FactSnapshot) -> Mapping[str, Any]:
        name = self._settings.cart_fact
        if name not in snapshot:
            return MappingProxyType({})
        cart = snapshot.fact(name)
        if not isinstance(cart, Mapping):
            raise InvalidFactSnapshotError(
                f"Fact '{name}' must be an object, got {type(cart).__name__}."
            )
        return cart

    @staticmethod
    def _build_explanation(
        trigger_key: str,
        evaluated_at: datetime,
        candidate_ids: Tuple[str, ...],
        passed_ids: Tuple[str, ...],
        stacking_candidates: Tuple[StackingCandidate, ...],
        resolved_ids: Tuple[str, ...],
        applied: Tuple[AppliedPromotion, ...],
        diagnostics: Tuple[Diagnostic, ...],
    ) -> dict:
        return {
            "trigger_key": trigger_key,
            "evaluated_at": evaluated_at.isoformat(),
            "candidates_count": len(candidate_ids),
            "passed_count": len(passed_ids),
            "applied_count": len(applied),
            "diagnostic_count": len(diagnostics),
            "prospective_values": {
                c.promotion_id: str(c.prospective_value)
                for c in stacking_candidates
            },
            "details": [
                {
                    "promotion_id": promotion_id,
                    "conditions_passed": promotion_id in passed_ids,
                    "stacking_kept": promotion_id in resolved_ids,
                    "applied": any(a.promotion_id == promotion_id for a in applied),
                    "diagnostics": [
                        d.code for d in diagnostics
                        if d.promotion_id == promotion_id
                    ],
                }
                for promotion_id in candidate_ids
            ],
        }
