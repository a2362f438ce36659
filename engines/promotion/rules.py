"""
Promo Engine — Rule Engine
============================
Runs each candidate's offerRule conditions and emits its TriggerEvent
on success.

GUARANTEE: run() NEVER raises for a single promotion's problems.
- Malformed offer rule     → excluded, MALFORMED_RULE diagnostic
- Unresolvable fact        → leaf is false, FACT_UNRESOLVED diagnostic
- Any unexpected exception → excluded, RULE_EVALUATION_FAILED diagnostic

One bad promotion cannot block the shop's other promotions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from engines.promotion.conditions import explain
from engines.promotion.events import TriggerEvent
from engines.promotion.facts import FactSnapshot
from engines.promotion.models import Diagnostic, DiagnosticCode, Promotion

logger = logging.getLogger("promo.rules")


@dataclass(frozen=True)
class RuleEngineOutcome:
    passed: Tuple[Tuple[Promotion, TriggerEvent], ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()

    @property
    def passed_ids(self) -> Tuple[str, ...]:
        return tuple(p.promotion_id for p, _ in self.passed)


class RuleEngine:
    """
    Evaluates offer rules for a candidate set.

    Stateless; one instance may serve concurrent passes.
    """

    def run(
        self,
        candidates: Iterable[Promotion],
        snapshot: FactSnapshot,
    ) -> RuleEngineOutcome:
        passed: List[Tuple[Promotion, TriggerEvent]] = []
        diagnostics: List[Diagnostic] = []

        for promotion in candidates:
            event = self._run_one_safe(promotion, snapshot, diagnostics)
            if event is not None:
                passed.append((promotion, event))

        return RuleEngineOutcome(
            passed=tuple(passed), diagnostics=tuple(diagnostics)
        )

    @staticmethod
    def _run_one_safe(
        promotion: Promotion,
        snapshot: FactSnapshot,
        diagnostics: List[Diagnostic],
    ):
        offer_rule = promotion.offer_rule
        if offer_rule.is_malformed:
            logger.warning(
                f"Promotion {promotion.promotion_id} excluded: "
                f"malformed offer rule ({offer_rule.defect})"
            )
            diagnostics.append(Diagnostic(
                code=DiagnosticCode.MALFORMED_RULE,
                promotion_id=promotion.promotion_id,
                message=f"Offer rule is malformed: {offer_rule.defect}",
                metadata={"offer_rule": offer_rule.name},
            ))
            return None

        try:
            outcome = explain(offer_rule.conditions, snapshot)
        except Exception as exc:
            logger.warning(
                f"Promotion {promotion.promotion_id} excluded: "
                f"{type(exc).__name__}: {exc}"
            )
            diagnostics.append(Diagnostic(
                code=DiagnosticCode.RULE_EVALUATION_FAILED,
                promotion_id=promotion.promotion_id,
                message=f"Offer rule evaluation failed: {type(exc).__name__}",
                metadata={"error_type": type(exc).__name__, "exception": str(exc)},
            ))
            return None

        for failure in outcome.unresolved:
            diagnostics.append(Diagnostic(
                code=DiagnosticCode.FACT_UNRESOLVED,
                promotion_id=promotion.promotion_id,
                message=str(failure),
                metadata={
                    "fact": failure.fact,
                    "path": failure.path,
                    "reason": failure.reason,
                },
            ))

        logger.debug(
            f"Promotion {promotion.promotion_id} conditions "
            f"{'passed' if outcome.matched else 'failed'}"
        )
        if not outcome.matched:
            return None
        return offer_rule.event
