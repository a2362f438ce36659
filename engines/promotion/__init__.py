"""
Promo Engine — Promotion Rule Evaluation
==========================================
Which promotions qualify, which of them stack, and what they are worth.

Evaluation is computation, not persistence.
One bad promotion never blocks the others.
Determinism is a correctness requirement.
"""

from engines.promotion.actions import (
    ActionExecutor,
    ActionRegistry,
    BaseAction,
    build_default_action_registry,
)
from engines.promotion.catalog import PromotionCatalog
from engines.promotion.conditions import (
    ConditionOutcome,
    Operator,
    compile_condition,
    evaluate,
    explain,
)
from engines.promotion.engine import EvaluationResult, PromotionEngine
from engines.promotion.events import (
    EVENT_TRIGGER_ACTION,
    TRIGGER_OFFERS,
    TriggerEvent,
)
from engines.promotion.exceptions import (
    DuplicateActionError,
    FactResolutionError,
    InvalidActionParametersError,
    InvalidFactSnapshotError,
    MalformedRuleError,
    PromotionEngineError,
    RegistryLockedError,
    StackingConflictError,
    UnsupportedActionError,
)
from engines.promotion.facts import FactSnapshot
from engines.promotion.fixtures import (
    InMemoryShopProvider,
    load_promotion_fixtures,
)
from engines.promotion.models import (
    ActionSpec,
    AdjustmentRecord,
    AppliedPromotion,
    Diagnostic,
    DiagnosticCode,
    OfferRule,
    Promotion,
    StackAbility,
    Trigger,
)
from engines.promotion.rules import RuleEngine, RuleEngineOutcome
from engines.promotion.stacking import (
    StackingCandidate,
    StackingOutcome,
    StackingResolver,
)
from engines.promotion.triggers import match

__all__ = [
    # ── Engine ────────────────────────────────────────────────
    "PromotionEngine",
    "EvaluationResult",
    # ── Components ────────────────────────────────────────────
    "FactSnapshot",
    "compile_condition",
    "evaluate",
    "explain",
    "ConditionOutcome",
    "Operator",
    "match",
    "RuleEngine",
    "RuleEngineOutcome",
    "StackingResolver",
    "StackingCandidate",
    "StackingOutcome",
    "ActionExecutor",
    "ActionRegistry",
    "BaseAction",
    "build_default_action_registry",
    # ── Catalog / fixtures ────────────────────────────────────
    "PromotionCatalog",
    "InMemoryShopProvider",
    "load_promotion_fixtures",
    # ── Models ────────────────────────────────────────────────
    "Promotion",
    "OfferRule",
    "Trigger",
    "ActionSpec",
    "StackAbility",
    "TriggerEvent",
    "EVENT_TRIGGER_ACTION",
    "TRIGGER_OFFERS",
    "AdjustmentRecord",
    "AppliedPromotion",
    "Diagnostic",
    "DiagnosticCode",
    # ── Exceptions ────────────────────────────────────────────
    "PromotionEngineError",
    "FactResolutionError",
    "MalformedRuleError",
    "UnsupportedActionError",
    "InvalidActionParametersError",
    "StackingConflictError",
    "InvalidFactSnapshotError",
    "DuplicateActionError",
    "RegistryLockedError",
]
