"""
Promo Engine — Action Executor
================================
Turns resolved promotions into AdjustmentRecords.

Every action must:
- Be pure (compute an amount, never mutate the cart)
- Declare its action_key
- Raise InvalidActionParametersError for parameters it cannot use

Dispatch is a closed table (ActionRegistry), locked after bootstrap.
An unknown key is an UnsupportedActionError scoped to that one action:
it is skipped, reported, and the promotion's other actions still run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from core.config.settings import EngineSettings
from engines.promotion.conditions import NonNumericOperand, to_decimal
from engines.promotion.exceptions import (
    DuplicateActionError,
    InvalidActionParametersError,
    RegistryLockedError,
    UnsupportedActionError,
)
from engines.promotion.models import (
    ActionSpec,
    AdjustmentRecord,
    AppliedPromotion,
    Diagnostic,
    DiagnosticCode,
    Promotion,
)

logger = logging.getLogger("promo.actions")

ZERO = Decimal("0")


# ══════════════════════════════════════════════════════════════
# CART HELPERS
# ══════════════════════════════════════════════════════════════

def _money(value: Any, what: str) -> Decimal:
    if isinstance(value, Mapping) and "amount" in value:
        value = value["amount"]
    try:
        return to_decimal(value)
    except NonNumericOperand:
        raise ValueError(f"Cart {what} is not numeric: {value!r}") from None


def _require_cart(cart: Any) -> Mapping[str, Any]:
    if not isinstance(cart, Mapping):
        raise ValueError(f"Cart must be an object, got {type(cart).__name__}.")
    return cart


def merchandise_total(cart: Mapping[str, Any]) -> Decimal:
    """cart.merchandiseTotal, or the sum of price x quantity over items."""
    cart = _require_cart(cart)
    if cart.get("merchandiseTotal") is not None:
        return _money(cart["merchandiseTotal"], "merchandiseTotal")
    items = cart.get("items")
    if items is None:
        raise ValueError("Cart has neither merchandiseTotal nor items.")
    if not isinstance(items, (list, tuple)):
        raise ValueError(f"Cart items must be a list, got {type(items).__name__}.")
    total = ZERO
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise ValueError(
                f"Cart item {index} is not an object, cannot price {item!r}."
            )
        price = _money(item.get("price"), "item price")
        quantity = _money(item.get("quantity", 1), "item quantity")
        total += price * quantity
    return total


def shipping_total(cart: Mapping[str, Any]) -> Decimal:
    cart = _require_cart(cart)
    if cart.get("shippingTotal") is None:
        return ZERO
    return _money(cart["shippingTotal"], "shippingTotal")


def quantize(amount: Decimal, quantum: Decimal) -> Decimal:
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


# ══════════════════════════════════════════════════════════════
# ACTION CONTRACT
# ══════════════════════════════════════════════════════════════

class BaseAction(ABC):
    """
    Abstract base for promotion actions.

    Subclasses must set action_key and implement compute().
    affects_merchandise=True means the amount comes off the merchandise
    total, so it is clamped against what earlier adjustments left.
    """

    action_key: str = ""
    affects_merchandise: bool = True

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if getattr(cls.compute, "__isabstractmethod__", False):
            return
        if not cls.action_key or not isinstance(cls.action_key, str):
            raise TypeError(
                f"Action class {cls.__name__} must declare "
                f"action_key as non-empty string."
            )

    @abstractmethod
    def compute(
        self, parameters: Mapping[str, Any], cart: Mapping[str, Any]
    ) -> Decimal:
        """Return the undiscounted-basis amount this action is worth."""
        ...

    def _parameter(self, parameters: Mapping[str, Any], name: str) -> Decimal:
        if name not in parameters:
            raise InvalidActionParametersError(
                self.action_key, f"missing parameter '{name}'"
            )
        try:
            return to_decimal(parameters[name])
        except NonNumericOperand as exc:
            raise InvalidActionParametersError(
                self.action_key, f"parameter '{name}': {exc}"
            ) from None


class NoopAction(BaseAction):
    """Records that the promotion applied without touching the cart."""

    action_key = "noop"
    affects_merchandise = False

    def compute(self, parameters, cart) -> Decimal:
        return ZERO


class PercentageDiscountAction(BaseAction):
    action_key = "percentageDiscount"

    def compute(self, parameters, cart) -> Decimal:
        percentage = self._parameter(parameters, "percentage")
        if not ZERO < percentage <= 100:
            raise InvalidActionParametersError(
                self.action_key,
                f"percentage must be in (0, 100], got {percentage}",
            )
        return merchandise_total(cart) * percentage / Decimal(100)


class FixedDiscountAction(BaseAction):
    action_key = "fixedDiscount"

    def compute(self, parameters, cart) -> Decimal:
        amount = self._parameter(parameters, "amount")
        if amount <= ZERO:
            raise InvalidActionParametersError(
                self.action_key, f"amount must be positive, got {amount}"
            )
        return min(amount, merchandise_total(cart))


class FreeShippingAction(BaseAction):
    action_key = "freeShipping"
    affects_merchandise = False

    def compute(self, parameters, cart) -> Decimal:
        return shipping_total(cart)


# ══════════════════════════════════════════════════════════════
# ACTION REGISTRY
# ══════════════════════════════════════════════════════════════

class ActionRegistry:
    """
    action_key → BaseAction table. Thread-safe. Lock-after-bootstrap.

    Usage:
        registry = ActionRegistry()
        registry.register_action(NoopAction())
        registry.lock()
        action = registry.get("noop")
    """

    def __init__(self):
        self._actions: Dict[str, BaseAction] = {}
        self._locked = False
        self._lock = Lock()

    def register_action(self, action: BaseAction) -> None:
        if not isinstance(action, BaseAction):
            raise TypeError(
                f"Expected BaseAction instance, got {type(action).__name__}."
            )
        with self._lock:
            if self._locked:
                raise RegistryLockedError()
            if action.action_key in self._actions:
                raise DuplicateActionError(action.action_key)
            self._actions[action.action_key] = action
            logger.info(f"Action registered: {action.action_key}")

    def lock(self) -> None:
        with self._lock:
            if not self._locked:
                self._locked = True
                logger.info(
                    f"Action Registry LOCKED — {len(self._actions)} actions"
                )

    @property
    def is_locked(self) -> bool:
        with self._lock:
            return self._locked

    def get(self, action_key: str) -> BaseAction:
        with self._lock:
            action = self._actions.get(action_key)
        if action is None:
            raise UnsupportedActionError(action_key)
        return action

    def action_keys(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._actions))


BUILTIN_ACTIONS = (
    NoopAction,
    PercentageDiscountAction,
    FixedDiscountAction,
    FreeShippingAction,
)


def build_default_action_registry() -> ActionRegistry:
    """Registry with the built-in actions, already locked."""
    registry = ActionRegistry()
    for action_cls in BUILTIN_ACTIONS:
        registry.register_action(action_cls())
    registry.lock()
    return registry


# ══════════════════════════════════════════════════════════════
# EXECUTOR
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ActionOutcome:
    adjustments: Tuple[AdjustmentRecord, ...] = ()
    applied_promotions: Tuple[AppliedPromotion, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()


class ActionExecutor:
    """Dispatches each promotion's actions, in declared order."""

    def __init__(
        self,
        registry: Optional[ActionRegistry] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self._registry = registry or build_default_action_registry()
        self._settings = settings or EngineSettings()

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    def prospective_value(
        self, promotion: Promotion, cart: Mapping[str, Any]
    ) -> Decimal:
        """
        Stand-alone worth of a promotion on this cart.

        Actions that cannot run contribute nothing; apply() reports them.
        """
        total = ZERO
        for spec in promotion.actions:
            try:
                _, amount = self._compute(spec, cart, promotion.promotion_id)
            except Exception:
                continue
            total += amount
        return total

    def apply(
        self,
        applied: Iterable[Promotion],
        cart: Mapping[str, Any],
    ) -> ActionOutcome:
        adjustments: List[AdjustmentRecord] = []
        summaries: List[AppliedPromotion] = []
        diagnostics: List[Diagnostic] = []

        try:
            remaining: Optional[Decimal] = merchandise_total(cart)
        except ValueError:
            remaining = None

        for promotion in applied:
            executed: List[str] = []
            promotion_total = ZERO
            for spec in promotion.actions:
                try:
                    action, amount = self._compute(
                        spec, cart, promotion.promotion_id
                    )
                except UnsupportedActionError as exc:
                    diagnostics.append(self._diagnostic(
                        DiagnosticCode.UNSUPPORTED_ACTION, promotion, spec, exc
                    ))
                    continue
                except InvalidActionParametersError as exc:
                    diagnostics.append(self._diagnostic(
                        DiagnosticCode.INVALID_ACTION_PARAMETERS,
                        promotion, spec, exc,
                    ))
                    continue
                except Exception as exc:
                    diagnostics.append(self._diagnostic(
                        DiagnosticCode.ACTION_FAILED, promotion, spec, exc
                    ))
                    continue

                if action.affects_merchandise and remaining is not None:
                    amount = min(amount, remaining)
                    remaining -= amount

                adjustments.append(AdjustmentRecord(
                    promotion_id=promotion.promotion_id,
                    action_key=spec.action_key,
                    amount=amount,
                    report_as_taxable=promotion.report_as_taxable,
                ))
                executed.append(spec.action_key)
                promotion_total += amount

            if not executed:
                diagnostics.append(Diagnostic(
                    code=DiagnosticCode.NO_ACTIONS_APPLIED,
                    promotion_id=promotion.promotion_id,
                    message="No action could be executed; promotion not applied.",
                ))
                continue

            summaries.append(AppliedPromotion(
                promotion_id=promotion.promotion_id,
                actions_applied=tuple(executed),
                amount=promotion_total,
                report_as_taxable=promotion.report_as_taxable,
            ))

        return ActionOutcome(
            adjustments=tuple(adjustments),
            applied_promotions=tuple(summaries),
            diagnostics=tuple(diagnostics),
        )

    def _compute(
        self, spec: ActionSpec, cart: Mapping[str, Any], promotion_id: str
    ) -> Tuple[BaseAction, Decimal]:
        try:
            action = self._registry.get(spec.action_key)
        except UnsupportedActionError:
            raise UnsupportedActionError(spec.action_key, promotion_id) from None
        amount = action.compute(spec.action_parameters, cart)
        return action, max(quantize(amount, self._settings.money_quantum), ZERO)

    @staticmethod
    def _diagnostic(
        code: str, promotion: Promotion, spec: ActionSpec, exc: Exception
    ) -> Diagnostic:
        logger.warning(
            f"Promotion {promotion.promotion_id} action {spec.action_key} "
            f"skipped: {exc}"
        )
        return Diagnostic(
            code=code,
            promotion_id=promotion.promotion_id,
            message=str(exc),
            metadata={
                "action_key": spec.action_key,
                "error_type": type(exc).__name__,
            },
        )
