"""
Promo Engine — Data Model
===========================
Promotion: read-only definition supplied by the catalog.
AdjustmentRecord / AppliedPromotion: per-pass output.
Diagnostic: contained per-promotion failure, reported not raised.

Documents use the camelCase keys of the stored promotion documents
(_id, offerRule, stackAbility, reportAsTaxable, startDate, endDate,
shopId). Promotion.from_document converts and validates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional, Tuple

from core.config.settings import DEFAULT_MAX_CONDITION_DEPTH
from core.time.temporal import ValidityWindow, coerce_datetime
from engines.promotion.conditions import ConditionNode, compile_condition
from engines.promotion.events import TriggerEvent, build_trigger_event
from engines.promotion.exceptions import MalformedRuleError
from engines.promotion.facts import freeze, thaw


# ══════════════════════════════════════════════════════════════
# STACKABILITY
# ══════════════════════════════════════════════════════════════

class StackAbility:
    """
    "none" → exclusive, "all" → combines with everything.
    Any other label is a restricted class.
    """
    NONE = "none"
    ALL = "all"

    @staticmethod
    def is_restricted(value: str) -> bool:
        return value not in (StackAbility.NONE, StackAbility.ALL)


# ══════════════════════════════════════════════════════════════
# DIAGNOSTICS
# ══════════════════════════════════════════════════════════════

class DiagnosticCode:
    MALFORMED_RULE = "MALFORMED_RULE"
    FACT_UNRESOLVED = "FACT_UNRESOLVED"
    RULE_EVALUATION_FAILED = "RULE_EVALUATION_FAILED"
    STACKING_TIE = "STACKING_TIE"
    STACKED_OUT = "STACKED_OUT"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"
    INVALID_ACTION_PARAMETERS = "INVALID_ACTION_PARAMETERS"
    ACTION_FAILED = "ACTION_FAILED"
    NO_ACTIONS_APPLIED = "NO_ACTIONS_APPLIED"


@dataclass(frozen=True)
class Diagnostic:
    """
    A contained, per-promotion problem surfaced in the evaluation result.

    Fields:
        code:          DiagnosticCode value.
        promotion_id:  Owning promotion (None for pass-wide notes).
        message:       Human-readable explanation.
        metadata:      Structured detail for audit.
    """

    code: str
    promotion_id: Optional[str]
    message: str
    metadata: dict = field(default_factory=dict)

    def to_payload(self) -> dict:
        return {
            "code": self.code,
            "promotion_id": self.promotion_id,
            "message": self.message,
            "metadata": self.metadata,
        }


# ══════════════════════════════════════════════════════════════
# PROMOTION PARTS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Trigger:
    trigger_key: str
    trigger_parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.trigger_key or not isinstance(self.trigger_key, str):
            raise ValueError("trigger_key must be a non-empty string.")
        object.__setattr__(
            self, "trigger_parameters", freeze(self.trigger_parameters)
        )

    @classmethod
    def from_document(cls, document: Any) -> "Trigger":
        if isinstance(document, str):
            return cls(trigger_key=document)
        if isinstance(document, Mapping):
            return cls(
                trigger_key=document.get("triggerKey"),
                trigger_parameters=document.get("triggerParameters") or {},
            )
        raise ValueError(f"Trigger must be a string or object, got {document!r}.")


@dataclass(frozen=True)
class ActionSpec:
    action_key: str
    action_parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.action_key or not isinstance(self.action_key, str):
            raise ValueError("action_key must be a non-empty string.")
        if not isinstance(self.action_parameters, Mapping):
            raise ValueError("action_parameters must be an object.")
        object.__setattr__(
            self, "action_parameters", freeze(self.action_parameters)
        )

    @classmethod
    def from_document(cls, document: Any) -> "ActionSpec":
        if not isinstance(document, Mapping):
            raise ValueError(f"Action must be an object, got {document!r}.")
        return cls(
            action_key=document.get("actionKey"),
            action_parameters=document.get("actionParameters") or {},
        )


@dataclass(frozen=True)
class OfferRule:
    """
    Named condition tree plus the event it emits.

    A rule whose conditions failed to compile keeps the reason in
    `defect`; the Rule Engine excludes it and reports the defect.
    """

    name: str
    conditions: Optional[ConditionNode]
    event: TriggerEvent
    defect: Optional[str] = None

    @property
    def is_malformed(self) -> bool:
        return self.defect is not None

    @classmethod
    def from_document(
        cls,
        document: Any,
        promotion_id: str,
        max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
    ) -> "OfferRule":
        if not isinstance(document, Mapping):
            return cls(
                name="",
                conditions=None,
                event=build_trigger_event(promotion_id),
                defect="offerRule is missing or not an object",
            )

        name = document.get("name") or ""
        try:
            event = build_trigger_event(promotion_id, document.get("event"))
        except ValueError as exc:
            return cls(
                name=name,
                conditions=None,
                event=build_trigger_event(promotion_id),
                defect=f"invalid event: {exc}",
            )

        if "conditions" not in document:
            return cls(
                name=name, conditions=None, event=event,
                defect="offerRule has no conditions",
            )
        try:
            conditions = compile_condition(document["conditions"], max_depth)
        except MalformedRuleError as exc:
            return cls(name=name, conditions=None, event=event, defect=str(exc))

        return cls(name=name, conditions=conditions, event=event)


# ══════════════════════════════════════════════════════════════
# PROMOTION
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Promotion:
    """
    A shop's promotion definition. Read-only to the engine.

    Invariant: enabled=False or an instant outside [start_date, end_date)
    never qualifies, whatever the conditions say.
    """

    promotion_id: str
    shop_id: str
    enabled: bool
    triggers: Tuple[Trigger, ...]
    offer_rule: OfferRule
    actions: Tuple[ActionSpec, ...]
    start_date: datetime
    end_date: Optional[datetime] = None
    stack_ability: str = StackAbility.NONE
    report_as_taxable: bool = True
    label: str = ""
    description: str = ""

    def __post_init__(self):
        if not self.promotion_id or not isinstance(self.promotion_id, str):
            raise ValueError("promotion_id must be a non-empty string.")
        if not self.shop_id or not isinstance(self.shop_id, str):
            raise ValueError(
                f"Promotion '{self.promotion_id}' must belong to a shop (shop_id)."
            )
        if not isinstance(self.enabled, bool):
            raise ValueError("enabled must be a bool.")
        if not isinstance(self.report_as_taxable, bool):
            raise ValueError("report_as_taxable must be a bool.")
        if not self.stack_ability or not isinstance(self.stack_ability, str):
            raise ValueError("stack_ability must be a non-empty string.")
        # Fails on a naive or inverted window
        ValidityWindow(start=self.start_date, end=self.end_date)

    @property
    def validity(self) -> ValidityWindow:
        return ValidityWindow(start=self.start_date, end=self.end_date)

    @property
    def trigger_keys(self) -> Tuple[str, ...]:
        return tuple(t.trigger_key for t in self.triggers)

    def responds_to(self, trigger_key: str) -> bool:
        return trigger_key in self.trigger_keys

    def is_active_at(self, now: datetime) -> bool:
        return self.enabled and self.validity.contains(now)

    @classmethod
    def from_document(
        cls,
        document: Mapping[str, Any],
        max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
    ) -> "Promotion":
        """
        Validate and convert a stored promotion document.

        Raises ValueError for documents that cannot describe a promotion
        at all. A bad condition tree is NOT a ValueError: it is kept on
        the offer rule so the promotion fails closed at evaluation time.
        """
        if not isinstance(document, Mapping):
            raise ValueError("Promotion document must be an object.")

        promotion_id = document.get("_id")
        if not promotion_id or not isinstance(promotion_id, str):
            raise ValueError("Promotion document needs a string '_id'.")

        shop_id = document.get("shopId")
        if not shop_id or not isinstance(shop_id, str):
            raise ValueError(f"Promotion '{promotion_id}' needs a string 'shopId'.")

        if "startDate" not in document:
            raise ValueError(f"Promotion '{promotion_id}' needs a startDate.")
        end_raw = document.get("endDate")

        triggers = document.get("triggers") or ()
        actions = document.get("actions") or ()
        if not isinstance(triggers, (list, tuple)):
            raise ValueError(f"Promotion '{promotion_id}' triggers must be a list.")
        if not isinstance(actions, (list, tuple)):
            raise ValueError(f"Promotion '{promotion_id}' actions must be a list.")

        label = document.get("label") or ""
        return cls(
            promotion_id=promotion_id,
            shop_id=shop_id,
            enabled=document.get("enabled", False),
            triggers=tuple(Trigger.from_document(t) for t in triggers),
            offer_rule=OfferRule.from_document(
                document.get("offerRule"), promotion_id, max_depth
            ),
            actions=tuple(ActionSpec.from_document(a) for a in actions),
            start_date=coerce_datetime(document["startDate"]),
            end_date=None if end_raw is None else coerce_datetime(end_raw),
            stack_ability=document.get("stackAbility", StackAbility.NONE),
            report_as_taxable=document.get("reportAsTaxable", True),
            label=label,
            description=document.get("description") or label,
        )

    def to_document(self) -> dict:
        offer_rule: dict = {
            "name": self.offer_rule.name,
            "event": self.offer_rule.event.to_payload(),
        }
        if self.offer_rule.conditions is not None:
            offer_rule["conditions"] = self.offer_rule.conditions.to_document()
        return {
            "_id": self.promotion_id,
            "shopId": self.shop_id,
            "label": self.label,
            "description": self.description,
            "enabled": self.enabled,
            "triggers": [
                {
                    "triggerKey": t.trigger_key,
                    "triggerParameters": thaw(t.trigger_parameters),
                }
                for t in self.triggers
            ],
            "offerRule": offer_rule,
            "actions": [
                {
                    "actionKey": a.action_key,
                    "actionParameters": thaw(a.action_parameters),
                }
                for a in self.actions
            ],
            "startDate": self.start_date.isoformat(),
            "endDate": None if self.end_date is None else self.end_date.isoformat(),
            "stackAbility": self.stack_ability,
            "reportAsTaxable": self.report_as_taxable,
        }


# ══════════════════════════════════════════════════════════════
# PASS OUTPUT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AdjustmentRecord:
    """One executed action's effect on the cart."""

    promotion_id: str
    action_key: str
    amount: Decimal
    report_as_taxable: bool

    def to_payload(self) -> dict:
        return {
            "promotion_id": self.promotion_id,
            "action_key": self.action_key,
            "amount": str(self.amount),
            "report_as_taxable": self.report_as_taxable,
        }


@dataclass(frozen=True)
class AppliedPromotion:
    """Per-promotion summary of what was applied."""

    promotion_id: str
    actions_applied: Tuple[str, ...]
    amount: Decimal
    report_as_taxable: bool

    def to_payload(self) -> dict:
        return {
            "promotion_id": self.promotion_id,
            "actions_applied": list(self.actions_applied),
            "amount": str(self.amount),
            "report_as_taxable": self.report_as_taxable,
        }
