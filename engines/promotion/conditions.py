"""
Promo Engine — Condition Evaluator
====================================
Condition trees over fact paths, composed with all / any / not.

Trees are compiled from documents once, at load time. Compilation
rejects unknown operators, empty composites, cycles, and trees deeper
than the configured limit. A compiled tree is immutable and owns its
children.

Evaluation is pure: identical (node, snapshot) → identical boolean.
A fact that cannot be resolved makes its leaf FALSE; it never aborts
the pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Tuple, Union

from core.config.settings import DEFAULT_MAX_CONDITION_DEPTH
from engines.promotion.exceptions import FactResolutionError, MalformedRuleError
from engines.promotion.facts import FactSnapshot, freeze, parse_path, thaw

logger = logging.getLogger("promo.conditions")


# ══════════════════════════════════════════════════════════════
# OPERATORS
# ══════════════════════════════════════════════════════════════

class Operator:
    """Closed operator set."""
    EQUAL = "equal"
    NOT_EQUAL = "notEqual"
    LESS_THAN = "lessThan"
    LESS_THAN_INCLUSIVE = "lessThanInclusive"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_INCLUSIVE = "greaterThanInclusive"
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "doesNotContain"

    ALL = frozenset({
        "equal", "notEqual",
        "lessThan", "lessThanInclusive",
        "greaterThan", "greaterThanInclusive",
        "in", "notIn",
        "contains", "doesNotContain",
    })
    MEMBERSHIP = frozenset({"in", "notIn"})


class NonNumericOperand(ValueError):
    pass


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an operand to Decimal.

    Floats go through str() so 199.99 becomes Decimal('199.99').
    Booleans, NaN and infinities are rejected.
    """
    if isinstance(value, bool):
        raise NonNumericOperand(f"{value!r} is boolean, not numeric.")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise NonNumericOperand(f"{value!r} is not numeric.") from None
    else:
        raise NonNumericOperand(f"{type(value).__name__} is not numeric.")
    if not result.is_finite():
        raise NonNumericOperand(f"{value!r} is not a finite number.")
    return result


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_equal(left: Any, right: Any) -> bool:
    """Exact equality; numbers compare by decimal value, never with booleans."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if _is_number(left) and _is_number(right):
        try:
            return to_decimal(left) == to_decimal(right)
        except NonNumericOperand:
            return False
    return left == right


def _numeric(compare: Callable[[Decimal, Decimal], bool]):
    def op(fact_value: Any, value: Any) -> bool:
        return compare(to_decimal(fact_value), to_decimal(value))
    return op


def _member_of(fact_value: Any, collection: Any) -> bool:
    return any(values_equal(fact_value, item) for item in collection)


def _contains(fact_value: Any, value: Any) -> bool:
    if isinstance(fact_value, str):
        return isinstance(value, str) and value in fact_value
    if isinstance(fact_value, (tuple, frozenset)):
        return _member_of(value, fact_value)
    raise NonNumericOperand(
        f"{type(fact_value).__name__} is not a collection."
    )


OPERATOR_TABLE: Dict[str, Callable[[Any, Any], bool]] = {
    Operator.EQUAL: values_equal,
    Operator.NOT_EQUAL: lambda a, b: not values_equal(a, b),
    Operator.LESS_THAN: _numeric(lambda a, b: a < b),
    Operator.LESS_THAN_INCLUSIVE: _numeric(lambda a, b: a <= b),
    Operator.GREATER_THAN: _numeric(lambda a, b: a > b),
    Operator.GREATER_THAN_INCLUSIVE: _numeric(lambda a, b: a >= b),
    Operator.IN: _member_of,
    Operator.NOT_IN: lambda a, b: not _member_of(a, b),
    Operator.CONTAINS: _contains,
    Operator.DOES_NOT_CONTAIN: lambda a, b: not _contains(a, b),
}


# ══════════════════════════════════════════════════════════════
# CONDITION NODES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LeafCondition:
    fact: str
    path: str
    operator: str
    value: Any

    def to_document(self) -> dict:
        return {
            "fact": self.fact,
            "path": self.path,
            "operator": self.operator,
            "value": thaw(self.value),
        }


@dataclass(frozen=True)
class AllCondition:
    children: Tuple["ConditionNode", ...]

    def to_document(self) -> dict:
        return {"all": [c.to_document() for c in self.children]}


@dataclass(frozen=True)
class AnyCondition:
    children: Tuple["ConditionNode", ...]

    def to_document(self) -> dict:
        return {"any": [c.to_document() for c in self.children]}


@dataclass(frozen=True)
class NotCondition:
    child: "ConditionNode"

    def to_document(self) -> dict:
        return {"not": self.child.to_document()}


ConditionNode = Union[LeafCondition, AllCondition, AnyCondition, NotCondition]

_NODE_TYPES = (LeafCondition, AllCondition, AnyCondition, NotCondition)
_COMPOSITE_KEYS = ("all", "any", "not")
_LEAF_KEYS = frozenset({"fact", "path", "operator", "value", "params"})


# ══════════════════════════════════════════════════════════════
# COMPILATION (construction-time validation)
# ══════════════════════════════════════════════════════════════

def compile_condition(
    document: Any,
    max_depth: int = DEFAULT_MAX_CONDITION_DEPTH,
) -> ConditionNode:
    """
    Build an immutable condition tree from a document.

    Raises MalformedRuleError on any shape violation.
    """
    if isinstance(document, _NODE_TYPES):
        return document
    return _compile(document, "$", 1, max_depth, ())


def _compile(
    document: Any,
    location: str,
    depth: int,
    max_depth: int,
    ancestors: Tuple[int, ...],
) -> ConditionNode:
    if depth > max_depth:
        raise MalformedRuleError(
            f"Condition tree deeper than {max_depth} levels", location
        )
    if not isinstance(document, Mapping):
        raise MalformedRuleError(
            f"Condition must be an object, got {type(document).__name__}",
            location,
        )
    if id(document) in ancestors:
        raise MalformedRuleError("Condition tree is cyclic", location)
    ancestors = ancestors + (id(document),)

    composite_keys = [k for k in _COMPOSITE_KEYS if k in document]
    if len(composite_keys) > 1:
        raise MalformedRuleError(
            f"Condition mixes composite keys {composite_keys}", location
        )

    if composite_keys:
        key = composite_keys[0]
        stray = sorted(set(document) - {key, "name", "priority"})
        if stray:
            raise MalformedRuleError(
                f"Composite '{key}' has unexpected keys {stray}", location
            )
        if key == "not":
            child = _compile(
                document["not"], f"{location}.not", depth + 1, max_depth, ancestors
            )
            return NotCondition(child=child)

        items = document[key]
        if not isinstance(items, (list, tuple)):
            raise MalformedRuleError(
                f"'{key}' must be a list of conditions", location
            )
        if not items:
            raise MalformedRuleError(
                f"'{key}' must contain at least one condition", location
            )
        children = tuple(
            _compile(item, f"{location}.{key}[{i}]", depth + 1, max_depth, ancestors)
            for i, item in enumerate(items)
        )
        if key == "all":
            return AllCondition(children=children)
        return AnyCondition(children=children)

    return _compile_leaf(document, location)


def _compile_leaf(document: Mapping, location: str) -> LeafCondition:
    if "fact" not in document or "operator" not in document:
        raise MalformedRuleError(
            "Condition must be 'all', 'any', 'not' or a fact/operator/value leaf",
            location,
        )
    stray = sorted(set(document) - _LEAF_KEYS)
    if stray:
        raise MalformedRuleError(f"Leaf has unexpected keys {stray}", location)

    fact = document["fact"]
    if not fact or not isinstance(fact, str):
        raise MalformedRuleError("Leaf 'fact' must be a non-empty string", location)

    operator = document["operator"]
    if operator not in Operator.ALL:
        raise MalformedRuleError(f"Unknown operator '{operator}'", location)

    if "value" not in document:
        raise MalformedRuleError("Leaf is missing 'value'", location)
    value = document["value"]
    if operator in Operator.MEMBERSHIP and not isinstance(
        value, (list, tuple, set, frozenset)
    ):
        raise MalformedRuleError(
            f"Operator '{operator}' needs a list value", location
        )

    path = document.get("path") or "$"
    try:
        parse_path(path)
    except ValueError as exc:
        raise MalformedRuleError(str(exc), location) from None

    return LeafCondition(
        fact=fact, path=path, operator=operator, value=freeze(value)
    )


# ══════════════════════════════════════════════════════════════
# EVALUATION
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ConditionOutcome:
    """
    Result of evaluating one tree.

    unresolved lists the fact lookups that failed on the evaluated path
    (short-circuited branches are never visited).
    """

    matched: bool
    unresolved: Tuple[FactResolutionError, ...] = ()


def evaluate(node: ConditionNode, snapshot: FactSnapshot) -> bool:
    """Evaluate a compiled tree against a snapshot."""
    return _evaluate(node, snapshot, [])


def explain(node: ConditionNode, snapshot: FactSnapshot) -> ConditionOutcome:
    """Evaluate and report unresolved facts."""
    unresolved: List[FactResolutionError] = []
    matched = _evaluate(node, snapshot, unresolved)
    return ConditionOutcome(matched=matched, unresolved=tuple(unresolved))


def _evaluate(
    node: ConditionNode,
    snapshot: FactSnapshot,
    unresolved: List[FactResolutionError],
) -> bool:
    if isinstance(node, LeafCondition):
        return _evaluate_leaf(node, snapshot, unresolved)

    if isinstance(node, AllCondition):
        for child in node.children:
            if not _evaluate(child, snapshot, unresolved):
                return False
        return True

    if isinstance(node, AnyCondition):
        for child in node.children:
            if _evaluate(child, snapshot, unresolved):
                return True
        return False

    if isinstance(node, NotCondition):
        before = len(unresolved)
        result = _evaluate(node.child, snapshot, unresolved)
        # A missing fact must not turn into a match through negation
        if len(unresolved) > before:
            return False
        return not result

    raise MalformedRuleError(f"Unknown condition node {type(node).__name__}")


def _evaluate_leaf(
    node: LeafCondition,
    snapshot: FactSnapshot,
    unresolved: List[FactResolutionError],
) -> bool:
    try:
        fact_value = snapshot.resolve(node.fact, node.path)
    except FactResolutionError as exc:
        unresolved.append(exc)
        return False

    try:
        return bool(OPERATOR_TABLE[node.operator](fact_value, node.value))
    except NonNumericOperand as exc:
        logger.debug(
            f"Condition {node.fact} {node.path} {node.operator} "
            f"treated as false: {exc}"
        )
        return False
