"""
Promo Engine — Fact Provider
==============================
Point-in-time, read-only view of session state (cart, customer, ...)
addressable by path expressions.

Path grammar (a small JSONPath subset):
    $                   the whole fact
    $.merchandiseTotal  member access
    $['gift card']      quoted member access
    $.items[0].price    index access (negative indexes count from the end)
    $.items[*].price    wildcard, collects every match into a tuple

Snapshots are captured fresh for every evaluation pass. Containers are
copied into immutable equivalents so a cart mutating mid-pass can never
be observed.
"""

from __future__ import annotations

import re
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Tuple

from engines.promotion.exceptions import (
    FactResolutionError,
    InvalidFactSnapshotError,
)

WILDCARD = object()

_MEMBER = re.compile(r"\.([A-Za-z_$][\w$-]*)")
_INDEX = re.compile(r"\[(-?\d+)\]")
_QUOTED = re.compile(r"\[(?:'([^']*)'|\"([^\"]*)\")\]")
_STAR = re.compile(r"\[\*\]|\.\*")


@lru_cache(maxsize=1024)
def parse_path(path: str) -> Tuple[Any, ...]:
    """
    Compile a path expression into a tuple of segments.

    Raises ValueError on syntax errors.
    """
    if path is None or path == "":
        return ()
    if not isinstance(path, str):
        raise ValueError(f"Path must be a string, got {type(path).__name__}.")
    if not path.startswith("$"):
        raise ValueError(f"Path '{path}' must start with '$'.")

    segments = []
    pos = 1
    while pos < len(path):
        match = _STAR.match(path, pos)
        if match:
            segments.append(WILDCARD)
            pos = match.end()
            continue
        match = _MEMBER.match(path, pos)
        if match:
            segments.append(match.group(1))
            pos = match.end()
            continue
        match = _INDEX.match(path, pos)
        if match:
            segments.append(int(match.group(1)))
            pos = match.end()
            continue
        match = _QUOTED.match(path, pos)
        if match:
            segments.append(
                match.group(1) if match.group(1) is not None else match.group(2)
            )
            pos = match.end()
            continue
        raise ValueError(f"Path '{path}' has invalid syntax at offset {pos}.")
    return tuple(segments)


def freeze(value: Any) -> Any:
    """Recursively copy containers into immutable equivalents."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze(), for serialization."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    if isinstance(value, frozenset):
        return sorted((thaw(v) for v in value), key=repr)
    return value


_MISSING = object()


def _step(value: Any, segment: Any) -> Any:
    if isinstance(segment, str):
        if isinstance(value, Mapping):
            return value.get(segment, _MISSING)
        return _MISSING
    if isinstance(value, tuple):
        try:
            return value[segment]
        except IndexError:
            return _MISSING
    return _MISSING


def _walk(value: Any, segments: Tuple[Any, ...]) -> Iterator[Any]:
    if not segments:
        yield value
        return
    head, rest = segments[0], segments[1:]
    if head is WILDCARD:
        if isinstance(value, Mapping):
            children = list(value.values())
        elif isinstance(value, tuple):
            children = list(value)
        else:
            return
        for child in children:
            yield from _walk(child, rest)
        return
    child = _step(value, head)
    if child is not _MISSING:
        yield from _walk(child, rest)


# ══════════════════════════════════════════════════════════════
# FACT SNAPSHOT
# ══════════════════════════════════════════════════════════════

class FactSnapshot:
    """
    Immutable mapping of fact name → frozen structured value.

    Usage:
        snapshot = FactSnapshot.capture({"cart": cart_doc}, required=("cart",))
        total = snapshot.resolve("cart", "$.merchandiseTotal")
    """

    __slots__ = ("_facts",)

    def __init__(self, facts: Mapping[str, Any]):
        self._facts = MappingProxyType(
            {name: freeze(value) for name, value in facts.items()}
        )

    @classmethod
    def capture(
        cls,
        facts: Any,
        required: Tuple[str, ...] = (),
    ) -> "FactSnapshot":
        """Take a point-in-time copy of caller-supplied facts."""
        if isinstance(facts, FactSnapshot):
            snapshot = facts
        elif isinstance(facts, Mapping):
            for name in facts:
                if not isinstance(name, str) or not name:
                    raise InvalidFactSnapshotError(
                        f"Fact names must be non-empty strings, got {name!r}."
                    )
            snapshot = cls(facts)
        else:
            raise InvalidFactSnapshotError(
                f"Facts must be a mapping, got {type(facts).__name__}."
            )

        missing = tuple(name for name in required if name not in snapshot)
        if missing:
            raise InvalidFactSnapshotError(
                f"Fact snapshot is missing required facts: {list(missing)}.",
                missing_facts=missing,
            )
        return snapshot

    def __contains__(self, name: object) -> bool:
        return name in self._facts

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._facts))

    def fact(self, name: str) -> Any:
        try:
            return self._facts[name]
        except KeyError:
            raise FactResolutionError(name, "$", "unknown fact") from None

    def resolve(self, fact: str, path: str = "$") -> Any:
        """
        Resolve a path against a named fact.

        Raises FactResolutionError if the fact is unknown or the path
        matches nothing (None counts as nothing). Wildcard paths return
        a tuple of every non-None match.
        """
        root = self.fact(fact)
        try:
            segments = parse_path(path)
        except ValueError as exc:
            raise FactResolutionError(fact, path, str(exc)) from None

        matches = [v for v in _walk(root, segments) if v is not None]
        if WILDCARD in segments:
            if not matches:
                raise FactResolutionError(fact, path, "wildcard matched nothing")
            return tuple(matches)
        if not matches:
            raise FactResolutionError(fact, path, "path resolved to nothing")
        return matches[0]

    def to_dict(self) -> dict:
        return {name: thaw(value) for name, value in self._facts.items()}
