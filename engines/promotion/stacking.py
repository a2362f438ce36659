"""
Promo Engine — Stacking Resolver
==================================
Pure reducer from the promotions whose conditions passed to the set
that is actually applied.

Policy:
    "all"              always applied, alongside anything else.
    "none"             exclusive group of one.
    <restricted class> members of one class form one exclusive group
                       and combine with each other, never across classes.

Exactly one exclusive group wins: the highest prospective value (sum
of its members). Equal values fall back to the group holding the
lowest promotion identifier, and the tie is reported as a diagnostic.

Identical input → identical applied set, identical tie-break.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from engines.promotion.exceptions import StackingConflictError
from engines.promotion.models import (
    Diagnostic,
    DiagnosticCode,
    Promotion,
    StackAbility,
)

logger = logging.getLogger("promo.stacking")


@dataclass(frozen=True)
class StackingCandidate:
    promotion: Promotion
    prospective_value: Decimal

    @property
    def promotion_id(self) -> str:
        return self.promotion.promotion_id


@dataclass(frozen=True)
class ExclusiveGroup:
    """A "none" promotion on its own, or every member of one restricted class."""

    key: str
    members: Tuple[StackingCandidate, ...]

    @property
    def value(self) -> Decimal:
        return sum((m.prospective_value for m in self.members), Decimal("0"))

    @property
    def lowest_id(self) -> str:
        return min(m.promotion_id for m in self.members)


@dataclass(frozen=True)
class StackingOutcome:
    applied: Tuple[Promotion, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()

    @property
    def applied_ids(self) -> Tuple[str, ...]:
        return tuple(p.promotion_id for p in self.applied)


def _group_key(promotion: Promotion) -> str:
    if promotion.stack_ability == StackAbility.NONE:
        return f"none:{promotion.promotion_id}"
    return f"class:{promotion.stack_ability}"


def pick_winner(groups: Iterable[ExclusiveGroup]) -> ExclusiveGroup:
    """
    Highest-value group.

    Raises StackingConflictError when the top value is shared.
    """
    ranked = sorted(groups, key=lambda g: (-g.value, g.lowest_id))
    if not ranked:
        raise ValueError("pick_winner needs at least one group.")
    if len(ranked) > 1 and ranked[1].value == ranked[0].value:
        tied = tuple(g.key for g in ranked if g.value == ranked[0].value)
        raise StackingConflictError(tied, ranked[0].value)
    return ranked[0]


class StackingResolver:
    """Stateless; safe to share between concurrent passes."""

    def resolve(
        self, passed: Iterable[StackingCandidate]
    ) -> StackingOutcome:
        candidates = sorted(passed, key=lambda c: c.promotion_id)
        diagnostics: List[Diagnostic] = []

        always: List[StackingCandidate] = []
        grouped: Dict[str, List[StackingCandidate]] = {}
        for candidate in candidates:
            if candidate.promotion.stack_ability == StackAbility.ALL:
                always.append(candidate)
            else:
                grouped.setdefault(
                    _group_key(candidate.promotion), []
                ).append(candidate)

        groups = [
            ExclusiveGroup(key=key, members=tuple(members))
            for key, members in sorted(grouped.items())
        ]

        chosen: List[StackingCandidate] = list(always)
        if groups:
            try:
                winner = pick_winner(groups)
            except StackingConflictError as exc:
                tied = [g for g in groups if g.key in exc.group_keys]
                winner = min(tied, key=lambda g: g.lowest_id)
                logger.info(
                    f"Stacking tie at {exc.value} between {list(exc.group_keys)}; "
                    f"lowest identifier wins: {winner.key}"
                )
                diagnostics.append(Diagnostic(
                    code=DiagnosticCode.STACKING_TIE,
                    promotion_id=winner.lowest_id,
                    message=str(exc),
                    metadata={
                        "tied_groups": list(exc.group_keys),
                        "value": str(exc.value),
                        "winner": winner.key,
                    },
                ))

            chosen.extend(winner.members)
            for group in groups:
                if group.key == winner.key:
                    continue
                for member in group.members:
                    diagnostics.append(Diagnostic(
                        code=DiagnosticCode.STACKED_OUT,
                        promotion_id=member.promotion_id,
                        message=(
                            f"Excluded by stacking: group {group.key} "
                            f"({group.value}) lost to {winner.key} "
                            f"({winner.value})."
                        ),
                        metadata={
                            "group": group.key,
                            "winner": winner.key,
                        },
                    ))

        applied = tuple(
            c.promotion for c in sorted(chosen, key=lambda c: c.promotion_id)
        )
        return StackingOutcome(applied=applied, diagnostics=tuple(diagnostics))
