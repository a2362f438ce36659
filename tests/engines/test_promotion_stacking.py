"""
Promo Engine — Stacking Resolver Tests
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from engines.promotion.exceptions import StackingConflictError
from engines.promotion.models import DiagnosticCode, Promotion
from engines.promotion.stacking import (
    ExclusiveGroup,
    StackingCandidate,
    StackingResolver,
    pick_winner,
)

from promotion_builders import promotion_doc


def candidate(promotion_id, value, stack_ability="none"):
    return StackingCandidate(
        promotion=Promotion.from_document(
            promotion_doc(promotion_id, stack_ability=stack_ability)
        ),
        prospective_value=Decimal(str(value)),
    )


def resolve(*candidates):
    return StackingResolver().resolve(candidates)


class TestExclusive:
    def test_highest_value_wins(self):
        outcome = resolve(candidate("ten", 10), candidate("fifteen", 15))
        assert outcome.applied_ids == ("fifteen",)
        stacked_out = [d for d in outcome.diagnostics if d.code == DiagnosticCode.STACKED_OUT]
        assert [d.promotion_id for d in stacked_out] == ["ten"]

    def test_single_exclusive_applies(self):
        assert resolve(candidate("only", 5)).applied_ids == ("only",)

    def test_tie_falls_back_to_lowest_identifier(self):
        outcome = resolve(candidate("zeta", 10), candidate("alpha", 10))
        assert outcome.applied_ids == ("alpha",)
        tie = [d for d in outcome.diagnostics if d.code == DiagnosticCode.STACKING_TIE]
        assert len(tie) == 1
        assert tie[0].promotion_id == "alpha"

    def test_tie_break_is_order_independent(self):
        first = resolve(candidate("zeta", 10), candidate("alpha", 10))
        second = resolve(candidate("alpha", 10), candidate("zeta", 10))
        assert first == second


class TestStackableAll:
    def test_all_rides_with_winning_exclusive(self):
        outcome = resolve(
            candidate("exclusive", 15),
            candidate("stackable", 3, stack_ability="all"),
        )
        assert outcome.applied_ids == ("exclusive", "stackable")

    def test_all_only(self):
        outcome = resolve(
            candidate("a", 1, stack_ability="all"),
            candidate("b", 2, stack_ability="all"),
        )
        assert outcome.applied_ids == ("a", "b")
        assert outcome.diagnostics == ()

    def test_empty_input(self):
        outcome = resolve()
        assert outcome.applied == ()
        assert outcome.diagnostics == ()


class TestRestrictedClasses:
    def test_same_class_combines(self):
        outcome = resolve(
            candidate("s1", 4, stack_ability="seasonal"),
            candidate("s2", 5, stack_ability="seasonal"),
        )
        assert outcome.applied_ids == ("s1", "s2")

    def test_classes_compete_by_group_total(self):
        outcome = resolve(
            candidate("s1", 4, stack_ability="seasonal"),
            candidate("s2", 5, stack_ability="seasonal"),
            candidate("l1", 8, stack_ability="loyalty"),
        )
        assert outcome.applied_ids == ("s1", "s2")

    def test_class_competes_with_none(self):
        outcome = resolve(
            candidate("s1", 4, stack_ability="seasonal"),
            candidate("s2", 5, stack_ability="seasonal"),
            candidate("big", 12),
            candidate("extra", 1, stack_ability="all"),
        )
        assert outcome.applied_ids == ("big", "extra")


class TestPickWinner:
    def test_raises_on_tie(self):
        groups = [
            ExclusiveGroup(key="none:a", members=(candidate("a", 10),)),
            ExclusiveGroup(key="none:b", members=(candidate("b", 10),)),
        ]
        with pytest.raises(StackingConflictError) as exc_info:
            pick_winner(groups)
        assert exc_info.value.group_keys == ("none:a", "none:b")

    def test_clear_winner(self):
        groups = [
            ExclusiveGroup(key="none:a", members=(candidate("a", 10),)),
            ExclusiveGroup(key="none:b", members=(candidate("b", 11),)),
        ]
        assert pick_winner(groups).key == "none:b"
