"""
Promo Engine — Rule Engine Tests
==================================
Fail-closed behavior: one bad promotion never blocks the others.
"""

from __future__ import annotations

import pytest

from engines.promotion.events import EVENT_TRIGGER_ACTION
from engines.promotion.facts import FactSnapshot
from engines.promotion.models import DiagnosticCode, Promotion
from engines.promotion.rules import RuleEngine

from promotion_builders import promotion_doc, total_at_least


@pytest.fixture
def snapshot():
    return FactSnapshot.capture({"cart": {"merchandiseTotal": 250}})


def build(*documents):
    return [Promotion.from_document(d) for d in documents]


class TestRun:
    def test_passing_rule_emits_its_event(self, snapshot):
        outcome = RuleEngine().run(build(promotion_doc("p1", conditions=total_at_least(200))), snapshot)
        assert outcome.passed_ids == ("p1",)
        promotion, event = outcome.passed[0]
        assert event.type == EVENT_TRIGGER_ACTION
        assert event.params["promotionId"] == "p1"
        assert outcome.diagnostics == ()

    def test_failing_rule_emits_nothing(self, snapshot):
        outcome = RuleEngine().run(build(promotion_doc("p1", conditions=total_at_least(300))), snapshot)
        assert outcome.passed == ()
        assert outcome.diagnostics == ()

    def test_custom_event_params_are_kept(self, snapshot):
        document = promotion_doc("p1")
        document["offerRule"]["event"]["params"]["channel"] = "web"
        _, event = RuleEngine().run(build(document), snapshot).passed[0]
        assert event.params == {"promotionId": "p1", "channel": "web"}

    def test_preserves_candidate_order(self, snapshot):
        outcome = RuleEngine().run(build(promotion_doc("a"), promotion_doc("b")), snapshot)
        assert outcome.passed_ids == ("a", "b")


class TestFailClosed:
    def test_malformed_rule_excluded_with_diagnostic(self, snapshot):
        outcome = RuleEngine().run(
            build(
                promotion_doc("bad", conditions={"all": []}),
                promotion_doc("good"),
            ),
            snapshot,
        )
        assert outcome.passed_ids == ("good",)
        assert [d.code for d in outcome.diagnostics] == [DiagnosticCode.MALFORMED_RULE]
        assert outcome.diagnostics[0].promotion_id == "bad"

    def test_unknown_operator_excluded(self, snapshot):
        conditions = {"any": [{"fact": "cart", "path": "$.merchandiseTotal", "operator": "roughly", "value": 1}]}
        outcome = RuleEngine().run(build(promotion_doc("bad", conditions=conditions)), snapshot)
        assert outcome.passed == ()
        assert "roughly" in outcome.diagnostics[0].message

    def test_unknown_fact_is_reported_not_raised(self, snapshot):
        conditions = {"all": [{"fact": "foo", "path": "$.bar", "operator": "equal", "value": 1}]}
        outcome = RuleEngine().run(
            build(promotion_doc("foo-promo", conditions=conditions), promotion_doc("good")),
            snapshot,
        )
        assert outcome.passed_ids == ("good",)
        diagnostic = outcome.diagnostics[0]
        assert diagnostic.code == DiagnosticCode.FACT_UNRESOLVED
        assert diagnostic.metadata["fact"] == "foo"

    def test_unexpected_error_contained(self, snapshot, monkeypatch):
        def explode(node, snap):
            raise RuntimeError("boom")

        monkeypatch.setattr("engines.promotion.rules.explain", explode)
        outcome = RuleEngine().run(build(promotion_doc("p1")), snapshot)
        assert outcome.passed == ()
        assert outcome.diagnostics[0].code == DiagnosticCode.RULE_EVALUATION_FAILED
        assert outcome.diagnostics[0].metadata["exception"] == "boom"
