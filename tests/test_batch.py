from __future__ import annotations

from typing import List

from conftest import FakeStore, make_participation
from reconcile.batch import BatchOutcome, BatchReconciler, actionable_count
from reconcile.models import Decision


def test_actionable_count_skips_no_op_decisions() -> None:
    ps = [
        make_participation("a", "1", status="pending"),
        make_participation("b", "2", status="approved"),
        make_participation("c", "3", status="rejected"),
        make_participation("d", "4", status="approved"),
        make_participation("e", "5", status="pending"),
    ]
    decisions = {
        "a": Decision("approve"),
        "b": Decision("approve"),
        "c": Decision("reject"),
        "d": Decision("reject"),
        "zz": Decision("approve"),
    }
    assert actionable_count(decisions, ps) == 2


def test_partial_failure_is_isolated_and_all_items_attempted() -> None:
    ps = [make_participation(f"p{i}", str(i)) for i in range(1, 6)]
    store = FakeStore(ps, fail_on=["p3"])
    decisions = {p.id: Decision("approve" if i % 2 else "reject") for i, p in enumerate(ps)}

    outcome = BatchReconciler(store).confirm(ps, decisions)

    assert (outcome.success_count, outcome.failure_count) == (4, 1)
    assert outcome.attempted == 5
    assert [c[1] for c in store.calls] == ["p1", "p2", "p3", "p4", "p5"]
    assert outcome.failures[0][0] == "p3"
    assert "not pending" in outcome.failures[0][1]


def test_arbitrary_exceptions_are_counted_not_raised() -> None:
    class Exploding(FakeStore):
        def reject(self, participation_id: str) -> None:
            self.calls.append(("reject", participation_id))
            raise ConnectionError()

    ps = [make_participation("p1", "1"), make_participation("p2", "2")]
    store = Exploding(ps)
    outcome = BatchReconciler(store).confirm(ps, {"p1": Decision("reject"), "p2": Decision("approve")})
    assert outcome.successes == ["p2"]
    assert outcome.failures == [("p1", "ConnectionError")]


def test_confirm_follows_participation_order_not_decision_order() -> None:
    ps = [make_participation("b", "1"), make_participation("a", "2")]
    store = FakeStore(ps)
    BatchReconciler(store).confirm(ps, {"a": Decision("approve"), "b": Decision("reject")})
    assert store.calls == [("reject", "b"), ("approve", "a")]


def test_summary_texts() -> None:
    assert BatchOutcome().summary() == "No decisions to confirm"
    outcome = BatchOutcome(successes=["p1"], failures=[("p2", "boom"), ("p3", "boom")])
    assert outcome.summary() == "Processed 1 participation; 2 participations failed"
    assert outcome.success_text() == "Processed 1 participation"
    assert outcome.failure_text() == "2 participations failed"


def test_success_text_does_not_mention_failures() -> None:
    outcome = BatchOutcome(successes=["p1", "p2"], failures=[("p3", "boom")])
    assert "failed" not in outcome.success_text()
    assert BatchOutcome(failures=[("p3", "boom")]).success_text() == ""
    assert BatchOutcome(successes=["p1"]).failure_text() == ""


def test_no_calls_without_actionable_decisions() -> None:
    ps: List = [make_participation("p1", "1", status="approved")]
    store = FakeStore(ps)
    outcome = BatchReconciler(store).confirm(ps, {"p1": Decision("approve")})
    assert outcome.attempted == 0
    assert store.calls == []
