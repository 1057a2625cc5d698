"""
Unit tests for merging deterministic and AI rows.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from statement_split.matching.merge import MergeReconciler
from statement_split.models.statement import StatementLineItem


def _rows(count: int, prefix: str = "ROW") -> list[StatementLineItem]:
    return [
        StatementLineItem(
            description=f"{prefix} {i}",
            amount=Decimal("10.00") + i,
            date=date(2025, 6, 1) + timedelta(days=i * 3),
        )
        for i in range(count)
    ]


@pytest.fixture
def merger() -> MergeReconciler:
    """Create reconciler with default tolerances."""
    return MergeReconciler(amount_tolerance=0.02, date_tolerance_days=2)


class TestMergeReconciler:
    """Tests for MergeReconciler class."""

    def test_empty_deterministic_uses_ai(self, merger: MergeReconciler):
        """Test full fallback to AI rows."""
        ai = _rows(2, "AI")
        outcome = merger.merge([], ai)

        assert outcome.strategy == "ai"
        assert outcome.items == ai

    def test_full_coverage_enriches_text_only(self, merger: MergeReconciler):
        """Test that matched rows take longer text but keep amounts and dates."""
        det = _rows(10, "D")
        ai = [
            StatementLineItem(
                description=f"D {i} Online Marketplace Order",
                payee=f"Marketplace {i}",
                amount=d.amount + Decimal("0.01"),
                date=d.date + timedelta(days=1),
            )
            for i, d in enumerate(det)
        ]

        outcome = merger.merge(det, ai)

        assert outcome.strategy == "enriched"
        assert len(outcome.items) == 10
        assert [i.amount for i in outcome.items] == [d.amount for d in det]
        assert [i.date for i in outcome.items] == [d.date for d in det]
        assert outcome.items[0].description == "D 0 Online Marketplace Order"
        assert outcome.items[0].payee == "Marketplace 0"

    def test_undercount_keeps_deterministic(self, merger: MergeReconciler):
        """Test that nine matches out of ten discard AI entirely."""
        det = _rows(10, "D")
        ai = [
            StatementLineItem(description=f"Longer text {i}", amount=d.amount, date=d.date)
            for i, d in enumerate(det[:9])
        ]

        outcome = merger.merge(det, ai)

        assert outcome.strategy == "deterministic"
        assert outcome.matched == 9
        assert outcome.items == det

    def test_small_sets_stay_deterministic(self, merger: MergeReconciler):
        """Test that full coverage of a small set still equals the deterministic rows."""
        det = _rows(3, "D")
        ai = [StatementLineItem(description="x" * 40, amount=d.amount, date=d.date) for d in det]

        outcome = merger.merge(det, ai)

        assert len(outcome.items) == 3
        assert [i.amount for i in outcome.items] == [d.amount for d in det]

    def test_replace_guards_short_ai_answer(self, merger: MergeReconciler):
        """Test that replacing without merge still keeps deterministic rows on undercount."""
        det = _rows(10, "D")

        outcome = merger.replace(det, _rows(9, "AI"))

        assert outcome.strategy == "deterministic"
        assert outcome.items == det

    def test_replace_with_enough_ai_rows(self, merger: MergeReconciler):
        ai = _rows(10, "AI")

        outcome = merger.replace(_rows(10, "D"), ai)

        assert outcome.strategy == "ai"
        assert outcome.items == ai

    def test_replace_without_deterministic_rows(self, merger: MergeReconciler):
        ai = _rows(1, "AI")
        assert merger.replace([], ai).items == ai

    def test_ai_rows_used_once(self, merger: MergeReconciler):
        """Test one-to-one matching of AI rows."""
        det = [
            StatementLineItem(description="A", amount=Decimal("5.00"), date=date(2025, 6, 1)),
            StatementLineItem(description="B", amount=Decimal("5.00"), date=date(2025, 6, 1)),
        ]
        ai = [StatementLineItem(description="Coffee", amount=Decimal("5.00"), date=date(2025, 6, 1))]

        outcome = merger.merge(det, ai)

        assert outcome.matched == 1

    def test_outside_tolerance_not_matched(self, merger: MergeReconciler):
        """Test amount and date tolerances."""
        det = [StatementLineItem(description="A", amount=Decimal("5.00"), date=date(2025, 6, 1))]
        ai = [
            StatementLineItem(description="far date", amount=Decimal("5.00"), date=date(2025, 6, 5)),
            StatementLineItem(description="far amount", amount=Decimal("5.05"), date=date(2025, 6, 1)),
        ]

        assert merger.merge(det, ai).matched == 0

    def test_missing_dates_not_matched(self, merger: MergeReconciler):
        """Test that both dates are required for a match."""
        det = [StatementLineItem(description="A", amount=Decimal("5.00"))]
        ai = [StatementLineItem(description="Coffee", amount=Decimal("5.00"), date=date(2025, 6, 1))]

        assert merger.merge(det, ai).matched == 0

    def test_lowest_score_wins(self, merger: MergeReconciler):
        """Test that the closest AI row is chosen."""
        target = StatementLineItem(description="A", amount=Decimal("5.00"), date=date(2025, 6, 1))
        ai = [
            StatementLineItem(description="near", amount=Decimal("5.02"), date=date(2025, 6, 1)),
            StatementLineItem(description="exact", amount=Decimal("5.00"), date=date(2025, 6, 1)),
        ]

        assert merger._best_match(target, ai, set()) == 1
