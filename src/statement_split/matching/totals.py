"""Signed item sums and tolerance checks against the original amount."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
import logging

from ..models.statement import ReconciliationTotals, StatementLineItem
from ..parsers.patterns import StatementPatterns
from ..utils.exceptions import SumMismatchError

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
DEFAULT_SUM_TOLERANCE = Decimal("0.01")


def compute_item_sum(items: Iterable[StatementLineItem], patterns: StatementPatterns) -> Decimal:
    """
    Sum of out amounts minus in amounts, skipping settlement carry-over rows.

    Args:
        items: Statement line items
        patterns: Marker tables with the settlement patterns

    Returns:
        Signed sum rounded to cents
    """
    total = Decimal("0")
    for item in items:
        if patterns.is_settlement(item):
            logger.debug(f"Settlement row excluded from sum: {item.description}")
            continue
        total += item.signed_amount
    return total.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def reconcile_totals(
    original_amount: Decimal,
    items: Iterable[StatementLineItem],
    patterns: StatementPatterns,
    statement_total: Optional[Decimal] = None,
) -> ReconciliationTotals:
    """
    Compare the original amount with the item sum.

    An ending-balance hint, when present, replaces the computed sum.
    """
    item_sum = compute_item_sum(items, patterns)
    effective = statement_total.quantize(TWO_PLACES) if statement_total is not None else item_sum
    diff = (abs(original_amount) - effective).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return ReconciliationTotals(original=abs(original_amount), sum=effective, diff=diff)


def ensure_within_tolerance(
    totals: ReconciliationTotals,
    proceed_on_mismatch: bool = False,
    tolerance: Decimal = DEFAULT_SUM_TOLERANCE,
) -> None:
    """
    Raise SumMismatchError unless |diff| < tolerance or the caller overrides.
    """
    if abs(totals.diff) < tolerance:
        return
    if proceed_on_mismatch:
        logger.warning(f"Proceeding despite sum mismatch of {totals.diff}")
        return
    raise SumMismatchError(
        f"Sum mismatch: original {totals.original}, items {totals.sum}, diff {totals.diff}",
        diff=totals.diff,
    )
