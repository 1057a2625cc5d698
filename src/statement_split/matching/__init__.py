"""Merge, sum reconciliation and batch matching."""

from .merge import MergeOutcome, MergeReconciler
from .totals import compute_item_sum, ensure_within_tolerance, reconcile_totals
from .batch import BatchMatcher, build_group, date_from_filename

__all__ = [
    "MergeOutcome",
    "MergeReconciler",
    "compute_item_sum",
    "ensure_within_tolerance",
    "reconcile_totals",
    "BatchMatcher",
    "build_group",
    "date_from_filename",
]
