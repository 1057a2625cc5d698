"""
Merge of deterministic and AI-extracted statement rows.

Deterministic rows are the numeric truth (order, amount, date); AI rows
only enrich descriptions and payees.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional
import logging
import math

from ..models.statement import StatementLineItem

logger = logging.getLogger(__name__)

# AI must match more than this share of deterministic rows to be trusted
UNDERCOUNT_RATIO = 0.9


@dataclass
class MergeOutcome:
    """Merged rows and how they were obtained."""

    items: list[StatementLineItem]
    matched: int
    strategy: str


class MergeReconciler:
    """Cross-validates deterministic rows against AI rows."""

    def __init__(self, amount_tolerance: float = 0.02, date_tolerance_days: int = 2):
        """
        Initialize with matching tolerances.

        Args:
            amount_tolerance: Maximum absolute amount difference
            date_tolerance_days: Maximum days between row dates
        """
        self.amount_tolerance = Decimal(str(amount_tolerance))
        self.date_tolerance_days = date_tolerance_days

    def merge(
        self,
        deterministic: list[StatementLineItem],
        ai_items: list[StatementLineItem],
    ) -> MergeOutcome:
        """
        Merge AI rows into deterministic rows.

        Args:
            deterministic: Rows from the deterministic parser
            ai_items: Normalized rows from the AI extractor

        Returns:
            Merge outcome; strategy is one of "enriched", "deterministic"
            (undercount guard) or "ai" (no deterministic rows)
        """
        if not deterministic:
            return MergeOutcome(items=list(ai_items), matched=len(ai_items), strategy="ai")

        used: set[int] = set()
        enriched: list[StatementLineItem] = []
        for det in deterministic:
            match_idx = self._best_match(det, ai_items, used)
            if match_idx is None:
                enriched.append(det)
                continue
            used.add(match_idx)
            enriched.append(self._enrich(det, ai_items[match_idx]))

        n = len(deterministic)
        min_keep = math.ceil(n * UNDERCOUNT_RATIO)
        if len(used) <= min_keep:
            logger.info(
                f"AI matched {len(used)} of {n} deterministic rows "
                f"(needs more than {min_keep}); keeping deterministic rows"
            )
            return MergeOutcome(items=list(deterministic), matched=len(used), strategy="deterministic")

        logger.info(f"AI enriched {len(used)} of {n} deterministic rows")
        return MergeOutcome(items=enriched, matched=len(used), strategy="enriched")

    def replace(
        self,
        deterministic: list[StatementLineItem],
        ai_items: list[StatementLineItem],
    ) -> MergeOutcome:
        """
        Use AI rows instead of deterministic rows, without merging.

        The undercount guard still applies: AI rows win only when there are
        more than ceil(0.9 * N) of them.
        """
        if not deterministic:
            return MergeOutcome(items=list(ai_items), matched=len(ai_items), strategy="ai")

        n = len(deterministic)
        min_keep = math.ceil(n * UNDERCOUNT_RATIO)
        if len(ai_items) <= min_keep:
            logger.info(
                f"AI returned {len(ai_items)} rows for {n} deterministic rows "
                f"(needs more than {min_keep}); keeping deterministic rows"
            )
            return MergeOutcome(items=list(deterministic), matched=0, strategy="deterministic")

        return MergeOutcome(items=list(ai_items), matched=len(ai_items), strategy="ai")

    def _best_match(
        self,
        target: StatementLineItem,
        candidates: list[StatementLineItem],
        used: set[int],
    ) -> Optional[int]:
        """Lowest amount_diff + day_diff / 100 within both tolerances."""
        if target.date is None:
            return None

        best_idx: Optional[int] = None
        best_score: Optional[Decimal] = None
        for idx, ai in enumerate(candidates):
            if idx in used or ai.date is None:
                continue
            day_diff = abs((target.date - ai.date).days)
            amount_diff = abs(target.amount - ai.amount)
            if day_diff > self.date_tolerance_days or amount_diff > self.amount_tolerance:
                continue
            score = amount_diff + Decimal(day_diff) / 100
            if best_score is None or score < best_score:
                best_idx, best_score = idx, score

        return best_idx

    def _enrich(self, det: StatementLineItem, ai: StatementLineItem) -> StatementLineItem:
        """Longer text wins; numeric fields always stay deterministic."""
        det_desc = (det.description or "").strip()
        ai_desc = (ai.description or "").strip()
        det_payee = (det.payee or "").strip()
        ai_payee = (ai.payee or "").strip()

        return replace(
            det,
            description=det_desc if len(det_desc) >= len(ai_desc) else ai_desc,
            payee=det_payee if len(det_payee) >= len(ai_payee) else ai_payee,
        )
