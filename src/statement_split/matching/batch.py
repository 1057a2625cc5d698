"""
Many-to-many assignment of parsed statements to settlement candidates.

Pairs are scored on amount difference and date distance, then assigned
greedily so each statement and each candidate is used at most once.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
import logging
import re

from ..config import BatchConfig
from ..models.statement import BatchGroup, BatchMatch, MatchCandidate, ParsedStatement
from ..parsers.patterns import StatementPatterns
from .totals import compute_item_sum

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

_FILENAME_DATE_PATTERNS = [
    (re.compile(r"(\d{4})[-_.](\d{2})[-_.](\d{2})"), ("y", "m", "d")),
    (re.compile(r"(?<!\d)(\d{4})(\d{2})(\d{2})(?!\d)"), ("y", "m", "d")),
    (re.compile(r"(\d{2})\.(\d{2})\.(\d{4})"), ("d", "m", "y")),
    (re.compile(r"(?<!\d)(\d{4})[-_](\d{2})(?![-_.]?\d)"), ("y", "m")),
]


def date_from_filename(file_name: str) -> Optional[date]:
    """
    Date embedded in a statement file name.

    Recognizes YYYY-MM-DD, YYYYMMDD, DD.MM.YYYY and YYYY-MM (first of month).
    """
    for pattern, order in _FILENAME_DATE_PATTERNS:
        m = pattern.search(file_name or "")
        if not m:
            continue
        parts = dict(zip(order, (int(g) for g in m.groups())))
        try:
            return date(parts["y"], parts["m"], parts.get("d", 1))
        except ValueError:
            continue
    return None


def build_group(
    statement: ParsedStatement,
    patterns: StatementPatterns,
    file_name: Optional[str] = None,
) -> BatchGroup:
    """
    Summarize a parsed statement for matching.

    The reference date is the midpoint of the item dates, or the file name
    date when no item carries a date.
    """
    name = file_name or statement.file_name or ""
    dates = statement.item_dates

    if dates:
        first, last = min(dates), max(dates)
        reference = first + timedelta(days=(last - first).days // 2)
        last_item = last
    else:
        reference = date_from_filename(name)
        last_item = reference

    item_sum = compute_item_sum(statement.items, patterns)
    if statement.statement_total is not None:
        item_sum = statement.statement_total.quantize(TWO_PLACES)

    return BatchGroup(
        file_name=name,
        items=list(statement.items),
        sum=item_sum,
        reference_date=reference,
        last_item_date=last_item,
        statement_total=statement.statement_total,
    )


@dataclass
class _Pair:
    group_idx: int
    cand_idx: int
    amount_diff: Decimal
    score: Decimal
    amount_ok: bool
    date_ok: bool


class BatchMatcher:
    """Greedy one-to-one matcher between statement groups and candidates."""

    def __init__(self, config: BatchConfig):
        """
        Initialize the matcher.

        Args:
            config: Window, grace and tolerance settings
        """
        self.window_days = config.date_window_days
        self.grace_before_days = config.grace_before_days
        self.amount_tolerance = Decimal(str(config.amount_tolerance))
        self.relative_tolerance = Decimal(str(config.relative_tolerance))

    def candidate_window(self, groups: list[BatchGroup]) -> Optional[tuple[date, date]]:
        """Date range for auto-discovering candidates around the group dates."""
        dates: list[date] = []
        for group in groups:
            dates.extend(i.date for i in group.items if i.date is not None)
            if group.reference_date is not None:
                dates.append(group.reference_date)
        if not dates:
            return None
        delta = timedelta(days=self.window_days)
        return min(dates) - delta, max(dates) + delta

    def match(self, groups: list[BatchGroup], candidates: list[MatchCandidate]) -> list[BatchGroup]:
        """
        Assign candidates to groups in place.

        Args:
            groups: Statement groups (groups with an error are skipped)
            candidates: Settlement candidates

        Returns:
            The same groups with matched and selectable set
        """
        pairs = [
            self._evaluate(g_idx, group, c_idx, candidate)
            for g_idx, group in enumerate(groups)
            if group.error is None
            for c_idx, candidate in enumerate(candidates)
        ]

        used_groups: set[int] = set()
        # Keyed by original id so a repeated candidate is still used once
        used_cands: set[str] = set()

        primary = sorted(
            (p for p in pairs if p.amount_ok and p.date_ok),
            key=lambda p: (p.score, p.group_idx, p.cand_idx),
        )
        self._assign(primary, groups, candidates, used_groups, used_cands, date_gated=True)

        # Retry leftovers without the date gate
        fallback = sorted(
            (
                p
                for p in pairs
                if p.amount_ok
                and p.group_idx not in used_groups
                and candidates[p.cand_idx].id not in used_cands
            ),
            key=lambda p: (p.score, p.group_idx, p.cand_idx),
        )
        self._assign(fallback, groups, candidates, used_groups, used_cands, date_gated=False)

        for idx, group in enumerate(groups):
            if idx not in used_groups:
                group.matched = None
                group.selectable = False
                logger.info(f"No settlement candidate for {group.file_name} (sum {group.sum})")

        return groups

    def _assign(
        self,
        pairs: list[_Pair],
        groups: list[BatchGroup],
        candidates: list[MatchCandidate],
        used_groups: set[int],
        used_cands: set[str],
        date_gated: bool,
    ) -> None:
        for pair in pairs:
            group = groups[pair.group_idx]
            candidate = candidates[pair.cand_idx]
            if pair.group_idx in used_groups or candidate.id in used_cands:
                continue
            used_groups.add(pair.group_idx)
            used_cands.add(candidate.id)

            diff = pair.amount_diff.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
            group.matched = BatchMatch(
                original_id=candidate.id,
                original=candidate,
                sum=group.sum,
                diff=diff,
                date_gated=date_gated,
            )
            group.selectable = abs(diff) < Decimal("0.01")
            logger.info(
                f"Matched {group.file_name} -> {candidate.id} "
                f"(diff {diff}, score {pair.score:.4f}{'' if date_gated else ', date gate ignored'})"
            )

    def _evaluate(
        self, g_idx: int, group: BatchGroup, c_idx: int, candidate: MatchCandidate
    ) -> _Pair:
        amount_diff = candidate.amount_abs - group.sum
        abs_diff = abs(amount_diff)

        if candidate.amount_abs > 0:
            relative_ok = abs_diff / candidate.amount_abs <= self.relative_tolerance
        else:
            relative_ok = False
        amount_ok = abs_diff <= self.amount_tolerance or relative_ok

        if group.reference_date is not None:
            day_distance = abs((group.reference_date - candidate.date).days)
        else:
            day_distance = self.window_days
        score = abs_diff + Decimal(min(day_distance, self.window_days)) / 100

        if group.last_item_date is not None:
            earliest = group.last_item_date - timedelta(days=self.grace_before_days)
            latest = group.last_item_date + timedelta(days=self.window_days)
            date_ok = earliest <= candidate.date <= latest
        else:
            date_ok = True

        return _Pair(
            group_idx=g_idx,
            cand_idx=c_idx,
            amount_diff=amount_diff,
            score=score,
            amount_ok=amount_ok,
            date_ok=date_ok,
        )
