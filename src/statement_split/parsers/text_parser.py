"""
Deterministic row parser for unstructured statement text.

Converts text extracted from card statement PDFs into line items using
three strategies, tried in order: anchor scan, legacy table scan and a
per-line heuristic.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
import logging
import re

from ..models.statement import Direction, StatementLineItem
from .normalize import direction_from_amount_str, normalize_amount, normalize_date
from .patterns import (
    DATE,
    DATE_RE,
    EXCHANGE_RATE_RE,
    FOREIGN_COLUMN_RE,
    SPACES_RE,
    STANDALONE_AMOUNT_RE,
    StatementPatterns,
    collapse,
    has_letters,
)

logger = logging.getLogger(__name__)

DATE_ROW_RE = re.compile(rf"^({DATE})(?:\s+({DATE}))?\b(.*)$")
LEADING_DATES_RE = re.compile(rf"^{DATE}(?:\s+{DATE})?\s*")

# How far the amount-first pass looks back for a row date
DATE_LOOKBACK_LINES = 5
# How far the line heuristic looks for a free-text neighbour
ADJACENT_DESCRIPTION_LINES = 3


@dataclass
class _Anchor:
    idx: int
    amount: Decimal
    direction: Direction
    date: Optional[date]


def _split_lines(text: str) -> list[str]:
    return [c for c in (collapse(line) for line in (text or "").split("\n")) if c]


class StatementTextParser:
    """
    Regex and anchor based extraction of line items from statement text.

    Stateless between calls: every assignment bookkeeping structure is
    local to a single parse.
    """

    def __init__(self, patterns: StatementPatterns, fee_small_amount: Decimal = Decimal("5.00")):
        """
        Initialize the parser.

        Args:
            patterns: Compiled marker tables
            fee_small_amount: Largest amount a fee row is expected to carry
        """
        self.patterns = patterns
        self.fee_small_amount = Decimal(str(fee_small_amount))

    def parse_deterministic(self, text: str) -> list[StatementLineItem]:
        """
        Anchor scan on the table slice, falling back to the legacy table scan.

        Args:
            text: Full statement text

        Returns:
            Filtered line items (may be empty)
        """
        table_only = self.extract_table_only(text)
        items = self.parse_anchor_rows(table_only)
        if items:
            logger.debug(f"Anchor scan found {len(items)} rows")
        else:
            items = self.parse_statement_table(text)
            logger.debug(f"Legacy table scan found {len(items)} rows")

        kept = [i for i in items if not self.patterns.should_ignore(i)]
        if len(kept) < len(items):
            logger.debug(f"Ignore filter dropped {len(items) - len(kept)} rows")
        return self.patterns.apply_text_direction(kept)

    def extract_table_only(self, text: str) -> str:
        """
        Keep only the transaction table ranges of a statement.

        A range starts at a line carrying a date and ends before the next
        balance/carry-over marker or page footer. Up to two free-text lines
        right before the first dated line are kept as its description.
        """
        lines = (text or "").split("\n")
        out: list[str] = []
        in_table = False

        for i, line in enumerate(lines):
            if not line.strip():
                continue
            if DATE_RE.search(line):
                if not in_table:
                    for back in (2, 1):
                        if i - back < 0:
                            continue
                        prev = lines[i - back]
                        if not prev.strip():
                            continue
                        if self.patterns.is_non_txn_marker(prev) or self.patterns.is_page_marker(prev):
                            continue
                        if not DATE_RE.search(prev) and self.patterns.is_likely_description(prev):
                            out.append(prev)
                in_table = True
                out.append(line)
                continue

            if not in_table:
                continue
            if self.patterns.is_non_txn_marker(line) or self.patterns.is_page_marker(line):
                in_table = False
                continue
            out.append(line)

        return "\n".join(out)

    def extract_statement_total(self, text: str) -> Optional[Decimal]:
        """Ending balance from the last balance line carrying an account-currency amount."""
        for line in reversed(_split_lines(text)):
            if not self.patterns.is_balance_line(line):
                continue
            m = self.patterns.account_amount_re.search(line)
            if not m:
                continue
            amount = normalize_amount(m.group(1))
            if amount is not None:
                return amount
        return None

    # Strategy 1: anchor scan

    def _is_anchor_description(self, line: str) -> bool:
        if not has_letters(line):
            return False
        if self.patterns.is_non_txn_marker(line) or self.patterns.is_page_marker(line):
            return False
        return not self.patterns.is_anchor(line)

    def parse_anchor_rows(self, text: str) -> list[StatementLineItem]:
        """
        Pair anchor lines (amount + two dates) with their description lines.

        Each description line is claimed by at most one anchor.
        """
        raw = _split_lines(text)
        if not raw:
            return []

        anchors: list[_Anchor] = []
        descs: list[tuple[int, str]] = []
        for i, line in enumerate(raw):
            if self.patterns.is_anchor(line):
                tokens = list(self.patterns.account_amount_re.finditer(line))
                if not tokens:
                    continue
                amount_str = re.sub(r"\s+", "", tokens[-1].group(1))
                amount = normalize_amount(amount_str)
                if amount is None:
                    continue
                dm = DATE_RE.search(line)
                anchors.append(
                    _Anchor(
                        idx=i,
                        amount=amount,
                        direction=direction_from_amount_str(amount_str),
                        date=normalize_date(dm.group(1)) if dm else None,
                    )
                )
            elif self._is_anchor_description(line):
                descs.append((i, line))

        if not anchors:
            return []

        used: set[int] = set()
        items: list[StatementLineItem] = []

        for a, cur in enumerate(anchors):
            next_idx = anchors[a + 1].idx if a + 1 < len(anchors) else len(raw) + 1

            best = self._nearest_forward(descs, used, cur.idx, next_idx)
            if best is None:
                best = self._previous_line(raw, used, cur.idx)
            if best is None:
                continue

            next_is_small = a + 1 < len(anchors) and anchors[a + 1].amount <= self.fee_small_amount
            if self.patterns.is_fee(best[1]) and next_is_small:
                # Leave the fee line for the small amount that follows
                best = self._nearest_forward(descs, used, cur.idx, next_idx, skip_fees=True)
                if best is None:
                    best = self._previous_line(raw, used, cur.idx)
                if best is None:
                    continue

            used.add(best[0])

            description = self.patterns.account_amount_re.sub(" ", best[1])
            description = self.patterns.scrub_description(description)
            if not has_letters(description):
                continue

            item = StatementLineItem(
                description=description,
                payee=self.patterns.extract_payee(description),
                amount=cur.amount,
                direction=cur.direction,
                date=cur.date,
            )
            if not self.patterns.should_ignore(item):
                items.append(item)

        return items

    def _nearest_forward(
        self,
        descs: list[tuple[int, str]],
        used: set[int],
        cur_idx: int,
        next_idx: int,
        skip_fees: bool = False,
    ) -> Optional[tuple[int, str]]:
        best: Optional[tuple[int, str]] = None
        for idx, text in descs:
            if idx in used or idx <= cur_idx or idx >= next_idx:
                continue
            # The line directly above the next anchor belongs to that anchor
            if next_idx - idx <= 1:
                continue
            if skip_fees and self.patterns.is_fee(text):
                continue
            if best is None or idx - cur_idx < best[0] - cur_idx:
                best = (idx, text)
        return best

    def _previous_line(
        self, raw: list[str], used: set[int], cur_idx: int
    ) -> Optional[tuple[int, str]]:
        prev_idx = cur_idx - 1
        if prev_idx < 0 or prev_idx in used:
            return None
        prev = raw[prev_idx]
        if self._is_anchor_description(prev):
            return (prev_idx, prev)
        return None

    # Strategy 2: legacy table scan

    def parse_statement_table(self, text: str) -> list[StatementLineItem]:
        """
        Rebuild rows that start with a date and span several lines.

        Falls back to an amount-first pass when no line starts with a date.
        """
        lines = _split_lines(text)
        rows: list[StatementLineItem] = []

        i = 0
        while i < len(lines):
            m = DATE_ROW_RE.match(lines[i])
            if not m:
                i += 1
                continue

            trx_date = normalize_date(m.group(1))
            current = (m.group(3) or "").strip()
            j = i + 1
            while j < len(lines):
                nxt = lines[j]
                if DATE_ROW_RE.match(nxt):
                    break
                if self.patterns.is_page_marker(nxt):
                    j += 1
                    continue
                # Summary rows would pollute the last amount of the block
                if self.patterns.is_non_txn_marker(nxt):
                    break
                current += " " + nxt
                j += 1

            i = j
            amounts = list(self.patterns.any_amount_re.finditer(current))
            if not amounts:
                continue
            last = amounts[-1]
            amount_str = re.sub(r"\s+", "", last.group(1))

            desc = self.patterns.scrub_description(
                current[: last.start()], drop_standalone_amounts=True
            )
            if not has_letters(desc):
                continue

            amount = normalize_amount(amount_str)
            if amount is None:
                continue
            rows.append(
                StatementLineItem(
                    description=desc,
                    payee=self.patterns.extract_payee(desc),
                    amount=amount,
                    direction=direction_from_amount_str(amount_str),
                    date=trx_date,
                )
            )

        if rows:
            return rows
        return self._parse_amount_first(lines)

    def _parse_amount_first(self, lines: list[str]) -> list[StatementLineItem]:
        rows: list[StatementLineItem] = []

        i = 0
        while i < len(lines):
            line = lines[i]
            amounts = list(self.patterns.any_amount_re.finditer(line))
            if not amounts:
                i += 1
                continue
            last = amounts[-1]
            amount_str = re.sub(r"\s+", "", last.group(1))

            date_idx = -1
            trx_date = None
            for back in range(DATE_LOOKBACK_LINES + 1):
                idx = i - back
                if idx < 0:
                    break
                dm = DATE_RE.search(lines[idx])
                if dm:
                    date_idx = idx
                    trx_date = normalize_date(dm.group(1))
                    break
            if date_idx == -1:
                i += 1
                continue

            segment = " ".join(lines[date_idx : i + 1]).replace(last.group(0), " ")
            desc = self.patterns.currency_word_re.sub(" ", segment)
            desc = FOREIGN_COLUMN_RE.sub(" ", desc)
            desc = STANDALONE_AMOUNT_RE.sub(" ", desc)
            desc = EXCHANGE_RATE_RE.sub(" ", desc)
            desc = SPACES_RE.sub(" ", desc).strip()
            desc = LEADING_DATES_RE.sub("", desc)

            if not has_letters(desc):
                # Some layouts put the description on the following line
                nxt = lines[i + 1] if i + 1 < len(lines) else ""
                if not self.patterns.is_likely_description(nxt):
                    i += 1
                    continue
                desc = nxt.strip()
                i += 1

            amount = normalize_amount(amount_str)
            if amount is not None:
                rows.append(
                    StatementLineItem(
                        description=desc,
                        payee=self.patterns.extract_payee(desc),
                        amount=amount,
                        direction=direction_from_amount_str(amount_str),
                        date=trx_date,
                    )
                )
            i += 1

        return rows

    # Strategy 3: line heuristic

    def parse_line_heuristic(self, text: str) -> list[StatementLineItem]:
        """
        Strict per-line pass: a row needs an inline date and an amount tagged
        with the account currency on the same physical line.
        """
        lines = _split_lines(text)
        items: list[StatementLineItem] = []

        for idx, line in enumerate(lines):
            dm = DATE_RE.search(line)
            if not dm:
                continue
            amounts = list(self.patterns.account_amount_re.finditer(line))
            if not amounts:
                continue
            last = amounts[-1]
            amount_str = re.sub(r"\s+", "", last.group(1))

            desc = line.replace(last.group(0), " ")
            desc = self.patterns.scrub_description(desc)
            if not has_letters(desc):
                desc = self.find_adjacent_description(idx, lines)
            if not has_letters(desc):
                continue

            amount = normalize_amount(amount_str)
            if amount is None:
                continue
            item = StatementLineItem(
                description=desc,
                payee=self.patterns.extract_payee(desc),
                amount=amount,
                direction=direction_from_amount_str(amount_str),
                date=normalize_date(dm.group(1)),
            )
            if not self.patterns.should_ignore(item):
                items.append(item)

        return self.patterns.apply_text_direction(items)

    def find_adjacent_description(self, idx: int, lines: list[str]) -> str:
        """Nearest free-text neighbour, looking forward before backward."""
        for d in range(1, ADJACENT_DESCRIPTION_LINES + 1):
            for pos in (idx + d, idx - d):
                if pos < 0 or pos >= len(lines):
                    continue
                candidate = lines[pos]
                if self._is_amount_date_line(candidate):
                    continue
                if self.patterns.is_likely_description(candidate):
                    return collapse(candidate)
        return ""

    def _is_amount_date_line(self, line: str) -> bool:
        return bool(DATE_RE.search(line)) and bool(self.patterns.account_amount_re.search(line))

    def prompt_source(self, text: str, table_only: str) -> str:
        """Table slice when it carries dated rows, the full text otherwise."""
        if DATE_RE.search(table_only) and len(table_only) > 200:
            return table_only
        return text
