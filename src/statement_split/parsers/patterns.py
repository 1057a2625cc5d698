"""
Compiled marker tables and text heuristics shared by all statement parsers.

The regex tables come from configuration so new layouts and languages
only need new patterns, not new code.
"""

from decimal import Decimal
from typing import Iterable, Optional
import re

from ..config import PatternConfig
from ..models.statement import Direction, StatementLineItem

# Amount with optional sign and optional thousands separators, always two decimals
AMOUNT = r"[-+\u2212]?\s*\d+(?:[.,]\d{3})*(?:[.,]\d{2})"
DATE = r"\d{2}\.\d{2}\.\d{4}"

DATE_RE = re.compile(f"({DATE})")
EXCHANGE_RATE_RE = re.compile(r"\b0[.,]\d{2,6}\b")
DATES_RE = re.compile(rf"\b{DATE}\b")
FOREIGN_COLUMN_RE = re.compile(rf"\b[A-Z]{{3}}\s*{AMOUNT}\b")
STANDALONE_AMOUNT_RE = re.compile(rf"\b{AMOUNT}\b")
LETTERS_RE = re.compile(r"[^\W\d_]")
SPACES_RE = re.compile(r"\s{2,}")


def _compile_any(patterns: Iterable[str]) -> Optional[re.Pattern]:
    patterns = [p for p in patterns if p]
    if not patterns:
        return None
    return re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)


def collapse(line: str) -> str:
    """Collapse whitespace runs into single spaces."""
    return re.sub(r"\s+", " ", line or "").strip()


def has_letters(text: Optional[str]) -> bool:
    return bool(text) and bool(LETTERS_RE.search(text))


class StatementPatterns:
    """
    Marker detection, ignore filter, direction hints and payee derivation.

    One instance is built per configuration and shared read-only.
    """

    def __init__(self, config: PatternConfig, account_currency: str = "EUR"):
        self.config = config
        self.account_currency = account_currency.upper()

        self._non_txn = _compile_any(config.non_transaction_markers)
        self._ignore = _compile_any(config.ignore_patterns)
        self._settlement = _compile_any(config.settlement_markers)
        self._balance = _compile_any(config.balance_markers)
        self._fee = _compile_any(config.fee_markers)
        self._page = _compile_any(config.page_markers)
        self._deposit_hints = [h.lower() for h in config.deposit_hints]

        account_tokens = [self.account_currency, "€"]
        any_tokens = list(dict.fromkeys(t.upper() if t.isalpha() else t for t in config.currency_tokens))
        for token in account_tokens:
            if token not in any_tokens:
                any_tokens.append(token)

        account_alt = "|".join(re.escape(t) for t in account_tokens)
        any_alt = "|".join(re.escape(t) for t in any_tokens)
        word_tokens = "|".join(re.escape(t) for t in any_tokens if t.isalpha())

        # Amount tagged with the account currency ("EUR -12,50", "€12,50")
        self.account_amount_re = re.compile(rf"(?:{account_alt})\s*({AMOUNT})", re.IGNORECASE)
        # Amount tagged with any known currency; no trailing word boundary so
        # glued sequences like "EUR-12,00EUR-12,00" still split
        self.any_amount_re = re.compile(rf"(?:{any_alt})\s*({AMOUNT})")
        self.currency_amount_scrub_re = re.compile(rf"(?:^|\s)(?:{any_alt})\s*{AMOUNT}\b")
        self.currency_word_re = re.compile(rf"(?:^|\s)(?:{any_alt})(?=\s|$)")
        self.amount_blob_re = re.compile(
            rf"^(?:\D*?(?:{any_alt})\s*{AMOUNT})+\D*$", re.IGNORECASE
        )
        # Billed amount followed by transaction date and processing date
        self.anchor_re = re.compile(
            rf"(?:{account_alt})\s*{AMOUNT}.*?{DATE}.*?{DATE}", re.IGNORECASE
        )
        self.currency_artifact_re = re.compile(
            rf"^\s*(?:{any_alt})[^A-Za-z]*$", re.IGNORECASE
        )
        self.payee_currency_cut_re = re.compile(rf"\s+(?:{word_tokens})\b", re.IGNORECASE)

    # Line classification

    def is_non_txn_marker(self, line: Optional[str]) -> bool:
        return bool(line) and self._non_txn is not None and bool(self._non_txn.search(line))

    def is_page_marker(self, line: Optional[str]) -> bool:
        return bool(line) and self._page is not None and bool(self._page.search(line.strip()))

    def is_balance_line(self, line: str) -> bool:
        return self._balance is not None and bool(self._balance.search(line))

    def is_fee(self, text: str) -> bool:
        return self._fee is not None and bool(self._fee.search(text))

    def is_anchor(self, line: str) -> bool:
        return bool(self.anchor_re.search(line))

    def is_likely_description(self, line: Optional[str]) -> bool:
        """Free text that is neither a marker, a page footer nor an amount blob."""
        if not line:
            return False
        s = line.strip()
        if not has_letters(s):
            return False
        if self.is_non_txn_marker(s) or self.is_page_marker(s):
            return False
        return not self.amount_blob_re.match(s)

    # Item classification

    def should_ignore(self, item: StatementLineItem) -> bool:
        """Balance, carry-over, subtotal and footer rows, and zero amounts."""
        text = f"{item.description or ''} {item.payee or ''}"
        if self.is_non_txn_marker(text):
            return True
        if self._ignore is not None and self._ignore.search(text):
            return True
        return item.amount is not None and abs(item.amount) < Decimal("0.001")

    def is_settlement(self, item: StatementLineItem) -> bool:
        """Payment of the previous statement or a previous balance carried in."""
        text = f"{item.description or ''} {item.payee or ''}"
        return self._settlement is not None and bool(self._settlement.search(text))

    def infer_direction_from_text(self, text: str) -> Optional[Direction]:
        """Deposit hints imply money in; otherwise no opinion."""
        s = (text or "").lower()
        if any(hint in s for hint in self._deposit_hints):
            return Direction.IN
        return None

    def apply_text_direction(self, items: list[StatementLineItem]) -> list[StatementLineItem]:
        """Settlement and credit-payment phrasing forces direction to in."""
        for item in items:
            if self.infer_direction_from_text(f"{item.description} {item.payee}") == Direction.IN:
                item.direction = Direction.IN
        return items

    # Text cleanup

    def scrub_description(self, text: str, drop_standalone_amounts: bool = False) -> str:
        """Remove currency amounts, foreign columns, exchange rates and dates."""
        s = self.currency_amount_scrub_re.sub(" ", text)
        s = FOREIGN_COLUMN_RE.sub(" ", s)
        if drop_standalone_amounts:
            s = STANDALONE_AMOUNT_RE.sub(" ", s)
        s = EXCHANGE_RATE_RE.sub(" ", s)
        s = DATES_RE.sub(" ", s)
        return SPACES_RE.sub(" ", s).strip()

    def extract_payee(self, description: Optional[str]) -> str:
        """Best-effort merchant name from a statement description."""
        if not description:
            return ""

        s = description.strip()
        # OCR merges like "UmrechnungsentgeltOPENAI"
        s = re.sub(r"((?i:entgelt))([A-ZÄÖÜ])", r"\1 \2", s, count=1)
        s = EXCHANGE_RATE_RE.sub(" ", s)
        s = DATES_RE.sub(" ", s)
        s = FOREIGN_COLUMN_RE.sub(" ", s)
        s = self.currency_artifact_re.sub(" ", s)
        s = SPACES_RE.sub(" ", s).strip()

        if self._fee is not None:
            m = self._fee.match(s)
            if m and s[m.end():].strip():
                tail = s[m.end():].strip()
                cut = re.split(rf"{self.payee_currency_cut_re.pattern}|\s+{AMOUNT}", tail, flags=re.IGNORECASE)[0]
                if cut.strip():
                    return cut.strip()

        payee = s.split(",")[0].strip()
        payee = self.payee_currency_cut_re.split(payee)[0].strip()
        payee = re.split(rf"\s+{AMOUNT}", payee)[0].strip()
        if len(payee) > 60 and " - " in s:
            payee = s.split(" - ")[0].strip()

        payee = SPACES_RE.sub(" ", payee).strip()
        return payee or s
