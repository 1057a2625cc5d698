"""
Normalization helpers for amounts, dates and tags found on statements.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import re
import unicodedata

from ..models.statement import Direction

TWO_PLACES = Decimal("0.01")

_DMY_RE = re.compile(r"(\d{2})\.(\d{2})\.(\d{4})")
_ISO_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_THOUSANDS_DOT_RE = re.compile(r"^-?\d{1,3}(?:\.\d{3})+$")
_THOUSANDS_COMMA_RE = re.compile(r"^-?\d{1,3}(?:,\d{3})+$")


def normalize_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount into a non-negative Decimal with two places.

    Handles European formatting ("1.234,56"), US formatting ("1,234.56"),
    unicode minus, non-breaking spaces and currency symbols.

    Args:
        value: Amount as string or number

    Returns:
        Absolute amount, or None if the value is not numeric
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
        return abs(number).quantize(TWO_PLACES)

    s = (
        str(value)
        .replace("\u2212", "-")
        .replace("\u00a0", "")
        .replace("\u202f", "")
    )
    s = re.sub(r"\s+", "", s)
    s = re.sub(r"[^0-9.,\-]", "", s)
    if not re.search(r"\d", s):
        return None

    if "," in s and "." in s:
        # Whichever separator comes last is the decimal separator
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", "") if _THOUSANDS_COMMA_RE.match(s) else s.replace(",", ".")
    elif "." in s and _THOUSANDS_DOT_RE.match(s):
        s = s.replace(".", "")

    # Stray signs inside the number ("12-" trailing minus)
    negative = s.startswith("-") or s.endswith("-")
    s = s.strip("-").replace("-", "")

    try:
        amount = Decimal(s)
    except InvalidOperation:
        return None

    return abs(-amount if negative else amount).quantize(TWO_PLACES)


def direction_from_amount_str(amount_str: Any) -> Direction:
    """
    Leading or trailing minus (ASCII or unicode) means money out.

    Currency codes, symbols and spaces around the number are ignored, so
    "EUR -12,50" and "\u20ac -3,00" are both out.
    """
    s = str(amount_str).replace("\u2212", "-")
    s = re.sub(r"[^0-9.,\-]", "", s)
    return Direction.OUT if s.startswith("-") or s.endswith("-") else Direction.IN


def normalize_date(value: Any) -> Optional[date]:
    """
    Parse DD.MM.YYYY or YYYY-MM-DD (also inside longer strings).

    Args:
        value: Date string, date or datetime

    Returns:
        Date or None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    s = str(value).strip()
    try:
        m = _ISO_RE.search(s)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        m = _DMY_RE.search(s)
        if m:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    except ValueError:
        return None

    for fmt in ("%d/%m/%Y", "%d.%m.%y", "%d/%m/%y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue

    return None


def sanitize_tag(value: Any) -> str:
    """
    Slugify a tag: lowercase, ascii, non-alphanumerics collapsed to '-'.

    Truncated to 50 characters.
    """
    if not value:
        return ""

    s = unicodedata.normalize("NFKD", str(value).lower())
    s = s.encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return s.strip("-")[:50]
