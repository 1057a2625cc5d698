"""
CSV statement parser.
Maps exported statement columns onto line items using header synonyms.
"""

from io import BytesIO
from typing import Optional
import logging
import re

import pandas as pd

from ..config import IngestionConfig
from ..models.statement import ParsedStatement, StatementLineItem
from ..utils.exceptions import StatementParseError
from .normalize import direction_from_amount_str, normalize_amount, normalize_date
from .patterns import StatementPatterns

logger = logging.getLogger(__name__)

NUMERIC_CELL_RE = re.compile(r"-?\d")


class CsvStatementParser:
    """
    Parser for CSV statement exports.

    Columns are resolved per logical field (description, payee, amount,
    date): an explicit header mapping wins, then the first column whose
    lowercased name is in the synonym list.
    """

    def __init__(
        self,
        config: IngestionConfig,
        patterns: StatementPatterns,
        header_mapping: Optional[dict[str, str]] = None,
    ):
        """
        Initialize the parser.

        Args:
            config: Ingestion settings with header synonyms
            patterns: Compiled marker tables (for settlement direction hints)
            header_mapping: Optional {field: column} overrides
        """
        self.config = config
        self.patterns = patterns
        self.header_mapping = header_mapping or {}

    def parse(self, content: bytes, file_name: Optional[str] = None) -> ParsedStatement:
        """
        Parse CSV bytes into a statement.

        Args:
            content: Raw file content
            file_name: Original file name, for logging

        Returns:
            Parsed statement

        Raises:
            StatementParseError: If the buffer is not readable CSV
        """
        logger.info(f"Parsing CSV statement: {file_name or '<buffer>'}")

        try:
            df = pd.read_csv(
                BytesIO(content),
                sep=self._detect_delimiter(content),
                engine="python",
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                encoding=self.config.encoding,
                encoding_errors="replace",
                on_bad_lines="skip",
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read CSV file: {e}")
            raise StatementParseError(f"Failed to read CSV file: {e}") from e

        df.columns = [str(c).strip().lstrip("\ufeff") for c in df.columns]
        items = self._process_dataframe(df)
        logger.info(f"Extracted {len(items)} line items from CSV ({len(df)} rows)")

        return ParsedStatement(items=items, source="csv", file_name=file_name)

    def _detect_delimiter(self, content: bytes) -> str:
        header = content.split(b"\n", 1)[0].decode(self.config.encoding, errors="replace")
        counts = {d: header.count(d) for d in (";", ",", "\t")}
        best = max(counts, key=counts.get)
        return best if counts[best] else ","

    def _process_dataframe(self, df: pd.DataFrame) -> list[StatementLineItem]:
        columns = list(df.columns)
        desc_col = self._pick_column(columns, "description", self.config.description_headers)
        payee_col = self._pick_column(columns, "payee", self.config.payee_headers)
        date_col = self._pick_column(columns, "date", self.config.date_headers)
        amount_col = self._pick_amount_column(columns)

        logger.debug(
            f"CSV columns resolved: description={desc_col}, payee={payee_col}, "
            f"amount={amount_col}, date={date_col}"
        )

        items: list[StatementLineItem] = []
        for idx, row in df.iterrows():
            item = self._normalize_row(row, desc_col, payee_col, date_col, amount_col)
            if item is None:
                logger.warning(f"Row {idx}: missing amount or description, skipping")
                continue
            items.append(item)

        return self.patterns.apply_text_direction(items)

    def _normalize_row(
        self,
        row: pd.Series,
        desc_col: Optional[str],
        payee_col: Optional[str],
        date_col: Optional[str],
        amount_col: Optional[str],
    ) -> Optional[StatementLineItem]:
        raw_amount = self._cell(row, amount_col)
        if raw_amount is None and amount_col is None:
            # No recognised amount header: first numeric-looking cell
            raw_amount = next(
                (str(v) for v in row.values if v and NUMERIC_CELL_RE.search(str(v))),
                None,
            )
        description = self._cell(row, desc_col)
        if raw_amount is None or description is None:
            return None

        amount = normalize_amount(raw_amount)
        if amount is None:
            return None

        raw_date = self._cell(row, date_col)
        return StatementLineItem(
            description=description,
            payee=self._cell(row, payee_col) or description,
            amount=amount,
            direction=direction_from_amount_str(raw_amount),
            date=self._parse_date(raw_date),
        )

    def _pick_column(self, columns: list[str], field: str, synonyms: list[str]) -> Optional[str]:
        mapped = self.header_mapping.get(field)
        if mapped:
            if mapped in columns:
                return mapped
            logger.warning(f"Mapped column '{mapped}' for {field} not found in CSV")

        wanted = [s.lower() for s in synonyms]
        for column in columns:
            if column.lower() in wanted:
                return column
        return None

    def _pick_amount_column(self, columns: list[str]) -> Optional[str]:
        mapped = self.header_mapping.get("amount")
        if mapped and mapped in columns:
            return mapped

        # Billed-amount names take priority over generic ones
        for name in self.config.amount_headers:
            for column in columns:
                if name.lower() in column.lower():
                    return column
        return None

    def _cell(self, row: pd.Series, column: Optional[str]) -> Optional[str]:
        if column is None:
            return None
        value = row.get(column)
        if value is None or pd.isna(value):
            return None
        value = str(value).strip()
        return value or None

    def _parse_date(self, value: Optional[str]):
        if not value:
            return None
        parsed = normalize_date(value)
        if parsed:
            return parsed
        try:
            return pd.to_datetime(value, dayfirst=True).date()
        except (ValueError, TypeError):
            return None
