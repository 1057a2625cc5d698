"""Statement ingestion and deterministic row parsing."""

from .normalize import normalize_amount, normalize_date, direction_from_amount_str, sanitize_tag
from .patterns import StatementPatterns
from .csv_parser import CsvStatementParser
from .pdf_text import extract_pdf_text
from .text_parser import StatementTextParser

__all__ = [
    "normalize_amount",
    "normalize_date",
    "direction_from_amount_str",
    "sanitize_tag",
    "StatementPatterns",
    "CsvStatementParser",
    "extract_pdf_text",
    "StatementTextParser",
]
