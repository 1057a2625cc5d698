"""
Unit tests for the deterministic statement text parser.
"""
from datetime import date
from decimal import Decimal

import pytest

from statement_split.models.statement import Direction
from statement_split.parsers.patterns import StatementPatterns
from statement_split.parsers.text_parser import StatementTextParser

from conftest import SAMPLE_STATEMENT


@pytest.fixture
def parser(patterns: StatementPatterns) -> StatementTextParser:
    """Create parser instance."""
    return StatementTextParser(patterns)


class TestAnchorScan:
    """Tests for anchor line pairing."""

    def test_sample_statement(self, parser: StatementTextParser):
        """Test the three rows of the sample statement."""
        items = parser.parse_deterministic(SAMPLE_STATEMENT)

        assert [i.description for i in items] == [
            "AMAZON MKTP DE",
            "SPOTIFY STOCKHOLM",
            "Gutschrift REWE",
        ]
        assert [i.amount for i in items] == [Decimal("45.00"), Decimal("9.99"), Decimal("10.00")]
        assert [i.direction for i in items] == [Direction.OUT, Direction.OUT, Direction.IN]
        assert items[0].date == date(2025, 6, 2)

    def test_negative_amount_is_out(self, parser: StatementTextParser):
        """Test that '-12,50' yields 12.50 with direction out."""
        text = "Parkhaus Zentrum\nEUR -12,50 01.06.2025 02.06.2025\n"
        items = parser.parse_anchor_rows(text)

        assert len(items) == 1
        assert items[0].amount == Decimal("12.50")
        assert items[0].direction == Direction.OUT
        assert items[0].description == "Parkhaus Zentrum"

    def test_amount_without_thousands_separator(self, parser: StatementTextParser):
        """Test that '1234,56' is read as one amount."""
        text = "Hotel Adlon Berlin\nEUR -1234,56 01.06.2025 02.06.2025\n"
        items = parser.parse_anchor_rows(text)

        assert len(items) == 1
        assert items[0].amount == Decimal("1234.56")
        assert items[0].direction == Direction.OUT

    def test_fee_not_paired_with_large_amount(self, parser: StatementTextParser):
        """Test that a fee description is left for the small amount that follows."""
        text = "\n".join(
            [
                "ONLINE SHOP",
                "EUR -120,00 10.06.2025 11.06.2025",
                "Umrechnungsentgelt OPENAI",
                "OPENAI SAN FRANCISCO",
                "EUR -2,10 10.06.2025 11.06.2025",
            ]
        )
        items = parser.parse_anchor_rows(text)

        large = [i for i in items if i.amount == Decimal("120.00")]
        assert len(large) == 1
        assert "Umrechnungsentgelt" not in large[0].description
        assert large[0].description == "ONLINE SHOP"

    def test_description_claimed_once(self, parser: StatementTextParser):
        """Test that no description line is used by two anchors."""
        text = "\n".join(
            [
                "CAFE CENTRAL",
                "EUR -4,20 01.06.2025 02.06.2025",
                "EUR -3,10 03.06.2025 04.06.2025",
            ]
        )
        items = parser.parse_anchor_rows(text)

        assert [i.description for i in items] == ["CAFE CENTRAL"]

    def test_no_anchors(self, parser: StatementTextParser):
        """Test text without anchor lines."""
        assert parser.parse_anchor_rows("Hello\nWorld") == []


class TestTableSlice:
    """Tests for the table-only pre-slice and statement total."""

    def test_drops_header_and_footer_noise(self, parser: StatementTextParser):
        """Test that bank header and page footer lines are removed."""
        text = "\n".join(
            [
                "Musterbank AG",
                "Kreditkarte 1234",
                "Kartenabrechnung Juni",
                "AMAZON MKTP DE",
                "EUR -45,00 02.06.2025 03.06.2025",
                "Seite 1 von 2",
                "Impressum Musterbank",
            ]
        )
        table = parser.extract_table_only(text)

        assert "AMAZON MKTP DE" in table
        assert "Musterbank AG" not in table
        assert "Impressum" not in table

    def test_statement_total_from_last_balance_line(self, parser: StatementTextParser):
        """Test that the last ending-balance line wins."""
        text = "Kontostand neu EUR 10,00\nSomething\nKontostand neu EUR 44,99\n"
        assert parser.extract_statement_total(text) == Decimal("44.99")

    def test_no_statement_total(self, parser: StatementTextParser):
        assert parser.extract_statement_total("AMAZON EUR -45,00") is None

    def test_prompt_source_prefers_long_table(self, parser: StatementTextParser):
        """Test that short slices fall back to the full text."""
        assert parser.prompt_source("full text", "01.06.2025 short") == "full text"
        long_table = "01.06.2025 " + "x" * 250
        assert parser.prompt_source("full text", long_table) == long_table


class TestLegacyTableScan:
    """Tests for date-leading rows spanning several lines."""

    def test_multiline_rows(self, parser: StatementTextParser):
        """Test rows aggregated from continuation lines."""
        text = "\n".join(
            [
                "01.06.2025 REWE MARKT BERLIN EUR -23,45",
                "03.06.2025 02.06.2025 TANKSTELLE",
                "ARAL EUR -60,00",
            ]
        )
        items = parser.parse_deterministic(text)

        assert len(items) == 2
        assert items[0].description == "REWE MARKT BERLIN"
        assert items[0].amount == Decimal("23.45")
        assert items[1].description == "TANKSTELLE ARAL"
        assert items[1].amount == Decimal("60.00")
        assert items[1].date == date(2025, 6, 3)

    def test_amount_first_pass(self, parser: StatementTextParser):
        """Test the look-back for a date when no line starts with one."""
        text = "Zahlung an\n01.06.2025 EUR -15,00\nSTADTWERKE\n"
        items = parser.parse_statement_table(text)

        assert len(items) == 1
        assert items[0].description == "STADTWERKE"
        assert items[0].amount == Decimal("15.00")


class TestLineHeuristic:
    """Tests for the last-resort per-line parser."""

    def test_stitches_adjacent_description(self, parser: StatementTextParser):
        """Test that the nearest following free-text line is used first."""
        text = "Zahlung an\n01.06.2025 EUR -15,00\nSTADTWERKE\n"
        items = parser.parse_line_heuristic(text)

        assert len(items) == 1
        assert items[0].description == "STADTWERKE"
        assert items[0].direction == Direction.OUT

    def test_requires_account_currency(self, parser: StatementTextParser):
        """Test that lines without an account-currency amount are skipped."""
        assert parser.parse_line_heuristic("01.06.2025 USD -15,00 Shop") == []

    def test_ignores_balance_rows(self, parser: StatementTextParser):
        """Test the shared ignore filter."""
        assert parser.parse_line_heuristic("01.06.2025 Kontostand neu EUR 44,99") == []
