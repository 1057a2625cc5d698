"""
Unit tests for the statement reading cascade.
"""
from statement_split.config import SplitConfig
from statement_split.parsers.text_parser import StatementTextParser
from statement_split.reader import StatementReader

from conftest import SAMPLE_STATEMENT, FakeExtractor


def _no_merge_config() -> SplitConfig:
    config = SplitConfig()
    config.extraction.ai_merge_with_deterministic = False
    return config


class TestAiWithoutMerge:
    """Tests for AI rows replacing deterministic rows when merging is off."""

    def test_short_ai_answer_keeps_deterministic_rows(self):
        """Test that one AI row cannot replace three parsed rows."""
        extractor = FakeExtractor(rows=[{"description": "AMAZON", "amount": "45,00", "date": "2025-06-02"}])
        reader = StatementReader(_no_merge_config(), extractor)

        statement = reader.parse_text(SAMPLE_STATEMENT)

        assert len(extractor.calls) == 1
        assert [i.description for i in statement.items] == [
            "AMAZON MKTP DE",
            "SPOTIFY STOCKHOLM",
            "Gutschrift REWE",
        ]

    def test_larger_ai_answer_replaces_deterministic_rows(self):
        """Test that more than ceil(0.9 * N) AI rows are used as they are."""
        rows = [{"description": f"Shop {i}", "amount": i, "date": "2025-06-02"} for i in range(1, 5)]
        reader = StatementReader(_no_merge_config(), FakeExtractor(rows=rows))

        statement = reader.parse_text(SAMPLE_STATEMENT)

        assert [i.description for i in statement.items] == ["Shop 1", "Shop 2", "Shop 3", "Shop 4"]


class TestLineHeuristicFallback:
    """Tests for the last-resort pass of the cascade."""

    def test_runs_on_table_slice(self, monkeypatch):
        """Test that header and footer text is not scanned when the slice is usable."""
        seen: list[str] = []

        def record(self, text):
            seen.append(text)
            return []

        monkeypatch.setattr(StatementTextParser, "parse_deterministic", lambda self, text: [])
        monkeypatch.setattr(StatementTextParser, "parse_line_heuristic", record)
        text = (
            "Musterbank AG Kundenservice\n"
            "Ihre Abrechnung\n"
            "Karteninhaber Max\n"
            "01.06.2025 " + "Eintrag " * 40 + "\n"
            "Kontostand neu EUR 0,00\n"
            "Impressum Musterbank\n"
        )

        StatementReader(SplitConfig()).parse_text(text)

        assert len(seen) == 1
        assert "01.06.2025" in seen[0]
        assert "Musterbank" not in seen[0]
        assert "Impressum" not in seen[0]
