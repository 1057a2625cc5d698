"""
Unit tests for configuration loading and persistence.
"""
from pathlib import Path

import pytest
import yaml

from statement_split.config import (
    SplitConfig,
    generate_default_config,
    load_config,
    save_config,
    update_extraction_config,
)
from statement_split.utils.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep real credentials out of the tests."""
    for name in ("FIREFLY_URL", "FIREFLY_PERSONAL_TOKEN", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.yaml")

        assert config.extraction.default_tag == "card-statement-split"
        assert config.extraction.amount_merge_tolerance == 0.02
        assert config.batch.date_window_days == 10
        assert config.config_file_path is None

    def test_partial_file_deep_merged(self, tmp_path: Path):
        """Test that a partial section keeps the other defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("extraction:\n  account_currency: CHF\nbatch:\n  grace_before_days: 5\n")

        config = load_config(path)

        assert config.extraction.account_currency == "CHF"
        assert config.extraction.default_tag == "card-statement-split"
        assert config.batch.grace_before_days == 5
        assert config.batch.date_window_days == 10
        assert config.config_file_path == str(path)

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("extraction: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_environment_credentials(self, tmp_path: Path, monkeypatch):
        """Test that blank credentials are read from the environment."""
        monkeypatch.setenv("FIREFLY_URL", "https://firefly.example")
        monkeypatch.setenv("FIREFLY_PERSONAL_TOKEN", "secret")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "key")

        config = load_config(tmp_path / "missing.yaml")

        assert config.ledger.base_url == "https://firefly.example"
        assert config.ledger.token == "secret"
        assert config.ai.api_key == "key"


class TestSaveConfig:
    """Tests for persisting configuration."""

    def test_credentials_not_written(self, tmp_path: Path):
        config = SplitConfig()
        config.ledger.token = "secret"
        config.ai.api_key = "key"
        path = tmp_path / "out" / "config.yaml"

        save_config(config, path)

        saved = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert saved["ledger"]["token"] == ""
        assert saved["ai"]["api_key"] == ""
        assert config.ledger.token == "secret"

    def test_generated_default_loads(self, tmp_path: Path):
        path = tmp_path / "generated.yaml"

        generate_default_config(path)
        config = load_config(path)

        assert config.materialize.extracted_tag == "statement-extracted"

    def test_update_rejects_invalid_value(self, tmp_path: Path):
        with pytest.raises(ConfigurationError):
            update_extraction_config(
                SplitConfig(), {"date_merge_tolerance_days": "soon"}, tmp_path / "c.yaml"
            )
