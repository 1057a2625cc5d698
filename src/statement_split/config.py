"""Configuration loader and validation for statement split settings."""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional
import logging
import os

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("data") / "extraction-config.yaml"


class ExtractionConfig(BaseModel):
    """User-facing extraction settings (exposed through get/set config)."""

    default_tag: str = "card-statement-split"
    use_ai_for_parsing: bool = True
    use_ai_primary: bool = True
    ai_merge_with_deterministic: bool = True
    amount_merge_tolerance: float = 0.02
    date_merge_tolerance_days: int = 2
    header_mapping: dict[str, str] = Field(default_factory=dict)
    account_currency: str = "EUR"
    last_used: Optional[str] = None


class IngestionConfig(BaseModel):
    """CSV header synonyms per logical field."""

    encoding: str = "utf-8"
    description_headers: list[str] = Field(
        default_factory=lambda: [
            "description",
            "bezeichnung",
            "text",
            "details",
            "verwendungszweck",
        ]
    )
    payee_headers: list[str] = Field(
        default_factory=lambda: [
            "destination",
            "payee",
            "empfaenger",
            "händler",
            "haendler",
            "vendor",
            "merchant",
            "partner",
        ]
    )
    date_headers: list[str] = Field(
        default_factory=lambda: ["date", "datum", "buchungstag", "transaction-date"]
    )
    amount_headers: list[str] = Field(
        default_factory=lambda: [
            "abrechnungsbetrag",
            "rechnungsbetrag",
            "betrag eur",
            "betrag in eur",
            "amount eur",
            "amount (eur)",
            "billed amount",
            "charged amount",
            "total amount",
            "total",
            "amount",
            "betrag",
        ]
    )


class PatternConfig(BaseModel):
    """
    Localizable regex tables for statement markers.

    All patterns are matched case-insensitively.
    """

    non_transaction_markers: list[str] = Field(
        default_factory=lambda: [
            r"seiten(?:übertrag|uebertrag)",
            r"kontostand\s+neu",
            r"alter\s+kartensaldo",
            r"zahlung\s*vormonat",
            r"carry\s*over|carried\s*forward",
            r"page\s*(?:sub)?total\b",
            r"new\s+balance|ending\s+balance|closing\s+balance",
            r"previous\s+balance|opening\s+balance",
            r"solde\s+(?:nouveau|final|précédent|precedent)",
            r"report\s*(?:à|a)\s*nouveau|reporté|reporte",
            r"saldo\s+(?:final|nuevo|anterior|inicial|nuovo|neu)",
            r"riporto\b",
            r"subtot(?:al|ale)|sub\s*total",
        ]
    )
    # Applied to description + payee of every candidate row
    ignore_patterns: list[str] = Field(
        default_factory=lambda: [
            r"bitte\s+nicht\s+einzahlen",
            r"\biban\b",
            r"rechnungsbetrag",
            r"umsatzdatum|buchungsdatum|\bkurs\b",
        ]
    )
    settlement_markers: list[str] = Field(
        default_factory=lambda: [
            r"abbuchung\s+kartenabrechnung",
            r"zahlung\s*vormonat",
            r"alter\s+kartensaldo",
            r"payment\s+(?:of\s+)?previous\s+statement",
            r"previous\s+(?:card\s+)?balance",
            r"opening\s+balance",
        ]
    )
    balance_markers: list[str] = Field(
        default_factory=lambda: [
            r"kontostand\s+neu",
            r"new\s+balance",
            r"ending\s+balance",
            r"closing\s+balance",
            r"saldo\s+(?:final|nuovo|neu)",
            r"solde\s+(?:final|nouveau)",
        ]
    )
    deposit_hints: list[str] = Field(
        default_factory=lambda: [
            "zahlung vormonat",
            "zahlungseingang",
            "gutschrift",
            "rückzahlung",
            "rueckzahlung",
            "abbuchung kartenabrechnung",
            "saldoausgleich",
            "ausgleich",
            "credit balance",
            "credit payment",
            "refund",
        ]
    )
    fee_markers: list[str] = Field(
        default_factory=lambda: [
            r"umrechnungsentgelt",
            r"barbehebungsentgelt",
            r"conversion\s+fee",
            r"withdrawal\s+fee",
        ]
    )
    page_markers: list[str] = Field(default_factory=lambda: [r"^seite\b", r"^page\s+\d+"])
    currency_tokens: list[str] = Field(
        default_factory=lambda: ["EUR", "USD", "CHF", "UAH", "GBP", "€"]
    )


class BatchConfig(BaseModel):
    """Settings for matching many statements to many originals."""

    date_window_days: int = 10
    grace_before_days: int = 3
    amount_tolerance: float = 3.5
    relative_tolerance: float = 0.01


class MaterializeConfig(BaseModel):
    """Settings for writing child entries."""

    extracted_tag: str = "statement-extracted"
    correction_tag: str = "statement-split-correction"
    correction_counterparty: str = "Statement split correction"
    sum_tolerance: float = 0.01
    fee_small_amount: float = 5.0


class LedgerConfig(BaseModel):
    """Connection to the Firefly III ledger API."""

    base_url: str = ""
    token: str = ""
    timeout: int = 30
    page_size: int = 50


class AIConfig(BaseModel):
    """Connection to the Anthropic Messages API."""

    model: str = "claude-3-5-sonnet-latest"
    api_key: str = ""
    max_tokens: int = 4000
    temperature: float = 0.0
    max_prompt_chars: int = 12000


class DebugConfig(BaseModel):
    """Per-stage debug log."""

    enabled: bool = False
    directory: str = "data"


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class SplitConfig(BaseModel):
    """Main configuration model for statement splitting."""

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    patterns: PatternConfig = Field(default_factory=PatternConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    materialize: MaterializeConfig = Field(default_factory=MaterializeConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return SplitConfig().model_dump(exclude={"config_file_path"})


def load_config(config_path: Optional[Path] = None) -> SplitConfig:
    """
    Load configuration from a YAML file or use defaults.

    Ledger and AI credentials left blank are filled from the environment
    (FIREFLY_URL, FIREFLY_PERSONAL_TOKEN, ANTHROPIC_API_KEY).

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        SplitConfig object with loaded or default settings
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid configuration file {config_path}: {e}") from e

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    config = SplitConfig(**config_dict)
    _apply_environment(config)
    return config


def save_config(config: SplitConfig, config_path: Path) -> None:
    """
    Persist configuration as YAML. Credentials are never written.

    Args:
        config: Configuration to write
        config_path: Destination file
    """
    data = config.model_dump(exclude={"config_file_path"})
    data["ledger"]["token"] = ""
    data["ai"]["api_key"] = ""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    logger.debug(f"Saved configuration to: {config_path}")


def update_extraction_config(
    config: SplitConfig,
    update: dict[str, Any],
    config_path: Optional[Path] = None,
) -> ExtractionConfig:
    """
    Merge user settings into the extraction section and persist them.

    Unknown keys are rejected so a typo never silently does nothing.

    Args:
        config: Active configuration (mutated in place)
        update: Partial extraction settings
        config_path: File to persist to (defaults to the loaded file)

    Returns:
        The updated extraction settings
    """
    unknown = set(update) - set(ExtractionConfig.model_fields)
    if unknown:
        raise ConfigurationError(f"Unknown extraction settings: {', '.join(sorted(unknown))}")

    merged = config.extraction.model_dump()
    merged.update(update)
    merged["last_used"] = datetime.now().isoformat()
    try:
        config.extraction = ExtractionConfig(**merged)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid extraction settings: {e}") from e

    target = config_path or (
        Path(config.config_file_path) if config.config_file_path else DEFAULT_CONFIG_PATH
    )
    save_config(config, target)
    config.config_file_path = str(target)

    return config.extraction


def _apply_environment(config: SplitConfig) -> None:
    if not config.ledger.base_url:
        config.ledger.base_url = os.environ.get("FIREFLY_URL", "")
    if not config.ledger.token:
        config.ledger.token = os.environ.get("FIREFLY_PERSONAL_TOKEN", "")
    if not config.ai.api_key:
        config.ai.api_key = os.environ.get("ANTHROPIC_API_KEY", "")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    yaml_content = """# Statement Split Configuration
# Generated configuration file - customize as needed
# Credentials are read from FIREFLY_URL, FIREFLY_PERSONAL_TOKEN and ANTHROPIC_API_KEY

"""
    yaml_content += yaml.safe_dump(
        get_default_config(), default_flow_style=False, sort_keys=False, allow_unicode=True
    )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
