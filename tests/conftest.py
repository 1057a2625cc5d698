"""
Pytest configuration and fixtures.
"""
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional
import json

import pytest

from statement_split.config import SplitConfig
from statement_split.extraction.ai_extractor import ExtractionResult, TransactionExtractor
from statement_split.ledger.base import LedgerBackend
from statement_split.models.statement import OriginalEntity
from statement_split.parsers.patterns import StatementPatterns
from statement_split.service import StatementSplitService
from statement_split.utils.exceptions import LedgerError


SAMPLE_STATEMENT = """Kartenabrechnung Juni 2025
Umsatzdatum Buchungsdatum Beschreibung Betrag
AMAZON MKTP DE
EUR -45,00 02.06.2025 03.06.2025
SPOTIFY STOCKHOLM
EUR -9,99 05.06.2025 06.06.2025
Gutschrift REWE
EUR 10,00 07.06.2025 08.06.2025
Kontostand neu EUR 44,99
"""


class FakeLedger(LedgerBackend):
    """In-memory ledger recording every write."""

    def __init__(self):
        self.transactions: dict[str, OriginalEntity] = {}
        self.created: list[dict[str, Any]] = []
        self.accounts: list[dict[str, str]] = [
            {"id": "1", "name": "Checking", "type": "asset"},
        ]
        # Counterparty names the ledger refuses when passed by name
        self.reject_names: set[str] = set()
        # Descriptions whose write fails with a server error
        self.fail_descriptions: set[str] = set()
        self.list_calls: list[tuple[date, date, str]] = []

    def add(self, entity: OriginalEntity) -> OriginalEntity:
        self.transactions[entity.id] = entity
        return entity

    def get_transaction(self, transaction_id: str) -> OriginalEntity:
        if transaction_id not in self.transactions:
            raise LedgerError(f"Not found: {transaction_id}", 404, "")
        return self.transactions[transaction_id]

    def list_transactions(self, start: date, end: date, transaction_type: str = "withdrawal"):
        self.list_calls.append((start, end, transaction_type))
        return [
            t
            for t in self.transactions.values()
            if t.type == transaction_type and start <= t.date <= end
        ]

    def create_transaction(self, split: dict[str, Any]) -> str:
        if split.get("description") in self.fail_descriptions:
            raise LedgerError("Internal error", 500, "server error")
        for side in ("source", "destination"):
            if split.get(f"{side}_name") in self.reject_names:
                body = json.dumps(
                    {"message": "invalid", "errors": {f"transactions.0.{side}_name": ["invalid"]}}
                )
                raise LedgerError("Validation failed", 422, body)

        new_id = str(1000 + len(self.created))
        self.created.append({**split, "id": new_id})
        return new_id

    def add_tags(self, transaction_id: str, tags: list[str]) -> None:
        entity = self.get_transaction(transaction_id)
        for tag in tags:
            if tag not in entity.tags:
                entity.tags.append(tag)

    def find_account(self, name: str, account_types: list[str]) -> Optional[dict[str, str]]:
        for account in self.accounts:
            if account["name"].lower() == name.lower() and account["type"] in account_types:
                return dict(account)
        return None

    def create_account(self, name: str, account_type: str) -> dict[str, str]:
        account = {"id": str(500 + len(self.accounts)), "name": name, "type": account_type}
        self.accounts.append(account)
        self.reject_names.discard(name)
        return dict(account)


class FakeExtractor(TransactionExtractor):
    """Scripted extractor returning fixed rows or raising an error."""

    def __init__(self, rows: Optional[list[dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.rows = rows or []
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def extract(self, text: str, account_currency: str) -> ExtractionResult:
        self.calls.append((text, account_currency))
        if self.error:
            raise self.error
        return ExtractionResult(items=list(self.rows), raw=json.dumps(self.rows))


@pytest.fixture
def split_config() -> SplitConfig:
    """Default configuration without environment credentials."""
    return SplitConfig()


@pytest.fixture
def patterns(split_config: SplitConfig) -> StatementPatterns:
    """Compiled default marker tables."""
    return StatementPatterns(split_config.patterns, "EUR")


@pytest.fixture
def ledger() -> FakeLedger:
    """Fake ledger holding one card settlement from the checking account."""
    fake = FakeLedger()
    fake.add(
        OriginalEntity(
            id="42",
            description="Kartenabrechnung Juni 2025",
            amount=Decimal("45.50"),
            date=date(2025, 6, 30),
            source_id="1",
            source_name="Checking",
            source_type="Asset account",
            destination_id="7",
            destination_name="Credit Card",
            destination_type="Expense account",
        )
    )
    return fake


@pytest.fixture
def service(split_config: SplitConfig, ledger: FakeLedger, tmp_path: Path) -> StatementSplitService:
    """Service wired to the fake ledger, without AI."""
    return StatementSplitService(
        split_config, ledger, extractor=None, config_path=tmp_path / "extraction-config.yaml"
    )


@pytest.fixture
def sample_statement() -> bytes:
    """Three-row card statement with an ending balance line."""
    return SAMPLE_STATEMENT.encode("utf-8")
