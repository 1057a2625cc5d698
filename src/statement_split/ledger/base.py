"""Ledger collaborator interface."""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional

from ..models.statement import OriginalEntity

# Firefly III account types that can hold the asset side of a split
ASSET_LIKE_TYPES = {
    "asset account",
    "asset",
    "default account",
    "loan",
    "debt",
    "mortgage",
    "liability credit account",
    "liabilities",
    "liability",
}


def is_asset_like(account_type: Optional[str]) -> bool:
    return bool(account_type) and account_type.strip().lower() in ASSET_LIKE_TYPES


class LedgerBackend(ABC):
    """Read/write operations the materializer and batch matcher need."""

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> OriginalEntity:
        """Fetch one transaction by id."""
        pass

    @abstractmethod
    def list_transactions(
        self, start: date, end: date, transaction_type: str = "withdrawal"
    ) -> list[OriginalEntity]:
        """List transactions of one type booked between start and end."""
        pass

    @abstractmethod
    def create_transaction(self, split: dict[str, Any]) -> str:
        """Create a single-split transaction and return its id."""
        pass

    @abstractmethod
    def add_tags(self, transaction_id: str, tags: list[str]) -> None:
        """Append tags to every split of a transaction."""
        pass

    @abstractmethod
    def find_account(self, name: str, account_types: list[str]) -> Optional[dict[str, str]]:
        """Exact (case-insensitive) name lookup; returns {id, name, type}."""
        pass

    @abstractmethod
    def create_account(self, name: str, account_type: str) -> dict[str, str]:
        """Create an account and return {id, name, type}."""
        pass
