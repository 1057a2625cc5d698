"""Ledger collaborator and transaction materialization."""

from .base import LedgerBackend, is_asset_like
from .firefly import FireflyClient
from .materializer import TransactionMaterializer

__all__ = [
    "LedgerBackend",
    "is_asset_like",
    "FireflyClient",
    "TransactionMaterializer",
]
