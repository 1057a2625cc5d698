"""Data models for statement splitting."""

from .statement import (
    Direction,
    StatementLineItem,
    ParsedStatement,
    OriginalEntity,
    ReconciliationTotals,
    ReconciliationResult,
    MatchCandidate,
    BatchMatch,
    BatchGroup,
    MerchantAccountEvent,
    MaterializedTransaction,
    ConfirmResult,
    BatchConfirmResult,
)

__all__ = [
    "Direction",
    "StatementLineItem",
    "ParsedStatement",
    "OriginalEntity",
    "ReconciliationTotals",
    "ReconciliationResult",
    "MatchCandidate",
    "BatchMatch",
    "BatchGroup",
    "MerchantAccountEvent",
    "MaterializedTransaction",
    "ConfirmResult",
    "BatchConfirmResult",
]
