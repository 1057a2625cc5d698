"""Data models for statement items, reconciliation and materialization results."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class Direction(Enum):
    """Money flow of a statement line from the account holder's perspective."""

    IN = "in"  # Refunds, credit payments, settlement of previous statement
    OUT = "out"  # Purchases, fees, withdrawals


@dataclass
class StatementLineItem:
    """
    One itemized row of a statement.

    Amount is always a non-negative magnitude; the sign lives in direction.
    """

    description: str
    amount: Decimal
    direction: Direction = Direction.OUT
    payee: str = ""
    date: Optional[date] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            self.amount = -self.amount
        if not self.payee:
            self.payee = self.description

    @property
    def signed_amount(self) -> Decimal:
        """Amount signed as it counts against the settlement (out is positive)."""
        return self.amount if self.direction == Direction.OUT else -self.amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "payee": self.payee,
            "amount": str(self.amount),
            "date": self.date.isoformat() if self.date else None,
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatementLineItem":
        raw_date = data.get("date")
        if isinstance(raw_date, str) and raw_date:
            item_date: Optional[date] = date.fromisoformat(raw_date[:10])
        elif isinstance(raw_date, date):
            item_date = raw_date
        else:
            item_date = None

        return cls(
            description=str(data.get("description") or "").strip(),
            payee=str(data.get("payee") or data.get("destination_name") or "").strip(),
            amount=Decimal(str(data.get("amount"))),
            date=item_date,
            direction=Direction(data.get("direction") or Direction.OUT.value),
        )


@dataclass
class ParsedStatement:
    """Ordered line items of one statement file."""

    items: list[StatementLineItem] = field(default_factory=list)

    # Ending balance hint, used only for sum comparison
    statement_total: Optional[Decimal] = None

    source: str = "text"
    file_name: Optional[str] = None

    @property
    def item_dates(self) -> list[date]:
        return [i.date for i in self.items if i.date is not None]

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class OriginalEntity:
    """Settlement transaction as stored in the ledger."""

    id: str
    description: str
    amount: Decimal
    date: date
    currency: str = "EUR"
    tags: list[str] = field(default_factory=list)
    type: str = "withdrawal"

    source_id: Optional[str] = None
    source_name: Optional[str] = None
    source_type: Optional[str] = None
    destination_id: Optional[str] = None
    destination_name: Optional[str] = None
    destination_type: Optional[str] = None

    journal_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.amount = abs(self.amount)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "amount": str(self.amount),
            "date": self.date.isoformat(),
            "currency": self.currency,
            "tags": list(self.tags),
            "type": self.type,
        }


@dataclass
class ReconciliationTotals:
    """Original amount versus the item sum."""

    original: Decimal
    sum: Decimal
    diff: Decimal

    @property
    def is_balanced(self) -> bool:
        return abs(self.diff) < Decimal("0.01")

    def to_dict(self) -> dict[str, str]:
        return {"original": str(self.original), "sum": str(self.sum), "diff": str(self.diff)}


@dataclass
class ReconciliationResult:
    """Preview of a statement split against one original."""

    items: list[StatementLineItem]
    totals: ReconciliationTotals
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [i.to_dict() for i in self.items],
            "totals": self.totals.to_dict(),
            "meta": dict(self.meta),
        }


@dataclass
class MatchCandidate:
    """Ledger transaction that a statement may settle."""

    id: str
    amount_abs: Decimal
    date: date
    currency: str = "EUR"
    description: str = ""


@dataclass
class BatchMatch:
    """Assignment of a batch group to an original."""

    original_id: str
    original: MatchCandidate
    sum: Decimal
    diff: Decimal
    date_gated: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_id": self.original_id,
            "original": {
                "id": self.original.id,
                "amount": str(self.original.amount_abs),
                "date": self.original.date.isoformat(),
                "currency": self.original.currency,
                "description": self.original.description,
            },
            "sum": str(self.sum),
            "diff": str(self.diff),
        }


@dataclass
class BatchGroup:
    """One uploaded statement file within a batch."""

    file_name: str
    items: list[StatementLineItem] = field(default_factory=list)
    sum: Decimal = Decimal("0")
    reference_date: Optional[date] = None
    last_item_date: Optional[date] = None
    statement_total: Optional[Decimal] = None
    matched: Optional[BatchMatch] = None
    selectable: bool = False
    error: Optional[str] = None
    tag: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "items": [i.to_dict() for i in self.items],
            "sum": str(self.sum),
            "reference_date": self.reference_date.isoformat() if self.reference_date else None,
            "last_item_date": self.last_item_date.isoformat() if self.last_item_date else None,
            "statement_total": str(self.statement_total) if self.statement_total is not None else None,
            "matched": self.matched.to_dict() if self.matched else None,
            "selectable": self.selectable,
            "error": self.error,
            "tag": self.tag,
        }


@dataclass
class MerchantAccountEvent:
    """Counterparty account that was looked up or created during a retry."""

    name: str
    type: str
    id: str
    created: bool

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "id": self.id, "created": self.created}


@dataclass
class MaterializedTransaction:
    """Child entry written to the ledger for one statement item."""

    id: str
    description: str
    amount: Decimal
    direction: Direction
    merchant: Optional[MerchantAccountEvent] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "amount": str(self.amount),
            "direction": self.direction.value,
            "merchant": self.merchant.to_dict() if self.merchant else None,
        }


@dataclass
class ConfirmResult:
    """Outcome of materializing one statement against its original."""

    original_id: str
    created: int
    diff: Decimal
    merchants: list[MerchantAccountEvent] = field(default_factory=list)
    transactions: list[MaterializedTransaction] = field(default_factory=list)
    correction_id: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_id": self.original_id,
            "created": self.created,
            "diff": str(self.diff),
            "merchants": [m.to_dict() for m in self.merchants],
            "transactions": [t.to_dict() for t in self.transactions],
            "correction_id": self.correction_id,
            "errors": list(self.errors),
        }


@dataclass
class BatchConfirmResult:
    """Outcome of confirming several batch groups sequentially."""

    created: int = 0
    merchants: list[MerchantAccountEvent] = field(default_factory=list)
    transactions: list[MaterializedTransaction] = field(default_factory=list)
    results: list[ConfirmResult] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "merchants": [m.to_dict() for m in self.merchants],
            "transactions": [t.to_dict() for t in self.transactions],
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
        }
