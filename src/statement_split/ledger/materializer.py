"""
Transaction materializer.

Writes one child entry per confirmed statement item, marks the original as
extracted and books the correction clone that offsets the original amount.
"""

from decimal import Decimal
from typing import Any, Optional
import logging

from ..config import MaterializeConfig
from ..matching.totals import ensure_within_tolerance, reconcile_totals
from ..models.statement import (
    ConfirmResult,
    Direction,
    MaterializedTransaction,
    MerchantAccountEvent,
    OriginalEntity,
    StatementLineItem,
)
from ..parsers.normalize import sanitize_tag
from ..parsers.patterns import StatementPatterns
from ..utils.exceptions import (
    AccountResolutionError,
    AlreadyExtractedError,
    LedgerError,
    StatementSplitError,
    ValidationError,
)
from .base import LedgerBackend, is_asset_like

logger = logging.getLogger(__name__)

ASSET_LOOKUP_TYPES = ["asset", "liabilities"]


class TransactionMaterializer:
    """Creates the child entries of a split settlement."""

    def __init__(
        self,
        ledger: LedgerBackend,
        patterns: StatementPatterns,
        config: MaterializeConfig,
    ):
        """
        Initialize the materializer.

        Args:
            ledger: Ledger backend used for reads and writes
            patterns: Marker tables (settlement rows are excluded from sums)
            config: Tag names and sum tolerance
        """
        self.ledger = ledger
        self.patterns = patterns
        self.config = config
        self.tolerance = Decimal(str(config.sum_tolerance))

    def materialize(
        self,
        original_id: str,
        items: list[StatementLineItem],
        tag: Optional[str] = None,
        proceed_on_mismatch: bool = False,
        force: bool = False,
        statement_total: Optional[Decimal] = None,
    ) -> ConfirmResult:
        """
        Split an original into child entries.

        Args:
            original_id: Ledger id of the settlement transaction
            items: Confirmed statement items
            tag: User tag added to every child
            proceed_on_mismatch: Write even when the sums differ
            force: Split again although the original is already tagged
            statement_total: Ending-balance hint replacing the item sum

        Returns:
            ConfirmResult with created children and per-item errors
        """
        if not original_id:
            raise ValidationError("original_id is required")
        if not items:
            raise ValidationError("At least one item is required")

        original = self.ledger.get_transaction(original_id)

        if self.config.extracted_tag in original.tags and not force:
            raise AlreadyExtractedError(
                f"Transaction {original_id} was already split "
                f"(tagged '{self.config.extracted_tag}')",
                original_id=original_id,
            )

        totals = reconcile_totals(original.amount, items, self.patterns, statement_total)
        ensure_within_tolerance(totals, proceed_on_mismatch, self.tolerance)

        parent_tag = sanitize_tag(original.description)
        tags = [t for t in (sanitize_tag(tag), parent_tag) if t]

        result = ConfirmResult(original_id=original_id, created=0, diff=totals.diff)

        for idx, item in enumerate(items):
            try:
                created = self._create_child(original, item, tags)
            except StatementSplitError as e:
                logger.error(f"Item {idx + 1} ({item.description}) failed: {e}")
                result.errors.append(f"{item.description}: {e}")
                continue

            result.transactions.append(created)
            if created.merchant:
                result.merchants.append(created.merchant)
            result.created += 1

        if result.created == 0:
            logger.warning(f"No child entries created for {original_id}; original left untouched")
            return result

        # Children are already written; later failures are reported, not raised
        try:
            self.ledger.add_tags(original.id, [self.config.extracted_tag])
        except StatementSplitError as e:
            logger.error(f"Could not tag {original_id} as extracted: {e}")
            result.errors.append(f"Tagging original {original_id} failed: {e}")

        try:
            result.correction_id = self._create_correction(original, parent_tag)
        except StatementSplitError as e:
            logger.error(f"Correction clone for {original_id} failed: {e}")
            result.errors.append(f"Correction for {original_id} failed: {e}")

        logger.info(
            f"Split {original_id} into {result.created} entries "
            f"(diff {totals.diff}, {len(result.errors)} errors)"
        )
        return result

    def resolve_asset_account(self, original: OriginalEntity, direction: Direction) -> dict[str, str]:
        """
        Account binding for the asset side of a child entry.

        Out entries draw from the original's source side, in entries land on
        its destination side. Ids are used only when that side is an asset or
        liability account; otherwise names are looked up, then used bare.
        """
        source = (original.source_id, original.source_name, original.source_type)
        destination = (original.destination_id, original.destination_name, original.destination_type)
        matching, opposite = (source, destination) if direction == Direction.OUT else (destination, source)

        for account_id, _, account_type in (matching, opposite):
            if account_id and is_asset_like(account_type):
                return {"id": account_id}

        for _, name, _ in (matching, opposite):
            if not name:
                continue
            found = self.ledger.find_account(name, ASSET_LOOKUP_TYPES)
            if found:
                return {"id": found["id"]}

        for _, name, _ in (matching, opposite):
            if name:
                return {"name": name}

        raise AccountResolutionError(f"No asset account found for transaction {original.id}")

    def _create_child(
        self, original: OriginalEntity, item: StatementLineItem, tags: list[str]
    ) -> MaterializedTransaction:
        asset = self.resolve_asset_account(original, item.direction)
        payee = item.payee or item.description

        split: dict[str, Any] = {
            "type": "withdrawal" if item.direction == Direction.OUT else "deposit",
            "date": (item.date or original.date).isoformat(),
            "amount": str(item.amount),
            "description": item.description,
            "currency_code": original.currency,
            "tags": list(tags),
        }
        if item.direction == Direction.OUT:
            merchant_side = "destination"
            split.update(_binding("source", asset))
            split["destination_name"] = payee
        else:
            merchant_side = "source"
            split["source_name"] = payee
            split.update(_binding("destination", asset))

        try:
            transaction_id = self.ledger.create_transaction(split)
            return MaterializedTransaction(
                id=transaction_id,
                description=item.description,
                amount=item.amount,
                direction=item.direction,
            )
        except LedgerError as e:
            if not _rejects_account(e, merchant_side):
                raise
            logger.warning(f"Ledger rejected {merchant_side} '{payee}', resolving account: {e}")

        merchant = self._find_or_create_merchant(payee, item.direction)
        split.pop(f"{merchant_side}_name", None)
        split[f"{merchant_side}_id"] = merchant.id

        try:
            transaction_id = self.ledger.create_transaction(split)
        except LedgerError as e:
            raise AccountResolutionError(
                f"Write for '{payee}' still rejected after account resolution: {e}"
            ) from e

        return MaterializedTransaction(
            id=transaction_id,
            description=item.description,
            amount=item.amount,
            direction=item.direction,
            merchant=merchant,
        )

    def _find_or_create_merchant(self, name: str, direction: Direction) -> MerchantAccountEvent:
        account_type = "expense" if direction == Direction.OUT else "revenue"
        try:
            found = self.ledger.find_account(name, [account_type])
            if found:
                return MerchantAccountEvent(name=name, type=account_type, id=found["id"], created=False)
            created = self.ledger.create_account(name, account_type)
        except LedgerError as e:
            raise AccountResolutionError(f"Could not resolve {account_type} account '{name}': {e}") from e

        return MerchantAccountEvent(name=name, type=account_type, id=created["id"], created=True)

    def _create_correction(self, original: OriginalEntity, parent_tag: str) -> str:
        """Deposit of the original amount back into its asset account."""
        asset = self.resolve_asset_account(original, Direction.OUT)
        split: dict[str, Any] = {
            "type": "deposit",
            "date": original.date.isoformat(),
            "amount": str(original.amount),
            "description": f"Correction: {original.description}",
            "currency_code": original.currency,
            "source_name": self.config.correction_counterparty,
            "tags": [t for t in (self.config.correction_tag, parent_tag) if t],
        }
        split.update(_binding("destination", asset))

        correction_id = self.ledger.create_transaction(split)
        logger.info(f"Created correction clone {correction_id} for {original.id}")
        return correction_id


def _binding(side: str, account: dict[str, str]) -> dict[str, str]:
    if "id" in account:
        return {f"{side}_id": account["id"]}
    return {f"{side}_name": account["name"]}


def _rejects_account(error: LedgerError, side: str) -> bool:
    """Validation failure that names the merchant-side account field."""
    if error.status_code != 422:
        return False
    return f"{side}_" in (error.body or "")
