"""
Statement split service.

Entry point for previewing, confirming and batch-matching statements
against settlement transactions in the ledger.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional, Union
import logging

from .config import SplitConfig, update_extraction_config
from .extraction.ai_extractor import AnthropicExtractor, TransactionExtractor
from .ledger.base import LedgerBackend
from .ledger.firefly import FireflyClient
from .ledger.materializer import TransactionMaterializer
from .matching.batch import BatchMatcher, build_group
from .matching.totals import reconcile_totals
from .models.statement import (
    BatchConfirmResult,
    BatchGroup,
    ConfirmResult,
    MatchCandidate,
    OriginalEntity,
    ReconciliationResult,
    StatementLineItem,
)
from .parsers.normalize import sanitize_tag
from .parsers.patterns import StatementPatterns
from .reader import StatementReader
from .utils.debug_log import StageLog
from .utils.exceptions import StatementSplitError, ValidationError

logger = logging.getLogger(__name__)

ItemInput = Union[StatementLineItem, dict[str, Any]]


class StatementSplitService:
    """Orchestrates parsing, reconciliation, batch matching and materialization."""

    def __init__(
        self,
        config: SplitConfig,
        ledger: LedgerBackend,
        extractor: Optional[TransactionExtractor] = None,
        config_path: Optional[Path] = None,
    ):
        """
        Initialize the service.

        Args:
            config: Application configuration
            ledger: Ledger backend
            extractor: Optional AI extractor
            config_path: Where extraction settings are persisted
        """
        self.config = config
        self.ledger = ledger
        self.extractor = extractor
        self.config_path = config_path
        self.reader = StatementReader(
            config,
            extractor,
            StageLog(Path(config.debug.directory), config.debug.enabled),
        )

    @property
    def patterns(self) -> StatementPatterns:
        return StatementPatterns(self.config.patterns, self.config.extraction.account_currency)

    def _materializer(self) -> TransactionMaterializer:
        return TransactionMaterializer(self.ledger, self.patterns, self.config.materialize)

    def _resolve_tag(self, tag: Optional[str]) -> str:
        return sanitize_tag(tag or self.config.extraction.default_tag)

    # Single statement

    def preview(
        self,
        file_name: str,
        content: bytes,
        original_id: str,
        tag: Optional[str] = None,
        force_ai: bool = False,
    ) -> ReconciliationResult:
        """
        Parse a statement and compare it with one original.

        Args:
            file_name: Uploaded file name
            content: Raw file bytes
            original_id: Ledger id of the settlement transaction
            tag: Tag proposed for the children (defaults to the configured tag)
            force_ai: Run the AI extractor even when it is not primary

        Returns:
            Items, totals and meta (parent_tag, tag, statement_total, source)
        """
        if not original_id:
            raise ValidationError("original_id is required")

        statement = self.reader.read(file_name, content, force_ai=force_ai)
        original = self.ledger.get_transaction(original_id)
        totals = reconcile_totals(
            original.amount, statement.items, self.patterns, statement.statement_total
        )

        logger.info(
            f"Preview {file_name} vs {original_id}: {len(statement)} items, "
            f"original {totals.original}, sum {totals.sum}, diff {totals.diff}"
        )

        return ReconciliationResult(
            items=statement.items,
            totals=totals,
            meta={
                "parent_tag": sanitize_tag(original.description),
                "tag": self._resolve_tag(tag),
                "statement_total": (
                    str(statement.statement_total) if statement.statement_total is not None else None
                ),
                "source": statement.source,
                "file_name": file_name,
                "original": original.to_dict(),
                "already_extracted": self.config.materialize.extracted_tag in original.tags,
            },
        )

    def confirm(
        self,
        original_id: str,
        items: list[ItemInput],
        tag: Optional[str] = None,
        proceed_on_mismatch: bool = False,
        force: bool = False,
        statement_total: Optional[Decimal] = None,
    ) -> ConfirmResult:
        """
        Write the confirmed items as children of the original.

        Raises:
            ValidationError: Missing original id or items
            SumMismatchError: Sum outside tolerance without override
            AlreadyExtractedError: Original already split and not forced
        """
        line_items = self._coerce_items(items)
        return self._materializer().materialize(
            original_id,
            line_items,
            tag=self._resolve_tag(tag),
            proceed_on_mismatch=proceed_on_mismatch,
            force=force,
            statement_total=statement_total,
        )

    # Batch

    def batch_preview(
        self,
        files: list[tuple[str, bytes]],
        candidate_ids: Optional[list[str]] = None,
        date_window_days: Optional[int] = None,
        grace_before_days: Optional[int] = None,
        tag: Optional[str] = None,
    ) -> list[BatchGroup]:
        """
        Parse several statements and assign each to at most one original.

        Args:
            files: (file_name, content) pairs
            candidate_ids: Explicit originals; discovered from the ledger when empty
            date_window_days: Override of the matching window
            grace_before_days: Override of the grace before the last item date
            tag: Tag carried by every group into batch confirm

        Returns:
            One group per file, in input order
        """
        if not files:
            raise ValidationError("At least one statement file is required")

        overrides = {}
        if date_window_days is not None:
            overrides["date_window_days"] = date_window_days
        if grace_before_days is not None:
            overrides["grace_before_days"] = grace_before_days
        matcher = BatchMatcher(self.config.batch.model_copy(update=overrides))

        patterns = self.patterns
        group_tag = self._resolve_tag(tag)
        groups: list[BatchGroup] = []
        for file_name, content in files:
            try:
                statement = self.reader.read(file_name, content)
                group = build_group(statement, patterns, file_name)
            except StatementSplitError as e:
                logger.error(f"Failed to parse {file_name}: {e}")
                group = BatchGroup(file_name=file_name, error=str(e))
            group.tag = group_tag
            groups.append(group)

        candidates = self._load_candidates(groups, matcher, candidate_ids)
        logger.info(f"Matching {len(groups)} statements against {len(candidates)} candidates")
        return matcher.match(groups, candidates)

    def batch_confirm(
        self,
        groups: list[BatchGroup],
        proceed_on_mismatch: bool = False,
        tag: Optional[str] = None,
        force: bool = False,
    ) -> BatchConfirmResult:
        """
        Confirm matched groups one after another.

        A failing group is recorded in errors and does not stop the others.
        """
        result = BatchConfirmResult()
        materializer = self._materializer()

        for group in groups:
            if group.matched is None:
                result.errors.append(
                    {"file_name": group.file_name, "error": group.error or "No matching original"}
                )
                continue

            original_id = group.matched.original_id
            try:
                confirmed = materializer.materialize(
                    original_id,
                    group.items,
                    tag=self._resolve_tag(tag or group.tag),
                    proceed_on_mismatch=proceed_on_mismatch,
                    force=force,
                    statement_total=group.statement_total,
                )
            except StatementSplitError as e:
                logger.error(f"Batch group {group.file_name} -> {original_id} failed: {e}")
                result.errors.append(
                    {"file_name": group.file_name, "original_id": original_id, "error": str(e)}
                )
                continue

            result.results.append(confirmed)
            result.created += confirmed.created
            result.merchants.extend(confirmed.merchants)
            result.transactions.extend(confirmed.transactions)
            for message in confirmed.errors:
                result.errors.append(
                    {"file_name": group.file_name, "original_id": original_id, "error": message}
                )

        logger.info(
            f"Batch confirm: {result.created} entries created, {len(result.errors)} errors"
        )
        return result

    # Config

    def get_config(self) -> dict[str, Any]:
        return self.config.extraction.model_dump()

    def update_config(self, update: dict[str, Any]) -> dict[str, Any]:
        return update_extraction_config(self.config, update, self.config_path).model_dump()

    def _load_candidates(
        self,
        groups: list[BatchGroup],
        matcher: BatchMatcher,
        candidate_ids: Optional[list[str]],
    ) -> list[MatchCandidate]:
        if candidate_ids:
            originals = [self.ledger.get_transaction(cid) for cid in dict.fromkeys(candidate_ids)]
        else:
            window = matcher.candidate_window([g for g in groups if g.error is None])
            if window is None:
                logger.warning("No dates found in statements; cannot query candidates")
                return []
            originals = [
                o
                for o in self.ledger.list_transactions(window[0], window[1], "withdrawal")
                if self.config.materialize.extracted_tag not in o.tags
            ]

        return [_to_candidate(o) for o in originals]

    def _coerce_items(self, items: list[ItemInput]) -> list[StatementLineItem]:
        if not items:
            raise ValidationError("At least one item is required")

        line_items: list[StatementLineItem] = []
        for idx, item in enumerate(items):
            if isinstance(item, StatementLineItem):
                line_items.append(item)
                continue
            try:
                line_items.append(StatementLineItem.from_dict(item))
            except (InvalidOperation, ValueError, TypeError) as e:
                raise ValidationError(f"Invalid item {idx + 1}: {e}") from e
        return line_items


def _to_candidate(original: OriginalEntity) -> MatchCandidate:
    return MatchCandidate(
        id=original.id,
        amount_abs=original.amount,
        date=original.date,
        currency=original.currency,
        description=original.description,
    )


def create_service(config: SplitConfig, config_path: Optional[Path] = None) -> StatementSplitService:
    """
    Build a service wired to Firefly III and, when a key is set, Anthropic.

    Args:
        config: Loaded configuration
        config_path: Where extraction settings are persisted

    Returns:
        Ready-to-use service
    """
    ledger = FireflyClient(config.ledger)
    extractor = AnthropicExtractor(config.ai) if config.ai.api_key else None
    if extractor is None:
        logger.info("No Anthropic API key configured; AI extraction disabled")
    return StatementSplitService(config, ledger, extractor, config_path)
