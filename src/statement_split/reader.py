"""
Statement reader.

Dispatches an uploaded file on its extension and runs the extraction
cascade for text statements: deterministic parser, AI extractor (merged or
standalone), then the per-line heuristic.
"""

from pathlib import Path
from typing import Optional
import logging

from .config import SplitConfig
from .extraction.ai_extractor import TransactionExtractor, normalize_ai_items
from .matching.merge import MergeReconciler
from .models.statement import ParsedStatement, StatementLineItem
from .parsers.csv_parser import CsvStatementParser
from .parsers.pdf_text import extract_pdf_text
from .parsers.patterns import StatementPatterns
from .parsers.text_parser import StatementTextParser
from .utils.debug_log import StageLog
from .utils.exceptions import CollaboratorError, UnsupportedFileType, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".csv", ".pdf", ".txt"}


class StatementReader:
    """Turns an uploaded statement file into a ParsedStatement."""

    def __init__(
        self,
        config: SplitConfig,
        extractor: Optional[TransactionExtractor] = None,
        stage_log: Optional[StageLog] = None,
    ):
        """
        Initialize the reader.

        Extraction settings are read on every call so runtime config
        updates take effect immediately.

        Args:
            config: Application configuration
            extractor: Optional AI extractor
            stage_log: Per-stage debug log
        """
        self.config = config
        self.extractor = extractor
        self.stage_log = stage_log or StageLog(Path(config.debug.directory), config.debug.enabled)

    @property
    def patterns(self) -> StatementPatterns:
        return StatementPatterns(self.config.patterns, self.config.extraction.account_currency)

    def read(self, file_name: str, content: bytes, force_ai: bool = False) -> ParsedStatement:
        """
        Parse a CSV, PDF or plain text statement.

        Args:
            file_name: Uploaded file name (extension selects the parser)
            content: Raw file bytes
            force_ai: Run the AI extractor even when it is not primary

        Returns:
            Parsed statement

        Raises:
            ValidationError: If no file content was given
            UnsupportedFileType: If the extension is not csv, pdf or txt
        """
        if not file_name or not content:
            raise ValidationError("A statement file is required")

        extension = Path(file_name).suffix.lower()
        if extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFileType(f"Unsupported file type: {extension or file_name}")

        if extension == ".csv":
            return self.read_csv(file_name, content)

        if extension == ".pdf":
            text = extract_pdf_text(content)
            source = "pdf"
        else:
            text = content.decode("utf-8", errors="replace").lstrip("\ufeff")
            source = "text"

        return self.parse_text(text, file_name=file_name, source=source, force_ai=force_ai)

    def read_csv(self, file_name: str, content: bytes) -> ParsedStatement:
        parser = CsvStatementParser(
            self.config.ingestion,
            self.patterns,
            header_mapping=self.config.extraction.header_mapping,
        )
        statement = parser.parse(content, file_name=file_name)
        self.stage_log.write(
            "csv",
            {"file": file_name, "count": len(statement), "items": [i.to_dict() for i in statement.items]},
        )
        return statement

    def parse_text(
        self,
        text: str,
        file_name: Optional[str] = None,
        source: str = "text",
        force_ai: bool = False,
    ) -> ParsedStatement:
        """
        Run the extraction cascade on statement text.

        Args:
            text: Full statement text
            file_name: Source file name, for logging
            source: "pdf" or "text"
            force_ai: Run the AI extractor even when it is not primary

        Returns:
            Parsed statement with the ending-balance hint attached
        """
        extraction = self.config.extraction
        patterns = self.patterns
        parser = StatementTextParser(patterns, self.config.materialize.fee_small_amount)

        self.stage_log.write("pdf-start", {"file": file_name, "chars": len(text), "source": source})

        table_only = parser.extract_table_only(text)
        self.stage_log.write(
            "pdf-table-slice", {"file": file_name, "chars": len(table_only), "text": table_only[:4000]}
        )

        statement_total = parser.extract_statement_total(text)
        deterministic = parser.parse_deterministic(text)
        self.stage_log.write(
            "deterministic",
            {
                "file": file_name,
                "count": len(deterministic),
                "statement_total": statement_total,
                "items": [i.to_dict() for i in deterministic],
            },
        )
        logger.info(f"Deterministic parser found {len(deterministic)} rows in {file_name or '<text>'}")

        items = deterministic
        run_ai = (
            self.extractor is not None
            and extraction.use_ai_for_parsing
            and (extraction.use_ai_primary or force_ai or not deterministic)
        )
        source_text = parser.prompt_source(text, table_only)
        if run_ai:
            ai_items = self._run_extractor(source_text, patterns, file_name)
            items = self._combine(deterministic, ai_items, file_name)

        if not items:
            items = parser.parse_line_heuristic(source_text)
            self.stage_log.write(
                "fallback", {"file": file_name, "count": len(items), "items": [i.to_dict() for i in items]}
            )
            logger.info(f"Line heuristic found {len(items)} rows")

        return ParsedStatement(
            items=items,
            statement_total=statement_total,
            source=source,
            file_name=file_name,
        )

    def _run_extractor(
        self, text: str, patterns: StatementPatterns, file_name: Optional[str]
    ) -> list[StatementLineItem]:
        currency = self.config.extraction.account_currency
        self.stage_log.write(
            "ai-request", {"file": file_name, "chars": len(text), "currency": currency}
        )

        try:
            result = self.extractor.extract(text, currency)
        except CollaboratorError as e:
            logger.warning(f"AI extraction failed, continuing without it: {e}")
            self.stage_log.write("ai-response", {"file": file_name, "error": str(e)})
            return []

        self.stage_log.write(
            "ai-response",
            {"file": file_name, "rows": len(result.items), "raw": (result.raw or "")[:4000]},
        )
        return normalize_ai_items(result.items, patterns)

    def _combine(
        self,
        deterministic: list[StatementLineItem],
        ai_items: list[StatementLineItem],
        file_name: Optional[str],
    ) -> list[StatementLineItem]:
        extraction = self.config.extraction

        if not ai_items:
            strategy, items = "deterministic", deterministic
        else:
            merger = MergeReconciler(
                extraction.amount_merge_tolerance, extraction.date_merge_tolerance_days
            )
            if extraction.ai_merge_with_deterministic:
                outcome = merger.merge(deterministic, ai_items)
            else:
                outcome = merger.replace(deterministic, ai_items)
            strategy, items = outcome.strategy, outcome.items

        self.stage_log.write(
            "ai",
            {
                "file": file_name,
                "strategy": strategy,
                "deterministic": len(deterministic),
                "ai": len(ai_items),
                "count": len(items),
            },
        )
        return items
