"""Custom exceptions for the statement split application."""

from decimal import Decimal
from typing import Optional


class StatementSplitError(Exception):
    """Base exception for statement split errors."""

    pass


class ValidationError(StatementSplitError):
    """Missing or malformed input (file, original id, items)."""

    pass


class UnsupportedFileType(StatementSplitError):
    """Uploaded file is neither CSV, PDF nor plain text."""

    pass


class StatementParseError(StatementSplitError):
    """Error reading a statement file."""

    pass


class ConfigurationError(StatementSplitError):
    """Error in configuration."""

    pass


class SumMismatchError(StatementSplitError):
    """Item sum does not reconcile with the original amount."""

    def __init__(self, message: str, diff: Decimal):
        super().__init__(message)
        self.diff = diff


class AlreadyExtractedError(StatementSplitError):
    """Original transaction was already split."""

    def __init__(self, message: str, original_id: str):
        super().__init__(message)
        self.original_id = original_id


class AccountResolutionError(StatementSplitError):
    """Counterparty or asset account could not be resolved."""

    pass


class CollaboratorError(StatementSplitError):
    """Error raised by an external collaborator (ledger or AI service)."""

    pass


class LedgerError(CollaboratorError):
    """Error while communicating with the ledger API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ExtractorError(CollaboratorError):
    """Error while calling the AI extraction service."""

    pass
