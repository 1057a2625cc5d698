"""Utility modules."""

from .exceptions import (
    StatementSplitError,
    ValidationError,
    UnsupportedFileType,
    StatementParseError,
    ConfigurationError,
    SumMismatchError,
    AlreadyExtractedError,
    AccountResolutionError,
    CollaboratorError,
    LedgerError,
    ExtractorError,
)
from .logging_config import setup_logging
from .debug_log import StageLog

__all__ = [
    "StatementSplitError",
    "ValidationError",
    "UnsupportedFileType",
    "StatementParseError",
    "ConfigurationError",
    "SumMismatchError",
    "AlreadyExtractedError",
    "AccountResolutionError",
    "CollaboratorError",
    "LedgerError",
    "ExtractorError",
    "setup_logging",
    "StageLog",
]
