"""Logging setup for the statement split CLI."""

from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
import logging

from rich.console import Console
from rich.logging import RichHandler

# Libraries that log every page or request at INFO/DEBUG
NOISY_LOGGERS = ("pdfminer", "pdfplumber", "urllib3", "httpx", "anthropic")

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    log_format: Optional[str] = None,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Route package logs to the rich console and, optionally, a rotating file.

    Console output goes to stderr so JSON written to stdout stays clean.

    Args:
        level: Console logging level
        log_file: Optional path to a rotating log file (always DEBUG)
        log_format: Format for the file handler (defaults to FILE_FORMAT)
        console: Console to render into

    Returns:
        The package logger
    """
    logger = logging.getLogger("statement_split")
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.handlers = []
    logger.propagate = False

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(log_format or FILE_FORMAT))
        logger.addHandler(file_handler)

    noisy_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    return logger
