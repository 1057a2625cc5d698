"""Plain text extraction from statement PDFs."""

from io import BytesIO
import logging

import pdfplumber

from ..utils.exceptions import StatementParseError

logger = logging.getLogger(__name__)


def extract_pdf_text(content: bytes) -> str:
    """
    Extract the text layer of a PDF, page by page.

    Image-only pages contribute nothing; OCR is left to the caller.

    Args:
        content: Raw PDF bytes

    Returns:
        Page texts joined by newlines

    Raises:
        StatementParseError: If the PDF cannot be opened
    """
    pages: list[str] = []
    try:
        with pdfplumber.open(BytesIO(content)) as pdf:
            for page_num, page in enumerate(pdf.pages, 1):
                text = page.extract_text() or ""
                if not text.strip():
                    logger.warning(f"Page {page_num} has no text layer")
                pages.append(text)
    except Exception as e:
        logger.error(f"Failed to read PDF file: {e}")
        raise StatementParseError(f"Failed to read PDF file: {e}") from e

    logger.debug(f"Extracted {sum(len(p) for p in pages)} characters from {len(pages)} pages")
    return "\n".join(pages)
