"""AI-assisted statement row extraction."""

from .ai_extractor import (
    AnthropicExtractor,
    ExtractionResult,
    TransactionExtractor,
    build_extraction_prompt,
    normalize_ai_items,
)

__all__ = [
    "AnthropicExtractor",
    "ExtractionResult",
    "TransactionExtractor",
    "build_extraction_prompt",
    "normalize_ai_items",
]
