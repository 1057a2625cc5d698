"""
AI-assisted row extraction.

The reconciliation core only builds the prompt and normalizes the answer;
the model call sits behind the single-method TransactionExtractor interface
so merge and sum logic can be tested with scripted fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional
import json
import logging
import re

import anthropic

from ..config import AIConfig
from ..models.statement import Direction, StatementLineItem
from ..parsers.normalize import normalize_amount, normalize_date
from ..parsers.patterns import StatementPatterns
from ..utils.exceptions import ExtractorError

logger = logging.getLogger(__name__)

JSON_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)

SYSTEM_PROMPT = (
    "You extract transactions from bank and credit card statements. "
    "Respond only with a JSON array."
)


@dataclass
class ExtractionResult:
    """Rows proposed by the extractor plus the raw model answer."""

    items: list[dict[str, Any]] = field(default_factory=list)
    raw: Optional[str] = None


class TransactionExtractor(ABC):
    """Abstract base class for AI row extractors."""

    @abstractmethod
    def extract(self, text: str, account_currency: str) -> ExtractionResult:
        """
        Propose statement rows for the given statement text.

        Args:
            text: Statement text (table slice or full text)
            account_currency: ISO code of the card account

        Returns:
            Extraction result with raw row dictionaries
        """
        pass


def build_extraction_prompt(text: str, account_currency: str, max_chars: int = 12000) -> str:
    """Prompt asking for a JSON array of billed rows in the account currency."""
    currency = account_currency or "EUR"
    return f"""You will receive OCR text from a bank/credit card statement (language and table layout vary).
Extract individual purchase rows and return ONLY a JSON array of objects:
  {{
    "description": string,        // concise line/merchant/notes
    "destination_name": string,   // best merchant/payee name
    "amount": number,             // POSITIVE number in {currency}
    "date": "YYYY-MM-DD" | null
  }}

STRICT rules:
- Amount MUST be the billed/charged amount in account currency ({currency}), not the original foreign currency.
- Prefer the last/right-most amount column usually named e.g.:
  "Abrechnungsbetrag", "Betrag in {currency}", "Rechnungsbetrag", "Billed amount", "Charged amount",
  "Total amount", "Amount ({currency})", "Montant", "Importo", "Importe", "Totaal".
- If a row has both original currency and {currency}, ALWAYS use the {currency} value.
- Include conversion fee rows (e.g., "Umrechnungsentgelt", "currency conversion fee") as separate transactions even if only a few cents.
- Ignore headers/footers/summaries/balances.
- Amounts must be numbers (no currency symbols) and POSITIVE.
- Date: pick transaction date if present; otherwise null.

Return ONLY a JSON array. Input text (truncated):

{text[:max_chars]}"""


def parse_json_rows(raw: str) -> list[dict[str, Any]]:
    """
    Locate and decode the JSON array in a model answer.

    Returns an empty list when the answer holds no decodable array.
    """
    match = JSON_ARRAY_RE.search(raw or "")
    if not match:
        logger.warning("No JSON array found in extractor response")
        return []
    try:
        data = json.loads(match.group())
    except json.JSONDecodeError as e:
        logger.warning(f"Extractor returned invalid JSON: {e}")
        return []
    return [row for row in data if isinstance(row, dict)]


def normalize_ai_items(
    rows: list[dict[str, Any]], patterns: StatementPatterns
) -> list[StatementLineItem]:
    """
    Validate extractor rows the same way as deterministic rows.

    Rows without amount or description are dropped, the ignore filter is
    applied and direction comes from deposit hints in the text.
    """
    items: list[StatementLineItem] = []
    for row in rows:
        description = str(row.get("description") or "").strip()
        amount = normalize_amount(row.get("amount"))
        if amount is None or not description:
            continue

        payee = str(row.get("destination_name") or row.get("payee") or "").strip()
        item = StatementLineItem(
            description=description,
            payee=payee or patterns.extract_payee(description),
            amount=amount,
            direction=patterns.infer_direction_from_text(description) or Direction.OUT,
            date=normalize_date(row.get("date")),
        )
        if patterns.should_ignore(item):
            continue
        items.append(item)

    dropped = len(rows) - len(items)
    if dropped:
        logger.debug(f"Dropped {dropped} extractor rows during normalization")
    return items


class AnthropicExtractor(TransactionExtractor):
    """Extractor backed by the Anthropic Messages API."""

    def __init__(self, config: AIConfig, client: Optional[anthropic.Anthropic] = None):
        """
        Initialize the extractor.

        Args:
            config: Model, key and prompt limits
            client: Optional preconfigured client
        """
        self.config = config
        self.client = client or anthropic.Anthropic(api_key=config.api_key or None)

    def extract(self, text: str, account_currency: str) -> ExtractionResult:
        prompt = build_extraction_prompt(text, account_currency, self.config.max_prompt_chars)

        try:
            response = self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            logger.error(f"Error calling Anthropic API: {e}")
            raise ExtractorError(f"Error while communicating with Anthropic: {e}") from e

        raw = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        rows = parse_json_rows(raw)
        logger.info(f"Extractor proposed {len(rows)} rows")

        return ExtractionResult(items=rows, raw=raw)
