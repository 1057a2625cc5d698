"""
Firefly III API client

Fetches settlement transactions and writes split children, tags and
accounts through the Firefly III REST API.

API Documentation: https://api-docs.firefly-iii.org/
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

import requests

from ..config import LedgerConfig
from ..models.statement import OriginalEntity
from ..utils.exceptions import ConfigurationError, LedgerError
from .base import LedgerBackend

logger = logging.getLogger(__name__)


class FireflyClient(LedgerBackend):
    """
    Client for the Firefly III API

    Usage:
        client = FireflyClient(LedgerConfig(base_url="https://firefly.local", token="..."))
        original = client.get_transaction("1234")
    """

    def __init__(self, config: LedgerConfig, session: Optional[requests.Session] = None):
        """
        Initialize Firefly client

        Args:
            config: Base URL, personal access token, timeout and page size
            session: Optional requests session (connection reuse, testing)
        """
        if not config.base_url or not config.token:
            raise ConfigurationError("Firefly III base URL and personal token are required")

        self.base_url = config.base_url.rstrip("/")
        self.token = config.token
        self.timeout = config.timeout
        self.page_size = config.page_size
        self.session = session or requests.Session()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": "application/vnd.api+json",
        }

    def _request(self, method: str, endpoint: str, params: Dict = None, data: Dict = None) -> Dict:
        """Make API request"""
        url = f"{self.base_url}/api/v1{endpoint}"

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=self.headers,
                params=params,
                json=data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise LedgerError("Request to Firefly III timed out") from e
        except requests.exceptions.ConnectionError as e:
            raise LedgerError(f"Connection to Firefly III failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise LedgerError(f"Request to Firefly III failed: {e}") from e

        if response.status_code == 401:
            raise LedgerError(
                "Authentication failed. Please check your FIREFLY_PERSONAL_TOKEN.",
                401,
                response.text,
            )
        if response.status_code == 404:
            raise LedgerError(f"Not found: {endpoint}", 404, response.text)
        if response.status_code >= 400:
            raise LedgerError(
                f"Error while communicating with Firefly III: {response.status_code} - {response.text}",
                response.status_code,
                response.text,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise LedgerError(
                "Firefly III returned invalid JSON. Check that FIREFLY_URL points at the API.",
                response.status_code,
                response.text[:500],
            ) from e

    # Transactions

    def get_transaction(self, transaction_id: str) -> OriginalEntity:
        result = self._request("GET", f"/transactions/{transaction_id}")
        return self._to_entity(result.get("data", {}))

    def list_transactions(
        self, start: date, end: date, transaction_type: str = "withdrawal"
    ) -> List[OriginalEntity]:
        entities: List[OriginalEntity] = []
        page = 1

        while True:
            result = self._request(
                "GET",
                "/transactions",
                params={
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                    "type": transaction_type,
                    "limit": self.page_size,
                    "page": page,
                },
            )
            data = result.get("data", [])
            entities.extend(self._to_entity(item) for item in data)

            if len(data) < self.page_size:
                break
            page += 1

        logger.debug(f"Fetched {len(entities)} {transaction_type} transactions {start} - {end}")
        return entities

    def create_transaction(self, split: Dict[str, Any]) -> str:
        body = {
            "error_if_duplicate_hash": False,
            "apply_rules": True,
            "fire_webhooks": True,
            "transactions": [split],
        }
        result = self._request("POST", "/transactions", data=body)
        transaction_id = str(result.get("data", {}).get("id", ""))
        logger.debug(f"Created transaction {transaction_id}: {split.get('description')}")
        return transaction_id

    def add_tags(self, transaction_id: str, tags: List[str]) -> None:
        result = self._request("GET", f"/transactions/{transaction_id}")
        splits = result.get("data", {}).get("attributes", {}).get("transactions", [])

        body = {"apply_rules": False, "fire_webhooks": False, "transactions": []}
        for split in splits:
            current = list(split.get("tags") or [])
            for tag in tags:
                if tag not in current:
                    current.append(tag)
            body["transactions"].append(
                {"transaction_journal_id": split.get("transaction_journal_id"), "tags": current}
            )

        self._request("PUT", f"/transactions/{transaction_id}", data=body)

    # Accounts

    def find_account(self, name: str, account_types: List[str]) -> Optional[Dict[str, str]]:
        wanted = (name or "").strip().lower()
        if not wanted:
            return None

        for account_type in account_types:
            result = self._request(
                "GET",
                "/search/accounts",
                params={"query": name, "field": "name", "type": account_type},
            )
            for account in result.get("data", []):
                attributes = account.get("attributes", {})
                if str(attributes.get("name", "")).strip().lower() == wanted:
                    return {
                        "id": str(account.get("id")),
                        "name": attributes.get("name"),
                        "type": attributes.get("type", account_type),
                    }
        return None

    def create_account(self, name: str, account_type: str) -> Dict[str, str]:
        result = self._request("POST", "/accounts", data={"name": name, "type": account_type})
        data = result.get("data", {})
        logger.info(f"Created {account_type} account '{name}' ({data.get('id')})")
        return {
            "id": str(data.get("id")),
            "name": data.get("attributes", {}).get("name", name),
            "type": account_type,
        }

    def _to_entity(self, data: Dict[str, Any]) -> OriginalEntity:
        attributes = data.get("attributes", {})
        splits = attributes.get("transactions") or []
        if not splits:
            raise LedgerError(f"Transaction {data.get('id')} has no splits")

        first = splits[0]
        amount = sum((abs(Decimal(str(s.get("amount", "0")))) for s in splits), Decimal("0"))
        raw_date = str(first.get("date", ""))[:10]
        tags: List[str] = []
        for split in splits:
            for tag in split.get("tags") or []:
                if tag not in tags:
                    tags.append(tag)

        return OriginalEntity(
            id=str(data.get("id")),
            description=attributes.get("group_title") or first.get("description", ""),
            amount=amount,
            date=datetime.strptime(raw_date, "%Y-%m-%d").date(),
            currency=first.get("currency_code") or "EUR",
            tags=tags,
            type=first.get("type", "withdrawal"),
            source_id=_str_or_none(first.get("source_id")),
            source_name=first.get("source_name"),
            source_type=first.get("source_type"),
            destination_id=_str_or_none(first.get("destination_id")),
            destination_name=first.get("destination_name"),
            destination_type=first.get("destination_type"),
            journal_id=_str_or_none(first.get("transaction_journal_id")),
        )


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None
