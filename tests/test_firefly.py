"""
Unit tests for the Firefly III client with a stubbed HTTP session.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Optional
import json

import pytest
import requests

from statement_split.config import LedgerConfig
from statement_split.ledger.firefly import FireflyClient
from statement_split.utils.exceptions import ConfigurationError, LedgerError


class StubResponse:
    def __init__(self, status_code: int = 200, payload: Optional[dict] = None):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload) if payload is not None else ""
        self.content = self.text.encode()

    def json(self) -> Any:
        return self._payload


class StubSession:
    """Returns queued responses and records every request."""

    def __init__(self, responses: list):
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def request(self, **kwargs) -> StubResponse:
        self.requests.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _transaction(tid: str = "42", tags: Optional[list[str]] = None) -> dict:
    return {
        "id": tid,
        "attributes": {
            "group_title": None,
            "transactions": [
                {
                    "transaction_journal_id": "420",
                    "type": "withdrawal",
                    "date": "2025-06-30T00:00:00+02:00",
                    "amount": "45.50",
                    "description": "Kartenabrechnung Juni",
                    "currency_code": "EUR",
                    "tags": tags or [],
                    "source_id": "1",
                    "source_name": "Checking",
                    "source_type": "Asset account",
                    "destination_id": "7",
                    "destination_name": "Credit Card",
                    "destination_type": "Expense account",
                }
            ],
        },
    }


def _client(session: StubSession) -> FireflyClient:
    return FireflyClient(
        LedgerConfig(base_url="https://firefly.example/", token="secret", page_size=2), session=session
    )


class TestFireflyClient:
    """Tests for FireflyClient class."""

    def test_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            FireflyClient(LedgerConfig())

    def test_get_transaction(self):
        """Test mapping of a transaction group onto the original entity."""
        session = StubSession([StubResponse(payload={"data": _transaction(tags=["x"])})])

        original = _client(session).get_transaction("42")

        assert original.id == "42"
        assert original.amount == Decimal("45.50")
        assert original.date == date(2025, 6, 30)
        assert original.tags == ["x"]
        assert original.source_type == "Asset account"
        assert original.journal_id == "420"

        request = session.requests[0]
        assert request["url"] == "https://firefly.example/api/v1/transactions/42"
        assert request["headers"]["Authorization"] == "Bearer secret"

    def test_authentication_error(self):
        session = StubSession([StubResponse(401, {"message": "Unauthenticated."})])

        with pytest.raises(LedgerError) as exc_info:
            _client(session).get_transaction("42")

        assert exc_info.value.status_code == 401

    def test_validation_error_keeps_body(self):
        """Test that a rejected write exposes the response body."""
        body = {"errors": {"transactions.0.destination_name": ["invalid"]}}
        session = StubSession([StubResponse(422, body)])

        with pytest.raises(LedgerError) as exc_info:
            _client(session).create_transaction({"description": "x"})

        assert exc_info.value.status_code == 422
        assert "destination_name" in exc_info.value.body

    def test_timeout(self):
        session = StubSession([requests.exceptions.Timeout("slow")])

        with pytest.raises(LedgerError):
            _client(session).get_transaction("42")

    def test_list_transactions_pages(self):
        """Test that pages are fetched until a short page arrives."""
        session = StubSession(
            [
                StubResponse(payload={"data": [_transaction("1"), _transaction("2")]}),
                StubResponse(payload={"data": [_transaction("3")]}),
            ]
        )

        originals = _client(session).list_transactions(date(2025, 6, 1), date(2025, 7, 31))

        assert [o.id for o in originals] == ["1", "2", "3"]
        assert session.requests[1]["params"]["page"] == 2
        assert session.requests[0]["params"]["type"] == "withdrawal"

    def test_create_transaction(self):
        session = StubSession([StubResponse(payload={"data": {"id": "900"}})])

        new_id = _client(session).create_transaction({"description": "Shop", "amount": "1.00"})

        assert new_id == "900"
        assert session.requests[0]["json"]["transactions"] == [{"description": "Shop", "amount": "1.00"}]

    def test_add_tags_keeps_existing(self):
        """Test that new tags are appended to every split."""
        session = StubSession(
            [StubResponse(payload={"data": _transaction(tags=["old"])}), StubResponse(payload={"data": {}})]
        )

        _client(session).add_tags("42", ["statement-extracted"])

        update = session.requests[1]
        assert update["method"] == "PUT"
        assert update["json"]["transactions"] == [
            {"transaction_journal_id": "420", "tags": ["old", "statement-extracted"]}
        ]

    def test_find_account_exact_name(self):
        """Test that only an exact case-insensitive name is accepted."""
        session = StubSession(
            [
                StubResponse(
                    payload={
                        "data": [
                            {"id": "5", "attributes": {"name": "Amazon Prime", "type": "expense"}},
                            {"id": "6", "attributes": {"name": "AMAZON", "type": "expense"}},
                        ]
                    }
                )
            ]
        )

        account = _client(session).find_account("Amazon", ["expense"])

        assert account == {"id": "6", "name": "AMAZON", "type": "expense"}

    def test_create_account(self):
        session = StubSession([StubResponse(payload={"data": {"id": "11", "attributes": {"name": "Shop"}}})])

        account = _client(session).create_account("Shop", "expense")

        assert account["id"] == "11"
        assert session.requests[0]["json"] == {"name": "Shop", "type": "expense"}
