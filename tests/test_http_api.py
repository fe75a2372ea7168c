"""
Tests for the hosted API store.

A fake session stands in for requests.Session; no network is used.
"""

import asyncio
import json
import pytest
from decimal import Decimal

import requests

from finora.config import ApiSettings
from finora.models.records import (
    GoalUpdate,
    RecordCollection,
    TransactionInput,
    TransactionKind,
    TransactionUpdate,
)
from finora.services.storage import (
    AuthorizationDeniedError,
    HttpApiClient,
    HttpIdentityProvider,
    HttpRecordStore,
    NotFoundError,
    RemoteFailureError,
    TransportError,
    ValidationRejectedError,
)


class FakeResponse:
    def __init__(self, status_code=200, body=None, reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self._body = body
        self.content = b"" if body is None else json.dumps(body).encode()

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeSession:
    """Returns queued responses and records every call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(*responses, token="secret", timeout=None, **settings_overrides):
    session = FakeSession(*responses)
    settings = ApiSettings(
        base_url="https://api.finora.test/",
        access_token=token,
        request_timeout_seconds=timeout,
        **settings_overrides,
    )
    return HttpApiClient(settings=settings, session=session), session


def transaction_body(owner="user-1", **overrides):
    body = {
        "id": "t-1",
        "user_id": owner,
        "type": "expense",
        "category": "Food",
        "amount": 25.5,
        "date": "2024-03-14",
    }
    body.update(overrides)
    return body


class TestHttpApiClient:
    """Tests for request building and error mapping."""

    def test_bearer_token_and_url(self):
        client, session = make_client(FakeResponse(200, []))
        asyncio.run(client.request("GET", "/api/goals"))

        call = session.calls[0]
        assert call["url"] == "https://api.finora.test/api/goals"
        assert call["headers"]["Authorization"] == "Bearer secret"
        assert call["timeout"] is None

    def test_no_token(self):
        client, session = make_client(FakeResponse(200, []), token=None)
        asyncio.run(client.request("GET", "/api/goals"))
        assert "Authorization" not in session.calls[0]["headers"]

    def test_timeout_passed_through(self):
        client, session = make_client(FakeResponse(200, []), timeout=5.0)
        asyncio.run(client.request("GET", "/api/goals"))
        assert session.calls[0]["timeout"] == 5.0

    @pytest.mark.parametrize(
        "status,error",
        [
            (401, AuthorizationDeniedError),
            (403, AuthorizationDeniedError),
            (400, ValidationRejectedError),
            (422, ValidationRejectedError),
            (404, NotFoundError),
            (500, RemoteFailureError),
            (503, RemoteFailureError),
        ],
    )
    def test_status_mapping(self, status, error):
        client, _ = make_client(FakeResponse(status, {"error": "nope"}, reason="Error"))
        with pytest.raises(error, match="nope"):
            asyncio.run(client.request("GET", "/api/goals"))

    def test_server_error_keeps_status(self):
        client, _ = make_client(FakeResponse(502, None, reason="Bad Gateway"))
        with pytest.raises(RemoteFailureError) as exc_info:
            asyncio.run(client.request("GET", "/api/goals"))
        assert exc_info.value.status_code == 502
        assert "Bad Gateway" in str(exc_info.value)

    def test_transport_error(self):
        """Connection failures surface as TransportError, a RemoteFailureError."""
        client, _ = make_client(requests.ConnectionError("connection refused"))
        with pytest.raises(TransportError):
            asyncio.run(client.request("GET", "/api/goals"))

    def test_empty_body(self):
        client, _ = make_client(FakeResponse(204, None))
        assert asyncio.run(client.request("DELETE", "/api/goals/g-1")) is None


class TestHttpRecordStore:
    """Tests for the collection endpoints."""

    def test_list_with_filter(self):
        client, session = make_client(FakeResponse(200, [transaction_body()]))
        store = HttpRecordStore(client)

        records = asyncio.run(store.list_records(
            RecordCollection.TRANSACTIONS, "user-1", {"type": "expense"}
        ))

        assert records[0].amount == Decimal("25.5")
        assert session.calls[0]["params"] == {"type": "expense"}

    def test_list_drops_foreign_records(self):
        """Records of another owner are never returned."""
        client, _ = make_client(FakeResponse(200, [
            transaction_body(),
            transaction_body(owner="intruder", id="t-2"),
        ]))
        records = asyncio.run(HttpRecordStore(client).list_records(
            RecordCollection.TRANSACTIONS, "user-1"
        ))
        assert [r.id for r in records] == ["t-1"]

    def test_list_rejects_non_list(self):
        client, _ = make_client(FakeResponse(200, {"rows": []}))
        with pytest.raises(RemoteFailureError):
            asyncio.run(HttpRecordStore(client).list_records(RecordCollection.GOALS, "user-1"))

    def test_create_posts_wire_body(self):
        client, session = make_client(FakeResponse(201, transaction_body()))
        payload = TransactionInput.model_validate({
            "type": "expense",
            "category": "Food",
            "amount": Decimal("25.50"),
            "date": "2024-03-14",
        })

        record = asyncio.run(HttpRecordStore(client).create_record(
            RecordCollection.TRANSACTIONS, "user-1", payload
        ))

        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["url"].endswith("/api/transactions")
        assert call["json"] == {
            "type": "expense",
            "category": "Food",
            "amount": 25.5,
            "date": "2024-03-14",
        }
        assert record.id == "t-1"

    def test_get_foreign_record_is_not_found(self):
        client, _ = make_client(FakeResponse(200, transaction_body(owner="intruder")))
        with pytest.raises(NotFoundError):
            asyncio.run(HttpRecordStore(client).get_record(
                RecordCollection.TRANSACTIONS, "user-1", "t-1"
            ))

    def test_malformed_record(self):
        client, _ = make_client(FakeResponse(200, transaction_body(amount=-3)))
        with pytest.raises(RemoteFailureError):
            asyncio.run(HttpRecordStore(client).get_record(
                RecordCollection.TRANSACTIONS, "user-1", "t-1"
            ))

    def test_update_sends_only_changes(self):
        body = {
            "id": "g-1",
            "user_id": "user-1",
            "title": "Car",
            "target_amount": 100,
            "current_amount": 60,
            "deadline": "2025-01-01",
        }
        client, session = make_client(FakeResponse(200, body))

        goal = asyncio.run(HttpRecordStore(client).update_record(
            RecordCollection.GOALS, "user-1", "g-1", GoalUpdate(current_amount=Decimal("60"))
        ))

        assert session.calls[0]["method"] == "PATCH"
        assert session.calls[0]["url"].endswith("/api/goals/g-1")
        assert session.calls[0]["json"] == {"current_amount": 60.0}
        assert goal.current_amount == Decimal("60")

    def test_update_can_clear_note(self):
        """A note explicitly set to None is sent as null; unset fields are not sent."""
        client, session = make_client(FakeResponse(200, transaction_body()))

        asyncio.run(HttpRecordStore(client).update_record(
            RecordCollection.TRANSACTIONS, "user-1", "t-1", TransactionUpdate(note=None)
        ))

        assert session.calls[0]["json"] == {"note": None}

    def test_budgets_path(self):
        client, session = make_client(FakeResponse(200, []))
        asyncio.run(HttpRecordStore(client).list_records(RecordCollection.BUDGETS, "user-1"))
        assert session.calls[0]["url"] == "https://api.finora.test/api/auth/budgets"

    def test_delete_owned_records_one_by_one(self):
        """Lists the owner's records, then deletes each by id. No bulk delete."""
        client, session = make_client(
            FakeResponse(200, [transaction_body(), transaction_body(id="t-2")]),
            FakeResponse(204, None),
            FakeResponse(204, None),
        )
        deleted = asyncio.run(HttpRecordStore(client).delete_owned_records(
            RecordCollection.TRANSACTIONS, "user-1"
        ))

        assert deleted == 2
        assert [(c["method"], c["url"]) for c in session.calls] == [
            ("GET", "https://api.finora.test/api/transactions"),
            ("DELETE", "https://api.finora.test/api/transactions/t-1"),
            ("DELETE", "https://api.finora.test/api/transactions/t-2"),
        ]

    def test_delete_owned_records_skips_foreign(self):
        client, session = make_client(
            FakeResponse(200, [transaction_body(owner="intruder")]),
        )
        deleted = asyncio.run(HttpRecordStore(client).delete_owned_records(
            RecordCollection.TRANSACTIONS, "user-1"
        ))
        assert deleted == 0
        assert len(session.calls) == 1

    def test_delete_owned_records_stops_on_failure(self):
        client, session = make_client(
            FakeResponse(200, [transaction_body(), transaction_body(id="t-2")]),
            FakeResponse(500, {"error": "boom"}),
        )
        with pytest.raises(RemoteFailureError, match="boom"):
            asyncio.run(HttpRecordStore(client).delete_owned_records(
                RecordCollection.TRANSACTIONS, "user-1"
            ))
        assert len(session.calls) == 2

    def test_list_categories(self):
        """Shared and own categories are kept; the kind is passed as ?type=."""
        client, session = make_client(FakeResponse(200, [
            {"id": "c-1", "user_id": None, "name": "Salary", "type": "income"},
            {"id": "c-2", "user_id": "user-1", "name": "Tips", "type": "income"},
            {"id": "c-3", "user_id": "intruder", "name": "Loot", "type": "income"},
        ]))

        categories = asyncio.run(HttpRecordStore(client).list_categories(
            "user-1", TransactionKind.INCOME
        ))

        assert [c.id for c in categories] == ["c-1", "c-2"]
        assert session.calls[0]["url"] == "https://api.finora.test/api/auth/categories"
        assert session.calls[0]["params"] == {"type": "income"}

    def test_list_categories_unfiltered(self):
        client, session = make_client(FakeResponse(200, []))
        assert asyncio.run(HttpRecordStore(client).list_categories("user-1")) == []
        assert session.calls[0]["params"] is None


class TestHttpIdentityProvider:
    """Tests for the session lookup, password check and user removal."""

    def test_owner_cached(self):
        client, session = make_client(FakeResponse(200, {"id": "user-1", "email": "a@b.c"}))
        identity = HttpIdentityProvider(client)

        assert asyncio.run(identity.get_current_owner()) == "user-1"
        assert asyncio.run(identity.get_current_owner()) == "user-1"
        assert len(session.calls) == 1
        assert session.calls[0]["url"] == "https://api.finora.test/user"

    def test_default_client_uses_identity_url(self):
        session = FakeSession(FakeResponse(200, {"id": "user-1"}))
        settings = ApiSettings(base_url="https://api.finora.test", identity_api_key="anon")
        identity = HttpIdentityProvider(settings=settings, session=session)

        asyncio.run(identity.get_current_owner())

        assert session.calls[0]["url"] == "https://api.finora.test/auth/v1/user"
        assert session.calls[0]["headers"]["apikey"] == "anon"

    def test_no_session(self):
        client, _ = make_client(FakeResponse(401, {"error": "Unauthorized"}))
        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(HttpIdentityProvider(client).get_current_owner())

    def test_verify_password(self):
        client, session = make_client(
            FakeResponse(200, {"id": "user-1", "email": "a@b.c"}),
            FakeResponse(200, {"access_token": "fresh"}),
        )
        asyncio.run(HttpIdentityProvider(client).verify_password("hunter2"))

        call = session.calls[1]
        assert call["method"] == "POST"
        assert call["url"].endswith("/token")
        assert call["params"] == {"grant_type": "password"}
        assert call["json"] == {"email": "a@b.c", "password": "hunter2"}

    def test_wrong_password(self):
        client, _ = make_client(
            FakeResponse(200, {"id": "user-1", "email": "a@b.c"}),
            FakeResponse(400, {"error_description": "Invalid login credentials"}),
        )
        with pytest.raises(AuthorizationDeniedError, match="Invalid password"):
            asyncio.run(HttpIdentityProvider(client).verify_password("wrong"))

    def test_delete_user(self):
        client, session = make_client(
            FakeResponse(200, {"id": "user-1"}),
            FakeResponse(204, None),
            FakeResponse(401, {"error": "Unauthorized"}),
            service_role_key="service-key",
        )
        identity = HttpIdentityProvider(client)
        asyncio.run(identity.get_current_owner())
        asyncio.run(identity.delete_user("user-1"))

        call = session.calls[1]
        assert call["method"] == "DELETE"
        assert call["url"] == "https://api.finora.test/admin/users/user-1"
        assert call["headers"]["Authorization"] == "Bearer service-key"
        with pytest.raises(AuthorizationDeniedError):
            asyncio.run(identity.get_current_owner())

    def test_delete_user_needs_service_key(self):
        client, session = make_client()
        with pytest.raises(AuthorizationDeniedError, match="SERVICE_ROLE_KEY"):
            asyncio.run(HttpIdentityProvider(client).delete_user("user-1"))
        assert session.calls == []
