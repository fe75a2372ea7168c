"""
Hosted API Storage Implementation

Talks to the hosted record store over its JSON-over-HTTP collection
interface:

    GET    {path}                list (optional filters as query params)
    POST   {path}                create
    GET    {path}/{id}           fetch
    PATCH  {path}/{id}           partial update
    DELETE {path}/{id}           delete

where {path} is COLLECTION_PATHS[collection]. Categories are read-only:

    GET    /api/auth/categories  list (optional ?type=income|expense)

The server scopes every call to the session's user through row-level
security. We still check the owner on every record that comes back and
treat a mismatch as not found.

Errors come back as {"error": "message"} and are mapped onto the storage
exception hierarchy. Nothing is retried here.

The session itself belongs to the hosted identity service, reached under
ApiSettings.identity_url:

    GET    /user                         current user
    POST   /token?grant_type=password    password check
    DELETE /admin/users/{id}             remove a user (service role key)
"""

import asyncio
from typing import Any, Optional

import requests
import structlog
from pydantic import BaseModel, ValidationError

from finora.config import ApiSettings, get_settings
from finora.models.records import RECORD_MODELS, Category, RecordCollection, TransactionKind
from finora.models.validation import ValidationIssue
from finora.services.storage.interface import (
    AuthorizationDeniedError,
    IdentityProviderInterface,
    NotFoundError,
    RecordStoreInterface,
    RemoteFailureError,
    TransportError,
    ValidationRejectedError,
)


logger = structlog.get_logger(__name__)


# Budgets live under the auth namespace on the hosted API
COLLECTION_PATHS: dict[RecordCollection, str] = {
    RecordCollection.TRANSACTIONS: "/api/transactions",
    RecordCollection.GOALS: "/api/goals",
    RecordCollection.BUDGETS: "/api/auth/budgets",
    RecordCollection.ACCOUNTS: "/api/accounts",
}
CATEGORIES_PATH = "/api/auth/categories"


class HttpApiClient:
    """
    Low-level HTTP client wrapper.

    Handles the bearer token and error mapping. requests is blocking, so
    each call runs in a worker thread to keep the event loop free.
    """

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        self._settings = settings or get_settings().api
        self._session = session or requests.Session()
        self._base_url = (base_url or self._settings.base_url).rstrip("/")
        self._extra_headers = dict(headers or {})

    @property
    def settings(self) -> ApiSettings:
        return self._settings

    def _headers(self, overrides: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.access_token:
            headers["Authorization"] = f"Bearer {self._settings.access_token}"
        headers.update(self._extra_headers)
        headers.update(overrides or {})
        return headers

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            TransportError: If no response was received
            AuthorizationDeniedError: 401 / 403
            ValidationRejectedError: 400 / 422
            NotFoundError: 404
            RemoteFailureError: Any other error status, or an unreadable body
        """
        url = f"{self._base_url}{path}"
        try:
            response = await asyncio.to_thread(
                self._session.request,
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(headers),
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.warning("api_transport_failed", method=method, path=path, error=str(e))
            raise TransportError(f"Could not reach the server: {e}")

        if response.status_code >= 400:
            raise self._error_for(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise RemoteFailureError(
                f"Server returned an unreadable response for {method} {path}",
                status_code=response.status_code,
            )

    def _error_for(self, response: requests.Response) -> Exception:
        """Map an error response onto the storage exception hierarchy."""
        message = None
        try:
            body = response.json()
            if isinstance(body, dict):
                message = (
                    body.get("error_description")
                    or body.get("error")
                    or body.get("msg")
                    or body.get("message")
                )
        except ValueError:
            pass
        message = message or response.reason or f"HTTP {response.status_code}"
        status = response.status_code

        if status in (401, 403):
            return AuthorizationDeniedError(message)
        if status in (400, 422):
            return ValidationRejectedError(
                message,
                issues=[ValidationIssue(
                    field="payload",
                    issue_type="rejected_by_store",
                    message=message,
                    severity="error",
                )],
            )
        if status == 404:
            return NotFoundError(message)
        return RemoteFailureError(message, status_code=status)


class HttpRecordStore(RecordStoreInterface):
    """Record store backed by the hosted API."""

    def __init__(self, client: Optional[HttpApiClient] = None):
        self._client = client or HttpApiClient()

    def _parse(self, model_cls: type[BaseModel], data: Any, label: str) -> BaseModel:
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise RemoteFailureError(
                f"Server returned a malformed {label} record: {e.error_count()} errors"
            )

    def _parse_record(self, collection: RecordCollection, data: Any) -> BaseModel:
        return self._parse(RECORD_MODELS[collection], data, collection.value)

    def _owned(self, record: BaseModel, owner: str) -> BaseModel:
        if record.owner != owner:
            raise NotFoundError(f"Record not found: {record.id}")
        return record

    async def _get_list(self, path: str, label: str, params: Optional[dict] = None) -> list:
        body = await self._client.request("GET", path, params=params or None)
        if not isinstance(body, list):
            raise RemoteFailureError(f"Expected a list of {label}")
        return body

    async def list_records(
        self,
        collection: RecordCollection,
        owner: str,
        filters: Optional[dict[str, str]] = None,
    ) -> list[BaseModel]:
        body = await self._get_list(COLLECTION_PATHS[collection], collection.value, filters)

        records = []
        for item in body:
            record = self._parse_record(collection, item)
            if record.owner != owner:
                logger.warning(
                    "foreign_record_dropped",
                    collection=collection.value,
                    record_id=record.id,
                )
                continue
            records.append(record)
        return records

    async def create_record(
        self,
        collection: RecordCollection,
        owner: str,
        payload: BaseModel,
    ) -> BaseModel:
        body = await self._client.request(
            "POST", COLLECTION_PATHS[collection], json=payload.to_wire()
        )
        return self._owned(self._parse_record(collection, body), owner)

    async def get_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> BaseModel:
        body = await self._client.request("GET", f"{COLLECTION_PATHS[collection]}/{record_id}")
        if body is None:
            raise NotFoundError(f"Record not found: {record_id}")
        return self._owned(self._parse_record(collection, body), owner)

    async def update_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
        changes: BaseModel,
    ) -> BaseModel:
        # Only the fields the caller set; an explicit None clears the field
        body = await self._client.request(
            "PATCH",
            f"{COLLECTION_PATHS[collection]}/{record_id}",
            json=changes.model_dump(mode="json", by_alias=True, exclude_unset=True),
        )
        if body is None:
            raise NotFoundError(f"Record not found: {record_id}")
        return self._owned(self._parse_record(collection, body), owner)

    async def delete_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> None:
        await self._client.request("DELETE", f"{COLLECTION_PATHS[collection]}/{record_id}")

    async def delete_owned_records(
        self,
        collection: RecordCollection,
        owner: str,
    ) -> Optional[int]:
        """
        Delete the owner's records one by one.

        The API has no bulk delete. A failure stops here and leaves the
        records not yet reached in place.
        """
        records = await self.list_records(collection, owner)
        for record in records:
            await self.delete_record(collection, owner, record.id)
        return len(records)

    async def list_categories(
        self,
        owner: str,
        kind: Optional[TransactionKind] = None,
    ) -> list[Category]:
        params = {"type": kind.value} if kind else None
        body = await self._get_list(CATEGORIES_PATH, "categories", params)

        categories = []
        for item in body:
            category = self._parse(Category, item, "categories")
            if category.visible_to(owner):
                categories.append(category)
        return categories


class HttpIdentityProvider(IdentityProviderInterface):
    """
    Reads the session's user from the hosted identity service.

    The user is cached after the first successful lookup; the record
    store still enforces the session on every call.
    """

    def __init__(
        self,
        client: Optional[HttpApiClient] = None,
        settings: Optional[ApiSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        if client is None:
            settings = settings or get_settings().api
            headers = {"apikey": settings.identity_api_key} if settings.identity_api_key else None
            client = HttpApiClient(
                settings=settings,
                session=session,
                base_url=settings.identity_url,
                headers=headers,
            )
        self._client = client
        self._user: Optional[dict] = None

    async def _current_user(self) -> dict:
        if self._user is None:
            body = await self._client.request("GET", "/user")
            if not isinstance(body, dict) or not body.get("id"):
                raise AuthorizationDeniedError("Unauthorized")
            self._user = body
        return self._user

    async def get_current_owner(self) -> str:
        return str((await self._current_user())["id"])

    async def verify_password(self, password: str) -> None:
        user = await self._current_user()
        if not password or not user.get("email"):
            raise AuthorizationDeniedError("Invalid password")
        try:
            await self._client.request(
                "POST",
                "/token",
                params={"grant_type": "password"},
                json={"email": user["email"], "password": password},
            )
        except (AuthorizationDeniedError, ValidationRejectedError):
            raise AuthorizationDeniedError("Invalid password")

    async def delete_user(self, owner: str) -> None:
        service_key = self._client.settings.service_role_key
        if not service_key:
            raise AuthorizationDeniedError(
                "Removing a user needs FINORA_API_SERVICE_ROLE_KEY"
            )
        await self._client.request(
            "DELETE",
            f"/admin/users/{owner}",
            headers={"Authorization": f"Bearer {service_key}"},
        )
        if self._user is not None and str(self._user.get("id")) == owner:
            self._user = None
