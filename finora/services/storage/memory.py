"""
In-Memory Storage Implementation

Keeps records in process memory. Used by the test suite and for offline
runs (storage_backend=memory). Nothing survives a restart unless the
state container is configured with a local snapshot.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import BaseModel

from finora.models.records import (
    RECORD_MODELS,
    SUGGESTED_CATEGORIES,
    Category,
    RecordCollection,
    TransactionKind,
)
from finora.services.storage.interface import (
    AuthorizationDeniedError,
    IdentityProviderInterface,
    NotFoundError,
    RecordStoreInterface,
    assign_new_record,
)


def default_categories() -> list[Category]:
    """Shared categories built from the suggested labels."""
    return [
        Category(id=f"{kind.value}-{label.lower()}", name=label, kind=kind)
        for kind, labels in SUGGESTED_CATEGORIES.items()
        for label in labels
    ]


class InMemoryRecordStore(RecordStoreInterface):
    """
    Dictionary-backed record store.

    Records are kept per collection in insertion order, keyed by id.
    """

    def __init__(self, categories: Optional[Iterable[Category]] = None):
        self._records: dict[RecordCollection, dict[str, BaseModel]] = {
            collection: {} for collection in RecordCollection
        }
        self._categories = list(default_categories() if categories is None else categories)

    def _owned(self, collection: RecordCollection, owner: str) -> list[BaseModel]:
        return [
            record for record in self._records[collection].values()
            if record.owner == owner
        ]

    def _find(self, collection: RecordCollection, owner: str, record_id: str) -> BaseModel:
        record = self._records[collection].get(record_id)
        if record is None or record.owner != owner:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        return record

    async def list_records(
        self,
        collection: RecordCollection,
        owner: str,
        filters: Optional[dict[str, str]] = None,
    ) -> list[BaseModel]:
        records = self._owned(collection, owner)
        for key, value in (filters or {}).items():
            records = [r for r in records if str(r.to_wire().get(key)) == str(value)]
        return records

    async def create_record(
        self,
        collection: RecordCollection,
        owner: str,
        payload: BaseModel,
    ) -> BaseModel:
        record = assign_new_record(collection, owner, payload)
        self._records[collection][record.id] = record
        return record

    async def get_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> BaseModel:
        return self._find(collection, owner, record_id)

    async def update_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
        changes: BaseModel,
    ) -> BaseModel:
        existing = self._find(collection, owner, record_id)
        model_cls = RECORD_MODELS[collection]

        data = existing.model_dump(by_alias=True)
        # Explicitly given None clears an optional field
        data.update(changes.model_dump(by_alias=True, exclude_unset=True))
        if "updated_at" in model_cls.model_fields:
            data["updated_at"] = datetime.now(timezone.utc)

        record = model_cls.model_validate(data)
        self._records[collection][record_id] = record
        return record

    async def delete_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> None:
        record = self._records[collection].get(record_id)
        if record is not None and record.owner == owner:
            del self._records[collection][record_id]

    async def delete_owned_records(
        self,
        collection: RecordCollection,
        owner: str,
    ) -> Optional[int]:
        owned_ids = [record.id for record in self._owned(collection, owner)]
        for record_id in owned_ids:
            del self._records[collection][record_id]
        return len(owned_ids)

    async def list_categories(
        self,
        owner: str,
        kind: Optional[TransactionKind] = None,
    ) -> list[Category]:
        return [
            category for category in self._categories
            if category.visible_to(owner) and (kind is None or category.kind == kind)
        ]


class InMemoryIdentityProvider(IdentityProviderInterface):
    """
    Identity provider holding a single fixed session.

    With no password configured, any non-empty password is accepted.
    """

    def __init__(self, owner: Optional[str] = None, password: Optional[str] = None):
        self._owner = owner
        self._password = password
        self.deleted_owners: list[str] = []

    async def get_current_owner(self) -> str:
        if not self._owner:
            raise AuthorizationDeniedError("Unauthorized")
        return self._owner

    async def verify_password(self, password: str) -> None:
        await self.get_current_owner()
        if not password or (self._password is not None and password != self._password):
            raise AuthorizationDeniedError("Invalid password")

    async def delete_user(self, owner: str) -> None:
        self.deleted_owners.append(owner)
        if owner == self._owner:
            self._owner = None
