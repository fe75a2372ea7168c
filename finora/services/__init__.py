"""Services package."""

from finora.services.storage import (
    AuditStorageInterface,
    AuthorizationDeniedError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    HttpApiClient,
    HttpIdentityProvider,
    HttpRecordStore,
    IdentityProviderInterface,
    InMemoryIdentityProvider,
    InMemoryRecordStore,
    NotFoundError,
    PartialFailureError,
    RecordStoreInterface,
    RemoteFailureError,
    StorageError,
    TransportError,
    ValidationRejectedError,
)

__all__ = [
    "AuditStorageInterface",
    "AuthorizationDeniedError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "HttpApiClient",
    "HttpIdentityProvider",
    "HttpRecordStore",
    "IdentityProviderInterface",
    "InMemoryIdentityProvider",
    "InMemoryRecordStore",
    "NotFoundError",
    "PartialFailureError",
    "RecordStoreInterface",
    "RemoteFailureError",
    "StorageError",
    "TransportError",
    "ValidationRejectedError",
]
