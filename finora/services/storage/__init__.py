"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The hosted HTTP API is the production backend; Google Sheets and in-memory
stores implement the same interface.
"""

from finora.services.storage.interface import (
    AuditStorageInterface,
    AuthorizationDeniedError,
    IdentityProviderInterface,
    NotFoundError,
    PartialFailureError,
    RecordStoreInterface,
    RemoteFailureError,
    StorageError,
    TransportError,
    ValidationRejectedError,
    assign_new_record,
)
from finora.services.storage.memory import (
    InMemoryIdentityProvider,
    InMemoryRecordStore,
    default_categories,
)
from finora.services.storage.http_api import (
    COLLECTION_PATHS,
    HttpApiClient,
    HttpIdentityProvider,
    HttpRecordStore,
)
from finora.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "IdentityProviderInterface",
    "RecordStoreInterface",
    "assign_new_record",
    # Exceptions
    "AuthorizationDeniedError",
    "NotFoundError",
    "PartialFailureError",
    "RemoteFailureError",
    "StorageError",
    "TransportError",
    "ValidationRejectedError",
    # In-memory implementation
    "InMemoryIdentityProvider",
    "InMemoryRecordStore",
    "default_categories",
    # Hosted API implementation
    "COLLECTION_PATHS",
    "HttpApiClient",
    "HttpIdentityProvider",
    "HttpRecordStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
