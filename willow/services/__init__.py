"""Services package."""

from willow.services.storage import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTaskStorage,
    InMemoryAuditStorage,
    InMemoryTaskStorage,
    NotFoundError,
    StorageError,
    TaskStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTaskStorage",
    "InMemoryAuditStorage",
    "InMemoryTaskStorage",
    "NotFoundError",
    "StorageError",
    "TaskStorageInterface",
]
