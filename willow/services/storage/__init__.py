"""
Storage Services Package

Provides abstract interfaces and concrete implementations for task storage.
Runs in memory by default and can persist to Google Sheets.
"""

from willow.services.storage.interface import (
    AuditStorageInterface,
    ChangeCallback,
    ChangeFeed,
    ConflictError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    Subscription,
    TaskStorageInterface,
)
from willow.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryTaskStorage,
)
from willow.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTaskStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "TaskStorageInterface",
    # Change notification
    "ChangeCallback",
    "ChangeFeed",
    "Subscription",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryTaskStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTaskStorage",
]
