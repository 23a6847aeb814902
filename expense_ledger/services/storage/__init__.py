"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The in-memory store backs tests and local runs; Google Sheets is the
persistent backend. Both honor the same atomic-batch contract.
"""

from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    BatchLimitExceededError,
    Collection,
    ConnectionError,
    EntryQuery,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
    WriteKind,
    WriteOperation,
)
from expense_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)
from expense_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Write model
    "Collection",
    "EntryQuery",
    "WriteKind",
    "WriteOperation",
    # Exceptions
    "BatchLimitExceededError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
]
