"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the ledger store.
This allows us to:
1. Swap Google Sheets for a real document database later
2. Use in-memory storage for testing
3. Keep the recurrence engine decoupled from storage implementation

The interface is intentionally small - we're not building a full ORM.
Reads are typed; writes go through atomic batches of WriteOperations,
because one user action on a recurring series can touch hundreds of
documents and the engine must control exactly which writes commit together.
"""

from abc import ABC, abstractmethod
from datetime import date
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from expense_ledger.models.audit import AuditEvent
from expense_ledger.models.entry import Entry
from expense_ledger.models.recurring import RecurringTemplate


class Collection(str, Enum):
    """Document collections in the ledger store."""
    ENTRIES = "entries"
    TEMPLATES = "recurringTemplates"


class WriteKind(str, Enum):
    SET = "set"        # replace the whole document
    MERGE = "merge"    # update only the given fields, create if missing
    DELETE = "delete"


class WriteOperation(BaseModel):
    """One write inside an atomic batch."""

    kind: WriteKind
    collection: Collection
    key: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def set_template(cls, template: RecurringTemplate) -> "WriteOperation":
        return cls(
            kind=WriteKind.SET,
            collection=Collection.TEMPLATES,
            key=template.id,
            data=template.to_document(),
        )

    @classmethod
    def delete_template(cls, template_id: str) -> "WriteOperation":
        return cls(kind=WriteKind.DELETE, collection=Collection.TEMPLATES, key=template_id)

    @classmethod
    def set_entry(cls, entry: Entry) -> "WriteOperation":
        return cls(
            kind=WriteKind.SET,
            collection=Collection.ENTRIES,
            key=entry.id,
            data=entry.to_document(),
        )

    @classmethod
    def merge_entry(cls, entry_id: str, fields: dict[str, Any]) -> "WriteOperation":
        return cls(
            kind=WriteKind.MERGE,
            collection=Collection.ENTRIES,
            key=entry_id,
            data=fields,
        )

    @classmethod
    def delete_entry(cls, entry_id: str) -> "WriteOperation":
        return cls(kind=WriteKind.DELETE, collection=Collection.ENTRIES, key=entry_id)


class EntryQuery(BaseModel):
    """
    Filter for entry reads.

    All set filters must match. Results are ordered by date.
    """

    template_id: Optional[str] = None
    owner_id: Optional[str] = None
    date_from: Optional[date] = Field(
        default=None,
        description="Entries on or after this date"
    )
    date_after: Optional[date] = Field(
        default=None,
        description="Entries strictly after this date"
    )
    is_modified: Optional[bool] = None
    descending: bool = False
    limit: Optional[int] = Field(default=None, ge=1)

    def matches(self, document: dict[str, Any]) -> bool:
        """Check a stored entry document against this filter."""
        if self.template_id is not None and document.get("recurringTemplateId") != self.template_id:
            return False
        if self.owner_id is not None and document.get("ownerId") != self.owner_id:
            return False
        entry_date = document.get("date")
        if self.date_from is not None and (not entry_date or entry_date < self.date_from.isoformat()):
            return False
        if self.date_after is not None and (not entry_date or entry_date <= self.date_after.isoformat()):
            return False
        if self.is_modified is not None and bool(document.get("isModified", False)) != self.is_modified:
            return False
        return True


class LedgerStoreInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, a document database, etc.)
    must implement these methods.
    """

    max_batch_writes: int = 200
    max_in_values: int = 10

    @abstractmethod
    async def get_template(self, template_id: str) -> Optional[RecurringTemplate]:
        """
        Retrieve a recurring template by its ID.

        Returns:
            The template if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_entry(self, entry_id: str) -> Optional[Entry]:
        """
        Retrieve an entry by its key.

        Returns:
            The entry if found, None otherwise
        """
        pass

    @abstractmethod
    async def find_entries(self, query: EntryQuery) -> list[Entry]:
        """
        List entries matching a query, ordered by date.

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def count_entries(self, query: EntryQuery) -> int:
        """
        Count entries matching a query without returning them.
        """
        pass

    @abstractmethod
    async def list_templates(self, owner_ids: list[str]) -> list[RecurringTemplate]:
        """
        List templates owned by any of the given users, newest first.

        Args:
            owner_ids: At most ``max_in_values`` owner ids

        Raises:
            StorageError: If more ids are passed than one query supports
        """
        pass

    @abstractmethod
    async def commit(self, operations: list[WriteOperation]) -> None:
        """
        Apply a batch of writes atomically: all or nothing.

        Args:
            operations: At most ``max_batch_writes`` operations

        Raises:
            BatchLimitExceededError: If the batch is too large
            StorageError: If the write fails (nothing is applied)
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one command).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class BatchLimitExceededError(StorageError):
    """A batch holds more writes than the store accepts at once."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
