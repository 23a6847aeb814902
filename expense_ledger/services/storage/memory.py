"""
In-Memory Storage Implementation

Keeps documents in dictionaries. Used by the test suite and by the
``memory`` storage backend for local runs.

Commits are copy-on-write: the batch is applied to a copy of the affected
collections and swapped in only if every operation succeeded, which gives
the same all-or-nothing behaviour as a real store's batch write.
"""

import copy
from typing import Any, Optional
from uuid import UUID

from expense_ledger.models.audit import AuditEvent
from expense_ledger.models.entry import Entry
from expense_ledger.models.recurring import RecurringTemplate
from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    BatchLimitExceededError,
    Collection,
    EntryQuery,
    LedgerStoreInterface,
    StorageError,
    WriteKind,
    WriteOperation,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """
    Dictionary-backed ledger store.

    Args:
        max_batch_writes: Largest batch ``commit`` accepts
        fail_on_commit: 1-based number of the commit call that should fail,
            for exercising partial writes
    """

    def __init__(
        self,
        max_batch_writes: int = 200,
        max_in_values: int = 10,
        fail_on_commit: Optional[int] = None,
    ):
        self.max_batch_writes = max_batch_writes
        self.max_in_values = max_in_values
        self.fail_on_commit = fail_on_commit
        self.committed_batches: list[int] = []
        self._commit_calls = 0
        self._collections: dict[Collection, dict[str, dict[str, Any]]] = {
            Collection.ENTRIES: {},
            Collection.TEMPLATES: {},
        }

    def documents(self, collection: Collection) -> dict[str, dict[str, Any]]:
        """Snapshot of raw documents, for inspection in tests."""
        return copy.deepcopy(self._collections[collection])

    async def get_template(self, template_id: str) -> Optional[RecurringTemplate]:
        document = self._collections[Collection.TEMPLATES].get(template_id)
        if document is None:
            return None
        return RecurringTemplate.model_validate(document)

    async def get_entry(self, entry_id: str) -> Optional[Entry]:
        document = self._collections[Collection.ENTRIES].get(entry_id)
        if document is None:
            return None
        return Entry.model_validate({**document, "id": entry_id})

    def _matching(self, query: EntryQuery) -> list[tuple[str, dict[str, Any]]]:
        matches = [
            (key, document)
            for key, document in self._collections[Collection.ENTRIES].items()
            if query.matches(document)
        ]
        matches.sort(key=lambda item: (item[1].get("date", ""), item[0]), reverse=query.descending)
        if query.limit is not None:
            matches = matches[:query.limit]
        return matches

    async def find_entries(self, query: EntryQuery) -> list[Entry]:
        return [
            Entry.model_validate({**document, "id": key})
            for key, document in self._matching(query)
        ]

    async def count_entries(self, query: EntryQuery) -> int:
        return len(self._matching(query))

    async def list_templates(self, owner_ids: list[str]) -> list[RecurringTemplate]:
        if len(owner_ids) > self.max_in_values:
            raise StorageError(
                f"At most {self.max_in_values} owner ids per query, got {len(owner_ids)}"
            )
        wanted = set(owner_ids)
        templates = [
            RecurringTemplate.model_validate(document)
            for document in self._collections[Collection.TEMPLATES].values()
            if document.get("ownerId") in wanted
        ]
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return templates

    async def commit(self, operations: list[WriteOperation]) -> None:
        self._commit_calls += 1
        if len(operations) > self.max_batch_writes:
            raise BatchLimitExceededError(
                f"Batch of {len(operations)} writes exceeds limit of {self.max_batch_writes}"
            )
        if self.fail_on_commit is not None and self._commit_calls == self.fail_on_commit:
            raise StorageError(f"Simulated failure on commit #{self._commit_calls}")

        staged = {name: dict(docs) for name, docs in self._collections.items()}
        for op in operations:
            documents = staged[op.collection]
            if op.kind == WriteKind.SET:
                documents[op.key] = copy.deepcopy(op.data)
            elif op.kind == WriteKind.MERGE:
                merged = dict(documents.get(op.key, {}))
                merged.update(copy.deepcopy(op.data))
                documents[op.key] = merged
            elif op.kind == WriteKind.DELETE:
                documents.pop(op.key, None)

        self._collections = staged
        self.committed_batches.append(len(operations))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
