"""
Bounded batch writer.

Collects write operations and commits them to the ledger store in atomic
batches of at most ``limit`` writes. Each batch is atomic on its own; a
sequence of batches is not. Callers that need several writes to land
together (a template and its first instances) add them first, so they share
the first batch.

Usage:
    async with BoundedBatchWriter(store) as writer:
        await writer.add(WriteOperation.set_template(template))
        for entry in entries:
            await writer.add(WriteOperation.set_entry(entry))
"""

from typing import Iterable, Optional

import structlog

from expense_ledger.services.storage.interface import LedgerStoreInterface, WriteOperation

logger = structlog.get_logger(__name__)


class BoundedBatchWriter:
    """Accumulates writes and commits a batch each time the limit is reached."""

    def __init__(self, store: LedgerStoreInterface, limit: Optional[int] = None):
        self._store = store
        self._limit = min(limit or store.max_batch_writes, store.max_batch_writes)
        self._pending: list[WriteOperation] = []
        self.committed_batches: list[int] = []

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def committed_writes(self) -> int:
        return sum(self.committed_batches)

    async def add(self, operation: WriteOperation) -> None:
        self._pending.append(operation)
        if len(self._pending) >= self._limit:
            await self.flush()

    async def add_all(self, operations: Iterable[WriteOperation]) -> None:
        for operation in operations:
            await self.add(operation)

    async def flush(self) -> None:
        """Commit pending writes as one batch. Errors propagate; the batch is not retried."""
        if not self._pending:
            return
        batch, self._pending = self._pending, []
        await self._store.commit(batch)
        self.committed_batches.append(len(batch))
        logger.debug(
            "batch_committed",
            batch_number=len(self.committed_batches),
            writes=len(batch),
        )

    async def __aenter__(self) -> "BoundedBatchWriter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.flush()
        else:
            # The in-flight chunk is dropped; earlier chunks stay committed.
            self._pending = []
