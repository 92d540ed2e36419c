"""
In-Memory Storage Implementation

DESIGN DECISION: An in-process document store with the same transaction
semantics as the production database:
- Every document carries a version that bumps on each write
- A transaction remembers the version of everything it read
- Commit re-checks those versions under the store lock; any difference
  aborts the commit and the body is retried (optimistic concurrency)

This makes the conditional-commit behaviour testable without a network,
including the case where a worker is archived while a payment against
them is in flight.

TRADEOFFS:
- Data lives only as long as the process
- Filtering and ordering happen in Python
"""

import asyncio
import copy
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID, uuid4

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from farmledger.errors import (
    EntityNotFoundError,
    TransactionConflictError,
    TransientStoreError,
)
from farmledger.models.audit import AuditEvent
from farmledger.services.storage.changes import ChangeEvent, ChangeFeed, ChangeKind
from farmledger.services.storage.interface import (
    AuditStorageInterface,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    OrderBy,
    Transaction,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)


def new_document_id() -> str:
    """20-character id, the same shape Firestore generates."""
    return uuid4().hex[:20]


def _sort_key(value: Any) -> tuple:
    # None sorts before any value instead of raising TypeError
    return (value is not None, value)


class _StoredDocument:
    __slots__ = ("data", "version")

    def __init__(self, data: dict[str, Any], version: int):
        self.data = data
        self.version = version


class InMemoryTransaction(Transaction):
    """Buffers writes and records read versions until commit."""

    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self.reads: dict[tuple[str, str], Optional[int]] = {}
        self.operations: list[tuple[str, str, str, Optional[dict[str, Any]]]] = []

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        snapshot = await self._store.get(collection, doc_id)
        self.reads[(collection, doc_id)] = snapshot.version if snapshot else None
        return snapshot

    def insert(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = new_document_id()
        self.operations.append(("create", collection, doc_id, copy.deepcopy(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self.operations.append(("update", collection, doc_id, copy.deepcopy(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.operations.append(("delete", collection, doc_id, None))


class InMemoryDocumentStore(DocumentStore):
    """
    Document store kept in a dict of collections.

    All mutations go through one asyncio lock, which is what makes a
    transaction commit atomic with respect to every other write.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        retry_wait_seconds: float = 0.0,
        changes: Optional[ChangeFeed] = None,
    ):
        self._collections: dict[str, dict[str, _StoredDocument]] = {}
        self._lock = asyncio.Lock()
        self._version = 0
        self._max_attempts = max_attempts
        self._retry_wait_seconds = retry_wait_seconds
        self._changes = changes or ChangeFeed()

    @property
    def changes(self) -> ChangeFeed:
        return self._changes

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _snapshot(self, collection: str, doc_id: str, doc: _StoredDocument) -> DocumentSnapshot:
        return DocumentSnapshot(
            collection=collection,
            id=doc_id,
            data=copy.deepcopy(doc.data),
            version=doc.version,
        )

    # =========================================================================
    # Plain operations
    # =========================================================================

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None:
            return None
        return self._snapshot(collection, doc_id, doc)

    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[list[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        filters = filters or []
        results = [
            self._snapshot(collection, doc_id, doc)
            for doc_id, doc in self._collections.get(collection, {}).items()
            if all(f.matches(doc.data) for f in filters)
        ]

        # Stable sorts applied least-significant key first
        for key in reversed(order_by or []):
            results.sort(
                key=lambda snap, field=key.field: _sort_key(snap.data.get(field)),
                reverse=key.descending,
            )

        if limit is not None:
            results = results[:limit]
        return results

    async def insert(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = new_document_id()
        await self.set(collection, doc_id, data)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        async with self._lock:
            docs = self._collections.setdefault(collection, {})
            kind = ChangeKind.UPDATED if doc_id in docs else ChangeKind.CREATED
            docs[doc_id] = _StoredDocument(copy.deepcopy(data), self._next_version())
        await self._changes.publish([ChangeEvent(collection=collection, doc_id=doc_id, kind=kind)])

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            if doc is None:
                raise EntityNotFoundError(collection, doc_id)
            doc.data.update(copy.deepcopy(fields))
            doc.version = self._next_version()
        await self._changes.publish([
            ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.UPDATED)
        ])

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            removed = self._collections.get(collection, {}).pop(doc_id, None)
        if removed is not None:
            await self._changes.publish([
                ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.DELETED)
            ])

    # =========================================================================
    # Transactions
    # =========================================================================

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        attempts = max_attempts or self._max_attempts
        result = None
        events: list[ChangeEvent] = []

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=self._retry_wait_seconds, max=1),
                retry=retry_if_exception_type(TransactionConflictError),
                reraise=True,
            ):
                with attempt:
                    transaction = InMemoryTransaction(self)
                    result = await fn(transaction)
                    events = await self._commit(transaction)
        except TransactionConflictError as e:
            logger.warning("transaction_gave_up", attempts=attempts, error=str(e))
            raise TransientStoreError(
                f"Transaction kept conflicting after {attempts} attempts: {e}"
            ) from e

        await self._changes.publish(events)
        return result

    async def _commit(self, transaction: InMemoryTransaction) -> list[ChangeEvent]:
        """Validate read versions, then apply buffered writes all at once."""
        async with self._lock:
            for (collection, doc_id), seen in transaction.reads.items():
                current = self._collections.get(collection, {}).get(doc_id)
                current_version = current.version if current else None
                if current_version != seen:
                    raise TransactionConflictError(
                        f"{collection}/{doc_id} changed during transaction"
                    )

            # Stage every write first so a bad operation leaves nothing applied
            staged: dict[tuple[str, str], Optional[dict[str, Any]]] = {}
            events: list[ChangeEvent] = []

            def current_data(collection: str, doc_id: str) -> Optional[dict[str, Any]]:
                if (collection, doc_id) in staged:
                    return staged[(collection, doc_id)]
                doc = self._collections.get(collection, {}).get(doc_id)
                return copy.deepcopy(doc.data) if doc else None

            for op, collection, doc_id, payload in transaction.operations:
                if op == "create":
                    staged[(collection, doc_id)] = payload
                    events.append(ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.CREATED))
                elif op == "update":
                    data = current_data(collection, doc_id)
                    if data is None:
                        raise EntityNotFoundError(collection, doc_id)
                    data.update(payload)
                    staged[(collection, doc_id)] = data
                    events.append(ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.UPDATED))
                else:
                    staged[(collection, doc_id)] = None
                    events.append(ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.DELETED))

            for (collection, doc_id), data in staged.items():
                docs = self._collections.setdefault(collection, {})
                if data is None:
                    docs.pop(doc_id, None)
                else:
                    docs[doc_id] = _StoredDocument(data, self._next_version())

            return events


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit list, for tests and local runs."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
