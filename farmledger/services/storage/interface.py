"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against Cloud Firestore in production
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from the storage implementation

The interface mirrors what a document database offers: documents grouped
in collections, equality/range filters, ordering, and a transaction
primitive with conditional commit (a commit aborts if anything it read has
changed since, and the body is retried).

Every write that reaches storage is announced on the store's ChangeFeed,
which is what keeps live queries up to date.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from farmledger.models.audit import AuditEvent
from farmledger.services.storage.changes import ChangeFeed


T = TypeVar("T")


# =============================================================================
# QUERY PRIMITIVES
# =============================================================================

class DocumentSnapshot(BaseModel):
    """A document as read from storage."""
    model_config = ConfigDict(frozen=True)

    collection: str
    id: str
    data: dict[str, Any]
    version: int = Field(
        default=0,
        description="Monotonic write counter (0 when the backend tracks versions itself)"
    )


class FieldFilter(BaseModel):
    """A single predicate: `field <op> value`."""
    model_config = ConfigDict(frozen=True)

    field: str
    op: str = Field(..., pattern="^(==|!=|<|<=|>|>=)$")
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        if actual is None:
            return False
        if self.op == "<":
            return actual < self.value
        if self.op == "<=":
            return actual <= self.value
        if self.op == ">":
            return actual > self.value
        return actual >= self.value


class OrderBy(BaseModel):
    """Sort key for a query."""
    model_config = ConfigDict(frozen=True)

    field: str
    descending: bool = False


def where(field: str, op: str, value: Any) -> FieldFilter:
    return FieldFilter(field=field, op=op, value=value)


# =============================================================================
# DOCUMENT STORE
# =============================================================================

class Transaction(ABC):
    """
    Handle passed to a transaction body.

    Reads go through `get` and are tracked for conflict detection.
    Writes are buffered and applied only when the body returns and the
    commit succeeds. A body may run more than once, so it must not have
    side effects outside this handle.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """Read a document (None if absent) and remember what was seen."""
        pass

    @abstractmethod
    def insert(self, collection: str, data: dict[str, Any]) -> str:
        """Buffer the creation of a new document; returns its id."""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Buffer a field patch on an existing document."""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Buffer the deletion of a document."""
        pass


class DocumentStore(ABC):
    """
    Abstract interface for a document database.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @property
    @abstractmethod
    def changes(self) -> ChangeFeed:
        """Feed that announces every committed write."""
        pass

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """
        Retrieve a document by id.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[list[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        """
        List documents matching every filter, in the requested order.

        Args:
            collection: Collection name
            filters: Conjunction of predicates
            order_by: Sort keys, most significant first
            limit: Maximum number of results

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    async def insert(self, collection: str, data: dict[str, Any]) -> str:
        """
        Create a document with a generated id.

        Returns:
            The new document id

        Raises:
            TransientStoreError: If the backend is unavailable
        """
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document under a known id."""
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """
        Patch fields of an existing document.

        Raises:
            EntityNotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        pass

    @abstractmethod
    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        Run `fn` inside a transaction with conditional commit.

        If a document read by `fn` changes before commit, the commit is
        abandoned and `fn` runs again with fresh reads, up to
        `max_attempts` times. Exceptions raised by `fn` abort the
        transaction with no writes applied and propagate unchanged.

        Returns:
            Whatever `fn` returned on the attempt that committed

        Raises:
            TransientStoreError: If every attempt conflicted or the backend failed
        """
        pass


# =============================================================================
# AUDIT STORAGE
# =============================================================================

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
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific document.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events sharing a correlation ID.

        Returns:
            List of related events in chronological order
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
