"""
Live Queries

A LiveQuery is a tenant-scoped query that stays current. It re-runs when:
1. Any document in its collection is written (via the store's ChangeFeed)
2. The tenancy resolver publishes a new tenant id

and pushes the fresh result list to its subscribers.

DESIGN DECISION: The tenant is read at refresh time, never captured at
construction. A query built while signed out starts empty and fills in
as soon as a tenant resolves; switching accounts re-scopes it.
"""

import inspect
from decimal import Decimal
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

import structlog

from farmledger.models.entities import StoredModel
from farmledger.services.storage import (
    ChangeEvent,
    DocumentStore,
    FieldFilter,
    OrderBy,
    where,
)
from farmledger.tenancy import TenancyResolver


M = TypeVar("M", bound=StoredModel)

logger = structlog.get_logger(__name__)

# Ledger lists: newest date first, newest entry first within a date
NEWEST_FIRST = [
    OrderBy(field="date", descending=True),
    OrderBy(field="created_at", descending=True),
]


class LiveQuery(Generic[M]):
    """
    Self-refreshing, tenant-scoped result list.

    Usage:
        tasks = await queries.get_tasks(TaskFilters(worker_id=w))
        tasks.subscribe(render)
        tasks.total("payout")
        tasks.close()

    Or scoped, closed on exit:
        async with await queries.get_payments() as payments:
            ...
    """

    def __init__(
        self,
        store: DocumentStore,
        resolver: TenancyResolver,
        model: type[M],
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[list[OrderBy]] = None,
    ):
        self._store = store
        self._resolver = resolver
        self._model = model
        self._filters = filters or []
        self._order_by = order_by or []
        self._items: list[M] = []
        self._callbacks: list[Callable[[list[M]], Any]] = []
        self._generation = 0
        self._closed = False

        self._unsubscribe_changes = store.changes.subscribe(model.COLLECTION, self._on_change)
        self._unsubscribe_tenant = resolver.subscribe(self._on_tenant)

    async def __aenter__(self) -> "LiveQuery[M]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def collection(self) -> str:
        return self._model.COLLECTION

    @property
    def items(self) -> list[M]:
        """Most recently fetched results."""
        return list(self._items)

    def __iter__(self) -> Iterator[M]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self._items)

    async def refresh(self) -> list[M]:
        """Re-run the query under the current tenant and notify subscribers."""
        self._generation += 1
        generation = self._generation

        tenant_id = self._resolver.tenant_id
        if tenant_id is None:
            items: list[M] = []
        else:
            snapshots = await self._store.query(
                self.collection,
                filters=[where("owner_id", "==", tenant_id), *self._filters],
                order_by=self._order_by,
            )
            items = [self._model.from_document(s.id, s.data) for s in snapshots]

        # A newer refresh started while this one was waiting; let it win
        if generation != self._generation or self._closed:
            return self.items

        self._items = items
        for callback in list(self._callbacks):
            result = callback(self.items)
            if inspect.isawaitable(result):
                await result
        return self.items

    def subscribe(self, callback: Callable[[list[M]], Any]) -> Callable[[], None]:
        """
        Receive the full result list after every refresh.

        Returns:
            A callable that removes the callback
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def total(self, field: str) -> Decimal:
        """Sum a numeric field over the current items."""
        return sum((Decimal(getattr(item, field)) for item in self._items), Decimal("0"))

    def close(self) -> None:
        """Stop listening. The last fetched items stay readable."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_changes()
        self._unsubscribe_tenant()
        self._callbacks.clear()

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug("live_query_change", collection=event.collection, doc_id=event.doc_id)
        await self.refresh()

    async def _on_tenant(self, tenant_id: Optional[str]) -> None:
        await self.refresh()


def date_range_filters(filters) -> list[FieldFilter]:
    """Store predicates for an inclusive DateRangeFilter (dates are ISO strings)."""
    predicates = []
    if filters.date_from:
        predicates.append(where("date", ">=", filters.date_from.isoformat()))
    if filters.date_to:
        predicates.append(where("date", "<=", filters.date_to.isoformat()))
    return predicates
