"""
Change Notification Feed

Stores publish a ChangeEvent for every document they write. Live queries
and the tenancy resolver subscribe per collection and react by re-reading.

Listeners may be plain callables or coroutine functions. Publishing awaits
every listener in subscription order, so when a write call returns, every
live view over that collection has already been refreshed.
"""

import inspect
from contextlib import asynccontextmanager
from contextvars import ContextVar
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict


logger = structlog.get_logger(__name__)


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    collection: str
    doc_id: str
    kind: ChangeKind


Listener = Callable[[ChangeEvent], Any]


class ChangeFeed:
    """In-process pub/sub keyed by collection name."""

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = {}
        self._held: ContextVar[Optional[list[ChangeEvent]]] = ContextVar("held_changes", default=None)

    def subscribe(self, collection: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for one collection.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.setdefault(collection, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(collection, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, []))

    async def publish(self, events: list[ChangeEvent]) -> None:
        """
        Deliver events to their collection's listeners.

        A failing listener is logged and skipped: the write it reacts to is
        already committed, and the remaining listeners still need the event.
        """
        held = self._held.get()
        if held is not None:
            held.extend(events)
            return

        for event in events:
            for listener in list(self._listeners.get(event.collection, [])):
                try:
                    result = listener(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(
                        "change_listener_failed",
                        collection=event.collection,
                        doc_id=event.doc_id,
                        error=str(e),
                    )

    @asynccontextmanager
    async def deferred(self) -> AsyncIterator[None]:
        """
        Hold events published from the current task until the block exits.

        Lets a caller put a deadline on a write without the deadline also
        covering listener refreshes. Held events describe committed writes,
        so they are delivered even when the block raises.
        """
        if self._held.get() is not None:
            yield
            return

        held: list[ChangeEvent] = []
        token = self._held.set(held)
        try:
            yield
        finally:
            self._held.reset(token)
            await self.publish(held)
