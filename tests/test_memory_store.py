"""Tests for the in-memory document store and its conditional commit."""

import pytest

from farmledger.errors import EntityNotFoundError, TransientStoreError
from farmledger.services.storage import (
    ChangeKind,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    OrderBy,
    where,
)
from farmledger.models import AuditEventBuilder


@pytest.mark.asyncio
class TestPlainOperations:
    """Reads and writes outside transactions."""

    async def test_insert_and_get(self):
        store = InMemoryDocumentStore()
        doc_id = await store.insert("workers", {"name": "Ana"})
        snapshot = await store.get("workers", doc_id)
        assert snapshot.data == {"name": "Ana"}
        assert len(doc_id) == 20

    async def test_get_missing_returns_none(self):
        store = InMemoryDocumentStore()
        assert await store.get("workers", "nope") is None

    async def test_snapshots_are_copies(self):
        store = InMemoryDocumentStore()
        doc_id = await store.insert("workers", {"name": "Ana"})
        snapshot = await store.get("workers", doc_id)
        snapshot.data["name"] = "Changed"
        assert (await store.get("workers", doc_id)).data["name"] == "Ana"

    async def test_update_missing_raises(self):
        store = InMemoryDocumentStore()
        with pytest.raises(EntityNotFoundError):
            await store.update("workers", "nope", {"name": "x"})

    async def test_delete_missing_is_noop(self):
        store = InMemoryDocumentStore()
        await store.delete("workers", "nope")

    async def test_query_filters_and_orders(self):
        store = InMemoryDocumentStore()
        await store.insert("tasks", {"owner_id": "a", "date": "2024-03-01", "created_at": "1"})
        await store.insert("tasks", {"owner_id": "a", "date": "2024-03-02", "created_at": "1"})
        await store.insert("tasks", {"owner_id": "a", "date": "2024-03-02", "created_at": "2"})
        await store.insert("tasks", {"owner_id": "b", "date": "2024-03-03", "created_at": "1"})

        results = await store.query(
            "tasks",
            filters=[where("owner_id", "==", "a"), where("date", ">=", "2024-03-02")],
            order_by=[OrderBy(field="date", descending=True), OrderBy(field="created_at", descending=True)],
        )
        assert [(s.data["date"], s.data["created_at"]) for s in results] == [
            ("2024-03-02", "2"),
            ("2024-03-02", "1"),
        ]

    async def test_query_missing_field_does_not_match(self):
        store = InMemoryDocumentStore()
        await store.insert("tasks", {"owner_id": "a"})
        assert await store.query("tasks", filters=[where("crop_id", "==", "c1")]) == []

    async def test_writes_are_published(self):
        store = InMemoryDocumentStore()
        seen = []
        store.changes.subscribe("workers", seen.append)

        doc_id = await store.insert("workers", {"name": "Ana"})
        await store.update("workers", doc_id, {"name": "Ana Maria"})
        await store.delete("workers", doc_id)

        assert [e.kind for e in seen] == [ChangeKind.CREATED, ChangeKind.UPDATED, ChangeKind.DELETED]

    async def test_failing_listener_does_not_block_others(self):
        store = InMemoryDocumentStore()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        store.changes.subscribe("workers", broken)
        store.changes.subscribe("workers", seen.append)
        await store.insert("workers", {"name": "Ana"})
        assert len(seen) == 1

    async def test_deferred_events_delivered_on_exit(self):
        store = InMemoryDocumentStore()
        seen = []
        store.changes.subscribe("workers", seen.append)

        with pytest.raises(RuntimeError):
            async with store.changes.deferred():
                await store.insert("workers", {"name": "Ana"})
                assert seen == []
                raise RuntimeError("after commit")

        assert [e.kind for e in seen] == [ChangeKind.CREATED]


@pytest.mark.asyncio
class TestTransactions:
    """Conditional commit: stale reads abort and retry."""

    async def test_commit_applies_all_writes(self):
        store = InMemoryDocumentStore()
        worker_id = await store.insert("workers", {"balance": "0"})

        async def body(tx):
            worker = await tx.get("workers", worker_id)
            tx.update("workers", worker.id, {"balance": "10"})
            return tx.insert("tasks", {"worker_id": worker_id})

        task_id = await store.run_transaction(body)
        assert (await store.get("workers", worker_id)).data["balance"] == "10"
        assert (await store.get("tasks", task_id)).data["worker_id"] == worker_id

    async def test_exception_in_body_writes_nothing(self):
        store = InMemoryDocumentStore()
        worker_id = await store.insert("workers", {"balance": "0"})

        async def body(tx):
            tx.update("workers", worker_id, {"balance": "10"})
            tx.insert("tasks", {"worker_id": worker_id})
            raise EntityNotFoundError("crops", "c1")

        with pytest.raises(EntityNotFoundError):
            await store.run_transaction(body)
        assert (await store.get("workers", worker_id)).data["balance"] == "0"
        assert await store.query("tasks") == []

    async def test_update_of_missing_document_aborts_whole_commit(self):
        store = InMemoryDocumentStore()

        async def body(tx):
            tx.insert("tasks", {"worker_id": "ghost"})
            tx.update("workers", "ghost", {"balance": "10"})

        with pytest.raises(EntityNotFoundError):
            await store.run_transaction(body)
        assert await store.query("tasks") == []

    async def test_stale_read_is_retried(self):
        store = InMemoryDocumentStore(max_attempts=3)
        worker_id = await store.insert("workers", {"balance": "0"})
        attempts = []

        async def body(tx):
            worker = await tx.get("workers", worker_id)
            attempts.append(worker.data["balance"])
            if len(attempts) == 1:
                # Someone else writes between our read and our commit
                await store.update("workers", worker_id, {"balance": "5"})
            tx.update("workers", worker_id, {"balance": str(int(worker.data["balance"]) + 1)})

        await store.run_transaction(body)
        assert attempts == ["0", "5"]
        assert (await store.get("workers", worker_id)).data["balance"] == "6"

    async def test_retries_exhausted(self):
        store = InMemoryDocumentStore(max_attempts=3)
        worker_id = await store.insert("workers", {"balance": "0"})
        attempts = []

        async def body(tx):
            await tx.get("workers", worker_id)
            attempts.append(1)
            await store.update("workers", worker_id, {"touched": len(attempts)})

        with pytest.raises(TransientStoreError):
            await store.run_transaction(body)
        assert len(attempts) == 3

    async def test_read_of_absent_document_conflicts_when_created(self):
        store = InMemoryDocumentStore(max_attempts=2)
        attempts = []

        async def body(tx):
            snapshot = await tx.get("users", "u1")
            attempts.append(snapshot)
            if snapshot is None:
                await store.set("users", "u1", {"role": "owner"})

        await store.run_transaction(body)
        assert attempts[0] is None
        assert attempts[1].data == {"role": "owner"}

    async def test_events_published_once_after_commit(self):
        store = InMemoryDocumentStore()
        seen = []
        store.changes.subscribe("tasks", seen.append)

        async def body(tx):
            tx.insert("tasks", {"n": 1})

        await store.run_transaction(body)
        assert len(seen) == 1


@pytest.mark.asyncio
class TestInMemoryAuditStorage:
    """Append-only audit list."""

    async def test_events_by_entity(self):
        storage = InMemoryAuditStorage()
        await storage.append_event(AuditEventBuilder.entity_created("workers", "w1", "o", "Ana"))
        await storage.append_event(AuditEventBuilder.entity_archived("workers", "w1", "o"))
        await storage.append_event(AuditEventBuilder.entity_archived("workers", "w2", "o"))

        events = await storage.get_events_by_entity("workers", "w1")
        assert len(events) == 2
        assert len(await storage.get_recent_events(limit=1)) == 1
