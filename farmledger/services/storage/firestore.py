"""
Cloud Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because:
1. Its transactions already have the conditional-commit semantics the
   ledger needs (a transaction whose reads went stale is aborted and retried)
2. Documents map one-to-one onto our pydantic models
3. Authentication reuses the Google service-account flow of the audit sheet

Firestore retries aborted transactions itself (`max_attempts`), so this
class only translates errors. Plain reads and writes get a short tenacity
retry for transient network failures.

Live updates are published on our own ChangeFeed after each successful
write made through this store.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from farmledger.config import FirestoreSettings, get_settings
from farmledger.errors import EntityNotFoundError, TransientStoreError
from farmledger.services.storage.changes import ChangeEvent, ChangeFeed, ChangeKind
from farmledger.services.storage.interface import (
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    OrderBy,
    Transaction,
)


T = TypeVar("T")

logger = structlog.get_logger(__name__)

# Errors worth another attempt
TRANSIENT_ERRORS = (
    google_exceptions.Aborted,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.TooManyRequests,
)

_network_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    reraise=True,
)


def create_firestore_client(settings: Optional[FirestoreSettings] = None) -> firestore.AsyncClient:
    """
    Build an async Firestore client.

    Uses service account credentials when a path is configured,
    application default credentials otherwise.
    """
    settings = settings or get_settings().firestore
    credentials = None
    if settings.credentials_path:
        try:
            credentials = Credentials.from_service_account_file(settings.credentials_path)
        except FileNotFoundError:
            raise TransientStoreError(
                f"Firestore credentials file not found: {settings.credentials_path}"
            )
    return firestore.AsyncClient(
        project=settings.project_id,
        credentials=credentials,
        database=settings.database,
    )


class FirestoreTransaction(Transaction):
    """Adapts a Firestore AsyncTransaction to our Transaction interface."""

    def __init__(self, client: firestore.AsyncClient, transaction):
        self._client = client
        self._transaction = transaction
        self.events: list[ChangeEvent] = []

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        ref = self._client.collection(collection).document(doc_id)
        snap = await ref.get(transaction=self._transaction)
        if not snap.exists:
            return None
        return DocumentSnapshot(collection=collection, id=snap.id, data=snap.to_dict() or {})

    def insert(self, collection: str, data: dict[str, Any]) -> str:
        ref = self._client.collection(collection).document()
        self._transaction.set(ref, data)
        self.events.append(ChangeEvent(collection=collection, doc_id=ref.id, kind=ChangeKind.CREATED))
        return ref.id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        ref = self._client.collection(collection).document(doc_id)
        self._transaction.update(ref, fields)
        self.events.append(ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.UPDATED))

    def delete(self, collection: str, doc_id: str) -> None:
        ref = self._client.collection(collection).document(doc_id)
        self._transaction.delete(ref)
        self.events.append(ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.DELETED))


class FirestoreDocumentStore(DocumentStore):
    """
    Firestore implementation of the document store.

    Decimal amounts are stored as strings and dates as ISO strings
    (models serialize that way), so range filters on `date` compare
    lexicographically, which matches chronological order.
    """

    def __init__(
        self,
        client: Optional[firestore.AsyncClient] = None,
        max_attempts: int = 5,
        changes: Optional[ChangeFeed] = None,
    ):
        self._client = client or create_firestore_client()
        self._max_attempts = max_attempts
        self._changes = changes or ChangeFeed()

    @property
    def changes(self) -> ChangeFeed:
        return self._changes

    @_network_retry
    async def _get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        snap = await self._client.collection(collection).document(doc_id).get()
        if not snap.exists:
            return None
        return DocumentSnapshot(collection=collection, id=snap.id, data=snap.to_dict() or {})

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        try:
            return await self._get(collection, doc_id)
        except TRANSIENT_ERRORS as e:
            raise TransientStoreError(f"Failed to get {collection}/{doc_id}: {e}") from e

    @_network_retry
    async def _query(self, collection, filters, order_by, limit) -> list[DocumentSnapshot]:
        query = self._client.collection(collection)
        for f in filters or []:
            query = query.where(filter=FirestoreFieldFilter(f.field, f.op, f.value))
        for key in order_by or []:
            direction = firestore.Query.DESCENDING if key.descending else firestore.Query.ASCENDING
            query = query.order_by(key.field, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        results = []
        async for snap in query.stream():
            results.append(DocumentSnapshot(collection=collection, id=snap.id, data=snap.to_dict() or {}))
        return results

    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[list[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        try:
            return await self._query(collection, filters, order_by, limit)
        except TRANSIENT_ERRORS as e:
            raise TransientStoreError(f"Failed to query {collection}: {e}") from e

    async def insert(self, collection: str, data: dict[str, Any]) -> str:
        ref = self._client.collection(collection).document()
        await self.set(collection, ref.id, data)
        return ref.id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await _network_retry(self._client.collection(collection).document(doc_id).set)(data)
        except TRANSIENT_ERRORS as e:
            raise TransientStoreError(f"Failed to write {collection}/{doc_id}: {e}") from e
        await self._changes.publish([
            ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.CREATED)
        ])

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        try:
            await _network_retry(self._client.collection(collection).document(doc_id).update)(fields)
        except google_exceptions.NotFound as e:
            raise EntityNotFoundError(collection, doc_id) from e
        except TRANSIENT_ERRORS as e:
            raise TransientStoreError(f"Failed to update {collection}/{doc_id}: {e}") from e
        await self._changes.publish([
            ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.UPDATED)
        ])

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            await _network_retry(self._client.collection(collection).document(doc_id).delete)()
        except TRANSIENT_ERRORS as e:
            raise TransientStoreError(f"Failed to delete {collection}/{doc_id}: {e}") from e
        await self._changes.publish([
            ChangeEvent(collection=collection, doc_id=doc_id, kind=ChangeKind.DELETED)
        ])

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: Optional[int] = None,
    ) -> T:
        attempts = max_attempts or self._max_attempts
        adapters: list[FirestoreTransaction] = []

        @firestore.async_transactional
        async def body(transaction):
            adapter = FirestoreTransaction(self._client, transaction)
            adapters.append(adapter)
            return await fn(adapter)

        try:
            result = await body(self._client.transaction(max_attempts=attempts))
        except google_exceptions.NotFound as e:
            raise EntityNotFoundError("unknown", "unknown", reason=str(e)) from e
        except TRANSIENT_ERRORS as e:
            logger.warning("transaction_gave_up", attempts=attempts, error=str(e))
            raise TransientStoreError(f"Transaction failed after {attempts} attempts: {e}") from e
        except ValueError as e:
            # The client reports exhausted attempts as "Failed to commit transaction in N attempts."
            if "attempts" in str(e):
                raise TransientStoreError(str(e)) from e
            raise

        # Only the attempt that committed announces its writes
        if adapters:
            await self._changes.publish(adapters[-1].events)
        return result
