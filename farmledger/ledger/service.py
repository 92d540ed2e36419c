"""
Ledger Transactions

Every operation here keeps one invariant: an entity's stored balance
equals the sum of the deltas of the ledger records that reference it.

DESIGN DECISION: Each operation is a single store transaction with the
same shape:

    read target entity (EntityNotFoundError if absent)
    new_balance = balance + signed delta
    write new_balance to the target
    insert (or delete) the ledger record
    commit atomically

| Operation      | Target | Delta     |
|----------------|--------|-----------|
| add_task       | Worker | + payout  |
| delete_task    | Worker | - payout  |
| add_payment    | Worker | - amount  |
| delete_payment | Worker | + amount  |
| add_sale       | Buyer  | + total   |
| add_collection | Buyer  | - amount  |

The commit is conditional: if the target (or the record being deleted)
changed after it was read, the store throws the attempt away and runs the
body again. A target archived in the meantime then fails the re-read, so a
payment can never land on a worker that was archived under it.

Money is computed before the transaction starts. Audit events and logs are
emitted after commit, because a transaction body may run several times.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union
from uuid import UUID

import structlog

from farmledger.audit import AuditLogger, create_correlation_id
from farmledger.config import AppSettings, get_settings
from farmledger.errors import EntityNotFoundError, FarmLedgerError
from farmledger.ledger.payout import compute_payout, sale_total
from farmledger.models.entities import (
    Buyer,
    Crop,
    EntityStatus,
    StoredModel,
    Worker,
    utc_now,
)
from farmledger.models.ledger import (
    Collection,
    CollectionDraft,
    LedgerEntry,
    Payment,
    PaymentDraft,
    Sale,
    SaleDraft,
    Task,
    TaskDraft,
)
from farmledger.services.storage import DocumentSnapshot, DocumentStore, Transaction, bounded
from farmledger.tenancy import TenancyResolver
from farmledger.validation import LedgerValidator, coerce


T = TypeVar("T")

logger = structlog.get_logger(__name__)


class _Posting:
    """What a committed transaction did, for logging and audit."""

    def __init__(
        self,
        entry: LedgerEntry,
        target_collection: str,
        target_id: str,
        delta: Decimal,
        new_balance: Decimal,
    ):
        self.entry = entry
        self.target_collection = target_collection
        self.target_id = target_id
        self.delta = delta
        self.new_balance = new_balance


async def read_target(
    transaction: Transaction,
    model: type[StoredModel],
    entity_id: str,
    tenant_id: str,
    require_active: bool = True,
) -> DocumentSnapshot:
    """
    Read a transaction target inside the transaction.

    Raises:
        EntityNotFoundError: If the entity is absent, owned by another
            tenant, or archived while `require_active` is set
    """
    snapshot = await transaction.get(model.COLLECTION, entity_id)
    if snapshot is None or snapshot.data.get("owner_id") != tenant_id:
        raise EntityNotFoundError(model.COLLECTION, entity_id)
    if require_active and snapshot.data.get("status") != EntityStatus.ACTIVE.value:
        raise EntityNotFoundError(model.COLLECTION, entity_id, reason="archived")
    return snapshot


def apply_delta(
    transaction: Transaction,
    model: type[StoredModel],
    snapshot: DocumentSnapshot,
    delta: Decimal,
) -> Decimal:
    """Buffer `balance + delta` onto the target; returns the new balance."""
    field = model.BALANCE_FIELD
    new_balance = Decimal(snapshot.data.get(field) or "0") + delta
    transaction.update(model.COLLECTION, snapshot.id, {field: str(new_balance)})
    return new_balance


def display_name(model: type[StoredModel], snapshot: DocumentSnapshot) -> str:
    return model.from_document(snapshot.id, snapshot.data).display_name


class LedgerService:
    """
    Balance-affecting operations for the current tenant.

    All operations:
    - validate input before any I/O (ValidationError)
    - require a resolved tenant (UnauthenticatedError)
    - run as one conditional-commit transaction
    - are bounded by the configured operation timeout (TransientStoreError)
    - are not idempotent: calling add_payment twice records two payments
    """

    def __init__(
        self,
        store: DocumentStore,
        resolver: TenancyResolver,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._resolver = resolver
        self._settings = settings or get_settings().app
        self._validator = validator or LedgerValidator(self._settings)
        self._audit_logger = audit_logger
        self._clock = clock

    # =========================================================================
    # Worker ledger
    # =========================================================================

    async def add_task(
        self,
        draft: Union[TaskDraft, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Task:
        """
        Record a task and credit its payout to the worker.

        Harvest tasks pay sum(quantity * unit_price) over their lines;
        other tasks pay the flat amount.

        Raises:
            ValidationError: Malformed draft
            UnauthenticatedError: No tenant
            EntityNotFoundError: Worker (or crop) absent, foreign or archived
            TransientStoreError: Conflicts exhausted, backend failure or timeout
        """
        draft = coerce(TaskDraft, draft)
        self._validator.validate_task(draft)
        payout = compute_payout(draft.task_type, draft.harvest_details, draft.amount)
        self._validator.validate_total("payout", payout)
        tenant_id = self._resolver.require_tenant()
        created_at = self._clock()

        async def body(transaction: Transaction) -> _Posting:
            worker = await read_target(transaction, Worker, draft.worker_id, tenant_id)
            crop_name = None
            if draft.crop_id:
                crop = await read_target(transaction, Crop, draft.crop_id, tenant_id)
                crop_name = display_name(Crop, crop)

            new_balance = apply_delta(transaction, Worker, worker, payout)
            task = Task(
                date=draft.date,
                owner_id=tenant_id,
                created_at=created_at,
                worker_id=draft.worker_id,
                worker_name=display_name(Worker, worker),
                task_type=draft.task_type,
                payout=payout,
                crop_id=draft.crop_id,
                crop_name=crop_name,
                harvest_details=draft.harvest_details or None,
            )
            task.id = transaction.insert(Task.COLLECTION, task.to_document())
            return _Posting(task, Worker.COLLECTION, worker.id, payout, new_balance)

        posting = await self._run("add_task", body, tenant_id, correlation_id)
        await self._recorded(posting, tenant_id, correlation_id)
        return posting.entry

    async def delete_task(self, task_id: str, correlation_id: Optional[UUID] = None) -> None:
        """
        Delete a task and take its payout back off the worker's balance.

        The worker may be archived; it must still exist.

        Raises:
            EntityNotFoundError: Task or its worker absent
        """
        tenant_id = self._resolver.require_tenant()

        async def body(transaction: Transaction) -> _Posting:
            record = await read_target(transaction, Task, task_id, tenant_id, require_active=False)
            task = Task.from_document(record.id, record.data)
            worker = await read_target(
                transaction, Worker, task.worker_id, tenant_id, require_active=False
            )
            new_balance = apply_delta(transaction, Worker, worker, -task.payout)
            transaction.delete(Task.COLLECTION, task_id)
            return _Posting(task, Worker.COLLECTION, worker.id, -task.payout, new_balance)

        posting = await self._run("delete_task", body, tenant_id, correlation_id)
        await self._deleted(posting, tenant_id, correlation_id)

    async def add_payment(
        self,
        draft: Union[PaymentDraft, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Record a payment to a worker and debit it from their balance.

        Raises:
            EntityNotFoundError: Worker absent, foreign or archived
        """
        draft = coerce(PaymentDraft, draft)
        self._validator.validate_payment(draft)
        tenant_id = self._resolver.require_tenant()
        created_at = self._clock()

        async def body(transaction: Transaction) -> _Posting:
            worker = await read_target(transaction, Worker, draft.worker_id, tenant_id)
            new_balance = apply_delta(transaction, Worker, worker, -draft.amount)
            payment = Payment(
                date=draft.date,
                owner_id=tenant_id,
                created_at=created_at,
                worker_id=draft.worker_id,
                worker_name=display_name(Worker, worker),
                amount=draft.amount,
            )
            payment.id = transaction.insert(Payment.COLLECTION, payment.to_document())
            return _Posting(payment, Worker.COLLECTION, worker.id, -draft.amount, new_balance)

        posting = await self._run("add_payment", body, tenant_id, correlation_id)
        await self._recorded(posting, tenant_id, correlation_id)
        return posting.entry

    async def delete_payment(self, payment_id: str, correlation_id: Optional[UUID] = None) -> None:
        """
        Delete a payment and give its amount back to the worker's balance.

        Raises:
            EntityNotFoundError: Payment or its worker absent
        """
        tenant_id = self._resolver.require_tenant()

        async def body(transaction: Transaction) -> _Posting:
            record = await read_target(
                transaction, Payment, payment_id, tenant_id, require_active=False
            )
            payment = Payment.from_document(record.id, record.data)
            worker = await read_target(
                transaction, Worker, payment.worker_id, tenant_id, require_active=False
            )
            new_balance = apply_delta(transaction, Worker, worker, payment.amount)
            transaction.delete(Payment.COLLECTION, payment_id)
            return _Posting(payment, Worker.COLLECTION, worker.id, payment.amount, new_balance)

        posting = await self._run("delete_payment", body, tenant_id, correlation_id)
        await self._deleted(posting, tenant_id, correlation_id)

    # =========================================================================
    # Buyer ledger
    # =========================================================================

    async def add_sale(
        self,
        draft: Union[SaleDraft, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Sale:
        """
        Record a sale and add its total to what the buyer owes.

        Raises:
            EntityNotFoundError: Buyer absent, foreign or archived
        """
        draft = coerce(SaleDraft, draft)
        self._validator.validate_sale(draft)
        total = sale_total(draft.items)
        self._validator.validate_total("total", total)
        tenant_id = self._resolver.require_tenant()
        created_at = self._clock()

        async def body(transaction: Transaction) -> _Posting:
            buyer = await read_target(transaction, Buyer, draft.buyer_id, tenant_id)
            new_balance = apply_delta(transaction, Buyer, buyer, total)
            sale = Sale(
                date=draft.date,
                owner_id=tenant_id,
                created_at=created_at,
                buyer_id=draft.buyer_id,
                buyer_name=display_name(Buyer, buyer),
                items=draft.items,
                total=total,
            )
            sale.id = transaction.insert(Sale.COLLECTION, sale.to_document())
            return _Posting(sale, Buyer.COLLECTION, buyer.id, total, new_balance)

        posting = await self._run("add_sale", body, tenant_id, correlation_id)
        await self._recorded(posting, tenant_id, correlation_id)
        return posting.entry

    async def add_collection(
        self,
        draft: Union[CollectionDraft, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Collection:
        """
        Record money collected from a buyer and reduce what they owe.

        Raises:
            EntityNotFoundError: Buyer absent, foreign or archived
        """
        draft = coerce(CollectionDraft, draft)
        self._validator.validate_collection(draft)
        tenant_id = self._resolver.require_tenant()
        created_at = self._clock()

        async def body(transaction: Transaction) -> _Posting:
            buyer = await read_target(transaction, Buyer, draft.buyer_id, tenant_id)
            new_balance = apply_delta(transaction, Buyer, buyer, -draft.amount)
            collection = Collection(
                date=draft.date,
                owner_id=tenant_id,
                created_at=created_at,
                buyer_id=draft.buyer_id,
                buyer_name=display_name(Buyer, buyer),
                amount=draft.amount,
            )
            collection.id = transaction.insert(Collection.COLLECTION, collection.to_document())
            return _Posting(collection, Buyer.COLLECTION, buyer.id, -draft.amount, new_balance)

        posting = await self._run("add_collection", body, tenant_id, correlation_id)
        await self._recorded(posting, tenant_id, correlation_id)
        return posting.entry

    # =========================================================================
    # Plumbing
    # =========================================================================

    async def _run(
        self,
        operation: str,
        body: Callable[[Transaction], Awaitable[T]],
        tenant_id: str,
        correlation_id: Optional[UUID],
    ) -> T:
        """Run one transaction under the timeout; audit and re-raise failures."""
        try:
            return await bounded(
                self._store.run_transaction(body, self._settings.transaction_max_attempts),
                self._settings.operation_timeout_seconds,
                operation,
                changes=self._store.changes,
            )
        except FarmLedgerError as e:
            logger.warning(
                "ledger_transaction_failed",
                operation=operation,
                tenant_id=tenant_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_transaction_failed(
                    operation, tenant_id, e, correlation_id or create_correlation_id()
                )
            raise

    async def _recorded(self, posting: _Posting, tenant_id: str, correlation_id: Optional[UUID]) -> None:
        logger.info(
            "ledger_entry_recorded",
            collection=posting.entry.COLLECTION,
            entry_id=posting.entry.id,
            target_id=posting.target_id,
            delta=str(posting.delta),
        )
        if self._audit_logger:
            await self._audit_logger.log_ledger_entry_recorded(
                collection=posting.entry.COLLECTION,
                entry_id=posting.entry.id,
                tenant_id=tenant_id,
                target_collection=posting.target_collection,
                target_id=posting.target_id,
                delta=posting.delta,
                new_balance=posting.new_balance,
                correlation_id=correlation_id,
            )

    async def _deleted(self, posting: _Posting, tenant_id: str, correlation_id: Optional[UUID]) -> None:
        logger.info(
            "ledger_entry_deleted",
            collection=posting.entry.COLLECTION,
            entry_id=posting.entry.id,
            target_id=posting.target_id,
            delta=str(posting.delta),
        )
        if self._audit_logger:
            await self._audit_logger.log_ledger_entry_deleted(
                collection=posting.entry.COLLECTION,
                entry_id=posting.entry.id,
                tenant_id=tenant_id,
                target_collection=posting.target_collection,
                target_id=posting.target_id,
                delta=posting.delta,
                new_balance=posting.new_balance,
                correlation_id=correlation_id,
            )
