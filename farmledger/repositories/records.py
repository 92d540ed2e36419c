"""
Expense and Supervisor Repositories

Expenses and supervisors are plain tenant-scoped records: they move no
balance, so they are created, edited and hard-deleted directly instead of
going through a ledger transaction.
"""

from datetime import datetime
from typing import Any, Callable, Optional, Union

import structlog

from farmledger.audit import AuditLogger
from farmledger.config import AppSettings
from farmledger.models.audit import AuditEventType
from farmledger.models.entities import Supervisor, SupervisorCreate, utc_now
from farmledger.models.ledger import Expense, ExpenseDraft, ExpenseFilters, ExpenseUpdate
from farmledger.queries.live import NEWEST_FIRST, LiveQuery, date_range_filters
from farmledger.repositories.base import TenantScopedRepository
from farmledger.services.storage import DocumentStore, OrderBy, where
from farmledger.tenancy import TenancyResolver
from farmledger.validation import LedgerValidator, coerce


logger = structlog.get_logger(__name__)


class ExpenseRepository(TenantScopedRepository):
    """Farm expenses (fuel, supplies, repairs...)."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: TenancyResolver,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(store, resolver, audit_logger, settings)
        self._validator = validator or LedgerValidator(self._settings)
        self._clock = clock

    async def list(self, filters: Optional[Union[ExpenseFilters, dict[str, Any]]] = None) -> LiveQuery[Expense]:
        """Live list of the tenant's expenses, newest first."""
        filters = coerce(ExpenseFilters, filters or {})
        predicates = date_range_filters(filters)
        if filters.category:
            predicates.append(where("category", "==", filters.category))

        query = LiveQuery(self._store, self._resolver, Expense, predicates, NEWEST_FIRST)
        await query.refresh()
        return query

    async def create(self, draft: Union[ExpenseDraft, dict[str, Any]]) -> Expense:
        draft = coerce(ExpenseDraft, draft)
        self._validator.validate_expense(draft)
        tenant_id = self._resolver.require_tenant()

        expense = Expense(**draft.model_dump(), owner_id=tenant_id, created_at=self._clock())
        expense.id = await self._bounded(
            self._store.insert(Expense.COLLECTION, expense.to_document()),
            "expenses.create",
        )

        if self._audit_logger:
            await self._audit_logger.log_record_changed(
                AuditEventType.EXPENSE_RECORDED,
                Expense.COLLECTION,
                expense.id,
                tenant_id,
                {"category": expense.category, "amount": str(expense.amount)},
            )
        return expense

    async def update(self, expense_id: str, patch: Union[ExpenseUpdate, dict[str, Any]]) -> Expense:
        patch = coerce(ExpenseUpdate, patch)
        self._validator.validate_expense(patch)
        changes = patch.changes()
        snapshot = await self._require_owned(Expense.COLLECTION, expense_id)

        if changes:
            await self._bounded(
                self._store.update(Expense.COLLECTION, expense_id, changes),
                "expenses.update",
            )
            if self._audit_logger:
                await self._audit_logger.log_record_changed(
                    AuditEventType.EXPENSE_UPDATED,
                    Expense.COLLECTION,
                    expense_id,
                    snapshot.data["owner_id"],
                    {"fields": sorted(changes)},
                )
        return Expense.from_document(expense_id, {**snapshot.data, **changes})

    async def delete(self, expense_id: str) -> None:
        """
        Remove an expense permanently.

        Raises:
            EntityNotFoundError: If the expense is unknown to this tenant
        """
        snapshot = await self._require_owned(Expense.COLLECTION, expense_id)
        await self._bounded(self._store.delete(Expense.COLLECTION, expense_id), "expenses.delete")

        if self._audit_logger:
            await self._audit_logger.log_record_changed(
                AuditEventType.EXPENSE_DELETED,
                Expense.COLLECTION,
                expense_id,
                snapshot.data["owner_id"],
                {"amount": snapshot.data.get("amount")},
            )


class SupervisorRepository(TenantScopedRepository):
    """
    Supervisors an owner has invited.

    A supervisor record is what turns a later sign-up with the same email
    into a member of this tenant (see TenancyResolver.register_profile).
    """

    async def list(self) -> LiveQuery[Supervisor]:
        query = LiveQuery(
            self._store,
            self._resolver,
            Supervisor,
            order_by=[OrderBy(field="name")],
        )
        await query.refresh()
        return query

    async def create(self, fields: Union[SupervisorCreate, dict[str, Any]]) -> Supervisor:
        data = coerce(SupervisorCreate, fields)
        tenant_id = self._resolver.require_tenant()

        supervisor = Supervisor(**data.model_dump(), owner_id=tenant_id)
        supervisor.id = await self._bounded(
            self._store.insert(Supervisor.COLLECTION, supervisor.to_document()),
            "supervisors.create",
        )

        logger.info("supervisor_added", supervisor_id=supervisor.id)
        if self._audit_logger:
            await self._audit_logger.log_record_changed(
                AuditEventType.SUPERVISOR_ADDED,
                Supervisor.COLLECTION,
                supervisor.id,
                tenant_id,
                {"email": supervisor.email},
            )
        return supervisor

    async def delete(self, supervisor_id: str) -> None:
        snapshot = await self._require_owned(Supervisor.COLLECTION, supervisor_id)
        await self._bounded(
            self._store.delete(Supervisor.COLLECTION, supervisor_id),
            "supervisors.delete",
        )

        if self._audit_logger:
            await self._audit_logger.log_record_changed(
                AuditEventType.SUPERVISOR_REMOVED,
                Supervisor.COLLECTION,
                supervisor_id,
                snapshot.data["owner_id"],
            )
