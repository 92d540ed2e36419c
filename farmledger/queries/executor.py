"""
Query Execution

DESIGN DECISION: Queries are DETERMINISTIC reads over stored ledger
records. Every figure returned here is a reduction over documents that
actually exist for the current tenant; nothing is cached or estimated.

Two kinds of read:
- Lists (tasks, payments, sales, collections) come back as LiveQuery
  objects that keep themselves current
- Summaries (dashboard, period report, labor cost by crop) are one-shot
  reductions computed on demand

Without a resolved tenant every read returns an empty result, never an
error.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Optional, TypeVar, Union

import structlog

from farmledger.errors import ValidationError
from farmledger.models.entities import StoredModel
from farmledger.models.ledger import (
    Collection,
    DashboardSummary,
    DateRangeFilter,
    Expense,
    Payment,
    PaymentFilters,
    PeriodReport,
    Sale,
    SaleFilters,
    Task,
    TaskFilters,
)
from farmledger.models.validation import ValidationIssue
from farmledger.queries.live import NEWEST_FIRST, LiveQuery, date_range_filters
from farmledger.services.storage import DocumentStore, FieldFilter, where
from farmledger.tenancy import TenancyResolver
from farmledger.validation import coerce


M = TypeVar("M", bound=StoredModel)

logger = structlog.get_logger(__name__)

UNASSIGNED_CROP = "unassigned"


def _sum(items: list, field: str) -> Decimal:
    return sum((Decimal(getattr(item, field)) for item in items), Decimal("0"))


class LedgerQueries:
    """
    Read side of the ledger for the current tenant.

    GUARANTEES:
    - Only returns stored data for the resolved tenant
    - Lists are ordered by date descending, then creation time descending
    - Filters combine as a conjunction
    """

    def __init__(self, store: DocumentStore, resolver: TenancyResolver):
        self._store = store
        self._resolver = resolver

    # =========================================================================
    # Live lists
    # =========================================================================

    async def _live(self, model: type[M], filters: list[FieldFilter]) -> LiveQuery[M]:
        query = LiveQuery(self._store, self._resolver, model, filters, NEWEST_FIRST)
        await query.refresh()
        return query

    async def get_tasks(self, filters: Optional[Union[TaskFilters, dict[str, Any]]] = None) -> LiveQuery[Task]:
        """Tasks in a date range, optionally for one worker and/or one crop."""
        filters = coerce(TaskFilters, filters or {})
        predicates = date_range_filters(filters)
        if filters.worker_id:
            predicates.append(where("worker_id", "==", filters.worker_id))
        if filters.crop_id:
            predicates.append(where("crop_id", "==", filters.crop_id))
        return await self._live(Task, predicates)

    async def get_payments(
        self,
        filters: Optional[Union[PaymentFilters, dict[str, Any]]] = None,
    ) -> LiveQuery[Payment]:
        """Payments in a date range, optionally for one worker."""
        filters = coerce(PaymentFilters, filters or {})
        predicates = date_range_filters(filters)
        if filters.worker_id:
            predicates.append(where("worker_id", "==", filters.worker_id))
        return await self._live(Payment, predicates)

    async def get_sales(self, filters: Optional[Union[SaleFilters, dict[str, Any]]] = None) -> LiveQuery[Sale]:
        """Sales in a date range, optionally for one buyer."""
        filters = coerce(SaleFilters, filters or {})
        predicates = date_range_filters(filters)
        if filters.buyer_id:
            predicates.append(where("buyer_id", "==", filters.buyer_id))
        return await self._live(Sale, predicates)

    async def get_collections(
        self,
        buyer_id: Optional[str] = None,
        filters: Optional[Union[DateRangeFilter, dict[str, Any]]] = None,
    ) -> LiveQuery[Collection]:
        """Money collected, optionally from one buyer and in a date range."""
        filters = coerce(DateRangeFilter, filters or {})
        predicates = date_range_filters(filters)
        if buyer_id:
            predicates.append(where("buyer_id", "==", buyer_id))
        return await self._live(Collection, predicates)

    # =========================================================================
    # Summaries
    # =========================================================================

    async def _fetch(self, model: type[M], filters: Optional[list[FieldFilter]] = None) -> list[M]:
        tenant_id = self._resolver.tenant_id
        if tenant_id is None:
            return []
        snapshots = await self._store.query(
            model.COLLECTION,
            filters=[where("owner_id", "==", tenant_id), *(filters or [])],
            order_by=NEWEST_FIRST,
        )
        return [model.from_document(s.id, s.data) for s in snapshots]

    async def labor_cost_by_crop(
        self,
        filters: Optional[Union[DateRangeFilter, dict[str, Any]]] = None,
    ) -> dict[str, Decimal]:
        """
        Task payouts grouped by crop name.

        Tasks recorded without a crop are grouped under "unassigned".
        """
        filters = coerce(DateRangeFilter, filters or {})
        tasks = await self._fetch(Task, date_range_filters(filters))

        groups: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for task in tasks:
            groups[task.crop_name or UNASSIGNED_CROP] += task.payout
        return dict(groups)

    async def dashboard_summary(self) -> DashboardSummary:
        """
        Farm-wide totals.

        balance = income - (expenses + labor cost)
        """
        sales = await self._fetch(Sale)
        expenses = await self._fetch(Expense)
        tasks = await self._fetch(Task)

        summary = DashboardSummary(
            income=_sum(sales, "total"),
            expenses=_sum(expenses, "amount"),
            labor_cost=_sum(tasks, "payout"),
        )
        logger.debug("dashboard_summary", tenant_id=self._resolver.tenant_id, balance=str(summary.balance))
        return summary

    async def period_report(self, date_from: date, date_to: date) -> PeriodReport:
        """
        Payments, expenses and sales inside an inclusive date range, with totals.

        Raises:
            ValidationError: If date_to is before date_from
        """
        if date_to < date_from:
            raise ValidationError([ValidationIssue(
                field="date_to",
                issue_type="invalid_range",
                message="date_to cannot be before date_from",
            )])

        predicates = date_range_filters(DateRangeFilter(date_from=date_from, date_to=date_to))
        payments = await self._fetch(Payment, predicates)
        expenses = await self._fetch(Expense, predicates)
        sales = await self._fetch(Sale, predicates)

        return PeriodReport(
            date_from=date_from,
            date_to=date_to,
            payments=payments,
            expenses=expenses,
            sales=sales,
            total_paid=_sum(payments, "amount"),
            total_expenses=_sum(expenses, "amount"),
            total_income=_sum(sales, "total"),
        )
