"""
Ledger Models for Farm Ledger

A ledger entry is a record whose insertion or deletion always co-occurs
with a balance change on the entity it references:

- Task       -> worker balance  (+ payout)
- Payment    -> worker balance  (- amount)
- Sale       -> buyer balance   (+ total)
- Collection -> buyer balance   (- amount)

Expenses live here too but move no balance.

DESIGN DECISION: Callers submit *drafts*. A draft holds only what a person
enters (worker, date, quantities...). The stored entry adds what the system
derives: the payout or total, denormalized names, the tenant and the
creation timestamp. Entries are immutable once written; the only way to
change one is to delete it (which reverses its delta) and add a new one.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from farmledger.models.entities import (
    PatchModel,
    UpdateModel,
    StoredModel,
    Timestamp,
    utc_now,
)


# =============================================================================
# ENUMS
# =============================================================================

class TaskType(str, Enum):
    """
    Kinds of field work.

    Only HARVEST is paid per unit harvested; every other kind is paid a
    flat amount entered by the supervisor.
    """
    HARVEST = "harvest"
    PRUNING = "pruning"
    PLANTING = "planting"
    IRRIGATION = "irrigation"
    SPRAYING = "spraying"
    OTHER = "other"


# =============================================================================
# LINE ITEMS
# =============================================================================

class HarvestLine(BaseModel):
    """One quality grade of a harvest: quantity picked at a unit rate."""
    model_config = ConfigDict(str_strip_whitespace=True)

    quality: str = Field(..., min_length=1, max_length=50)
    quantity: Decimal = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0)

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price


class SaleItem(BaseModel):
    """One line of a sale."""
    model_config = ConfigDict(str_strip_whitespace=True)

    quality: str = Field(..., min_length=1, max_length=50)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., gt=0)

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price


# =============================================================================
# DRAFTS (caller input)
# =============================================================================

class TaskDraft(PatchModel):
    """A task as entered. `amount` is only used for non-harvest tasks."""

    worker_id: str = Field(..., min_length=1)
    date: dt.date
    task_type: TaskType
    amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Flat payout for non-harvest tasks"
    )
    crop_id: Optional[str] = None
    harvest_details: list[HarvestLine] = Field(default_factory=list)


class PaymentDraft(PatchModel):
    worker_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    date: dt.date


class SaleDraft(PatchModel):
    buyer_id: str = Field(..., min_length=1)
    date: dt.date
    items: list[SaleItem] = Field(default_factory=list)


class CollectionDraft(PatchModel):
    buyer_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    date: dt.date


class ExpenseDraft(PatchModel):
    category: str = Field(..., min_length=1, max_length=50)
    description: str = Field(default="", max_length=500)
    amount: Decimal = Field(..., gt=0)
    date: dt.date


class ExpenseUpdate(UpdateModel):
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    date: Optional[dt.date] = None


# =============================================================================
# STORED ENTRIES
# =============================================================================

class LedgerEntry(StoredModel):
    """Fields shared by every stored entry."""

    date: dt.date
    owner_id: str = Field(..., min_length=1)
    created_at: Timestamp = Field(
        default_factory=utc_now,
        description="Tie-break for entries on the same date"
    )


class Task(LedgerEntry):
    COLLECTION: ClassVar[str] = "tasks"

    worker_id: str
    worker_name: str = ""
    task_type: TaskType
    payout: Decimal = Field(..., ge=0)
    crop_id: Optional[str] = None
    crop_name: Optional[str] = None
    harvest_details: Optional[list[HarvestLine]] = None


class Payment(LedgerEntry):
    COLLECTION: ClassVar[str] = "payments"

    worker_id: str
    worker_name: str = ""
    amount: Decimal = Field(..., gt=0)


class Sale(LedgerEntry):
    COLLECTION: ClassVar[str] = "sales"

    buyer_id: str
    buyer_name: str = ""
    items: list[SaleItem]
    total: Decimal = Field(..., ge=0)


class Collection(LedgerEntry):
    COLLECTION: ClassVar[str] = "collections"

    buyer_id: str
    buyer_name: str = ""
    amount: Decimal = Field(..., gt=0)


class Expense(LedgerEntry):
    COLLECTION: ClassVar[str] = "expenses"

    category: str
    description: str = ""
    amount: Decimal = Field(..., gt=0)


# =============================================================================
# FILTERS
# =============================================================================

class DateRangeFilter(PatchModel):
    """Inclusive date range; either bound may be omitted."""

    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None

    @model_validator(mode="after")
    def validate_range(self) -> "DateRangeFilter":
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self


class TaskFilters(DateRangeFilter):
    worker_id: Optional[str] = None
    crop_id: Optional[str] = None


class PaymentFilters(DateRangeFilter):
    worker_id: Optional[str] = None


class SaleFilters(DateRangeFilter):
    buyer_id: Optional[str] = None


class ExpenseFilters(DateRangeFilter):
    category: Optional[str] = None


# =============================================================================
# REPORTING
# =============================================================================

class DashboardSummary(BaseModel):
    """Farm-wide totals: income against expenses plus labor."""

    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    labor_cost: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.income - (self.expenses + self.labor_cost)


class PeriodReport(BaseModel):
    """The entries and totals a report renders for one date range."""

    date_from: dt.date
    date_to: dt.date
    payments: list[Payment] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    sales: list[Sale] = Field(default_factory=list)
    total_paid: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    total_income: Decimal = Decimal("0")
