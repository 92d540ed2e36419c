"""
Data Models Package

This package contains all Pydantic models used in Farm Ledger.
All data flowing through the system must conform to these schemas.
"""

from farmledger.models.entities import (
    Buyer,
    BuyerCreate,
    BuyerUpdate,
    Crop,
    CropCreate,
    CropUpdate,
    EntityStatus,
    Principal,
    Role,
    Supervisor,
    SupervisorCreate,
    UserProfile,
    Worker,
    WorkerCreate,
    WorkerUpdate,
    utc_now,
)
from farmledger.models.ledger import (
    Collection,
    CollectionDraft,
    DashboardSummary,
    DateRangeFilter,
    Expense,
    ExpenseDraft,
    ExpenseFilters,
    ExpenseUpdate,
    HarvestLine,
    Payment,
    PaymentDraft,
    PaymentFilters,
    PeriodReport,
    Sale,
    SaleDraft,
    SaleFilters,
    SaleItem,
    Task,
    TaskDraft,
    TaskFilters,
    TaskType,
)
from farmledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from farmledger.models.validation import ValidationIssue

__all__ = [
    # Entity models
    "Buyer",
    "BuyerCreate",
    "BuyerUpdate",
    "Crop",
    "CropCreate",
    "CropUpdate",
    "EntityStatus",
    "Principal",
    "Role",
    "Supervisor",
    "SupervisorCreate",
    "UserProfile",
    "Worker",
    "WorkerCreate",
    "WorkerUpdate",
    "utc_now",
    # Ledger models
    "Collection",
    "CollectionDraft",
    "DashboardSummary",
    "DateRangeFilter",
    "Expense",
    "ExpenseDraft",
    "ExpenseFilters",
    "ExpenseUpdate",
    "HarvestLine",
    "Payment",
    "PaymentDraft",
    "PaymentFilters",
    "PeriodReport",
    "Sale",
    "SaleDraft",
    "SaleFilters",
    "SaleItem",
    "Task",
    "TaskDraft",
    "TaskFilters",
    "TaskType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation
    "ValidationIssue",
]
