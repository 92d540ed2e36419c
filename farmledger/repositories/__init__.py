"""Repositories package."""

from farmledger.repositories.base import EntityRepository, TenantScopedRepository
from farmledger.repositories.entities import (
    BuyerRepository,
    CropRepository,
    WorkerRepository,
)
from farmledger.repositories.records import (
    ExpenseRepository,
    SupervisorRepository,
)

__all__ = [
    "EntityRepository",
    "TenantScopedRepository",
    "BuyerRepository",
    "CropRepository",
    "WorkerRepository",
    "ExpenseRepository",
    "SupervisorRepository",
]
