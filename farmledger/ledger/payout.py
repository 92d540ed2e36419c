"""
Payout and Sale Arithmetic

Pure functions, computed before a transaction starts. The transaction only
applies the resulting delta, so a retried transaction body never
recomputes money.
"""

from decimal import Decimal
from typing import Iterable, Optional

from farmledger.models.ledger import HarvestLine, SaleItem, TaskType


def compute_payout(
    task_type: TaskType,
    harvest_details: Optional[Iterable[HarvestLine]] = None,
    amount: Optional[Decimal] = None,
) -> Decimal:
    """
    What a worker earns for one task.

    Harvest tasks pay sum(quantity * unit_price) over their lines; every
    other task pays the flat amount.

    Raises:
        ValueError: If a line has a negative quantity or price, or a
            flat task has no amount
    """
    if task_type == TaskType.HARVEST:
        total = Decimal("0")
        for line in harvest_details or []:
            if line.quantity < 0 or line.unit_price < 0:
                raise ValueError(f"Harvest line '{line.quality}' has a negative quantity or price")
            total += line.subtotal
        return total

    if amount is None:
        raise ValueError(f"A {task_type.value} task needs a payout amount")
    if amount < 0:
        raise ValueError("Payout amount cannot be negative")
    return Decimal(amount)


def sale_total(items: Iterable[SaleItem]) -> Decimal:
    """Sum of quantity * unit_price over the sale's items."""
    return sum((item.subtotal for item in items), Decimal("0"))
