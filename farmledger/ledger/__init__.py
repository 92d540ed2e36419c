"""Ledger package: balance-affecting transactions and their arithmetic."""

from farmledger.ledger.payout import compute_payout, sale_total
from farmledger.ledger.service import LedgerService

__all__ = [
    "LedgerService",
    "compute_payout",
    "sale_total",
]
