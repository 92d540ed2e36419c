"""Validation package."""

from farmledger.validation.validator import LedgerValidator, coerce

__all__ = ["LedgerValidator", "coerce"]
