"""
Error Taxonomy

Every core operation raises one of these. The core never formats
user-facing text; UI collaborators translate these into messages.

- UnauthenticatedError: no resolvable tenant (writes refused)
- EntityNotFoundError: transaction target or ledger record absent
- ValidationError: malformed input, rejected before any I/O
- TransientStoreError: conflict or network failure after retries
"""

from typing import Optional

from farmledger.models.validation import ValidationIssue


class FarmLedgerError(Exception):
    """Base exception for all core errors."""
    pass


class UnauthenticatedError(FarmLedgerError):
    """No authenticated principal, or its tenant is not resolved yet."""
    pass


class EntityNotFoundError(FarmLedgerError):
    """A referenced document does not exist (or is not usable) at commit time."""

    def __init__(self, collection: str, entity_id: str, reason: Optional[str] = None):
        self.collection = collection
        self.entity_id = entity_id
        self.reason = reason
        message = f"{collection}/{entity_id} not found"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ValidationError(FarmLedgerError):
    """Input rejected before any storage call."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
        super().__init__(f"Invalid input: {summary}")


class TransientStoreError(FarmLedgerError):
    """Storage backend unavailable, timed out, or kept conflicting."""
    pass


class TransactionConflictError(TransientStoreError):
    """A document read inside a transaction changed before commit."""
    pass
