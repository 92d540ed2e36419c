"""
Audit Logger

DESIGN DECISION: Every change to an entity or ledger entry is logged.
This provides:
1. Traceability of every balance movement
2. Debugging capability when a transaction fails
3. Owners can see who recorded what

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a committed ledger write is never undone
  because its audit record could not be stored)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from farmledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from farmledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and owner visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("farmledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_tenant_resolved(
        self,
        principal_id: Optional[str],
        tenant_id: Optional[str],
        role: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.tenant_resolved(principal_id, tenant_id, role))

    async def log_profile_registered(
        self,
        principal_id: str,
        role: str,
        tenant_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.profile_registered(principal_id, role, tenant_id))

    async def log_entity_created(
        self,
        collection: str,
        entity_id: str,
        tenant_id: str,
        name: str,
    ) -> None:
        await self.log(AuditEventBuilder.entity_created(collection, entity_id, tenant_id, name))

    async def log_entity_updated(
        self,
        collection: str,
        entity_id: str,
        tenant_id: str,
        fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.entity_updated(collection, entity_id, tenant_id, fields))

    async def log_entity_archived(
        self,
        collection: str,
        entity_id: str,
        tenant_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.entity_archived(collection, entity_id, tenant_id))

    async def log_ledger_entry_recorded(
        self,
        collection: str,
        entry_id: str,
        tenant_id: str,
        target_collection: str,
        target_id: str,
        delta: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed ledger insert and the balance it produced."""
        event = AuditEventBuilder.ledger_entry_recorded(
            collection=collection,
            entry_id=entry_id,
            tenant_id=tenant_id,
            target_collection=target_collection,
            target_id=target_id,
            delta=delta,
            new_balance=new_balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_ledger_entry_deleted(
        self,
        collection: str,
        entry_id: str,
        tenant_id: str,
        target_collection: str,
        target_id: str,
        delta: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed ledger delete and the reversed balance."""
        event = AuditEventBuilder.ledger_entry_deleted(
            collection=collection,
            entry_id=entry_id,
            tenant_id=tenant_id,
            target_collection=target_collection,
            target_id=target_id,
            delta=delta,
            new_balance=new_balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_failed(
        self,
        operation: str,
        tenant_id: Optional[str],
        error: Exception,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_failed(operation, tenant_id, error, correlation_id))

    async def log_record_changed(
        self,
        event_type: AuditEventType,
        collection: str,
        record_id: str,
        tenant_id: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a change to a record that moves no balance (expenses, supervisors)."""
        await self.log(AuditEventBuilder.record_changed(event_type, collection, record_id, tenant_id, details))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., recording a day's harvest)
    and pass it through all subsequent operations.
    """
    return uuid4()
