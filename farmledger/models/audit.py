"""
Audit Models for Farm Ledger

Every change to an entity or a ledger entry is logged for audit purposes.
This provides:
1. Traceability of who moved which balance and when
2. Debugging information when a transaction fails
3. A way to reconstruct the history of a balance

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from farmledger.models.entities import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Tenancy
    TENANT_RESOLVED = "tenant_resolved"
    PROFILE_REGISTERED = "profile_registered"

    # Entities
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_ARCHIVED = "entity_archived"

    # Ledger
    LEDGER_ENTRY_RECORDED = "ledger_entry_recorded"
    LEDGER_ENTRY_DELETED = "ledger_entry_deleted"
    TRANSACTION_FAILED = "transaction_failed"

    # Plain records
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    SUPERVISOR_ADDED = "supervisor_added"
    SUPERVISOR_REMOVED = "supervisor_removed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which tenant and document is this about?
    tenant_id: Optional[str] = Field(
        default=None,
        description="Tenant the change belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection of the document (e.g., 'workers', 'tasks')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document id the event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="What happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "tenant_id": self.tenant_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, tenant_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.tenant_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entity_created("workers", worker_id, tenant_id, "Ana")
        event = AuditEventBuilder.ledger_entry_recorded("payments", ...)
    """

    @staticmethod
    def tenant_resolved(
        principal_id: Optional[str],
        tenant_id: Optional[str],
        role: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TENANT_RESOLVED,
            severity=AuditSeverity.DEBUG,
            tenant_id=tenant_id,
            entity_type="users",
            entity_id=principal_id,
            description=f"Tenant resolved: {tenant_id or 'none'}",
            details={"role": role},
        )

    @staticmethod
    def profile_registered(
        principal_id: str,
        role: str,
        tenant_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_REGISTERED,
            tenant_id=tenant_id,
            entity_type="users",
            entity_id=principal_id,
            description=f"Profile registered as {role}",
            details={"role": role},
        )

    @staticmethod
    def entity_created(
        collection: str,
        entity_id: str,
        tenant_id: str,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            tenant_id=tenant_id,
            entity_type=collection,
            entity_id=entity_id,
            description=f"Created {collection}/{entity_id}: {name}",
            details={"name": name},
        )

    @staticmethod
    def entity_updated(
        collection: str,
        entity_id: str,
        tenant_id: str,
        fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_UPDATED,
            tenant_id=tenant_id,
            entity_type=collection,
            entity_id=entity_id,
            description=f"Updated {collection}/{entity_id}",
            details={"fields": fields},
        )

    @staticmethod
    def entity_archived(
        collection: str,
        entity_id: str,
        tenant_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_ARCHIVED,
            tenant_id=tenant_id,
            entity_type=collection,
            entity_id=entity_id,
            description=f"Archived {collection}/{entity_id}",
        )

    @staticmethod
    def ledger_entry_recorded(
        collection: str,
        entry_id: str,
        tenant_id: str,
        target_collection: str,
        target_id: str,
        delta: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_ENTRY_RECORDED,
            tenant_id=tenant_id,
            entity_type=collection,
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Recorded {collection}/{entry_id} against {target_collection}/{target_id}",
            details={
                "target": f"{target_collection}/{target_id}",
                "delta": str(delta),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def ledger_entry_deleted(
        collection: str,
        entry_id: str,
        tenant_id: str,
        target_collection: str,
        target_id: str,
        delta: Decimal,
        new_balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_ENTRY_DELETED,
            tenant_id=tenant_id,
            entity_type=collection,
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Deleted {collection}/{entry_id}, reversed on {target_collection}/{target_id}",
            details={
                "target": f"{target_collection}/{target_id}",
                "delta": str(delta),
                "new_balance": str(new_balance),
            },
        )

    @staticmethod
    def transaction_failed(
        operation: str,
        tenant_id: Optional[str],
        error: Exception,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_FAILED,
            severity=AuditSeverity.WARNING,
            tenant_id=tenant_id,
            correlation_id=correlation_id,
            description=f"Transaction failed: {operation}",
            error_code=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
        )

    @staticmethod
    def record_changed(
        event_type: AuditEventType,
        collection: str,
        record_id: str,
        tenant_id: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            tenant_id=tenant_id,
            entity_type=collection,
            entity_id=record_id,
            description=f"{event_type.value.replace('_', ' ').capitalize()}: {collection}/{record_id}",
            details=details or {},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
