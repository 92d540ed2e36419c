"""Tests for the audit logger, the Sheets row format and settings."""

import pytest
from decimal import Decimal
from uuid import uuid4

from farmledger.audit import AuditLogger, create_correlation_id
from farmledger.config import AppSettings
from farmledger.models import AuditEventBuilder, AuditEventType, AuditSeverity
from farmledger.services.storage import InMemoryAuditStorage
from farmledger.services.storage.google_sheets import AUDIT_COLUMNS, row_to_event


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise ConnectionError("sheet unreachable")


@pytest.mark.asyncio
class TestAuditLogger:
    """The logger persists when it can and never raises when it can't."""

    async def test_persists_event(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)

        await logger.log_entity_created("workers", "w1", "owner-1", "Ana")

        assert len(storage.events) == 1
        assert storage.events[0].event_type == AuditEventType.ENTITY_CREATED

    async def test_local_only(self):
        assert await AuditLogger().log(AuditEventBuilder.entity_archived("workers", "w1", "o")) is True

    async def test_storage_failure_is_swallowed(self):
        logger = AuditLogger(FailingAuditStorage())
        ok = await logger.log(AuditEventBuilder.entity_archived("workers", "w1", "o"))
        assert ok is False

    async def test_correlation_id_links_events(self):
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await logger.log_ledger_entry_recorded(
            "tasks", "t1", "o", "workers", "w1", Decimal("100"), Decimal("100"), correlation_id
        )
        await logger.log_ledger_entry_recorded(
            "payments", "p1", "o", "workers", "w1", Decimal("-40"), Decimal("60"), correlation_id
        )
        await logger.log_entity_archived("workers", "w1", "o")

        related = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.entity_id for e in related] == ["t1", "p1"]

    async def test_record_changed(self):
        storage = InMemoryAuditStorage()
        await AuditLogger(storage).log_record_changed(
            AuditEventType.EXPENSE_DELETED, "expenses", "e1", "o", {"amount": "50"}
        )
        assert storage.events[0].description == "Expense deleted: expenses/e1"


class TestSheetsRows:
    """Audit events round-trip through the spreadsheet row layout."""

    def test_row_matches_columns(self):
        event = AuditEventBuilder.transaction_failed("add_task", "o", ValueError("bad"), uuid4())
        row = event.to_sheets_row()
        assert len(row) == len(AUDIT_COLUMNS)

        parsed = row_to_event(row)
        assert parsed.event_id == event.event_id
        assert parsed.severity == AuditSeverity.WARNING
        assert parsed.correlation_id == event.correlation_id
        assert parsed.details == {"operation": "add_task"}
        assert parsed.error_message == "bad"


class TestSettings:
    """Settings come from FARMLEDGER_* environment variables."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("FARMLEDGER_STORAGE_BACKEND", raising=False)
        settings = AppSettings(_env_file=None)
        assert settings.storage_backend == "memory"
        assert settings.transaction_max_attempts == 5
        assert settings.max_entry_amount == Decimal("100000000")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("FARMLEDGER_TRANSACTION_MAX_ATTEMPTS", "9")
        monkeypatch.setenv("FARMLEDGER_STORAGE_BACKEND", "firestore")
        settings = AppSettings(_env_file=None)
        assert settings.transaction_max_attempts == 9
        assert settings.storage_backend == "firestore"

    def test_rejects_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("FARMLEDGER_STORAGE_BACKEND", "postgres")
        with pytest.raises(ValueError):
            AppSettings(_env_file=None)
