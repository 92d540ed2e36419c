"""
Tests for Farm Ledger models

Test strategy:
1. Unit tests for individual components (models, payout, validators)
2. Integration tests for flows against the in-memory store
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from farmledger.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    BuyerUpdate,
    CropCreate,
    CropUpdate,
    DashboardSummary,
    DateRangeFilter,
    HarvestLine,
    Payment,
    PaymentDraft,
    Role,
    SaleItem,
    SupervisorCreate,
    Task,
    TaskType,
    UserProfile,
    Worker,
    WorkerCreate,
    WorkerUpdate,
)


class TestEntityModels:
    """Tests for workers, buyers and crops."""

    def test_worker_defaults(self):
        """A new worker is active with a zero balance."""
        worker = Worker(name="Ana", owner_id="owner-1")
        assert worker.accrued_balance == Decimal("0")
        assert worker.status.value == "active"

    def test_worker_display_name(self):
        worker = Worker(name="Ana", surname="Rojas", owner_id="owner-1")
        assert worker.display_name == "Ana Rojas"

    def test_worker_create_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        draft = WorkerCreate(name="  Ana  ")
        assert draft.name == "Ana"

    def test_worker_create_rejects_owner(self):
        """The owner always comes from the resolved tenant."""
        with pytest.raises(ValueError):
            WorkerCreate(name="Ana", owner_id="someone-else")

    def test_worker_update_rejects_balance(self):
        """Balances can only move inside ledger transactions."""
        with pytest.raises(ValueError):
            WorkerUpdate(accrued_balance=Decimal("1000"))

    def test_buyer_update_rejects_status(self):
        with pytest.raises(ValueError):
            BuyerUpdate(status="archived")

    def test_update_changes_only_set_fields(self):
        patch = WorkerUpdate(surname="Diaz")
        assert patch.changes() == {"surname": "Diaz"}

    def test_update_rejects_explicit_null(self):
        """Omitting a field keeps it; null would blank a required stored field."""
        with pytest.raises(ValueError):
            WorkerUpdate(name=None)
        with pytest.raises(ValueError):
            CropUpdate(area=None)

    def test_crop_requires_positive_area(self):
        with pytest.raises(ValueError):
            CropCreate(name="North", area=Decimal("0"))

    def test_document_round_trip_keeps_id_outside_body(self):
        worker = Worker(id="w1", name="Ana", owner_id="owner-1", accrued_balance=Decimal("12.50"))
        doc = worker.to_document()
        assert "id" not in doc
        assert doc["accrued_balance"] == "12.50"
        assert Worker.from_document("w1", doc) == worker


class TestProfileModels:
    """Tests for user profiles and supervisors."""

    def test_owner_tenant_is_own_id(self):
        profile = UserProfile(id="u1", role=Role.OWNER)
        assert profile.tenant_id == "u1"

    def test_member_tenant_is_owner_id(self):
        profile = UserProfile(id="u2", role=Role.MEMBER, owner_id="u1")
        assert profile.tenant_id == "u1"

    def test_supervisor_email_lowercased(self):
        supervisor = SupervisorCreate(name="Luis", email="  Luis@Farm.TEST ")
        assert supervisor.email == "luis@farm.test"

    def test_supervisor_rejects_bad_email(self):
        with pytest.raises(ValueError):
            SupervisorCreate(name="Luis", email="not-an-email")


class TestLedgerModels:
    """Tests for drafts and stored ledger entries."""

    def test_harvest_line_subtotal(self):
        line = HarvestLine(quality="first", quantity=Decimal("10"), unit_price=Decimal("100"))
        assert line.subtotal == Decimal("1000")

    def test_harvest_line_rejects_negative_quantity(self):
        with pytest.raises(ValueError):
            HarvestLine(quality="first", quantity=Decimal("-1"), unit_price=Decimal("100"))

    def test_sale_item_rejects_zero_price(self):
        with pytest.raises(ValueError):
            SaleItem(quality="first", quantity=Decimal("1"), unit_price=Decimal("0"))

    def test_payment_draft_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            PaymentDraft(worker_id="w1", amount=Decimal("0"), date=date(2024, 3, 1))

    def test_task_document_serializes_dates_and_money_as_strings(self):
        task = Task(
            date=date(2024, 3, 1),
            owner_id="owner-1",
            created_at=datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
            worker_id="w1",
            task_type=TaskType.PRUNING,
            payout=Decimal("500"),
        )
        doc = task.to_document()
        assert doc["date"] == "2024-03-01"
        assert doc["payout"] == "500"
        assert doc["created_at"] == "2024-03-01T09:30:00.000000+00:00"

    def test_created_at_strings_sort_chronologically(self):
        """Fixed-width timestamps compare correctly as strings."""
        early = Payment(
            date=date(2024, 3, 1), owner_id="o", worker_id="w", amount=Decimal("1"),
            created_at=datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc),
        )
        late = Payment(
            date=date(2024, 3, 1), owner_id="o", worker_id="w", amount=Decimal("1"),
            created_at=datetime(2024, 3, 1, 9, 0, 0, 500000, tzinfo=timezone.utc),
        )
        assert early.to_document()["created_at"] < late.to_document()["created_at"]

    def test_date_range_rejects_inverted_range(self):
        with pytest.raises(ValueError):
            DateRangeFilter(date_from=date(2024, 3, 10), date_to=date(2024, 3, 1))

    def test_dashboard_balance(self):
        summary = DashboardSummary(
            income=Decimal("10000"),
            expenses=Decimal("2500"),
            labor_cost=Decimal("4000"),
        )
        assert summary.balance == Decimal("3500")


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            description="Created workers/w1",
        )
        assert event.event_type == AuditEventType.ENTITY_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_ledger_entry_event_details(self):
        event = AuditEventBuilder.ledger_entry_recorded(
            collection="payments",
            entry_id="p1",
            tenant_id="owner-1",
            target_collection="workers",
            target_id="w1",
            delta=Decimal("-500"),
            new_balance=Decimal("1500"),
        )
        assert event.entity_type == "payments"
        assert event.details["delta"] == "-500"
        assert event.details["new_balance"] == "1500"

    def test_transaction_failed_is_warning(self):
        event = AuditEventBuilder.transaction_failed("add_payment", "owner-1", RuntimeError("boom"))
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "RuntimeError"
        assert event.error_message == "boom"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.entity_archived("workers", "w1", "owner-1")
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "entity_archived"
        assert row[6] == "w1"
