"""Tests for payout arithmetic and pre-I/O validation."""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from farmledger.errors import ValidationError
from farmledger.ledger import compute_payout, sale_total
from farmledger.models import HarvestLine, SaleDraft, SaleItem, TaskDraft, TaskType
from farmledger.validation import LedgerValidator, coerce

from conftest import make_settings


class TestComputePayout:
    """Payout is deterministic and computed before any transaction."""

    def test_harvest_sums_lines(self):
        lines = [
            HarvestLine(quality="first", quantity=Decimal("10"), unit_price=Decimal("100")),
            HarvestLine(quality="second", quantity=Decimal("5"), unit_price=Decimal("200")),
        ]
        assert compute_payout(TaskType.HARVEST, lines) == Decimal("2000")

    def test_harvest_ignores_flat_amount(self):
        lines = [HarvestLine(quality="first", quantity=Decimal("2"), unit_price=Decimal("50"))]
        assert compute_payout(TaskType.HARVEST, lines, Decimal("999")) == Decimal("100")

    def test_flat_task_pays_amount(self):
        assert compute_payout(TaskType.PRUNING, [], Decimal("500")) == Decimal("500")

    def test_flat_task_without_amount_rejected(self):
        with pytest.raises(ValueError):
            compute_payout(TaskType.IRRIGATION)

    def test_negative_line_rejected(self):
        """Lines that bypassed model validation are still caught."""
        line = HarvestLine.model_construct(
            quality="first", quantity=Decimal("-1"), unit_price=Decimal("100")
        )
        with pytest.raises(ValueError):
            compute_payout(TaskType.HARVEST, [line])

    def test_decimal_precision_is_kept(self):
        lines = [HarvestLine(quality="first", quantity=Decimal("0.1"), unit_price=Decimal("0.2"))] * 3
        assert compute_payout(TaskType.HARVEST, lines) == Decimal("0.06")

    def test_sale_total(self):
        items = [
            SaleItem(quality="first", quantity=Decimal("3"), unit_price=Decimal("1500")),
            SaleItem(quality="second", quantity=Decimal("2"), unit_price=Decimal("800")),
        ]
        assert sale_total(items) == Decimal("6100")


class TestLedgerValidator:
    """Semantic checks run after schema validation, before any storage call."""

    @pytest.fixture
    def validator(self):
        return LedgerValidator(make_settings(max_entry_amount=Decimal("10000")))

    def test_harvest_without_lines(self, validator):
        draft = TaskDraft(worker_id="w1", date=date(2024, 3, 1), task_type=TaskType.HARVEST)
        with pytest.raises(ValidationError) as exc:
            validator.validate_task(draft)
        assert exc.value.issues[0].field == "harvest_details"

    def test_flat_task_without_amount(self, validator):
        draft = TaskDraft(worker_id="w1", date=date(2024, 3, 1), task_type=TaskType.OTHER)
        with pytest.raises(ValidationError) as exc:
            validator.validate_task(draft)
        assert exc.value.issues[0].field == "amount"

    def test_flat_task_with_harvest_lines(self, validator):
        """Lines on a flat task would never count toward its payout."""
        draft = TaskDraft(
            worker_id="w1",
            date=date(2024, 3, 1),
            task_type=TaskType.PRUNING,
            amount=Decimal("500"),
            harvest_details=[HarvestLine(quality="first", quantity=Decimal("10"), unit_price=Decimal("100"))],
        )
        with pytest.raises(ValidationError) as exc:
            validator.validate_task(draft)
        assert [issue.field for issue in exc.value.issues] == ["harvest_details"]
        assert exc.value.issues[0].issue_type == "not_allowed"

    def test_far_future_date(self, validator):
        draft = TaskDraft(
            worker_id="w1",
            date=date.today() + timedelta(days=30),
            task_type=TaskType.PRUNING,
            amount=Decimal("100"),
        )
        with pytest.raises(ValidationError) as exc:
            validator.validate_task(draft)
        assert exc.value.issues[0].issue_type == "future_date"

    def test_derived_total_over_cap(self, validator):
        with pytest.raises(ValidationError):
            validator.validate_total("payout", Decimal("10001"))

    def test_sale_without_items(self, validator):
        draft = SaleDraft(buyer_id="b1", date=date(2024, 3, 1))
        with pytest.raises(ValidationError):
            validator.validate_sale(draft)

    def test_valid_task_passes(self, validator):
        draft = TaskDraft(
            worker_id="w1",
            date=date(2024, 3, 1),
            task_type=TaskType.PRUNING,
            amount=Decimal("500"),
        )
        validator.validate_task(draft)


class TestCoerce:
    """Schema errors become core ValidationErrors."""

    def test_dict_payload(self):
        draft = coerce(TaskDraft, {
            "worker_id": "w1",
            "date": "2024-03-01",
            "task_type": "pruning",
            "amount": "500",
        })
        assert draft.amount == Decimal("500")
        assert draft.date == date(2024, 3, 1)

    def test_unknown_field_reported(self):
        with pytest.raises(ValidationError) as exc:
            coerce(TaskDraft, {
                "worker_id": "w1",
                "date": "2024-03-01",
                "task_type": "pruning",
                "amount": "500",
                "owner_id": "someone-else",
            })
        assert any(issue.field == "owner_id" for issue in exc.value.issues)

    def test_model_payload_is_revalidated(self):
        draft = TaskDraft.model_construct(worker_id="", date=date(2024, 3, 1), task_type=TaskType.OTHER)
        with pytest.raises(ValidationError):
            coerce(TaskDraft, draft)
