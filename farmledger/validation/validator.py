"""
Input Validation

DESIGN DECISION: Validation happens in two distinct stages, both before
any storage call:

STAGE 1 - SCHEMA VALIDATION:
- Type checking, required fields, non-negative quantities and prices
- Unknown fields (such as an attempted balance or owner patch)
- Done by the pydantic draft/patch models

STAGE 2 - SEMANTIC VALIDATION:
- Absurd amount detection
- Dates too far in the future
- Harvest tasks without harvest lines, flat tasks without an amount
  or with harvest lines
- Sales without items

IMPORTANT: Validation NEVER silently fixes issues. Anything wrong is
raised as a ValidationError carrying every issue found.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from farmledger.config import AppSettings, get_settings
from farmledger.errors import ValidationError
from farmledger.models.ledger import (
    CollectionDraft,
    ExpenseDraft,
    ExpenseUpdate,
    PaymentDraft,
    SaleDraft,
    TaskDraft,
    TaskType,
)
from farmledger.models.validation import ValidationIssue, issues_from_pydantic


M = TypeVar("M", bound=BaseModel)


def coerce(model: type[M], payload: Union[M, dict[str, Any]]) -> M:
    """
    Stage 1: turn caller input into a model, or raise ValidationError.

    Accepts an already-built model (re-validated, so a model built with
    `model_construct` cannot skip checks) or a plain dict.
    """
    try:
        if isinstance(payload, model):
            return model.model_validate(payload.model_dump(exclude_unset=True))
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(issues_from_pydantic(e)) from e


class LedgerValidator:
    """
    Stage 2 checks for ledger drafts and expenses.

    Stage 1 is `coerce`; drafts reaching this class are already well-typed.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _check_amount(self, field: str, amount: Optional[Decimal], issues: list[ValidationIssue]) -> None:
        if amount is not None and amount > self._settings.max_entry_amount:
            issues.append(ValidationIssue(
                field=field,
                issue_type="suspicious_value",
                message=f"Amount {amount} exceeds the maximum of {self._settings.max_entry_amount}",
                suggested_fix="Check the amount for extra digits",
            ))

    def _check_date(self, entry_date: Optional[date], issues: list[ValidationIssue]) -> None:
        if entry_date is None:
            return
        max_future_date = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        if entry_date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({entry_date}) is too far in the future",
                suggested_fix="Please verify the date is correct",
            ))

    @staticmethod
    def _raise_if_any(issues: list[ValidationIssue]) -> None:
        if issues:
            raise ValidationError(issues)

    def validate_task(self, draft: TaskDraft) -> None:
        issues: list[ValidationIssue] = []
        if draft.task_type == TaskType.HARVEST:
            if not draft.harvest_details:
                issues.append(ValidationIssue(
                    field="harvest_details",
                    issue_type="missing",
                    message="A harvest task needs at least one harvest line",
                ))
        else:
            if draft.amount is None:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="A non-harvest task needs a payout amount",
                ))
            if draft.harvest_details:
                issues.append(ValidationIssue(
                    field="harvest_details",
                    issue_type="not_allowed",
                    message=f"A {draft.task_type.value} task is paid a flat amount and takes no harvest lines",
                    suggested_fix="Record it as a harvest task or drop the harvest lines",
                ))
        self._check_amount("amount", draft.amount, issues)
        self._check_date(draft.date, issues)
        self._raise_if_any(issues)

    def validate_total(self, field: str, total: Decimal) -> None:
        """Check a derived amount (task payout, sale total) against the sanity cap."""
        issues: list[ValidationIssue] = []
        self._check_amount(field, total, issues)
        self._raise_if_any(issues)

    def validate_payment(self, draft: PaymentDraft) -> None:
        issues: list[ValidationIssue] = []
        self._check_amount("amount", draft.amount, issues)
        self._check_date(draft.date, issues)
        self._raise_if_any(issues)

    def validate_sale(self, draft: SaleDraft) -> None:
        issues: list[ValidationIssue] = []
        if not draft.items:
            issues.append(ValidationIssue(
                field="items",
                issue_type="missing",
                message="A sale needs at least one item",
            ))
        self._check_date(draft.date, issues)
        self._raise_if_any(issues)

    def validate_collection(self, draft: CollectionDraft) -> None:
        issues: list[ValidationIssue] = []
        self._check_amount("amount", draft.amount, issues)
        self._check_date(draft.date, issues)
        self._raise_if_any(issues)

    def validate_expense(self, draft: Union[ExpenseDraft, ExpenseUpdate]) -> None:
        issues: list[ValidationIssue] = []
        self._check_amount("amount", draft.amount, issues)
        self._check_date(draft.date, issues)
        self._raise_if_any(issues)
