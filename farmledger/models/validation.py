"""
Validation Models

Issues found while checking input before it reaches storage.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'future_date')"
    )
    message: str = Field(
        ...,
        description="Description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


def issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    """Flatten a pydantic error into ValidationIssue entries."""
    issues = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "input"
        issues.append(ValidationIssue(
            field=location,
            issue_type=detail.get("type", "invalid_value"),
            message=detail.get("msg", "Invalid value"),
        ))
    return issues
