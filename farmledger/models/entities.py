"""
Entity Models for Farm Ledger

Workers, buyers and crops are the long-lived entities a tenant manages.
They are never hard-deleted: archiving flips `status` so that historical
ledger entries keep resolving the names they reference.

DESIGN DECISION: Each entity has three shapes:
1. The stored model (what a document holds, balance included)
2. A create model (what a caller may supply on insert)
3. An update model (what a caller may patch)

Create and update models forbid unknown fields and have no balance,
status or owner fields. A payload that tries to set `accrued_balance`
or `owner_id` fails validation before any I/O happens, so balances can
only move inside ledger transactions.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, ClassVar, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


# Fixed-width so that string order in the store equals time order
Timestamp = Annotated[
    datetime,
    PlainSerializer(_format_timestamp, return_type=str, when_used="json"),
]


# =============================================================================
# ENUMS
# =============================================================================

class EntityStatus(str, Enum):
    """Lifecycle status for workers, buyers and crops."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class Role(str, Enum):
    """
    Principal roles.

    An owner's tenant is their own id. A member (supervisor) writes
    into their owner's tenant.
    """
    OWNER = "owner"
    MEMBER = "member"


# =============================================================================
# BASE
# =============================================================================

class StoredModel(BaseModel):
    """
    Base for anything persisted as a document.

    The document id lives outside the document body, so `id` is excluded
    when serializing and re-attached when loading.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Document id (assigned by the store)"
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to a storable document body."""
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        """Rebuild a model from a stored document."""
        return cls.model_validate({**data, "id": doc_id})


class PatchModel(BaseModel):
    """Base for partial updates. Unknown fields are rejected."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller actually set."""
        return self.model_dump(mode="json", exclude_unset=True)


class UpdateModel(PatchModel):
    """
    Base for patches of stored documents.

    Omitting a field leaves it unchanged. An explicit null is rejected:
    every patchable field is required on the stored model.
    """

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Field cannot be cleared; omit it to leave it unchanged")
        return v


# =============================================================================
# WORKERS
# =============================================================================

class Worker(StoredModel):
    """A farm worker with an accrued (owed-to-worker) balance."""

    COLLECTION: ClassVar[str] = "workers"
    BALANCE_FIELD: ClassVar[Optional[str]] = "accrued_balance"

    name: str = Field(..., min_length=1, max_length=100)
    surname: str = Field(default="", max_length=100)
    accrued_balance: Decimal = Field(
        default=Decimal("0"),
        description="Task payouts minus payments. Negative when overpaid."
    )
    status: EntityStatus = EntityStatus.ACTIVE
    owner_id: str = Field(..., min_length=1)

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.surname}".strip()


class WorkerCreate(PatchModel):
    name: str = Field(..., min_length=1, max_length=100)
    surname: str = Field(default="", max_length=100)


class WorkerUpdate(UpdateModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    surname: Optional[str] = Field(default=None, max_length=100)


# =============================================================================
# BUYERS
# =============================================================================

class Buyer(StoredModel):
    """A buyer of produce with an owed balance."""

    COLLECTION: ClassVar[str] = "buyers"
    BALANCE_FIELD: ClassVar[Optional[str]] = "owed_balance"

    name: str = Field(..., min_length=1, max_length=100)
    owed_balance: Decimal = Field(
        default=Decimal("0"),
        description="Sale totals minus collections"
    )
    status: EntityStatus = EntityStatus.ACTIVE
    owner_id: str = Field(..., min_length=1)

    @property
    def display_name(self) -> str:
        return self.name


class BuyerCreate(PatchModel):
    name: str = Field(..., min_length=1, max_length=100)


class BuyerUpdate(UpdateModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)


# =============================================================================
# CROPS
# =============================================================================

class Crop(StoredModel):
    """A crop/field. Has no balance; tasks reference it for reporting."""

    COLLECTION: ClassVar[str] = "crops"
    BALANCE_FIELD: ClassVar[Optional[str]] = None

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    area: Decimal = Field(..., gt=0, description="Planted area")
    status: EntityStatus = EntityStatus.ACTIVE
    owner_id: str = Field(..., min_length=1)

    @property
    def display_name(self) -> str:
        return self.name


class CropCreate(PatchModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    area: Decimal = Field(..., gt=0)


class CropUpdate(UpdateModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    area: Optional[Decimal] = Field(default=None, gt=0)


# =============================================================================
# PRINCIPALS, PROFILES, SUPERVISORS
# =============================================================================

class Principal(BaseModel):
    """An authenticated identity as reported by the identity provider."""
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1)
    email: Optional[str] = None


class UserProfile(StoredModel):
    """
    Profile document stored under `users/{uid}`.

    Written once at registration; read reactively by the tenancy resolver.
    """

    COLLECTION: ClassVar[str] = "users"

    email: Optional[str] = None
    role: Role = Role.OWNER
    owner_id: Optional[str] = Field(
        default=None,
        description="The owner's uid, for members"
    )
    created_at: Timestamp = Field(default_factory=utc_now)

    @property
    def tenant_id(self) -> Optional[str]:
        if self.role == Role.MEMBER:
            return self.owner_id
        return self.id


def _normalize_email(value: str) -> str:
    return value.strip().lower()


class Supervisor(StoredModel):
    """A supervisor registered by an owner; signs up later as a member."""

    COLLECTION: ClassVar[str] = "supervisors"

    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)
    owner_id: str = Field(..., min_length=1)
    created_at: Timestamp = Field(default_factory=utc_now)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)


class SupervisorCreate(PatchModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=200, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = Field(default=None, max_length=30)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return _normalize_email(v)

