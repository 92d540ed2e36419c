"""
Entity Repositories

CRUD over the long-lived, tenant-scoped entities (workers, buyers, crops).

DESIGN DECISION: Repositories never touch balances.
- `create` stores a zero balance and `status=active`
- `update` accepts only the entity's patch model, which has no balance,
  status or owner field (extra fields are rejected before any I/O)
- `archive` flips status; documents are never hard-deleted so that old
  ledger entries can still resolve the names they reference

Every balance movement goes through the LedgerService instead.
"""

from typing import Any, Generic, Optional, TypeVar, Union

import structlog

from farmledger.audit import AuditLogger
from farmledger.config import AppSettings, get_settings
from farmledger.errors import EntityNotFoundError
from farmledger.models.entities import EntityStatus, PatchModel, StoredModel
from farmledger.queries.live import LiveQuery
from farmledger.services.storage import (
    DocumentSnapshot,
    DocumentStore,
    OrderBy,
    bounded,
    where,
)
from farmledger.tenancy import TenancyResolver
from farmledger.validation import coerce


E = TypeVar("E", bound=StoredModel)

logger = structlog.get_logger(__name__)


class TenantScopedRepository:
    """Plumbing shared by every repository: store, tenant, timeout, audit."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: TenancyResolver,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._resolver = resolver
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    async def _bounded(self, awaitable, operation: str):
        return await bounded(
            awaitable,
            self._settings.operation_timeout_seconds,
            operation,
            changes=self._store.changes,
        )

    async def _owned_snapshot(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """The document if it exists and belongs to the current tenant."""
        tenant_id = self._resolver.tenant_id
        if tenant_id is None:
            return None
        snapshot = await self._bounded(self._store.get(collection, doc_id), f"{collection}.get")
        if snapshot is None or snapshot.data.get("owner_id") != tenant_id:
            return None
        return snapshot

    async def _require_owned(self, collection: str, doc_id: str) -> DocumentSnapshot:
        self._resolver.require_tenant()
        snapshot = await self._owned_snapshot(collection, doc_id)
        if snapshot is None:
            raise EntityNotFoundError(collection, doc_id)
        return snapshot


class EntityRepository(TenantScopedRepository, Generic[E]):
    """
    Generic repository for an entity with an active/archived lifecycle.

    Subclasses set the stored model and its create/update patch models.
    """

    model: type[E]
    create_model: type[PatchModel]
    update_model: type[PatchModel]

    @property
    def collection(self) -> str:
        return self.model.COLLECTION

    async def list(self) -> LiveQuery[E]:
        """Live list of the tenant's active entities, by name."""
        query = LiveQuery(
            self._store,
            self._resolver,
            self.model,
            filters=[where("status", "==", EntityStatus.ACTIVE.value)],
            order_by=[OrderBy(field="name")],
        )
        await query.refresh()
        return query

    async def get(self, entity_id: str) -> Optional[E]:
        """
        Direct lookup by id, archived entities included.

        Returns None for unknown ids and for ids owned by another tenant.
        """
        snapshot = await self._owned_snapshot(self.collection, entity_id)
        if snapshot is None:
            return None
        return self.model.from_document(snapshot.id, snapshot.data)

    async def create(self, fields: Union[PatchModel, dict[str, Any]]) -> E:
        """
        Insert a new active entity owned by the current tenant.

        Raises:
            ValidationError: If fields are invalid (including balance/owner fields)
            UnauthenticatedError: If no tenant is resolved
        """
        data = coerce(self.create_model, fields)
        tenant_id = self._resolver.require_tenant()

        entity = self.model(**data.model_dump(), owner_id=tenant_id)
        entity_id = await self._bounded(
            self._store.insert(self.collection, entity.to_document()),
            f"{self.collection}.create",
        )
        entity.id = entity_id

        logger.info("entity_created", collection=self.collection, entity_id=entity_id)
        if self._audit_logger:
            await self._audit_logger.log_entity_created(
                self.collection, entity_id, tenant_id, entity.display_name
            )
        return entity

    async def update(self, entity_id: str, patch: Union[PatchModel, dict[str, Any]]) -> E:
        """
        Patch descriptive fields.

        Raises:
            ValidationError: If the patch names a field it may not change
            EntityNotFoundError: If the entity is unknown to this tenant
        """
        changes = coerce(self.update_model, patch).changes()
        snapshot = await self._require_owned(self.collection, entity_id)

        if changes:
            await self._bounded(
                self._store.update(self.collection, entity_id, changes),
                f"{self.collection}.update",
            )
            if self._audit_logger:
                await self._audit_logger.log_entity_updated(
                    self.collection, entity_id, snapshot.data["owner_id"], sorted(changes)
                )
        return self.model.from_document(entity_id, {**snapshot.data, **changes})

    async def archive(self, entity_id: str) -> None:
        """
        Hide the entity from lists. Its ledger history stays intact.

        Raises:
            EntityNotFoundError: If the entity is unknown to this tenant
        """
        snapshot = await self._require_owned(self.collection, entity_id)
        await self._bounded(
            self._store.update(self.collection, entity_id, {"status": EntityStatus.ARCHIVED.value}),
            f"{self.collection}.archive",
        )

        logger.info("entity_archived", collection=self.collection, entity_id=entity_id)
        if self._audit_logger:
            await self._audit_logger.log_entity_archived(
                self.collection, entity_id, snapshot.data["owner_id"]
            )
