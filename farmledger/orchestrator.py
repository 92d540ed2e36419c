"""
Application Composition for Farm Ledger

This module ties together all the components a host application (web
backend, mobile bridge, CLI) needs:

    identity -> tenancy resolver -> repositories / ledger / queries
                                 \\-> audit logger

DESIGN DECISION: There are no module-level singletons. Everything is
built once per process by `create_app` and handed out through a
FarmLedgerApp, so tests can build as many isolated apps as they like
against in-memory storage.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from farmledger.audit import AuditLogger
from farmledger.config import AppSettings, get_settings
from farmledger.ledger import LedgerService
from farmledger.models.entities import utc_now
from farmledger.queries import LedgerQueries
from farmledger.repositories import (
    BuyerRepository,
    CropRepository,
    ExpenseRepository,
    SupervisorRepository,
    WorkerRepository,
)
from farmledger.services.storage import (
    AuditStorageInterface,
    DocumentStore,
    FirestoreDocumentStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryDocumentStore,
)
from farmledger.tenancy import IdentityProvider, LocalIdentityProvider, TenancyResolver
from farmledger.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class FarmLedgerApp:
    """
    Process-scoped bundle of every core component.

    Usage:
        app = create_app(identity=provider)
        await app.start()
        worker = await app.workers.create({"name": "Ana"})
        await app.ledger.add_payment({...})
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings().app
        self.store = store
        self.identity = identity
        self.audit_logger = audit_logger or AuditLogger()
        self.validator = LedgerValidator(self.settings)

        self.resolver = TenancyResolver(identity, store, self.audit_logger)

        self.workers = WorkerRepository(store, self.resolver, self.audit_logger, self.settings)
        self.buyers = BuyerRepository(store, self.resolver, self.audit_logger, self.settings)
        self.crops = CropRepository(store, self.resolver, self.audit_logger, self.settings)
        self.expenses = ExpenseRepository(
            store,
            self.resolver,
            validator=self.validator,
            audit_logger=self.audit_logger,
            settings=self.settings,
            clock=clock,
        )
        self.supervisors = SupervisorRepository(store, self.resolver, self.audit_logger, self.settings)

        self.ledger = LedgerService(
            store,
            self.resolver,
            validator=self.validator,
            audit_logger=self.audit_logger,
            clock=clock,
            settings=self.settings,
        )
        self.queries = LedgerQueries(store, self.resolver)

    async def start(self) -> Optional[str]:
        """Resolve the tenant for whoever is already signed in."""
        tenant_id = await self.resolver.refresh()
        logger.info("farmledger_started", tenant_id=tenant_id, backend=type(self.store).__name__)
        return tenant_id

    def close(self) -> None:
        self.resolver.close()


def create_store(settings: Optional[AppSettings] = None) -> DocumentStore:
    """Build the document store selected by FARMLEDGER_STORAGE_BACKEND."""
    settings = settings or get_settings().app
    if settings.storage_backend == "firestore":
        return FirestoreDocumentStore(max_attempts=settings.transaction_max_attempts)
    return InMemoryDocumentStore(
        max_attempts=settings.transaction_max_attempts,
        retry_wait_seconds=settings.transaction_retry_wait_seconds,
    )


def create_audit_storage(settings: Optional[AppSettings] = None) -> Optional[AuditStorageInterface]:
    """
    Build the Google Sheets audit mirror if enabled.

    A misconfigured sheet must not stop the ledger from running, so
    failures fall back to local-only audit logging.
    """
    settings = settings or get_settings().app
    if not settings.audit_to_sheets:
        return None
    try:
        return GoogleSheetsAuditStorage(GoogleSheetsClient())
    except Exception as e:
        logger.warning("audit_storage_not_configured", error=str(e))
        return None


def create_app(
    identity: Optional[IdentityProvider] = None,
    store: Optional[DocumentStore] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[AppSettings] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FarmLedgerApp:
    """
    Factory function to create all application components.

    Args:
        identity: Identity provider. Defaults to a signed-out LocalIdentityProvider.
        store: Document store. Defaults to the configured backend.
        audit_storage: Audit persistence. Defaults to the configured mirror (or none).
        settings: Application settings. Defaults to the environment.
        clock: Source of `created_at` timestamps.

    Returns:
        A FarmLedgerApp; call `await app.start()` before use
    """
    settings = settings or get_settings().app
    store = store or create_store(settings)
    if audit_storage is None:
        audit_storage = create_audit_storage(settings)

    return FarmLedgerApp(
        store=store,
        identity=identity or LocalIdentityProvider(),
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
        clock=clock,
    )
