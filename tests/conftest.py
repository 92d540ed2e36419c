"""
Shared fixtures for Farm Ledger tests.

Everything runs against the in-memory document store; no test touches
Firestore or Google Sheets.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

from farmledger.config import AppSettings
from farmledger.models import Principal
from farmledger.orchestrator import FarmLedgerApp, create_app
from farmledger.services.storage import (
    DocumentStore,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from farmledger.tenancy import LocalIdentityProvider


OWNER = Principal(uid="owner-1", email="owner@farm.test")
OTHER_OWNER = Principal(uid="owner-2", email="other@farm.test")
TODAY = date(2024, 3, 15)


class FakeClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def make_settings(**overrides) -> AppSettings:
    values = {
        "storage_backend": "memory",
        "transaction_max_attempts": 3,
        "transaction_retry_wait_seconds": 0.0,
        "operation_timeout_seconds": 5.0,
    }
    values.update(overrides)
    return AppSettings(_env_file=None, **values)


async def build_app(
    principal: Optional[Principal],
    store: Optional[DocumentStore] = None,
    audit_storage: Optional[InMemoryAuditStorage] = None,
    settings: Optional[AppSettings] = None,
    clock: Optional[FakeClock] = None,
    register: bool = True,
) -> FarmLedgerApp:
    """Build an app, register the principal's profile and sign them in."""
    settings = settings or make_settings()
    identity = LocalIdentityProvider()
    app = create_app(
        identity=identity,
        store=store or InMemoryDocumentStore(max_attempts=settings.transaction_max_attempts),
        audit_storage=audit_storage or InMemoryAuditStorage(),
        settings=settings,
        clock=clock or FakeClock(),
    )
    if principal is not None:
        if register:
            await app.resolver.register_profile(principal)
        await identity.sign_in(principal)
    return app


@pytest.fixture
def settings() -> AppSettings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(settings) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(max_attempts=settings.transaction_max_attempts)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest_asyncio.fixture
async def app(store, audit_storage, settings, clock):
    """An app signed in as OWNER, with a registered owner profile."""
    app = await build_app(OWNER, store, audit_storage, settings, clock)
    yield app
    app.close()


@pytest_asyncio.fixture
async def worker(app):
    return await app.workers.create({"name": "Ana", "surname": "Rojas"})


@pytest_asyncio.fixture
async def buyer(app):
    return await app.buyers.create({"name": "Fruit Market"})


@pytest_asyncio.fixture
async def crop(app):
    return await app.crops.create({"name": "North Orchard", "area": "12.5"})
