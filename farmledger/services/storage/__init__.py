"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ledger data lives in a document store (Firestore in production, in-memory
for tests); the audit trail can be mirrored to Google Sheets.
"""

from farmledger.services.storage.changes import (
    ChangeEvent,
    ChangeFeed,
    ChangeKind,
)
from farmledger.services.storage.interface import (
    AuditStorageInterface,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    OrderBy,
    Transaction,
    where,
)
from farmledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from farmledger.services.storage.firestore import (
    FirestoreDocumentStore,
    create_firestore_client,
)
from farmledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)
from farmledger.services.storage.timeouts import bounded

__all__ = [
    # Change notifications
    "ChangeEvent",
    "ChangeFeed",
    "ChangeKind",
    # Interfaces
    "AuditStorageInterface",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "OrderBy",
    "Transaction",
    "where",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    # Google implementations
    "FirestoreDocumentStore",
    "create_firestore_client",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    # Helpers
    "bounded",
]
