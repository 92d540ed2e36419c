"""Services package."""

from farmledger.services.storage import (
    AuditStorageInterface,
    DocumentStore,
    FirestoreDocumentStore,
    GoogleSheetsAuditStorage,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)

__all__ = [
    "AuditStorageInterface",
    "DocumentStore",
    "FirestoreDocumentStore",
    "GoogleSheetsAuditStorage",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
]
