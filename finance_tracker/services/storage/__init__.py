"""
Storage Services Package

Provides the abstract document store interface and its implementations.
The in-memory store is the default; Google Sheets is the hosted backend.
"""

from finance_tracker.services.storage.interface import (
    AUDIT_LOG,
    CATEGORIES,
    CREDIT_CARDS,
    FUTURE_EXPENSES,
    TRANSACTIONS,
    AuditStorageInterface,
    ConnectionError,
    Document,
    DocumentStore,
    FieldFilter,
    NotFoundError,
    StorageError,
    Subscription,
    WriteOperation,
    WriteType,
    collection_path,
    where,
)
from finance_tracker.services.storage.memory import InMemoryDocumentStore
from finance_tracker.services.storage.audit import DocumentAuditStorage
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Collections
    "AUDIT_LOG",
    "CATEGORIES",
    "CREDIT_CARDS",
    "FUTURE_EXPENSES",
    "TRANSACTIONS",
    "collection_path",
    # Interfaces
    "AuditStorageInterface",
    "DocumentStore",
    "Document",
    "FieldFilter",
    "Subscription",
    "WriteOperation",
    "WriteType",
    "where",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "DocumentAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
]
