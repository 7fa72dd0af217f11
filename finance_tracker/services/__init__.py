"""Services package."""

from finance_tracker.services.identity import (
    AuthenticationError,
    IdentityProvider,
    StaticIdentityProvider,
    UserIdentity,
)
from finance_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DocumentAuditStorage,
    DocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Identity
    "AuthenticationError",
    "IdentityProvider",
    "StaticIdentityProvider",
    "UserIdentity",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DocumentAuditStorage",
    "DocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
]
