"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the document store.
This allows us to:
1. Swap the backend (in-memory, Google Sheets, a hosted document DB)
2. Use in-memory storage for testing
3. Keep the group engine and flows decoupled from any transport

The interface is intentionally small - we're not building a database.
Three primitives carry everything the flows need:
- batch_write: all-or-nothing list of set/update/delete operations
- query: documents of one collection matching simple field filters
- subscribe: push of the filtered snapshot whenever it changes

Collections are per user: users/{user_id}/{collection}.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Literal, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from finance_tracker.models.audit import AuditEvent


# Collection names under users/{user_id}/
TRANSACTIONS = "transactions"
CATEGORIES = "categories"
CREDIT_CARDS = "creditCards"
FUTURE_EXPENSES = "futureExpenses"
AUDIT_LOG = "auditLog"


def collection_path(user_id: str, name: str) -> str:
    """Path of a user-owned collection."""
    if not user_id:
        raise ValueError("user_id is required")
    return f"users/{user_id}/{name}"


# =============================================================================
# DOCUMENTS, FILTERS AND WRITES
# =============================================================================

class Document(BaseModel):
    """A stored document: its key and its JSON-compatible body."""

    id: str
    data: dict[str, Any] = Field(default_factory=dict)


class FieldFilter(BaseModel):
    """
    A single `field op value` condition.

    Documents missing the field never match, whatever the operator.
    """

    field: str = Field(..., min_length=1)
    op: Literal["==", "!=", "<", "<=", ">", ">=", "in"] = "=="
    value: Any = None

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        actual = data[self.field]

        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        if actual is None or self.value is None:
            return False
        if self.op == "<":
            return actual < self.value
        if self.op == "<=":
            return actual <= self.value
        if self.op == ">":
            return actual > self.value
        return actual >= self.value


def where(field: str, op: str, value: Any) -> FieldFilter:
    """Shorthand: where("group_id", "==", gid)."""
    return FieldFilter(field=field, op=op, value=value)


def _sort_key(value: Any) -> tuple:
    return (value is None, "" if value is None else value)


def filter_documents(
    documents: list[Document],
    filters: Sequence[FieldFilter] = (),
    order_by: Optional[str] = None,
    descending: bool = False,
) -> list[Document]:
    """Apply filters and ordering in Python (shared by simple backends)."""
    matched = [
        doc for doc in documents
        if all(f.matches(doc.data) for f in filters)
    ]
    if order_by:
        # Documents without the field sort last
        matched.sort(
            key=lambda d: _sort_key(d.data.get(order_by)),
            reverse=descending,
        )
    return matched


class WriteType(str, Enum):
    """Kinds of operation a batch can contain."""
    SET = "set"        # Create or replace the whole document
    UPDATE = "update"  # Merge fields into an existing document
    DELETE = "delete"  # Remove the document


class WriteOperation(BaseModel):
    """One operation of an atomic batch."""

    type: WriteType
    collection_path: str = Field(..., min_length=1)
    id: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='after')
    def validate_payload(self) -> 'WriteOperation':
        if self.type == WriteType.DELETE and self.data:
            raise ValueError("Delete operations carry no data")
        if self.type == WriteType.UPDATE and not self.data:
            raise ValueError("Update operations need at least one field")
        return self

    @classmethod
    def set_document(cls, path: str, doc_id: str, data: dict[str, Any]) -> 'WriteOperation':
        return cls(type=WriteType.SET, collection_path=path, id=doc_id, data=data)

    @classmethod
    def update_document(cls, path: str, doc_id: str, data: dict[str, Any]) -> 'WriteOperation':
        return cls(type=WriteType.UPDATE, collection_path=path, id=doc_id, data=data)

    @classmethod
    def delete_document(cls, path: str, doc_id: str) -> 'WriteOperation':
        return cls(type=WriteType.DELETE, collection_path=path, id=doc_id)


def apply_operations(
    collections: dict[str, dict[str, dict[str, Any]]],
    operations: Sequence[WriteOperation],
) -> None:
    """
    Apply a batch to a {path: {id: data}} mapping, in order.

    The mapping is mutated; callers pass a copy and swap it in only
    when this returns, which is what makes the batch all-or-nothing.

    Raises:
        NotFoundError: If an update targets a missing document
    """
    for op in operations:
        docs = collections.setdefault(op.collection_path, {})
        if op.type == WriteType.SET:
            docs[op.id] = dict(op.data)
        elif op.type == WriteType.UPDATE:
            if op.id not in docs:
                raise NotFoundError(
                    f"Cannot update missing document {op.collection_path}/{op.id}"
                )
            docs[op.id] = {**docs[op.id], **op.data}
        else:
            docs.pop(op.id, None)


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

OnChange = Callable[[list[Document]], None]


class Subscription:
    """
    Handle returned by subscribe().

    Calling unsubscribe() more than once is harmless.
    """

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._cancel()


# =============================================================================
# INTERFACES
# =============================================================================

class DocumentStore(ABC):
    """
    Abstract interface for the per-user document store.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def batch_write(self, operations: Sequence[WriteOperation]) -> None:
        """
        Apply every operation or none of them.

        Args:
            operations: Operations applied in order

        Raises:
            StorageError: If the batch could not be committed. Nothing
                from the batch is visible afterwards.
            NotFoundError: If an update targets a missing document
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        """
        List documents of a collection.

        Args:
            collection_path: e.g. users/{uid}/transactions
            filters: All must match
            order_by: Field to sort on
            descending: Sort direction

        Returns:
            Matching documents (empty list for unknown collections)
        """
        pass

    @abstractmethod
    async def get(self, collection_path: str, doc_id: str) -> Optional[Document]:
        """
        Retrieve one document.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
    async def subscribe(
        self,
        collection_path: str,
        on_change: OnChange,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Watch a collection.

        on_change receives the current snapshot right away and again
        after every change to the filtered result. How changes are
        detected (push or polling) is up to the backend.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one user action).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
