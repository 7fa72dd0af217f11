"""
Audit Storage on the Document Store

Audit events live next to the user's data in users/{uid}/auditLog,
one document per event keyed by the event id. Events are only ever
added with `set`; nothing in the system updates or deletes them.
"""

from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.services.identity.provider import IdentityProvider
from finance_tracker.services.storage.interface import (
    AUDIT_LOG,
    AuditStorageInterface,
    DocumentStore,
    StorageError,
    WriteOperation,
    collection_path,
    where,
)


class DocumentAuditStorage(AuditStorageInterface):
    """
    Append-only audit log.

    Events are filed under the user they name. Events without a user
    (system errors) and all reads go to whoever the identity provider
    reports as signed in at the time of the call.
    """

    def __init__(self, store: DocumentStore, identity: IdentityProvider):
        self._store = store
        self._identity = identity

    async def _current_path(self) -> str:
        user = await self._identity.current_user()
        return collection_path(user.user_id, AUDIT_LOG)

    async def append_event(self, event: AuditEvent) -> bool:
        if event.user_id:
            path = collection_path(event.user_id, AUDIT_LOG)
        else:
            path = await self._current_path()
        await self._store.batch_write([
            WriteOperation.set_document(path, str(event.event_id), event.to_document())
        ])
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get the current user's events by correlation ID, oldest first."""
        path = await self._current_path()
        try:
            docs = await self._store.query(
                path,
                [where("correlation_id", "==", str(correlation_id))],
                order_by="timestamp",
            )
            return [AuditEvent.from_document(doc.id, doc.data) for doc in docs]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the current user's recent events, newest first."""
        path = await self._current_path()
        try:
            docs = await self._store.query(
                path,
                order_by="timestamp",
                descending=True,
            )
            return [AuditEvent.from_document(doc.id, doc.data) for doc in docs[:limit]]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
