"""
In-Memory Document Store

The default backend for single-process use and the test double for
everything above the storage layer.

Batches are copy-on-write: the operations are applied to a copy of the
affected collections, and the copy replaces the live data only when
every operation succeeded. Subscribers are notified after the swap,
so a failed batch is never observable.
"""

import copy
from typing import Any, Optional, Sequence

import structlog

from finance_tracker.services.storage.interface import (
    Document,
    DocumentStore,
    FieldFilter,
    NotFoundError,
    OnChange,
    StorageError,
    Subscription,
    WriteOperation,
    apply_operations,
    filter_documents,
)


logger = structlog.get_logger(__name__)


class _Watcher:
    """One live subscription and the last snapshot it was sent."""

    def __init__(
        self,
        collection_path: str,
        on_change: OnChange,
        filters: Sequence[FieldFilter],
        order_by: Optional[str],
        descending: bool,
    ):
        self.collection_path = collection_path
        self.on_change = on_change
        self.filters = tuple(filters)
        self.order_by = order_by
        self.descending = descending
        self.last_snapshot: Optional[list[Document]] = None


class InMemoryDocumentStore(DocumentStore):
    """
    Document store held in a dict of {collection_path: {id: data}}.

    Single event loop only; asyncio code can't interleave inside a
    commit because nothing in it awaits.
    """

    def __init__(self, initial: Optional[dict[str, dict[str, dict[str, Any]]]] = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = copy.deepcopy(initial or {})
        self._watchers: list[_Watcher] = []

    async def batch_write(self, operations: Sequence[WriteOperation]) -> None:
        """Apply the whole batch or nothing."""
        if not operations:
            return

        touched = {op.collection_path for op in operations}
        staged = {
            path: copy.deepcopy(self._collections.get(path, {}))
            for path in touched
        }

        try:
            apply_operations(staged, operations)
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to apply batch: {e}") from e

        self._collections.update(staged)
        logger.debug(
            "batch_committed",
            operations=len(operations),
            collections=sorted(touched),
        )
        self._notify(touched)

    async def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        return self._snapshot(collection_path, filters, order_by, descending)

    async def get(self, collection_path: str, doc_id: str) -> Optional[Document]:
        data = self._collections.get(collection_path, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    async def subscribe(
        self,
        collection_path: str,
        on_change: OnChange,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        watcher = _Watcher(collection_path, on_change, filters, order_by, descending)
        self._watchers.append(watcher)
        self._deliver(watcher)
        return Subscription(lambda: self._watchers.remove(watcher))

    def _snapshot(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter],
        order_by: Optional[str],
        descending: bool,
    ) -> list[Document]:
        documents = [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection_path, {}).items()
        ]
        return filter_documents(documents, filters, order_by, descending)

    def _notify(self, touched: set[str]) -> None:
        for watcher in list(self._watchers):
            if watcher.collection_path in touched:
                self._deliver(watcher)

    def _deliver(self, watcher: _Watcher) -> None:
        snapshot = self._snapshot(
            watcher.collection_path,
            watcher.filters,
            watcher.order_by,
            watcher.descending,
        )
        # Only push when the filtered view actually changed
        if snapshot == watcher.last_snapshot:
            return
        watcher.last_snapshot = snapshot
        try:
            watcher.on_change(snapshot)
        except Exception as e:
            # A broken listener must not undo a committed batch
            logger.error(
                "subscriber_failed",
                collection_path=watcher.collection_path,
                error=str(e),
            )
