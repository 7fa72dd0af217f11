"""
Audit Logger

DESIGN DECISION: Every write the flows perform is logged.
This provides:
1. Complete traceability of group edits and deletions
2. Debugging capability
3. User can see the history of their records

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder
from finance_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The document store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transactions_created(
        self,
        user_id: str,
        transaction_ids: list[str],
        group_id: Optional[str],
        mode: str,
        correlation_id: UUID,
    ) -> None:
        """Log creation of a single transaction or a whole group."""
        event = AuditEventBuilder.transactions_created(
            user_id=user_id,
            transaction_ids=transaction_ids,
            group_id=group_id,
            mode=mode,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: str,
        fields: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        user_id: str,
        transaction_id: str,
        group_id: Optional[str],
        was_original: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            user_id=user_id,
            transaction_id=transaction_id,
            group_id=group_id,
            was_original=was_original,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_original_promoted(
        self,
        user_id: str,
        group_id: str,
        transaction_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.original_promoted(
            user_id=user_id,
            group_id=group_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_group_updated(
        self,
        user_id: str,
        group_id: str,
        count: int,
        fields: list[str],
        correlation_id: UUID,
    ) -> None:
        """Log a group-wide edit."""
        event = AuditEventBuilder.group_updated(
            user_id=user_id,
            group_id=group_id,
            count=count,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_group_deleted(
        self,
        user_id: str,
        group_id: str,
        count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.group_deleted(
            user_id=user_id,
            group_id=group_id,
            count=count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_saved(
        self,
        user_id: str,
        category_id: str,
        name: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.category_saved(
            user_id=user_id,
            category_id=category_id,
            name=name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_category_deleted(
        self,
        user_id: str,
        category_id: str,
        fallback_id: str,
        reassigned: int,
        correlation_id: UUID,
    ) -> None:
        """Log a category deletion and how many transactions moved."""
        event = AuditEventBuilder.category_deleted(
            user_id=user_id,
            category_id=category_id,
            fallback_id=fallback_id,
            reassigned=reassigned,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_credit_card_saved(
        self,
        user_id: str,
        card_id: str,
        name: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.credit_card_saved(
            user_id=user_id,
            card_id=card_id,
            name=name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_credit_card_deleted(
        self,
        user_id: str,
        card_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.credit_card_deleted(
            user_id=user_id,
            card_id=card_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_future_expense_saved(
        self,
        user_id: str,
        expense_id: str,
        description: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.future_expense_saved(
            user_id=user_id,
            expense_id=expense_id,
            description=description,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_future_expense_deleted(
        self,
        user_id: str,
        expense_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.future_expense_deleted(
            user_id=user_id,
            expense_id=expense_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_future_expense_paid(
        self,
        user_id: str,
        expense_id: str,
        transaction_ids: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.future_expense_paid(
            user_id=user_id,
            expense_id=expense_id,
            transaction_ids=transaction_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        user_id: Optional[str],
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            user_id=user_id,
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        user_id: Optional[str],
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a batch the store refused."""
        event = AuditEventBuilder.save_failed(
            user_id=user_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a group edit).
    Pass it through all subsequent operations.
    """
    return uuid4()
