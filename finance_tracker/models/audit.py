"""
Audit Models for Finance Tracker

Every write in the system is logged for audit purposes.
This provides:
1. Complete traceability of all changes to a user's money records
2. Debugging information when a batch fails
3. Ability to reconstruct how a group came to look the way it does

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every write operation has its own event type.
    """
    # Transactions
    TRANSACTIONS_CREATED = "transactions_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    GROUP_UPDATED = "group_updated"
    GROUP_DELETED = "group_deleted"
    ORIGINAL_PROMOTED = "original_promoted"

    # Reference data
    CATEGORY_SAVED = "category_saved"
    CATEGORY_DELETED = "category_deleted"
    CREDIT_CARD_SAVED = "credit_card_saved"
    CREDIT_CARD_DELETED = "credit_card_deleted"
    FUTURE_EXPENSE_SAVED = "future_expense_saved"
    FUTURE_EXPENSE_DELETED = "future_expense_deleted"
    FUTURE_EXPENSE_PAID = "future_expense_paid"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    SAVE_FAILED = "save_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the records touched"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'group', 'category')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one user action)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_document(self) -> dict[str, Any]:
        """
        Convert to a document body for the audit collection.

        Details are kept as a JSON string so any backend can store them.
        """
        data = self.model_dump(mode="json", exclude={"event_id", "details"})
        data["details_json"] = json.dumps(self.details, default=str) if self.details else ""
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        details_json = data.pop("details_json", "")
        return cls(
            event_id=UUID(doc_id),
            details=json.loads(details_json) if details_json else {},
            **data,
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transactions_created(user_id, ids, group_id, cid)
        event = AuditEventBuilder.group_updated(user_id, group_id, 12, fields, cid)
    """

    @staticmethod
    def transactions_created(
        user_id: str,
        transaction_ids: list[str],
        group_id: Optional[str],
        mode: str,
        correlation_id: UUID
    ) -> AuditEvent:
        count = len(transaction_ids)
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_CREATED,
            user_id=user_id,
            entity_type="group" if group_id else "transaction",
            entity_id=group_id or (transaction_ids[0] if transaction_ids else None),
            correlation_id=correlation_id,
            description=f"{count} transaction(s) created ({mode})",
            details={
                "mode": mode,
                "count": count,
                "transaction_ids": transaction_ids,
            },
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: str,
        fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(fields) or 'no fields'}",
            details={
                "fields": fields,
            },
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: str,
        group_id: Optional[str],
        was_original: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            details={
                "group_id": group_id,
                "was_original": was_original,
            },
        )

    @staticmethod
    def original_promoted(
        user_id: str,
        group_id: str,
        transaction_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ORIGINAL_PROMOTED,
            user_id=user_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description="Group original reassigned after deletion",
            details={
                "new_original_id": transaction_id,
            },
        )

    @staticmethod
    def group_updated(
        user_id: str,
        group_id: str,
        count: int,
        fields: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_UPDATED,
            user_id=user_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Group updated: {count} member(s)",
            details={
                "count": count,
                "fields": fields,
            },
        )

    @staticmethod
    def group_deleted(
        user_id: str,
        group_id: str,
        count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_DELETED,
            user_id=user_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Group deleted: {count} member(s)",
            details={
                "count": count,
            },
        )

    @staticmethod
    def category_saved(
        user_id: str,
        category_id: str,
        name: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_SAVED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category saved: {name}",
        )

    @staticmethod
    def category_deleted(
        user_id: str,
        category_id: str,
        fallback_id: str,
        reassigned: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_DELETED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category deleted, {reassigned} transaction(s) moved to {fallback_id}",
            details={
                "fallback_category_id": fallback_id,
                "reassigned": reassigned,
            },
        )

    @staticmethod
    def credit_card_saved(
        user_id: str,
        card_id: str,
        name: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_CARD_SAVED,
            user_id=user_id,
            entity_type="credit_card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description=f"Credit card saved: {name}",
        )

    @staticmethod
    def credit_card_deleted(
        user_id: str,
        card_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_CARD_DELETED,
            user_id=user_id,
            entity_type="credit_card",
            entity_id=card_id,
            correlation_id=correlation_id,
            description="Credit card deleted",
        )

    @staticmethod
    def future_expense_saved(
        user_id: str,
        expense_id: str,
        description: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUTURE_EXPENSE_SAVED,
            user_id=user_id,
            entity_type="future_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Bill to pay saved: {description}",
        )

    @staticmethod
    def future_expense_deleted(
        user_id: str,
        expense_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUTURE_EXPENSE_DELETED,
            user_id=user_id,
            entity_type="future_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description="Bill to pay deleted",
        )

    @staticmethod
    def future_expense_paid(
        user_id: str,
        expense_id: str,
        transaction_ids: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUTURE_EXPENSE_PAID,
            user_id=user_id,
            entity_type="future_expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Bill paid with {len(transaction_ids)} transaction(s)",
            details={
                "transaction_ids": transaction_ids,
            },
        )

    @staticmethod
    def validation_failed(
        user_id: Optional[str],
        operation: str,
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Validation failed for {operation} with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def save_failed(
        user_id: Optional[str],
        operation: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Save failed: {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
