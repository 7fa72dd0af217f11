"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.transaction import (
    CENT,
    GroupEdit,
    InstallmentRequest,
    OriginalDeletionPolicy,
    PaymentMethod,
    RecurringRequest,
    SingleTransactionRequest,
    Transaction,
    TransactionDraft,
    TransactionEdit,
    TransactionMode,
    TransactionRequest,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    new_id,
    signed_amount,
)
from finance_tracker.models.reference import (
    DEFAULT_CATEGORIES,
    CardBrand,
    Category,
    CreditCard,
    FutureExpense,
    get_default_category,
)
from finance_tracker.models.report import (
    CategoryTotal,
    EvolutionPoint,
    MonthlySummary,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "CENT",
    "GroupEdit",
    "InstallmentRequest",
    "OriginalDeletionPolicy",
    "PaymentMethod",
    "RecurringRequest",
    "SingleTransactionRequest",
    "Transaction",
    "TransactionDraft",
    "TransactionEdit",
    "TransactionMode",
    "TransactionRequest",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "new_id",
    "signed_amount",
    # Reference data
    "DEFAULT_CATEGORIES",
    "CardBrand",
    "Category",
    "CreditCard",
    "FutureExpense",
    "get_default_category",
    # Report models
    "CategoryTotal",
    "EvolutionPoint",
    "MonthlySummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
