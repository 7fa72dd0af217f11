"""
Core Transaction Models for Finance Tracker

These models define the strict schemas for every transaction flowing
through the system. They are designed to:
1. Enforce the sign/type and payment invariants at runtime
2. Provide clear validation error messages
3. Be serializable for the document store and for logging

DESIGN DECISION: Amounts are Decimal, never float. Installment splits
must add up to the cent, and binary floats can't promise that.
"""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


CENT = Decimal("0.01")


def new_id() -> str:
    """Generate a document id (the store never assigns them)."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Income adds to the balance, expense subtracts from it."""
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, Enum):
    """
    How an expense was paid.

    Only expenses carry a payment method.
    """
    CASH = "cash"
    CREDIT_CARD = "credit_card"


class TransactionMode(str, Enum):
    """
    How a submission is expanded.

    SINGLE produces one transaction. INSTALLMENTS and RECURRING produce
    a group of monthly transactions sharing a group id.
    """
    SINGLE = "single"
    INSTALLMENTS = "installments"
    RECURRING = "recurring"


class OriginalDeletionPolicy(str, Enum):
    """What happens when the original member of a group is deleted."""
    ALLOW = "allow"        # Delete it, the group is left without an original
    PROMOTE = "promote"    # Earliest remaining member becomes the original
    FORBID = "forbid"      # Refuse the deletion


def signed_amount(magnitude: Decimal, transaction_type: TransactionType) -> Decimal:
    """Apply the sign convention: positive income, negative expense."""
    magnitude = abs(magnitude)
    if transaction_type == TransactionType.EXPENSE:
        return -magnitude
    return magnitude


# =============================================================================
# TRANSACTION
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A transaction that hasn't been written yet.

    The group engine produces drafts; ids are assigned when the batch
    that persists them is built.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(
        ...,
        min_length=1,
        max_length=250,
        description="What the money was for"
    )
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Signed amount: positive for income, negative for expense"
    )
    type: TransactionType
    category_id: str = Field(
        ...,
        min_length=1,
        description="Id of a default or custom category"
    )
    date: dt.date
    payment_method: Optional[PaymentMethod] = None
    credit_card_id: Optional[str] = None

    # Group membership
    group_id: Optional[str] = Field(
        default=None,
        description="Shared by every member of an installment or recurring group"
    )
    is_original: bool = Field(
        default=False,
        description="True for the first member generated in a group"
    )

    @model_validator(mode='after')
    def validate_invariants(self) -> 'TransactionDraft':
        """Sign must match type; card id only travels with card payments."""
        if self.amount == 0:
            raise ValueError("Amount cannot be zero")

        if self.type == TransactionType.INCOME and self.amount < 0:
            raise ValueError("Income amount must be positive")
        if self.type == TransactionType.EXPENSE and self.amount > 0:
            raise ValueError("Expense amount must be negative")

        if self.type == TransactionType.INCOME and self.payment_method is not None:
            raise ValueError("Payment method applies to expenses only")

        if self.payment_method == PaymentMethod.CREDIT_CARD:
            if not self.credit_card_id:
                raise ValueError("Credit card payments require a credit card")
        elif self.credit_card_id is not None:
            raise ValueError("Credit card can only be set for credit card payments")

        if self.is_original and self.group_id is None:
            raise ValueError("Only group members can be marked as original")

        return self

    @property
    def magnitude(self) -> Decimal:
        return abs(self.amount)

    def to_transaction(self) -> 'Transaction':
        """Give the draft a fresh id."""
        return Transaction(**self.model_dump())


class Transaction(TransactionDraft):
    """A persisted transaction."""

    id: str = Field(
        default_factory=new_id,
        description="Unique document id"
    )

    def to_document(self) -> dict[str, Any]:
        """Document body as stored (the id is the document key)."""
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> 'Transaction':
        return cls(id=doc_id, **data)


# =============================================================================
# CREATION REQUESTS - closed variant type validated at the boundary
# =============================================================================

class _TransactionRequestBase(BaseModel):
    """Fields shared by every creation mode."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Description entered by the user"
    )
    total_amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive total; the sign comes from the type"
    )
    type: TransactionType
    category_id: str = Field(..., min_length=1)
    start_date: date = Field(
        ...,
        description="Date of the single transaction or first group member"
    )
    payment_method: Optional[PaymentMethod] = None
    credit_card_id: Optional[str] = None


class SingleTransactionRequest(_TransactionRequestBase):
    """One transaction, income or expense."""
    mode: Literal["single"] = "single"


class InstallmentRequest(_TransactionRequestBase):
    """An expense split into `count` monthly installments."""
    mode: Literal["installments"] = "installments"
    count: int = Field(
        ...,
        description="Number of installments"
    )


class RecurringRequest(_TransactionRequestBase):
    """A fixed monthly expense repeated until `end_date`."""
    mode: Literal["recurring"] = "recurring"
    end_date: date = Field(
        ...,
        description="Last date a member may fall on (inclusive)"
    )


TransactionRequest = Annotated[
    Union[SingleTransactionRequest, InstallmentRequest, RecurringRequest],
    Field(discriminator="mode"),
]


# =============================================================================
# EDITS
# =============================================================================

class TransactionEdit(BaseModel):
    """
    Fields that can change on a single transaction.

    Only fields explicitly set are applied. `amount` is a magnitude;
    the sign is recomputed from the transaction type.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    description: Optional[str] = Field(default=None, min_length=1, max_length=250)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    type: Optional[TransactionType] = None
    category_id: Optional[str] = Field(default=None, min_length=1)
    date: Optional[dt.date] = None
    payment_method: Optional[PaymentMethod] = None
    credit_card_id: Optional[str] = None


class GroupEdit(BaseModel):
    """
    Fields that may be propagated to every member of a group.

    Description, amount and date are per-member (installment number,
    remainder, period) and are deliberately not representable here.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    category_id: Optional[str] = Field(default=None, min_length=1)
    payment_method: Optional[PaymentMethod] = None
    credit_card_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return (
            self.category_id is None
            and self.payment_method is None
            and self.credit_card_id is None
        )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a request or an edit.

    Errors block the write. Warnings are surfaced but don't block.
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> 'ValidationResult':
        return cls(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
