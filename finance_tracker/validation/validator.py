"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - REQUEST VALIDATION (synchronous, no I/O):
- Mode constraints (installments/recurring are expense-only)
- Installment count and recurring range checks (each installment
  must be worth at least one cent)
- The recurring horizon cap
- Payment method / credit card consistency
- Amount sanity warning

STAGE 2 - REFERENCE VALIDATION (needs storage):
- Category exists (built-in or the user's own)
- Credit card exists

WHY TWO STAGES:
1. The group engine can run stage 1 itself and stay pure
2. Stage 2 needs the store, which the engine never touches
3. A request that fails stage 1 never costs a round trip

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and errors stop the write.
"""

from decimal import Decimal
from typing import Any, Optional

import pydantic
from pydantic import TypeAdapter

from finance_tracker.config import get_settings
from finance_tracker.dates import months_between
from finance_tracker.models.reference import get_default_category
from finance_tracker.models.transaction import (
    CENT,
    InstallmentRequest,
    PaymentMethod,
    RecurringRequest,
    TransactionMode,
    TransactionRequest,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.services.storage import (
    CATEGORIES,
    CREDIT_CARDS,
    DocumentStore,
    collection_path,
)


class ValidationError(Exception):
    """
    A request or edit was rejected before anything was written.

    `result` holds every issue found, not just the first.
    """

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("; ".join(messages) or "Validation failed")

    @classmethod
    def single(
        cls,
        field: str,
        issue_type: str,
        message: str,
        suggested_fix: Optional[str] = None,
    ) -> 'ValidationError':
        """Build the error for one failed check."""
        return cls(ValidationResult.from_issues([
            ValidationIssue(
                field=field,
                issue_type=issue_type,
                message=message,
                severity="error",
                suggested_fix=suggested_fix,
            )
        ]))


class InvalidRangeError(ValidationError):
    """A group would span more months than allowed."""
    pass


_REQUEST_ADAPTER: TypeAdapter = TypeAdapter(TransactionRequest)


def parse_transaction_request(payload: Any) -> TransactionRequest:
    """
    Turn an untyped form payload into one of the request variants.

    Raises:
        ValidationError: If the payload doesn't match any variant
    """
    try:
        return _REQUEST_ADAPTER.validate_python(payload)
    except pydantic.ValidationError as e:
        issues = [
            ValidationIssue(
                field=".".join(str(part) for part in err["loc"]) or "request",
                issue_type=err["type"],
                message=err["msg"],
                severity="error",
            )
            for err in e.errors()
        ]
        raise ValidationError(ValidationResult.from_issues(issues)) from e


def check_payment(
    transaction_type: TransactionType,
    payment_method: Optional[PaymentMethod],
    credit_card_id: Optional[str],
) -> list[ValidationIssue]:
    """Payment fields must agree with each other and with the type."""
    issues = []

    if transaction_type == TransactionType.INCOME and payment_method is not None:
        issues.append(ValidationIssue(
            field="payment_method",
            issue_type="not_allowed",
            message="Payment method applies to expenses only",
            severity="error",
            suggested_fix="Remove the payment method for income",
        ))

    if payment_method == PaymentMethod.CREDIT_CARD and not credit_card_id:
        issues.append(ValidationIssue(
            field="credit_card_id",
            issue_type="missing",
            message="Select a credit card for credit card payments",
            severity="error",
        ))
    elif payment_method != PaymentMethod.CREDIT_CARD and credit_card_id:
        issues.append(ValidationIssue(
            field="credit_card_id",
            issue_type="not_allowed",
            message="A credit card can only be set for credit card payments",
            severity="error",
            suggested_fix="Choose 'credit_card' as the payment method or drop the card",
        ))

    return issues


class TransactionValidator:
    """
    Validates creation requests through a two-stage pipeline.

    Stage 1: Request validation (can run without storage)
    Stage 2: Reference validation (needs storage)
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        max_months: Optional[int] = None,
        max_amount: Optional[Decimal] = None,
    ):
        """
        Initialize validator.

        Args:
            store: Document store for reference checks.
                   If None, stage 2 is skipped.
            max_months: Longest span a group may cover (settings default)
            max_amount: Amounts above this get a warning (settings default)
        """
        self._store = store
        if max_months is None or max_amount is None:
            app = get_settings().app
            max_months = max_months if max_months is not None else app.max_recurring_months
            max_amount = max_amount if max_amount is not None else app.max_transaction_amount
        self.max_months = max_months
        self.max_amount = max_amount

    def validate_request(self, request: TransactionRequest) -> ValidationResult:
        """
        Stage 1: request validation.

        Returns: ValidationResult (errors block, warnings don't)
        """
        issues = check_payment(
            request.type,
            request.payment_method,
            request.credit_card_id,
        )

        if request.mode != TransactionMode.SINGLE and request.type != TransactionType.EXPENSE:
            issues.append(ValidationIssue(
                field="type",
                issue_type="not_allowed",
                message=f"Only expenses can be {request.mode}",
                severity="error",
                suggested_fix="Record income as a single transaction",
            ))

        if isinstance(request, InstallmentRequest):
            if request.count < 1:
                issues.append(ValidationIssue(
                    field="count",
                    issue_type="invalid_value",
                    message="Installment count must be at least 1",
                    severity="error",
                ))
            elif request.count > self.max_months:
                issues.append(ValidationIssue(
                    field="count",
                    issue_type="out_of_range",
                    message=f"At most {self.max_months} installments are allowed",
                    severity="error",
                ))
            elif request.count > request.total_amount / CENT:
                # Every installment must be worth at least one cent
                issues.append(ValidationIssue(
                    field="count",
                    issue_type="invalid_value",
                    message=(
                        f"{request.total_amount:,.2f} can't be split into "
                        f"{request.count} installments"
                    ),
                    severity="error",
                    suggested_fix="Use fewer installments or a single transaction",
                ))

        if isinstance(request, RecurringRequest):
            if request.end_date <= request.start_date:
                issues.append(ValidationIssue(
                    field="end_date",
                    issue_type="invalid_range",
                    message="End date must be after the start date",
                    severity="error",
                ))
            elif months_between(request.start_date, request.end_date) > self.max_months:
                issues.append(ValidationIssue(
                    field="end_date",
                    issue_type="out_of_range",
                    message=(
                        f"Recurring expenses can span at most {self.max_months} months"
                    ),
                    severity="error",
                    suggested_fix="Pick an earlier end date",
                ))

        if request.total_amount > self.max_amount:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="suspicious_value",
                message=f"Amount ({request.total_amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return ValidationResult.from_issues(issues)

    def check_request(self, request: TransactionRequest) -> ValidationResult:
        """
        Run stage 1 and raise on errors.

        Raises:
            InvalidRangeError: If the group would exceed the horizon
            ValidationError: For any other error
        """
        result = self.validate_request(request)
        if result.has_errors:
            if any(i.issue_type == "out_of_range" for i in result.issues):
                raise InvalidRangeError(result)
            raise ValidationError(result)
        return result

    async def validate_references(
        self,
        user_id: str,
        category_id: Optional[str] = None,
        credit_card_id: Optional[str] = None,
    ) -> ValidationResult:
        """
        Stage 2: referenced documents must exist.

        Storage errors propagate; a reference we couldn't check is
        not a reference we checked.
        """
        issues = []

        if self._store is None:
            return ValidationResult.from_issues(issues)

        if category_id and get_default_category(category_id) is None:
            doc = await self._store.get(collection_path(user_id, CATEGORIES), category_id)
            if doc is None:
                issues.append(ValidationIssue(
                    field="category_id",
                    issue_type="not_found",
                    message=f"Category '{category_id}' does not exist",
                    severity="error",
                    suggested_fix="Pick one of your categories",
                ))

        if credit_card_id:
            doc = await self._store.get(collection_path(user_id, CREDIT_CARDS), credit_card_id)
            if doc is None:
                issues.append(ValidationIssue(
                    field="credit_card_id",
                    issue_type="not_found",
                    message=f"Credit card '{credit_card_id}' does not exist",
                    severity="error",
                    suggested_fix="Pick one of your credit cards",
                ))

        return ValidationResult.from_issues(issues)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append("❌ This can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
