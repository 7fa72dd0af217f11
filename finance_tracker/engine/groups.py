"""
Transaction Group Engine

Turns one submission into the dated transactions it stands for, and
applies edits to a single transaction or to a whole group.

DESIGN DECISION: Everything here is pure and synchronous.
- No storage access; the flows read members and write the results
- No ids for drafts; the flows assign them while building the batch
- Validation runs BEFORE anything is generated

Group rules:
- Installments: total split into monthly parts rounded down to the
  cent, the last part absorbs the remainder so the parts add up exactly
- Recurring: the full amount once a month from start_date up to and
  including end_date
- Dates are always start_date + k months, never chained, so Jan 31
  gives Feb 29 and then Mar 31
- The first generated member is the group's original
"""

from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Any, Callable, Optional

import pydantic

from finance_tracker.dates import add_months, months_between
from finance_tracker.models.transaction import (
    CENT,
    GroupEdit,
    InstallmentRequest,
    PaymentMethod,
    RecurringRequest,
    Transaction,
    TransactionDraft,
    TransactionEdit,
    TransactionRequest,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    new_id,
    signed_amount,
)
from finance_tracker.validation import (
    InvalidRangeError,
    TransactionValidator,
    ValidationError,
    check_payment,
)


RECURRING_SUFFIX = " (Recorrente)"


# =============================================================================
# HELPERS
# =============================================================================

def split_installments(total: Decimal, count: int) -> list[Decimal]:
    """
    Split a positive total into `count` installment magnitudes.

    All but the last are total/count rounded down to the cent; the
    last takes whatever is left, so sum(parts) == total exactly.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    last = total - base * (count - 1)
    return [base] * (count - 1) + [last]


def recurring_dates(start: date, end: date, max_months: int) -> list[date]:
    """
    Monthly dates from start through end, inclusive.

    Raises:
        InvalidRangeError: If end is more than max_months after start
    """
    months = months_between(start, end)
    if months > max_months:
        raise InvalidRangeError.single(
            field="end_date",
            issue_type="out_of_range",
            message=f"Recurring expenses can span at most {max_months} months",
        )
    return [add_months(start, k) for k in range(months + 1)]


def _wrap_model_error(e: pydantic.ValidationError) -> ValidationError:
    issues = [
        ValidationIssue(
            field=".".join(str(part) for part in err["loc"]) or "transaction",
            issue_type=err["type"],
            message=err["msg"],
            severity="error",
        )
        for err in e.errors()
    ]
    return ValidationError(ValidationResult.from_issues(issues))


# =============================================================================
# EXPANSION
# =============================================================================

def expand(
    request: TransactionRequest,
    *,
    max_months: Optional[int] = None,
    id_factory: Callable[[], str] = new_id,
    validator: Optional[TransactionValidator] = None,
) -> list[TransactionDraft]:
    """
    Expand a creation request into its transaction drafts.

    Args:
        request: Single, installment or recurring request
        max_months: Horizon cap (settings default when omitted)
        id_factory: Source of the group id
        validator: Validator to run stage 1 with

    Returns:
        Drafts in date order. Installment and recurring drafts share a
        fresh group id and the first one is the original.

    Raises:
        ValidationError: If the request is invalid
        InvalidRangeError: If the group would exceed the horizon
    """
    validator = validator or TransactionValidator(max_months=max_months)
    validator.check_request(request)

    try:
        return _build_drafts(request, validator.max_months, id_factory)
    except pydantic.ValidationError as e:
        raise _wrap_model_error(e) from e


def _build_drafts(
    request: TransactionRequest,
    max_months: int,
    id_factory: Callable[[], str],
) -> list[TransactionDraft]:
    common = {
        "type": request.type,
        "category_id": request.category_id,
        "payment_method": request.payment_method,
        "credit_card_id": request.credit_card_id,
    }

    if isinstance(request, InstallmentRequest):
        group_id = id_factory()
        parts = split_installments(request.total_amount, request.count)
        return [
            TransactionDraft(
                description=f"{request.description} ({k + 1}/{request.count})",
                amount=signed_amount(part, request.type),
                date=add_months(request.start_date, k),
                group_id=group_id,
                is_original=(k == 0),
                **common,
            )
            for k, part in enumerate(parts)
        ]

    if isinstance(request, RecurringRequest):
        dates = recurring_dates(request.start_date, request.end_date, max_months)
        group_id = id_factory()
        return [
            TransactionDraft(
                description=f"{request.description}{RECURRING_SUFFIX}",
                amount=signed_amount(request.total_amount, request.type),
                date=d,
                group_id=group_id,
                is_original=(k == 0),
                **common,
            )
            for k, d in enumerate(dates)
        ]

    return [
        TransactionDraft(
            description=request.description,
            amount=signed_amount(request.total_amount, request.type),
            date=request.start_date,
            **common,
        )
    ]


# =============================================================================
# EDITS
# =============================================================================

def apply_edit(transaction: Transaction, edit: TransactionEdit) -> Transaction:
    """
    Apply an edit to one transaction.

    Only fields explicitly set on the edit change. The amount is a
    magnitude and gets its sign from the resulting type. Group
    membership (group_id, is_original) is never touched.

    Raises:
        ValidationError: If the result would break a transaction invariant
    """
    fields = edit.model_fields_set
    data = transaction.model_dump()

    for name in ("description", "category_id", "date"):
        if name in fields and getattr(edit, name) is not None:
            data[name] = getattr(edit, name)

    new_type = edit.type if edit.type is not None else transaction.type
    if transaction.group_id and new_type == TransactionType.INCOME:
        raise ValidationError.single(
            field="type",
            issue_type="not_allowed",
            message="Installment and recurring members must stay expenses",
            suggested_fix="Delete the member and add a single income instead",
        )
    data["type"] = new_type

    magnitude = edit.amount if edit.amount is not None else transaction.magnitude
    data["amount"] = signed_amount(magnitude, new_type)

    if "payment_method" in fields:
        data["payment_method"] = edit.payment_method
    elif new_type == TransactionType.INCOME:
        data["payment_method"] = None
    elif "credit_card_id" in fields and edit.credit_card_id:
        data["payment_method"] = PaymentMethod.CREDIT_CARD

    if "credit_card_id" in fields:
        data["credit_card_id"] = edit.credit_card_id
    if data["payment_method"] != PaymentMethod.CREDIT_CARD and "credit_card_id" not in fields:
        data["credit_card_id"] = None

    issues = check_payment(new_type, data["payment_method"], data["credit_card_id"])
    if issues:
        raise ValidationError(ValidationResult.from_issues(issues))

    try:
        return Transaction.model_validate(data)
    except pydantic.ValidationError as e:
        raise _wrap_model_error(e) from e


def group_edit_fields(edit: GroupEdit) -> dict[str, Any]:
    """
    The fields a group edit writes to every member.

    A card without a payment method implies a card payment; any other
    payment method clears the card.

    Raises:
        ValidationError: If the edit changes nothing or is inconsistent
    """
    if edit.is_empty:
        raise ValidationError.single(
            field="edit",
            issue_type="missing",
            message="A group edit must change at least one field",
        )

    updates: dict[str, Any] = {}
    if edit.category_id is not None:
        updates["category_id"] = edit.category_id

    payment_method = edit.payment_method
    if payment_method is None and edit.credit_card_id:
        payment_method = PaymentMethod.CREDIT_CARD

    if payment_method is not None:
        issues = check_payment(TransactionType.EXPENSE, payment_method, edit.credit_card_id)
        if issues:
            raise ValidationError(ValidationResult.from_issues(issues))
        updates["payment_method"] = payment_method
        updates["credit_card_id"] = (
            edit.credit_card_id if payment_method == PaymentMethod.CREDIT_CARD else None
        )

    return updates


def apply_group_edit(
    members: list[Transaction],
    edit: GroupEdit,
) -> list[Transaction]:
    """
    Apply a group edit to every member.

    Description, amount and date are never changed: each member keeps
    its own installment number, share of the total and month.

    Raises:
        ValidationError: If the edit is empty or a member would become invalid
    """
    updates = group_edit_fields(edit)
    updated = []
    for member in members:
        try:
            updated.append(Transaction.model_validate({**member.model_dump(), **updates}))
        except pydantic.ValidationError as e:
            raise _wrap_model_error(e) from e
    return updated


def pick_new_original(remaining: list[Transaction]) -> Optional[Transaction]:
    """Earliest remaining member (ties broken by id), or None if none are left."""
    if not remaining:
        return None
    return min(remaining, key=lambda t: (t.date, t.id))
