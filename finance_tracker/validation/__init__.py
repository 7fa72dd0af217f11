"""Validation module for Finance Tracker."""

from finance_tracker.validation.validator import (
    InvalidRangeError,
    TransactionValidator,
    ValidationError,
    check_payment,
    parse_transaction_request,
)

__all__ = [
    "TransactionValidator",
    "ValidationError",
    "InvalidRangeError",
    "check_payment",
    "parse_transaction_request",
]
