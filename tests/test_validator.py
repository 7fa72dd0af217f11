"""Tests for the two-stage transaction validator."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.models.reference import Category, CreditCard
from finance_tracker.models.transaction import (
    InstallmentRequest,
    PaymentMethod,
    RecurringRequest,
    SingleTransactionRequest,
    TransactionType,
)
from finance_tracker.services.storage import (
    CATEGORIES,
    CREDIT_CARDS,
    InMemoryDocumentStore,
    WriteOperation,
    collection_path,
)
from finance_tracker.validation import (
    InvalidRangeError,
    TransactionValidator,
    ValidationError,
    parse_transaction_request,
)


def _single(**overrides):
    data = {
        "description": "Padaria",
        "total_amount": Decimal("12.50"),
        "type": TransactionType.EXPENSE,
        "category_id": "alimentacao",
        "start_date": date(2024, 6, 1),
    }
    data.update(overrides)
    return SingleTransactionRequest(**data)


@pytest.fixture
def request_validator():
    return TransactionValidator(max_months=24, max_amount=Decimal("10000"))


class TestRequestValidation:
    """Stage 1: checks that need no storage."""

    def test_valid_single(self, request_validator):
        result = request_validator.validate_request(_single())
        assert result.is_valid
        assert result.issues == []

    def test_card_payment_requires_card(self, request_validator):
        result = request_validator.validate_request(
            _single(payment_method=PaymentMethod.CREDIT_CARD)
        )
        assert not result.is_valid
        assert result.issues[0].field == "credit_card_id"
        assert result.issues[0].issue_type == "missing"

    def test_cash_forbids_card(self, request_validator):
        result = request_validator.validate_request(
            _single(payment_method=PaymentMethod.CASH, credit_card_id="card-1")
        )
        assert not result.is_valid
        assert result.issues[0].issue_type == "not_allowed"

    def test_income_forbids_payment_method(self, request_validator):
        result = request_validator.validate_request(
            _single(type=TransactionType.INCOME, payment_method=PaymentMethod.CASH)
        )
        assert not result.is_valid
        assert result.issues[0].field == "payment_method"

    def test_recurring_income_rejected(self, request_validator):
        request = RecurringRequest(
            description="Aluguel recebido",
            total_amount=Decimal("1500"),
            type=TransactionType.INCOME,
            category_id="salario",
            start_date=date(2024, 1, 5),
            end_date=date(2024, 6, 5),
        )
        result = request_validator.validate_request(request)
        assert not result.is_valid
        assert result.issues[0].field == "type"

    def test_installment_count_bounds(self, request_validator):
        def request(count):
            return InstallmentRequest(
                description="TV",
                total_amount=Decimal("3000"),
                type=TransactionType.EXPENSE,
                category_id="compras",
                start_date=date(2024, 1, 5),
                count=count,
            )

        assert request_validator.validate_request(request(24)).is_valid
        assert request_validator.validate_request(request(0)).issues[0].issue_type == "invalid_value"
        assert request_validator.validate_request(request(25)).issues[0].issue_type == "out_of_range"

    def test_installment_below_one_cent(self, request_validator):
        def request(total, count):
            return InstallmentRequest(
                description="Chiclete",
                total_amount=Decimal(total),
                type=TransactionType.EXPENSE,
                category_id="alimentacao",
                start_date=date(2024, 1, 5),
                count=count,
            )

        assert request_validator.validate_request(request("0.03", 3)).is_valid
        result = request_validator.validate_request(request("0.02", 3))
        assert not result.is_valid
        assert result.issues[0].field == "count"
        assert result.issues[0].issue_type == "invalid_value"

    def test_large_amount_is_only_a_warning(self, request_validator):
        result = request_validator.validate_request(_single(total_amount=Decimal("25000")))
        assert result.is_valid
        assert len(result.warnings) == 1
        assert "unusually high" in result.warnings[0]

    def test_check_request_raises_range_error(self, request_validator):
        request = RecurringRequest(
            description="Academia",
            total_amount=Decimal("99.90"),
            type=TransactionType.EXPENSE,
            category_id="saude",
            start_date=date(2024, 1, 1),
            end_date=date(2030, 1, 1),
        )
        with pytest.raises(InvalidRangeError) as exc_info:
            request_validator.check_request(request)
        assert exc_info.value.result.issues[0].field == "end_date"

    def test_check_request_raises_validation_error(self, request_validator):
        with pytest.raises(ValidationError, match="Select a credit card"):
            request_validator.check_request(_single(payment_method=PaymentMethod.CREDIT_CARD))


class TestParseTransactionRequest:
    """Untyped payloads are parsed into the closed request type."""

    def test_parses_each_mode(self):
        base = {
            "description": "Curso",
            "total_amount": "600.00",
            "type": "expense",
            "category_id": "outros",
            "start_date": "2024-02-10",
        }
        assert isinstance(parse_transaction_request({**base, "mode": "single"}), SingleTransactionRequest)
        parsed = parse_transaction_request({**base, "mode": "installments", "count": 6})
        assert isinstance(parsed, InstallmentRequest)
        assert parsed.count == 6
        parsed = parse_transaction_request({**base, "mode": "recurring", "end_date": "2024-12-10"})
        assert isinstance(parsed, RecurringRequest)
        assert parsed.end_date == date(2024, 12, 10)

    def test_unknown_mode(self):
        with pytest.raises(ValidationError):
            parse_transaction_request({
                "mode": "weekly",
                "description": "x",
                "total_amount": "1",
                "type": "expense",
                "category_id": "outros",
                "start_date": "2024-02-10",
            })

    def test_reports_every_field_issue(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_transaction_request({
                "mode": "single",
                "description": "",
                "total_amount": "-5",
                "type": "expense",
                "category_id": "outros",
                "start_date": "2024-02-10",
            })
        fields = {issue.field for issue in exc_info.value.result.issues}
        assert any("description" in f for f in fields)
        assert any("total_amount" in f for f in fields)

    def test_extra_fields_rejected(self):
        with pytest.raises(ValidationError):
            parse_transaction_request({
                "mode": "single",
                "description": "x",
                "total_amount": "1",
                "type": "expense",
                "category_id": "outros",
                "start_date": "2024-02-10",
                "group_id": "injected",
            })


class TestReferenceValidation:
    """Stage 2: referenced documents must exist."""

    def _store_with(self, category=None, card=None):
        store = InMemoryDocumentStore()
        operations = []
        if category:
            operations.append(WriteOperation.set_document(
                collection_path("u1", CATEGORIES), category.id, category.to_document()
            ))
        if card:
            operations.append(WriteOperation.set_document(
                collection_path("u1", CREDIT_CARDS), card.id, card.to_document()
            ))
        asyncio.run(store.batch_write(operations))
        return store

    def test_default_category_needs_no_lookup(self):
        validator = TransactionValidator(InMemoryDocumentStore(), max_months=600, max_amount=Decimal("1000"))
        result = asyncio.run(validator.validate_references("u1", category_id="moradia"))
        assert result.is_valid

    def test_custom_category_and_card(self):
        category = Category(name="Pets")
        card = CreditCard(name="Nubank")
        validator = TransactionValidator(
            self._store_with(category, card), max_months=600, max_amount=Decimal("1000")
        )
        result = asyncio.run(validator.validate_references(
            "u1", category_id=category.id, credit_card_id=card.id
        ))
        assert result.is_valid

    def test_missing_references(self):
        validator = TransactionValidator(InMemoryDocumentStore(), max_months=600, max_amount=Decimal("1000"))
        result = asyncio.run(validator.validate_references(
            "u1", category_id="pets", credit_card_id="card-x"
        ))
        assert result.error_count == 2
        assert {i.field for i in result.issues} == {"category_id", "credit_card_id"}

    def test_other_users_data_does_not_count(self):
        category = Category(name="Pets")
        validator = TransactionValidator(
            self._store_with(category), max_months=600, max_amount=Decimal("1000")
        )
        result = asyncio.run(validator.validate_references("u2", category_id=category.id))
        assert not result.is_valid

    def test_without_store_is_skipped(self, request_validator):
        result = asyncio.run(request_validator.validate_references("u1", category_id="pets"))
        assert result.is_valid


class TestUserFriendlySummary:
    """Rendering of validation results."""

    def test_all_clear(self, request_validator):
        result = request_validator.validate_request(_single())
        assert request_validator.get_user_friendly_summary(result) == "✅ All checks passed!"

    def test_errors_and_fixes(self, request_validator):
        result = request_validator.validate_request(
            _single(payment_method=PaymentMethod.CASH, credit_card_id="card-1")
        )
        summary = request_validator.get_user_friendly_summary(result)
        assert "can't be saved" in summary
        assert "💡" in summary
