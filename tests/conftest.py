"""
Shared fixtures.

Every flow runs against InMemoryDocumentStore; async code is driven
with asyncio.run from plain tests. No network, no real spreadsheets.
"""

from decimal import Decimal

import pytest

from finance_tracker.audit import AuditLogger
from finance_tracker.models.transaction import OriginalDeletionPolicy
from finance_tracker.orchestrator import (
    CategoryFlow,
    CreditCardFlow,
    FutureExpenseFlow,
    TransactionFlow,
)
from finance_tracker.queries import ReportExecutor
from finance_tracker.services.identity import StaticIdentityProvider
from finance_tracker.services.storage import DocumentAuditStorage, InMemoryDocumentStore
from finance_tracker.validation import TransactionValidator


USER_ID = "user-1"


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def identity():
    return StaticIdentityProvider(USER_ID, email="ana@example.com")


@pytest.fixture
def audit_store():
    """Audit events go to their own store so write failures can be injected separately."""
    return InMemoryDocumentStore()


@pytest.fixture
def audit_logger(audit_store, identity):
    return AuditLogger(DocumentAuditStorage(audit_store, identity))


@pytest.fixture
def validator(store):
    return TransactionValidator(store, max_months=600, max_amount=Decimal("1000000"))


@pytest.fixture
def make_transaction_flow(store, identity, validator, audit_logger):
    def make(policy=OriginalDeletionPolicy.ALLOW, store_override=None):
        return TransactionFlow(
            store_override or store,
            identity,
            validator=validator,
            audit_logger=audit_logger,
            deletion_policy=policy,
        )
    return make


@pytest.fixture
def transaction_flow(make_transaction_flow):
    return make_transaction_flow()


@pytest.fixture
def category_flow(store, identity, audit_logger):
    return CategoryFlow(store, identity, audit_logger=audit_logger, fallback_category_id="outros")


@pytest.fixture
def credit_card_flow(store, identity, audit_logger):
    return CreditCardFlow(store, identity, audit_logger=audit_logger)


@pytest.fixture
def future_expense_flow(store, identity, transaction_flow, audit_logger):
    return FutureExpenseFlow(store, identity, transaction_flow, audit_logger=audit_logger)


@pytest.fixture
def reports(store, identity):
    return ReportExecutor(store, identity, fallback_category_id="outros")
