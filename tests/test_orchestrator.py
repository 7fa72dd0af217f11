"""
Flow tests against the in-memory document store.

Covers creation, single and group mutation, deletion policies,
category reassignment, credit cards and bills to pay.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.models.audit import AuditEvent, AuditEventType
from finance_tracker.models.reference import CreditCard, FutureExpense
from finance_tracker.models.transaction import (
    GroupEdit,
    InstallmentRequest,
    OriginalDeletionPolicy,
    PaymentMethod,
    RecurringRequest,
    SingleTransactionRequest,
    Transaction,
    TransactionEdit,
    TransactionType,
)
from finance_tracker.orchestrator import (
    AppComponents,
    CategoryFlow,
    TransactionFlow,
    create_app_components,
)
from finance_tracker.services.identity import AuthenticationError, StaticIdentityProvider
from finance_tracker.services.storage import (
    AUDIT_LOG,
    TRANSACTIONS,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    collection_path,
    where,
)
from finance_tracker.validation import InvalidRangeError, ValidationError


USER_ID = "user-1"
TRANSACTIONS_PATH = collection_path(USER_ID, TRANSACTIONS)


class FailingStore(InMemoryDocumentStore):
    """Reads work, every batch is refused."""

    async def batch_write(self, operations):
        raise StorageError("backend unavailable")


def _installments(count=3, **overrides):
    data = {
        "description": "Geladeira",
        "total_amount": Decimal("100.00"),
        "type": TransactionType.EXPENSE,
        "category_id": "compras",
        "start_date": date(2024, 1, 15),
        "count": count,
    }
    data.update(overrides)
    return InstallmentRequest(**data)


def _single(**overrides):
    data = {
        "description": "Uber",
        "total_amount": Decimal("25.00"),
        "type": TransactionType.EXPENSE,
        "category_id": "transporte",
        "start_date": date(2024, 1, 20),
        "payment_method": PaymentMethod.CASH,
    }
    data.update(overrides)
    return SingleTransactionRequest(**data)


def _stored(store):
    docs = asyncio.run(store.query(TRANSACTIONS_PATH))
    return [Transaction.from_document(d.id, d.data) for d in docs]


def _audit_types(audit_store):
    docs = asyncio.run(audit_store.query(collection_path(USER_ID, AUDIT_LOG), order_by="timestamp"))
    return [AuditEvent.from_document(d.id, d.data).event_type for d in docs]


class TestAddTransaction:
    """Creation writes every member in one batch."""

    def test_installments_are_written(self, transaction_flow, store):
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        assert [t.amount for t in created] == [
            Decimal("-33.33"), Decimal("-33.33"), Decimal("-33.34"),
        ]
        stored = sorted(_stored(store), key=lambda t: t.date)
        assert stored == created

    def test_recurring_is_written(self, transaction_flow, store):
        created = asyncio.run(transaction_flow.add_transaction(RecurringRequest(
            description="Netflix",
            total_amount=Decimal("50.00"),
            type=TransactionType.EXPENSE,
            category_id="lazer",
            start_date=date(2024, 1, 10),
            end_date=date(2024, 4, 10),
        )))
        assert len(created) == 4
        assert len(_stored(store)) == 4

    def test_untyped_payload(self, transaction_flow):
        created = asyncio.run(transaction_flow.add_transaction({
            "mode": "single",
            "description": "Salário",
            "total_amount": "20",
            "type": "income",
            "category_id": "salario",
            "start_date": "2024-01-05",
        }))
        assert created[0].amount == Decimal("20")
        assert created[0].group_id is None

    def test_failed_batch_leaves_nothing(self, make_transaction_flow, audit_store):
        failing = FailingStore()
        flow = make_transaction_flow(store_override=failing)
        with pytest.raises(StorageError):
            asyncio.run(flow.add_transaction(_installments(count=12)))
        assert _stored(failing) == []
        assert AuditEventType.SAVE_FAILED in _audit_types(audit_store)

    def test_invalid_request_writes_nothing(self, transaction_flow, store, audit_store):
        with pytest.raises(ValidationError):
            asyncio.run(transaction_flow.add_transaction(
                _single(payment_method=PaymentMethod.CREDIT_CARD)
            ))
        assert _stored(store) == []
        assert _audit_types(audit_store) == [AuditEventType.VALIDATION_FAILED]

    def test_unsplittable_installments_are_audited(self, transaction_flow, store, audit_store):
        with pytest.raises(ValidationError):
            asyncio.run(transaction_flow.add_transaction(
                _installments(total_amount=Decimal("0.02"), count=3)
            ))
        assert _stored(store) == []
        assert _audit_types(audit_store) == [AuditEventType.VALIDATION_FAILED]

    def test_unknown_category_rejected(self, transaction_flow, store):
        with pytest.raises(ValidationError, match="does not exist"):
            asyncio.run(transaction_flow.add_transaction(_single(category_id="pets")))
        assert _stored(store) == []

    def test_unknown_card_rejected(self, transaction_flow):
        with pytest.raises(ValidationError):
            asyncio.run(transaction_flow.add_transaction(_single(
                payment_method=PaymentMethod.CREDIT_CARD,
                credit_card_id="card-x",
            )))

    def test_range_error_propagates(self, store, identity):
        flow = TransactionFlow(store, identity, deletion_policy=OriginalDeletionPolicy.ALLOW)
        with pytest.raises(InvalidRangeError):
            asyncio.run(flow.add_transaction(_installments(count=601)))

    def test_signed_out_user(self, store):
        flow = TransactionFlow(
            store,
            StaticIdentityProvider(None),
            deletion_policy=OriginalDeletionPolicy.ALLOW,
        )
        with pytest.raises(AuthenticationError):
            asyncio.run(flow.add_transaction(_single()))

    def test_audit_event_per_creation(self, transaction_flow, audit_store):
        asyncio.run(transaction_flow.add_transaction(_installments()))
        assert _audit_types(audit_store) == [AuditEventType.TRANSACTIONS_CREATED]


class TestEditSingle:
    """Single edits touch exactly one record."""

    def test_edit_one_member_only(self, transaction_flow, store):
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        updated = asyncio.run(transaction_flow.edit_single(
            created[1].id,
            TransactionEdit(amount=Decimal("40"), description="Geladeira (ajuste)"),
        ))
        assert updated.amount == Decimal("-40")
        assert updated.group_id == created[1].group_id

        stored = {t.id: t for t in _stored(store)}
        assert stored[created[1].id].amount == Decimal("-40")
        assert stored[created[0].id] == created[0]
        assert stored[created[2].id] == created[2]

    def test_unknown_id(self, transaction_flow):
        with pytest.raises(NotFoundError):
            asyncio.run(transaction_flow.edit_single("nope", TransactionEdit(description="x")))

    def test_group_member_to_income_rejected(self, transaction_flow):
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        with pytest.raises(ValidationError):
            asyncio.run(transaction_flow.edit_single(
                created[0].id, TransactionEdit(type=TransactionType.INCOME)
            ))

    def test_new_category_must_exist(self, transaction_flow):
        created = asyncio.run(transaction_flow.add_transaction(_single()))
        with pytest.raises(ValidationError):
            asyncio.run(transaction_flow.edit_single(
                created[0].id, TransactionEdit(category_id="pets")
            ))


class TestEditGroup:
    """Group edits update every member in one batch."""

    def _card(self, credit_card_flow, name="Nubank"):
        return asyncio.run(credit_card_flow.add_credit_card(CreditCard(name=name)))

    def test_updates_every_member_and_nothing_else(self, transaction_flow, store):
        created = asyncio.run(transaction_flow.add_transaction(_installments(count=12)))
        group_id = created[0].group_id

        count = asyncio.run(transaction_flow.edit_group(group_id, GroupEdit(category_id="lazer")))
        assert count == 12

        by_id = {t.id: t for t in _stored(store)}
        for before in created:
            after = by_id[before.id]
            assert after.category_id == "lazer"
            assert (after.description, after.amount, after.date, after.is_original) == (
                before.description, before.amount, before.date, before.is_original,
            )

    def test_cash_clears_card_on_every_member(self, transaction_flow, credit_card_flow, store):
        card = self._card(credit_card_flow)
        created = asyncio.run(transaction_flow.add_transaction(_installments(
            count=4,
            payment_method=PaymentMethod.CREDIT_CARD,
            credit_card_id=card.id,
        )))
        count = asyncio.run(transaction_flow.edit_group(
            created[0].group_id, GroupEdit(payment_method=PaymentMethod.CASH)
        ))
        assert count == 4
        stored = _stored(store)
        assert all(t.payment_method == PaymentMethod.CASH for t in stored)
        assert all(t.credit_card_id is None for t in stored)

    def test_card_alone_switches_to_card(self, transaction_flow, credit_card_flow, store):
        card = self._card(credit_card_flow)
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        asyncio.run(transaction_flow.edit_group(created[0].group_id, GroupEdit(credit_card_id=card.id)))
        assert all(
            t.payment_method == PaymentMethod.CREDIT_CARD and t.credit_card_id == card.id
            for t in _stored(store)
        )

    def test_other_groups_untouched(self, transaction_flow, store):
        first = asyncio.run(transaction_flow.add_transaction(_installments()))
        second = asyncio.run(transaction_flow.add_transaction(_installments()))
        asyncio.run(transaction_flow.edit_group(first[0].group_id, GroupEdit(category_id="lazer")))
        others = [t for t in _stored(store) if t.group_id == second[0].group_id]
        assert {t.category_id for t in others} == {"compras"}

    def test_unknown_group_returns_zero(self, transaction_flow, audit_store):
        assert asyncio.run(transaction_flow.edit_group("nope", GroupEdit(category_id="lazer"))) == 0
        assert _audit_types(audit_store) == []

    def test_empty_edit_rejected(self, transaction_flow):
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        with pytest.raises(ValidationError):
            asyncio.run(transaction_flow.edit_group(created[0].group_id, GroupEdit()))

    def test_unknown_card_rejected(self, transaction_flow, store):
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        with pytest.raises(ValidationError):
            asyncio.run(transaction_flow.edit_group(
                created[0].group_id, GroupEdit(credit_card_id="card-x")
            ))
        assert all(t.payment_method is None for t in _stored(store))


class TestDeletion:
    """Single and group deletion, including the original-member policy."""

    def test_delete_single_keeps_siblings(self, transaction_flow, store):
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        assert asyncio.run(transaction_flow.delete_single(created[1].id)) is True
        remaining = {t.id for t in _stored(store)}
        assert remaining == {created[0].id, created[2].id}

    def test_delete_missing_returns_false(self, transaction_flow):
        assert asyncio.run(transaction_flow.delete_single("nope")) is False

    def test_delete_is_idempotent(self, transaction_flow):
        created = asyncio.run(transaction_flow.add_transaction(_single()))
        assert asyncio.run(transaction_flow.delete_single(created[0].id)) is True
        assert asyncio.run(transaction_flow.delete_single(created[0].id)) is False

    def test_allow_policy_leaves_group_without_original(self, make_transaction_flow, store):
        flow = make_transaction_flow(OriginalDeletionPolicy.ALLOW)
        created = asyncio.run(flow.add_transaction(_installments()))
        asyncio.run(flow.delete_single(created[0].id))
        assert not any(t.is_original for t in _stored(store))

    def test_promote_policy_marks_earliest_remaining(self, make_transaction_flow, store, audit_store):
        flow = make_transaction_flow(OriginalDeletionPolicy.PROMOTE)
        created = asyncio.run(flow.add_transaction(_installments(count=4)))
        asyncio.run(flow.delete_single(created[0].id))
        originals = [t for t in _stored(store) if t.is_original]
        assert [t.id for t in originals] == [created[1].id]
        assert AuditEventType.ORIGINAL_PROMOTED in _audit_types(audit_store)

    def test_promote_policy_last_member(self, make_transaction_flow, store):
        flow = make_transaction_flow(OriginalDeletionPolicy.PROMOTE)
        created = asyncio.run(flow.add_transaction(_installments(count=1)))
        assert asyncio.run(flow.delete_single(created[0].id)) is True
        assert _stored(store) == []

    def test_forbid_policy(self, make_transaction_flow, store):
        flow = make_transaction_flow(OriginalDeletionPolicy.FORBID)
        created = asyncio.run(flow.add_transaction(_installments()))
        with pytest.raises(ValidationError):
            asyncio.run(flow.delete_single(created[0].id))
        assert len(_stored(store)) == 3
        # Non-original members can still go
        assert asyncio.run(flow.delete_single(created[2].id)) is True

    def test_delete_group(self, transaction_flow, store):
        created = asyncio.run(transaction_flow.add_transaction(_installments(count=5)))
        single = asyncio.run(transaction_flow.add_transaction(_single()))
        assert asyncio.run(transaction_flow.delete_group(created[0].group_id)) == 5
        assert [t.id for t in _stored(store)] == [single[0].id]
        assert asyncio.run(transaction_flow.delete_group(created[0].group_id)) == 0


class TestReads:
    """Listing, group lookup and subscriptions."""

    def test_list_newest_first(self, transaction_flow):
        asyncio.run(transaction_flow.add_transaction(_installments()))
        listed = asyncio.run(transaction_flow.list_transactions())
        assert [t.date for t in listed] == [
            date(2024, 3, 15), date(2024, 2, 15), date(2024, 1, 15),
        ]
        assert len(asyncio.run(transaction_flow.list_transactions(limit=2))) == 2

    def test_list_by_category(self, transaction_flow):
        asyncio.run(transaction_flow.add_transaction(_installments()))
        asyncio.run(transaction_flow.add_transaction(_single()))
        listed = asyncio.run(transaction_flow.list_transactions(category_id="transporte"))
        assert [t.description for t in listed] == ["Uber"]

    def test_get_group_oldest_first(self, transaction_flow):
        created = asyncio.run(transaction_flow.add_transaction(_installments()))
        group = asyncio.run(transaction_flow.get_group(created[0].group_id))
        assert group == created

    def test_subscribe(self, transaction_flow):
        seen = []

        async def scenario():
            sub = await transaction_flow.subscribe(seen.append)
            await transaction_flow.add_transaction(_installments())
            sub.unsubscribe()
            await transaction_flow.add_transaction(_single())

        asyncio.run(scenario())
        assert [len(snapshot) for snapshot in seen] == [0, 3]
        assert all(isinstance(t, Transaction) for t in seen[-1])


class TestCategoryFlow:
    """Category management and deletion with reassignment."""

    def test_list_includes_defaults_and_custom(self, category_flow):
        custom = asyncio.run(category_flow.add_category("Pets", icon="Dog"))
        categories = asyncio.run(category_flow.list_categories())
        names = [c.name for c in categories]
        assert names == sorted(names, key=str.casefold)
        assert custom in categories
        assert len(categories) == 10

    def test_update_custom(self, category_flow):
        custom = asyncio.run(category_flow.add_category("Pets"))
        updated = asyncio.run(category_flow.update_category(custom.id, name="Bichos"))
        assert updated.name == "Bichos"
        assert updated.icon == custom.icon

    def test_update_missing(self, category_flow):
        with pytest.raises(NotFoundError):
            asyncio.run(category_flow.update_category("nope", name="x"))

    def test_defaults_are_fixed(self, category_flow):
        with pytest.raises(ValidationError):
            asyncio.run(category_flow.update_category("moradia", name="Casa"))
        with pytest.raises(ValidationError):
            asyncio.run(category_flow.delete_category("outros"))

    def test_delete_reassigns_to_fallback(self, category_flow, transaction_flow, store, audit_store):
        pets = asyncio.run(category_flow.add_category("Pets"))
        asyncio.run(transaction_flow.add_transaction(_installments(category_id=pets.id)))
        asyncio.run(transaction_flow.add_transaction(_single(category_id=pets.id)))
        asyncio.run(transaction_flow.add_transaction(_single()))

        assert asyncio.run(category_flow.delete_category(pets.id)) == 4

        stored = _stored(store)
        assert not any(t.category_id == pets.id for t in stored)
        assert sum(1 for t in stored if t.category_id == "outros") == 4
        assert sum(1 for t in stored if t.category_id == "transporte") == 1
        assert pets.id not in {c.id for c in asyncio.run(category_flow.list_categories())}
        assert AuditEventType.CATEGORY_DELETED in _audit_types(audit_store)

    def test_delete_is_one_batch(self, identity, audit_logger):
        """If the batch fails, neither the category nor any transaction changes."""
        store = FailingStore()
        flow = CategoryFlow(store, identity, audit_logger=audit_logger, fallback_category_id="outros")
        with pytest.raises(StorageError):
            asyncio.run(flow.delete_category("pets"))

    def test_subscribe(self, category_flow):
        seen = []

        async def scenario():
            await category_flow.subscribe(seen.append)
            await category_flow.add_category("Pets")

        asyncio.run(scenario())
        assert [len(snapshot) for snapshot in seen] == [9, 10]


class TestCreditCardFlow:
    """Credit card management."""

    def test_crud(self, credit_card_flow):
        card = asyncio.run(credit_card_flow.add_credit_card(CreditCard(name="Nubank", limit=Decimal("5000"))))
        assert asyncio.run(credit_card_flow.get_credit_card(card.id)) == card

        card.closing_day = 5
        asyncio.run(credit_card_flow.update_credit_card(card))
        assert asyncio.run(credit_card_flow.get_credit_card(card.id)).closing_day == 5

        assert asyncio.run(credit_card_flow.delete_credit_card(card.id)) is True
        assert asyncio.run(credit_card_flow.delete_credit_card(card.id)) is False
        assert asyncio.run(credit_card_flow.list_credit_cards()) == []

    def test_update_missing(self, credit_card_flow):
        with pytest.raises(NotFoundError):
            asyncio.run(credit_card_flow.update_credit_card(CreditCard(name="Inter")))

    def test_list_sorted_by_name(self, credit_card_flow):
        asyncio.run(credit_card_flow.add_credit_card(CreditCard(name="Nubank")))
        asyncio.run(credit_card_flow.add_credit_card(CreditCard(name="Inter")))
        names = [c.name for c in asyncio.run(credit_card_flow.list_credit_cards())]
        assert names == ["Inter", "Nubank"]


class TestFutureExpenseFlow:
    """Bills to pay."""

    def test_pay_creates_transaction_and_removes_bill(self, future_expense_flow, store, audit_store):
        bill = asyncio.run(future_expense_flow.add_future_expense(
            FutureExpense(description="IPVA", amount=Decimal("1200.00"))
        ))
        created = asyncio.run(future_expense_flow.pay_future_expense(
            bill.id,
            _installments(description="IPVA", total_amount=Decimal("1200.00"), count=3),
        ))
        assert len(created) == 3
        assert len(_stored(store)) == 3
        assert asyncio.run(future_expense_flow.list_future_expenses()) == []
        assert AuditEventType.FUTURE_EXPENSE_PAID in _audit_types(audit_store)

    def test_invalid_payment_keeps_bill(self, future_expense_flow, store):
        bill = asyncio.run(future_expense_flow.add_future_expense(
            FutureExpense(description="IPTU", amount=Decimal("800.00"))
        ))
        with pytest.raises(ValidationError):
            asyncio.run(future_expense_flow.pay_future_expense(
                bill.id, _single(category_id="pets")
            ))
        assert _stored(store) == []
        assert [b.id for b in asyncio.run(future_expense_flow.list_future_expenses())] == [bill.id]

    def test_pay_missing_bill(self, future_expense_flow):
        with pytest.raises(NotFoundError):
            asyncio.run(future_expense_flow.pay_future_expense("nope", _single()))

    def test_update_and_delete(self, future_expense_flow):
        bill = asyncio.run(future_expense_flow.add_future_expense(
            FutureExpense(description="Seguro", amount=Decimal("300.00"))
        ))
        bill.amount = Decimal("320.00")
        asyncio.run(future_expense_flow.update_future_expense(bill))
        assert asyncio.run(future_expense_flow.list_future_expenses())[0].amount == Decimal("320.00")
        assert asyncio.run(future_expense_flow.delete_future_expense(bill.id)) is True
        assert asyncio.run(future_expense_flow.delete_future_expense(bill.id)) is False


class TestCreateAppComponents:
    """Wiring from settings."""

    def test_memory_components(self):
        components = create_app_components(identity=StaticIdentityProvider("someone"))
        assert isinstance(components, AppComponents)
        assert isinstance(components.store, InMemoryDocumentStore)

        created = asyncio.run(components.transactions.add_transaction(_single()))
        docs = asyncio.run(components.store.query(
            collection_path("someone", TRANSACTIONS),
            [where("description", "==", "Uber")],
        ))
        assert [d.id for d in docs] == [created[0].id]

    def test_audit_trail_belongs_to_injected_user(self):
        components = create_app_components(identity=StaticIdentityProvider("someone"))
        asyncio.run(components.transactions.add_transaction(_single()))
        docs = asyncio.run(components.store.query(collection_path("someone", AUDIT_LOG)))
        events = [AuditEvent.from_document(d.id, d.data) for d in docs]
        assert [e.event_type for e in events] == [AuditEventType.TRANSACTIONS_CREATED]
