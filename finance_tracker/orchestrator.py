"""
Main Orchestrator for Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (create → expand → validate → single batch write)
2. Group mutation (edit or delete every member in one batch)
3. Reference data (categories, credit cards, bills to pay)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every write is ONE batch; a failed batch leaves nothing behind
- Nothing is written before validation passes
- No transaction ever points at a deleted category
- Every step is audited

Collaborators (store, identity provider, validator, audit logger) are
passed in. Nothing here reaches for a global.
"""

from typing import Any, Callable, NamedTuple, Optional, Union
from uuid import UUID

import structlog

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.config import get_settings
from finance_tracker.engine import (
    apply_edit,
    apply_group_edit,
    expand,
    group_edit_fields,
    pick_new_original,
)
from finance_tracker.models.reference import (
    DEFAULT_CATEGORIES,
    Category,
    CreditCard,
    FutureExpense,
    get_default_category,
)
from finance_tracker.models.transaction import (
    GroupEdit,
    OriginalDeletionPolicy,
    Transaction,
    TransactionEdit,
    TransactionRequest,
)
from finance_tracker.queries import ReportExecutor
from finance_tracker.services.identity import IdentityProvider, StaticIdentityProvider
from finance_tracker.services.storage import (
    CATEGORIES,
    CREDIT_CARDS,
    FUTURE_EXPENSES,
    TRANSACTIONS,
    DocumentAuditStorage,
    DocumentStore,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    Subscription,
    WriteOperation,
    collection_path,
    where,
)
from finance_tracker.validation import (
    TransactionValidator,
    ValidationError,
    parse_transaction_request,
)


logger = structlog.get_logger(__name__)


class _Flow:
    """Collaborators and write plumbing shared by every flow."""

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._identity = identity
        self._audit_logger = audit_logger

    async def _user_id(self) -> str:
        user = await self._identity.current_user()
        return user.user_id

    async def _commit(
        self,
        user_id: str,
        operation: str,
        operations: list[WriteOperation],
        correlation_id: UUID,
    ) -> None:
        """Write one batch; audit the failure before re-raising it."""
        try:
            await self._store.batch_write(operations)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    user_id=user_id,
                    operation=operation,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

    async def _validation_failed(
        self,
        user_id: Optional[str],
        operation: str,
        error: ValidationError,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in error.result.issues
            ]
            await self._audit_logger.log_validation_failed(
                user_id=user_id,
                operation=operation,
                issues=issues,
                correlation_id=correlation_id,
            )


class TransactionFlow(_Flow):
    """
    Orchestrates transaction creation and group mutation.

    Flow for a submission:
    1. Parse → closed request type
    2. Expand → drafts (stage 1 validation inside the engine)
    3. Validate references → category and card exist
    4. Assign ids → one batch of `set` operations
    5. Audit

    A failed batch surfaces StorageError and nothing is visible.
    There is no automatic retry.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        deletion_policy: Optional[OriginalDeletionPolicy] = None,
    ):
        super().__init__(store, identity, audit_logger)
        self._validator = validator or TransactionValidator(store)
        self._deletion_policy = deletion_policy or get_settings().app.original_deletion_policy

    def _path(self, user_id: str) -> str:
        return collection_path(user_id, TRANSACTIONS)

    async def prepare_transactions(
        self,
        user_id: str,
        request: Union[TransactionRequest, dict[str, Any]],
        correlation_id: UUID,
        operation: str = "add_transaction",
    ) -> list[Transaction]:
        """
        Validate and expand a request into transactions with ids.

        Nothing is written. Validation failures are audited and raised.
        """
        try:
            if isinstance(request, dict):
                request = parse_transaction_request(request)
            drafts = expand(request, validator=self._validator)
            references = await self._validator.validate_references(
                user_id,
                category_id=request.category_id,
                credit_card_id=request.credit_card_id,
            )
            if references.has_errors:
                raise ValidationError(references)
        except ValidationError as e:
            await self._validation_failed(user_id, operation, e, correlation_id)
            raise

        return [draft.to_transaction() for draft in drafts]

    async def add_transaction(
        self,
        request: Union[TransactionRequest, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Create the transaction(s) a submission stands for.

        Returns:
            The written transactions, in date order

        Raises:
            ValidationError: If the request is invalid (nothing written)
            StorageError: If the batch failed (nothing written)
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()

        transactions = await self.prepare_transactions(user_id, request, correlation_id)
        path = self._path(user_id)
        await self._commit(
            user_id,
            "add_transaction",
            [WriteOperation.set_document(path, t.id, t.to_document()) for t in transactions],
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_transactions_created(
                user_id=user_id,
                transaction_ids=[t.id for t in transactions],
                group_id=transactions[0].group_id,
                mode=request.get("mode", "single") if isinstance(request, dict) else request.mode,
                correlation_id=correlation_id,
            )

        logger.info(
            "transactions_added",
            count=len(transactions),
            group_id=transactions[0].group_id,
        )
        return transactions

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        user_id = await self._user_id()
        doc = await self._store.get(self._path(user_id), transaction_id)
        if doc is None:
            return None
        return Transaction.from_document(doc.id, doc.data)

    async def edit_single(
        self,
        transaction_id: str,
        edit: TransactionEdit,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Change one transaction and nothing else.

        Group siblings are left alone even when the edited transaction
        belongs to a group.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ValidationError: If the result would be invalid
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        path = self._path(user_id)

        doc = await self._store.get(path, transaction_id)
        if doc is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        current = Transaction.from_document(doc.id, doc.data)

        try:
            updated = apply_edit(current, edit)
            references = await self._validator.validate_references(
                user_id,
                category_id=updated.category_id if updated.category_id != current.category_id else None,
                credit_card_id=(
                    updated.credit_card_id
                    if updated.credit_card_id != current.credit_card_id else None
                ),
            )
            if references.has_errors:
                raise ValidationError(references)
        except ValidationError as e:
            await self._validation_failed(user_id, "edit_single", e, correlation_id)
            raise

        await self._commit(
            user_id,
            "edit_single",
            [WriteOperation.set_document(path, updated.id, updated.to_document())],
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                user_id=user_id,
                transaction_id=updated.id,
                fields=sorted(edit.model_fields_set),
                correlation_id=correlation_id,
            )
        return updated

    async def edit_group(
        self,
        group_id: str,
        edit: GroupEdit,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Apply category and payment changes to every member of a group.

        Description, amount and date of each member are never touched.

        Returns:
            Number of members updated (0 for an unknown group, no write)

        Raises:
            ValidationError: If the edit is empty or invalid
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()

        try:
            updates = group_edit_fields(edit)
            members = await self.get_group(group_id)
            if not members:
                return 0
            updated = apply_group_edit(members, edit)
            references = await self._validator.validate_references(
                user_id,
                category_id=updates.get("category_id"),
                credit_card_id=updates.get("credit_card_id"),
            )
            if references.has_errors:
                raise ValidationError(references)
        except ValidationError as e:
            await self._validation_failed(user_id, "edit_group", e, correlation_id)
            raise

        path = self._path(user_id)
        operations = []
        for member in updated:
            document = member.to_document()
            operations.append(WriteOperation.update_document(
                path,
                member.id,
                {field: document[field] for field in updates},
            ))
        await self._commit(user_id, "edit_group", operations, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_group_updated(
                user_id=user_id,
                group_id=group_id,
                count=len(operations),
                fields=sorted(updates),
                correlation_id=correlation_id,
            )
        return len(operations)

    async def delete_single(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete exactly one transaction. Siblings are kept.

        Deleting a group's original follows the configured policy.

        Returns:
            False if the transaction was already gone

        Raises:
            ValidationError: If the policy forbids deleting the original
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        path = self._path(user_id)

        doc = await self._store.get(path, transaction_id)
        if doc is None:
            return False
        transaction = Transaction.from_document(doc.id, doc.data)

        operations = [WriteOperation.delete_document(path, transaction.id)]
        promoted: Optional[Transaction] = None

        if transaction.is_original and transaction.group_id:
            if self._deletion_policy == OriginalDeletionPolicy.FORBID:
                error = ValidationError.single(
                    field="is_original",
                    issue_type="not_allowed",
                    message="The first transaction of a group can't be deleted on its own",
                    suggested_fix="Delete the whole group instead",
                )
                await self._validation_failed(user_id, "delete_single", error, correlation_id)
                raise error

            if self._deletion_policy == OriginalDeletionPolicy.PROMOTE:
                siblings = [
                    t for t in await self.get_group(transaction.group_id)
                    if t.id != transaction.id
                ]
                promoted = pick_new_original(siblings)
                if promoted:
                    operations.append(
                        WriteOperation.update_document(path, promoted.id, {"is_original": True})
                    )

        await self._commit(user_id, "delete_single", operations, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                user_id=user_id,
                transaction_id=transaction.id,
                group_id=transaction.group_id,
                was_original=transaction.is_original,
                correlation_id=correlation_id,
            )
            if promoted:
                await self._audit_logger.log_original_promoted(
                    user_id=user_id,
                    group_id=transaction.group_id,
                    transaction_id=promoted.id,
                    correlation_id=correlation_id,
                )
        return True

    async def delete_group(
        self,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete every member of a group in one batch.

        Returns:
            Number of members deleted (0 for an unknown group)
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        path = self._path(user_id)

        members = await self.get_group(group_id)
        if not members:
            return 0

        await self._commit(
            user_id,
            "delete_group",
            [WriteOperation.delete_document(path, m.id) for m in members],
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_group_deleted(
                user_id=user_id,
                group_id=group_id,
                count=len(members),
                correlation_id=correlation_id,
            )
        return len(members)

    async def get_group(self, group_id: str) -> list[Transaction]:
        """Members of a group, oldest first."""
        user_id = await self._user_id()
        docs = await self._store.query(
            self._path(user_id),
            [where("group_id", "==", group_id)],
            order_by="date",
        )
        return [Transaction.from_document(doc.id, doc.data) for doc in docs]

    async def list_transactions(
        self,
        category_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """Transactions, newest first."""
        user_id = await self._user_id()
        filters = [where("category_id", "==", category_id)] if category_id else []
        docs = await self._store.query(
            self._path(user_id),
            filters,
            order_by="date",
            descending=True,
        )
        if limit is not None:
            docs = docs[:limit]
        return [Transaction.from_document(doc.id, doc.data) for doc in docs]

    async def subscribe(
        self,
        on_change: Callable[[list[Transaction]], None],
    ) -> Subscription:
        """Receive the full transaction list, newest first, on every change."""
        user_id = await self._user_id()
        return await self._store.subscribe(
            self._path(user_id),
            lambda docs: on_change([Transaction.from_document(d.id, d.data) for d in docs]),
            order_by="date",
            descending=True,
        )


class CategoryFlow(_Flow):
    """
    Orchestrates category management.

    Built-in categories are fixed. Deleting a custom category moves its
    transactions to the fallback category in the same batch that
    removes the category, so no transaction is ever left pointing at
    a category that doesn't exist.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        audit_logger: Optional[AuditLogger] = None,
        fallback_category_id: Optional[str] = None,
    ):
        super().__init__(store, identity, audit_logger)
        self._fallback_category_id = (
            fallback_category_id or get_settings().app.fallback_category_id
        )

    def _path(self, user_id: str) -> str:
        return collection_path(user_id, CATEGORIES)

    @staticmethod
    def _check_custom(category_id: str) -> None:
        if get_default_category(category_id) is not None:
            raise ValidationError.single(
                field="category_id",
                issue_type="not_allowed",
                message="Default categories can't be changed or deleted",
            )

    async def list_categories(self) -> list[Category]:
        """Default and custom categories, sorted by name."""
        user_id = await self._user_id()
        docs = await self._store.query(self._path(user_id))
        custom = [Category.from_document(doc.id, doc.data) for doc in docs]
        return sorted(
            list(DEFAULT_CATEGORIES) + custom,
            key=lambda c: c.name.casefold(),
        )

    async def add_category(
        self,
        name: str,
        icon: str = "Sprout",
        correlation_id: Optional[UUID] = None,
    ) -> Category:
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        category = Category(name=name, icon=icon)

        await self._commit(
            user_id,
            "add_category",
            [WriteOperation.set_document(self._path(user_id), category.id, category.to_document())],
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_category_saved(
                user_id=user_id,
                category_id=category.id,
                name=category.name,
                correlation_id=correlation_id,
            )
        return category

    async def update_category(
        self,
        category_id: str,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Category:
        """
        Rename a custom category or change its icon.

        Raises:
            ValidationError: For default categories
            NotFoundError: If the category doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()
        self._check_custom(category_id)
        user_id = await self._user_id()
        path = self._path(user_id)

        doc = await self._store.get(path, category_id)
        if doc is None:
            raise NotFoundError(f"Category not found: {category_id}")
        category = Category.from_document(doc.id, doc.data)
        category = Category(
            id=category.id,
            name=name if name is not None else category.name,
            icon=icon if icon is not None else category.icon,
        )

        await self._commit(
            user_id,
            "update_category",
            [WriteOperation.set_document(path, category.id, category.to_document())],
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_category_saved(
                user_id=user_id,
                category_id=category.id,
                name=category.name,
                correlation_id=correlation_id,
            )
        return category

    async def delete_category(
        self,
        category_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete a custom category.

        Every transaction in it moves to the fallback category, in the
        same batch that deletes the category.

        Returns:
            Number of transactions reassigned

        Raises:
            ValidationError: For default categories
        """
        correlation_id = correlation_id or create_correlation_id()
        self._check_custom(category_id)
        user_id = await self._user_id()
        transactions_path = collection_path(user_id, TRANSACTIONS)

        docs = await self._store.query(
            transactions_path,
            [where("category_id", "==", category_id)],
        )
        operations = [
            WriteOperation.update_document(
                transactions_path,
                doc.id,
                {"category_id": self._fallback_category_id},
            )
            for doc in docs
        ]
        operations.append(WriteOperation.delete_document(self._path(user_id), category_id))

        await self._commit(user_id, "delete_category", operations, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_category_deleted(
                user_id=user_id,
                category_id=category_id,
                fallback_id=self._fallback_category_id,
                reassigned=len(docs),
                correlation_id=correlation_id,
            )
        return len(docs)

    async def subscribe(
        self,
        on_change: Callable[[list[Category]], None],
    ) -> Subscription:
        """Receive default plus custom categories on every change."""
        user_id = await self._user_id()

        def deliver(docs) -> None:
            custom = [Category.from_document(d.id, d.data) for d in docs]
            on_change(sorted(list(DEFAULT_CATEGORIES) + custom, key=lambda c: c.name.casefold()))

        return await self._store.subscribe(self._path(user_id), deliver)


class CreditCardFlow(_Flow):
    """Orchestrates credit card management."""

    def _path(self, user_id: str) -> str:
        return collection_path(user_id, CREDIT_CARDS)

    async def list_credit_cards(self) -> list[CreditCard]:
        user_id = await self._user_id()
        docs = await self._store.query(self._path(user_id), order_by="name")
        return [CreditCard.from_document(doc.id, doc.data) for doc in docs]

    async def get_credit_card(self, card_id: str) -> Optional[CreditCard]:
        user_id = await self._user_id()
        doc = await self._store.get(self._path(user_id), card_id)
        if doc is None:
            return None
        return CreditCard.from_document(doc.id, doc.data)

    async def add_credit_card(
        self,
        card: CreditCard,
        correlation_id: Optional[UUID] = None,
    ) -> CreditCard:
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        await self._save(user_id, "add_credit_card", card, correlation_id)
        return card

    async def update_credit_card(
        self,
        card: CreditCard,
        correlation_id: Optional[UUID] = None,
    ) -> CreditCard:
        """
        Replace a stored card.

        Raises:
            NotFoundError: If the card doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        if await self._store.get(self._path(user_id), card.id) is None:
            raise NotFoundError(f"Credit card not found: {card.id}")
        await self._save(user_id, "update_credit_card", card, correlation_id)
        return card

    async def _save(
        self,
        user_id: str,
        operation: str,
        card: CreditCard,
        correlation_id: UUID,
    ) -> None:
        await self._commit(
            user_id,
            operation,
            [WriteOperation.set_document(self._path(user_id), card.id, card.to_document())],
            correlation_id,
        )
        if self._audit_logger:
            await self._audit_logger.log_credit_card_saved(
                user_id=user_id,
                card_id=card.id,
                name=card.name,
                correlation_id=correlation_id,
            )

    async def delete_credit_card(
        self,
        card_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a card. Transactions paid with it keep their card id.

        Returns:
            False if the card was already gone
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        path = self._path(user_id)
        if await self._store.get(path, card_id) is None:
            return False

        await self._commit(
            user_id,
            "delete_credit_card",
            [WriteOperation.delete_document(path, card_id)],
            correlation_id,
        )
        if self._audit_logger:
            await self._audit_logger.log_credit_card_deleted(
                user_id=user_id,
                card_id=card_id,
                correlation_id=correlation_id,
            )
        return True

    async def subscribe(
        self,
        on_change: Callable[[list[CreditCard]], None],
    ) -> Subscription:
        user_id = await self._user_id()
        return await self._store.subscribe(
            self._path(user_id),
            lambda docs: on_change([CreditCard.from_document(d.id, d.data) for d in docs]),
            order_by="name",
        )


class FutureExpenseFlow(_Flow):
    """
    Orchestrates bills to pay.

    Paying a bill creates its transaction(s) and removes the bill in
    the same batch: either the bill is paid or it is still pending.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        transaction_flow: TransactionFlow,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(store, identity, audit_logger)
        self._transaction_flow = transaction_flow

    def _path(self, user_id: str) -> str:
        return collection_path(user_id, FUTURE_EXPENSES)

    async def list_future_expenses(self) -> list[FutureExpense]:
        user_id = await self._user_id()
        docs = await self._store.query(self._path(user_id), order_by="description")
        return [FutureExpense.from_document(doc.id, doc.data) for doc in docs]

    async def add_future_expense(
        self,
        expense: FutureExpense,
        correlation_id: Optional[UUID] = None,
    ) -> FutureExpense:
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        await self._save(user_id, "add_future_expense", expense, correlation_id)
        return expense

    async def update_future_expense(
        self,
        expense: FutureExpense,
        correlation_id: Optional[UUID] = None,
    ) -> FutureExpense:
        """
        Replace a stored bill.

        Raises:
            NotFoundError: If the bill doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        if await self._store.get(self._path(user_id), expense.id) is None:
            raise NotFoundError(f"Future expense not found: {expense.id}")
        await self._save(user_id, "update_future_expense", expense, correlation_id)
        return expense

    async def _save(
        self,
        user_id: str,
        operation: str,
        expense: FutureExpense,
        correlation_id: UUID,
    ) -> None:
        await self._commit(
            user_id,
            operation,
            [WriteOperation.set_document(self._path(user_id), expense.id, expense.to_document())],
            correlation_id,
        )
        if self._audit_logger:
            await self._audit_logger.log_future_expense_saved(
                user_id=user_id,
                expense_id=expense.id,
                description=expense.description,
                correlation_id=correlation_id,
            )

    async def delete_future_expense(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        path = self._path(user_id)
        if await self._store.get(path, expense_id) is None:
            return False

        await self._commit(
            user_id,
            "delete_future_expense",
            [WriteOperation.delete_document(path, expense_id)],
            correlation_id,
        )
        if self._audit_logger:
            await self._audit_logger.log_future_expense_deleted(
                user_id=user_id,
                expense_id=expense_id,
                correlation_id=correlation_id,
            )
        return True

    async def pay_future_expense(
        self,
        expense_id: str,
        request: Union[TransactionRequest, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Turn a bill into transaction(s) and remove it, atomically.

        Raises:
            NotFoundError: If the bill doesn't exist
            ValidationError: If the request is invalid (nothing written)
        """
        correlation_id = correlation_id or create_correlation_id()
        user_id = await self._user_id()
        path = self._path(user_id)

        if await self._store.get(path, expense_id) is None:
            raise NotFoundError(f"Future expense not found: {expense_id}")

        transactions = await self._transaction_flow.prepare_transactions(
            user_id,
            request,
            correlation_id,
            operation="pay_future_expense",
        )
        transactions_path = collection_path(user_id, TRANSACTIONS)
        operations = [
            WriteOperation.set_document(transactions_path, t.id, t.to_document())
            for t in transactions
        ]
        operations.append(WriteOperation.delete_document(path, expense_id))
        await self._commit(user_id, "pay_future_expense", operations, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_future_expense_paid(
                user_id=user_id,
                expense_id=expense_id,
                transaction_ids=[t.id for t in transactions],
                correlation_id=correlation_id,
            )
        return transactions

    async def subscribe(
        self,
        on_change: Callable[[list[FutureExpense]], None],
    ) -> Subscription:
        user_id = await self._user_id()
        return await self._store.subscribe(
            self._path(user_id),
            lambda docs: on_change([FutureExpense.from_document(d.id, d.data) for d in docs]),
            order_by="description",
        )


class AppComponents(NamedTuple):
    """Everything the UI layer needs, wired together."""
    transactions: TransactionFlow
    categories: CategoryFlow
    credit_cards: CreditCardFlow
    future_expenses: FutureExpenseFlow
    reports: ReportExecutor
    store: DocumentStore


def create_app_components(
    store: Optional[DocumentStore] = None,
    identity: Optional[IdentityProvider] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        store: Document store to use. Built from settings when None
               (google_sheets falls back to memory if not configured).
        identity: Identity provider. Defaults to the configured
                  single user.

    Returns:
        AppComponents
    """
    app_settings = get_settings().app

    if store is None:
        if app_settings.storage_backend == "google_sheets":
            try:
                store = GoogleSheetsDocumentStore()
            except Exception as e:
                # Storage not configured - continue in memory
                logger.warning("storage_not_configured", error=str(e))
                store = InMemoryDocumentStore()
        else:
            store = InMemoryDocumentStore()

    identity = identity or StaticIdentityProvider(app_settings.default_user_id)
    audit_logger = AuditLogger(DocumentAuditStorage(store, identity))
    validator = TransactionValidator(
        store,
        max_months=app_settings.max_recurring_months,
        max_amount=app_settings.max_transaction_amount,
    )

    transaction_flow = TransactionFlow(
        store,
        identity,
        validator=validator,
        audit_logger=audit_logger,
        deletion_policy=app_settings.original_deletion_policy,
    )

    return AppComponents(
        transactions=transaction_flow,
        categories=CategoryFlow(
            store,
            identity,
            audit_logger=audit_logger,
            fallback_category_id=app_settings.fallback_category_id,
        ),
        credit_cards=CreditCardFlow(store, identity, audit_logger=audit_logger),
        future_expenses=FutureExpenseFlow(
            store,
            identity,
            transaction_flow,
            audit_logger=audit_logger,
        ),
        reports=ReportExecutor(
            store,
            identity,
            fallback_category_id=app_settings.fallback_category_id,
        ),
        store=store,
    )
