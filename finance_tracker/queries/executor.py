"""
Report Execution Engine

DESIGN DECISION: Reports are DETERMINISTIC reads over stored data.
They compute totals the dashboard and the reports screen show, and
return plain models; drawing them is the UI's business.

GUARANTEES:
- Only real transactions from the store are counted
- Never estimates; an empty month is all zeros
- Amounts stay Decimal end to end
"""

import csv
import io
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from finance_tracker.config import get_settings
from finance_tracker.dates import add_months, month_bounds
from finance_tracker.models.reference import DEFAULT_CATEGORIES, Category, get_default_category
from finance_tracker.models.report import CategoryTotal, EvolutionPoint, MonthlySummary
from finance_tracker.models.transaction import PaymentMethod, Transaction, TransactionType
from finance_tracker.services.identity import IdentityProvider
from finance_tracker.services.storage import (
    CATEGORIES,
    TRANSACTIONS,
    DocumentStore,
    collection_path,
    where,
)


# Ranges up to this many days are bucketed per day, longer ones per month
DAILY_BUCKET_MAX_DAYS = 31

CSV_COLUMNS = ["ID", "Description", "Amount", "Type", "Category", "Date"]


class ReportExecutor:
    """
    Executes the dashboard and report computations for the current user.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        fallback_category_id: Optional[str] = None,
    ):
        self._store = store
        self._identity = identity
        self._fallback_category_id = (
            fallback_category_id or get_settings().app.fallback_category_id
        )

    async def _load_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Transaction]:
        """Transactions in [date_from, date_to], oldest first."""
        user = await self._identity.current_user()
        # Dates are stored as ISO strings, which order like the dates themselves
        filters = []
        if date_from:
            filters.append(where("date", ">=", date_from.isoformat()))
        if date_to:
            filters.append(where("date", "<=", date_to.isoformat()))

        docs = await self._store.query(
            collection_path(user.user_id, TRANSACTIONS),
            filters,
            order_by="date",
        )
        return [Transaction.from_document(doc.id, doc.data) for doc in docs]

    async def _load_categories(self) -> list[Category]:
        """Default categories followed by the user's own."""
        user = await self._identity.current_user()
        docs = await self._store.query(collection_path(user.user_id, CATEGORIES))
        return list(DEFAULT_CATEGORIES) + [
            Category.from_document(doc.id, doc.data) for doc in docs
        ]

    async def monthly_summary(self, year: int, month: int) -> MonthlySummary:
        """
        Income and expenses of one month.

        Credit card expenses are reported apart from everything else.
        """
        first, last = month_bounds(year, month)
        transactions = await self._load_transactions(first, last)

        summary = MonthlySummary(year=year, month=month, transaction_count=len(transactions))
        for t in transactions:
            if t.type == TransactionType.INCOME:
                summary.total_income += t.amount
            elif t.payment_method == PaymentMethod.CREDIT_CARD:
                summary.card_expense += t.amount
            else:
                summary.cash_expense += t.amount
        return summary

    async def expenses_by_category(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[CategoryTotal]:
        """
        Spending per category, largest first.

        Transactions pointing at a category that no longer exists are
        counted under the fallback category.
        """
        transactions = await self._load_transactions(date_from, date_to)
        categories = {c.id: c for c in await self._load_categories()}

        totals: dict[str, CategoryTotal] = {}
        for t in transactions:
            if t.type != TransactionType.EXPENSE:
                continue
            category_id = t.category_id if t.category_id in categories else self._fallback_category_id
            if category_id not in totals:
                category = categories.get(category_id) or get_default_category(category_id)
                totals[category_id] = CategoryTotal(
                    category_id=category_id,
                    name=category.name if category else category_id,
                    total=Decimal("0"),
                )
            totals[category_id].total += t.magnitude
            totals[category_id].transaction_count += 1

        return sorted(totals.values(), key=lambda c: (-c.total, c.name))

    async def evolution(self, date_from: date, date_to: date) -> list[EvolutionPoint]:
        """
        Income and expenses over time, with a running balance.

        Ranges of up to 31 days get one bucket per day; longer ranges
        get one bucket per calendar month. Empty buckets are included.
        """
        if date_to < date_from:
            raise ValueError("date_to must not be before date_from")

        transactions = await self._load_transactions(date_from, date_to)
        daily = (date_to - date_from).days <= DAILY_BUCKET_MAX_DAYS

        points: dict[date, EvolutionPoint] = {}
        if daily:
            day = date_from
            while day <= date_to:
                points[day] = EvolutionPoint(period_start=day, label=day.strftime("%d/%m"))
                day += timedelta(days=1)
        else:
            month = date_from.replace(day=1)
            while month <= date_to:
                points[month] = EvolutionPoint(period_start=month, label=month.strftime("%m/%Y"))
                month = add_months(month, 1)

        for t in transactions:
            key = t.date if daily else t.date.replace(day=1)
            if t.type == TransactionType.INCOME:
                points[key].income += t.amount
            else:
                points[key].expense += t.magnitude

        balance = Decimal("0")
        for point in points.values():
            balance += point.income - point.expense
            point.balance = balance
        return list(points.values())

    async def export_month_csv(self, year: int, month: int) -> str:
        """CSV of one month's transactions."""
        first, last = month_bounds(year, month)
        transactions = await self._load_transactions(first, last)
        return self.export_csv(transactions, await self._load_categories())

    def export_csv(
        self,
        transactions: Iterable[Transaction],
        categories: Iterable[Category] = DEFAULT_CATEGORIES,
    ) -> str:
        """
        Render transactions as CSV.

        Categories are written by name; ids that match no category are
        written as-is.
        """
        names = {c.id: c.name for c in categories}
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_COLUMNS)
        for t in transactions:
            writer.writerow([
                t.id,
                t.description,
                str(t.amount),
                t.type.value,
                names.get(t.category_id, t.category_id),
                t.date.isoformat(),
            ])
        return buffer.getvalue()
