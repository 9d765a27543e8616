from __future__ import annotations

import calendar
import logging
import uuid
from collections import defaultdict
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable

from domain.categories import OTHER_CATEGORY_ID, CategoryRegistry, default_registry
from domain.models import (
    BudgetGoal,
    BudgetProgress,
    Category,
    CategoryExpense,
    LedgerData,
    NewTransaction,
    Period,
    Transaction,
    TransactionKind,
    TrendGranularity,
    TrendPoint,
)
from domain.schemas import (
    LedgerSnapshot,
    SnapshotBudgetGoal,
    SnapshotCategoryExpense,
    SnapshotTransaction,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _sum(transactions: Iterable[Transaction]) -> Decimal:
    return sum((txn.amount for txn in transactions), ZERO)


class LedgerAggregator:
    """Derived-value queries and mutations over one user's ledger.

    Monthly flow queries (`total_income`, `total_expenses`, `expenses_by_category`)
    are scoped to a calendar month; `current_balance` is all-time and includes
    the starting balance. No I/O happens here.
    """

    def __init__(
        self,
        categories: CategoryRegistry | None = None,
        clock: Callable[[], date] = date.today,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._categories = categories if categories is not None else default_registry
        self._clock = clock
        self._id_factory = id_factory
        self._transactions: list[Transaction] = []
        self._budget_goals: list[BudgetGoal] = self._categories.reconcile_goals([])
        self._starting_balance: Decimal = ZERO

    # ---- state access ----
    @property
    def categories(self) -> CategoryRegistry:
        return self._categories

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    @property
    def budget_goals(self) -> list[BudgetGoal]:
        return [replace(goal) for goal in self._budget_goals]

    @property
    def starting_balance(self) -> Decimal:
        return self._starting_balance

    def get_category(self, category_id: str) -> Category | None:
        return self._categories.get(category_id)

    def get_budget_goal(self, category_id: str) -> BudgetGoal | None:
        for goal in self._budget_goals:
            if goal.category_id == category_id:
                return replace(goal)
        return None

    def replace_state(self, data: LedgerData) -> None:
        self._transactions = sorted(data.transactions, key=lambda t: t.occurred_on, reverse=True)
        self._budget_goals = self._categories.reconcile_goals(data.budget_goals)
        self._starting_balance = Decimal(str(data.starting_balance))
        logger.debug(
            "LedgerAggregator state replaced transactions=%d goals=%d",
            len(self._transactions),
            len(self._budget_goals),
        )

    def export_state(self) -> LedgerData:
        return LedgerData(
            transactions=self.transactions,
            budget_goals=self.budget_goals,
            starting_balance=self._starting_balance,
        )

    # ---- mutations ----
    def add_transaction(self, new: NewTransaction) -> Transaction:
        txn = Transaction(
            id=self._id_factory(),
            kind=new.kind,
            description=new.description,
            amount=new.amount,
            occurred_on=new.occurred_on,
            category_id=new.category_id,
        )
        # sorted() is stable, so same-day entries stay in insertion order.
        self._transactions = sorted([*self._transactions, txn], key=lambda t: t.occurred_on, reverse=True)
        return txn

    def delete_transaction(self, transaction_id: str) -> bool:
        remaining = [txn for txn in self._transactions if txn.id != transaction_id]
        removed = len(remaining) != len(self._transactions)
        self._transactions = remaining
        return removed

    def update_budget_goal(self, category_id: str, amount: Decimal | float | int) -> None:
        clamped = max(ZERO, Decimal(str(amount)))
        self._budget_goals = [
            BudgetGoal(category_id=goal.category_id, amount=clamped) if goal.category_id == category_id else goal
            for goal in self._budget_goals
        ]

    def update_starting_balance(self, value: Decimal | float | int) -> None:
        self._starting_balance = Decimal(str(value))

    # ---- queries ----
    def current_period(self) -> Period:
        return Period.of(self._clock())

    def _period(self, period: Period | date | None) -> Period:
        if period is None:
            return self.current_period()
        if isinstance(period, date):
            return Period.of(period)
        return period

    def _in_period(self, kind: TransactionKind, period: Period) -> list[Transaction]:
        return [txn for txn in self._transactions if txn.kind == kind and period.contains(txn.occurred_on)]

    def total_income(self, period: Period | date | None = None) -> Decimal:
        return _sum(self._in_period(TransactionKind.INCOME, self._period(period)))

    def total_expenses(self, period: Period | date | None = None) -> Decimal:
        return _sum(self._in_period(TransactionKind.EXPENSE, self._period(period)))

    def expenses_by_category(self, period: Period | date | None = None) -> list[CategoryExpense]:
        totals: dict[str, Decimal] = {}
        for txn in self._in_period(TransactionKind.EXPENSE, self._period(period)):
            totals[txn.category_id] = totals.get(txn.category_id, ZERO) + txn.amount
        return [
            CategoryExpense(category_id=category_id, category=self._categories.resolve(category_id), amount=amount)
            for category_id, amount in totals.items()
        ]

    def spending_over_time(self, granularity: TrendGranularity | str = TrendGranularity.MONTH) -> list[TrendPoint]:
        granularity = TrendGranularity(granularity)
        today = self._clock()

        if granularity == TrendGranularity.MONTH:
            days_in_month = calendar.monthrange(today.year, today.month)[1]
            buckets = self._bucket(lambda d: d.day if (d.year, d.month) == (today.year, today.month) else None)
            return [
                TrendPoint(label=f"{today.month}/{day}", income=buckets[day][0], expense=buckets[day][1])
                for day in range(1, days_in_month + 1)
            ]

        buckets = self._bucket(lambda d: d.month if d.year == today.year else None)
        return [
            TrendPoint(label=MONTH_LABELS[month - 1], income=buckets[month][0], expense=buckets[month][1])
            for month in range(1, 13)
        ]

    def _bucket(self, key: Callable[[date], int | None]) -> dict[int, list[Decimal]]:
        buckets: dict[int, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        for txn in self._transactions:
            slot = key(txn.occurred_on)
            if slot is None:
                continue
            index = 0 if txn.kind == TransactionKind.INCOME else 1
            buckets[slot][index] += txn.amount
        return buckets

    def current_balance(self) -> Decimal:
        income = _sum(t for t in self._transactions if t.kind == TransactionKind.INCOME)
        expenses = _sum(t for t in self._transactions if t.kind == TransactionKind.EXPENSE)
        return self._starting_balance + income - expenses

    def budget_progress(self, period: Period | date | None = None) -> list[BudgetProgress]:
        spent_by_category = {entry.category_id: entry.amount for entry in self.expenses_by_category(period)}
        progress: list[BudgetProgress] = []
        for goal in self._budget_goals:
            if goal.amount <= ZERO or goal.category_id == OTHER_CATEGORY_ID:
                continue
            category = self._categories.get(goal.category_id)
            if category is None:
                continue
            spent = spent_by_category.get(goal.category_id, ZERO)
            percent = min(float(spent / goal.amount) * 100.0, 100.0)
            progress.append(
                BudgetProgress(
                    category=category,
                    spent=spent,
                    budget=goal.amount,
                    percent=round(percent, 2),
                    over_budget=spent > goal.amount,
                    remaining=max(ZERO, goal.amount - spent),
                    over_by=max(ZERO, spent - goal.amount),
                )
            )
        return progress

    def advice_snapshot(self, recent_limit: int = 20, period: Period | date | None = None) -> LedgerSnapshot:
        resolved = self._period(period)
        return LedgerSnapshot(
            period=str(resolved),
            total_income=float(self.total_income(resolved)),
            total_expenses=float(self.total_expenses(resolved)),
            starting_balance=float(self._starting_balance),
            current_balance=float(self.current_balance()),
            expenses_by_category=[
                SnapshotCategoryExpense(category_name=entry.category.name, amount_spent=float(entry.amount))
                for entry in self.expenses_by_category(resolved)
            ],
            budget_goals=[
                SnapshotBudgetGoal(category_name=self._categories.label(goal.category_id), budget_amount=float(goal.amount))
                for goal in self._budget_goals
                if goal.amount > ZERO
            ],
            recent_transactions=[
                SnapshotTransaction(
                    occurred_on=txn.occurred_on,
                    kind=txn.kind,
                    description=txn.description,
                    amount=float(txn.amount),
                    category_name=self._categories.label(txn.category_id),
                )
                for txn in self._transactions[: max(recent_limit, 0)]
            ],
        )
