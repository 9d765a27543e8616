from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum


class TransactionKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TrendGranularity(str, Enum):
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    icon: str
    color: str


@dataclass(frozen=True)
class Transaction:
    id: str
    kind: TransactionKind
    description: str
    amount: Decimal
    occurred_on: date
    category_id: str


@dataclass(frozen=True)
class NewTransaction:
    """A transaction as entered by the user, before an id is assigned."""

    kind: TransactionKind
    description: str
    amount: Decimal
    occurred_on: date
    category_id: str


@dataclass
class BudgetGoal:
    category_id: str
    amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class Period:
    """A calendar month. Aggregation matches on month and year, not a rolling window."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1-12, got {self.month}")

    @classmethod
    def of(cls, day: date) -> "Period":
        return cls(year=day.year, month=day.month)

    @classmethod
    def parse(cls, text: str) -> "Period":
        year, _, month = text.strip().partition("-")
        return cls(year=int(year), month=int(month))

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class CategoryExpense:
    category_id: str
    category: Category
    amount: Decimal


@dataclass(frozen=True)
class TrendPoint:
    label: str
    income: Decimal
    expense: Decimal


@dataclass(frozen=True)
class BudgetProgress:
    category: Category
    spent: Decimal
    budget: Decimal
    percent: float
    over_budget: bool
    remaining: Decimal
    over_by: Decimal


@dataclass
class LedgerData:
    transactions: list[Transaction] = field(default_factory=list)
    budget_goals: list[BudgetGoal] = field(default_factory=list)
    starting_balance: Decimal = Decimal("0")
