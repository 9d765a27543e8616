from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from domain.categories import INCOME_CATEGORY_ID, OTHER_CATEGORY_ID, CategoryRegistry
from domain.models import (
    BudgetGoal,
    BudgetProgress,
    Category,
    CategoryExpense,
    NewTransaction,
    Transaction,
    TransactionKind,
    TrendPoint,
)

DEFAULT_ADVICE = "No specific advice generated based on the current data."


def coerce_day(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        return value

    # Canonical format first.
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%m-%d-%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    # Full timestamps keep only the calendar day.
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return value


class TransactionCreate(BaseModel):
    """User input for a new transaction. Amount and kind are validated here, not in the aggregator."""

    model_config = ConfigDict(populate_by_name=True)

    kind: TransactionKind = Field(alias="type")
    description: str = Field(min_length=1, max_length=200)
    amount: float = Field(gt=0, allow_inf_nan=False)
    occurred_on: date = Field(alias="date", description="Day of the transaction, e.g. 2026-01-31.")
    category_id: Optional[str] = Field(default=None, alias="categoryId")

    @field_validator("occurred_on", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Any:
        return coerce_day(value)

    @field_validator("description")
    @classmethod
    def strip_description(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("description must not be blank")
        return text

    @model_validator(mode="after")
    def default_category(self) -> "TransactionCreate":
        if not self.category_id:
            self.category_id = INCOME_CATEGORY_ID if self.kind == TransactionKind.INCOME else OTHER_CATEGORY_ID
        return self

    def to_new_transaction(self) -> NewTransaction:
        return NewTransaction(
            kind=self.kind,
            description=self.description,
            amount=Decimal(str(self.amount)),
            occurred_on=self.occurred_on,
            category_id=str(self.category_id),
        )


class BudgetGoalUpdate(BaseModel):
    # Negative amounts are accepted and clamped to zero by the aggregator.
    amount: float = Field(allow_inf_nan=False)


class StartingBalanceUpdate(BaseModel):
    value: float = Field(allow_inf_nan=False)


class CategoryOut(BaseModel):
    id: str
    name: str
    icon: str
    color: str

    @classmethod
    def from_category(cls, category: Category) -> "CategoryOut":
        return cls(id=category.id, name=category.name, icon=category.icon, color=category.color)


class TransactionOut(BaseModel):
    id: str
    kind: TransactionKind
    description: str
    amount: float
    occurred_on: date
    category_id: str
    category_name: str

    @classmethod
    def from_transaction(cls, txn: Transaction, categories: CategoryRegistry) -> "TransactionOut":
        return cls(
            id=txn.id,
            kind=txn.kind,
            description=txn.description,
            amount=float(txn.amount),
            occurred_on=txn.occurred_on,
            category_id=txn.category_id,
            category_name=categories.label(txn.category_id),
        )


class BudgetGoalOut(BaseModel):
    category_id: str
    category_name: str
    amount: float

    @classmethod
    def from_goal(cls, goal: BudgetGoal, categories: CategoryRegistry) -> "BudgetGoalOut":
        return cls(
            category_id=goal.category_id,
            category_name=categories.label(goal.category_id),
            amount=float(goal.amount),
        )


class StartingBalanceOut(BaseModel):
    value: float


class MonthSummary(BaseModel):
    period: str
    total_income: float
    total_expenses: float
    net: float
    starting_balance: float
    current_balance: float


class CategoryExpenseOut(BaseModel):
    category_id: str
    category: CategoryOut
    amount: float

    @classmethod
    def from_expense(cls, entry: CategoryExpense) -> "CategoryExpenseOut":
        return cls(
            category_id=entry.category_id,
            category=CategoryOut.from_category(entry.category),
            amount=float(entry.amount),
        )


class TrendPointOut(BaseModel):
    label: str
    income: float
    expense: float

    @classmethod
    def from_point(cls, point: TrendPoint) -> "TrendPointOut":
        return cls(label=point.label, income=float(point.income), expense=float(point.expense))


class BudgetProgressOut(BaseModel):
    category_id: str
    category_name: str
    spent: float
    budget: float
    percent: float
    over_budget: bool
    remaining: float
    over_by: float

    @classmethod
    def from_progress(cls, entry: BudgetProgress) -> "BudgetProgressOut":
        return cls(
            category_id=entry.category.id,
            category_name=entry.category.name,
            spent=float(entry.spent),
            budget=float(entry.budget),
            percent=entry.percent,
            over_budget=entry.over_budget,
            remaining=float(entry.remaining),
            over_by=float(entry.over_by),
        )


class SnapshotCategoryExpense(BaseModel):
    category_name: str
    amount_spent: float


class SnapshotBudgetGoal(BaseModel):
    category_name: str
    budget_amount: float


class SnapshotTransaction(BaseModel):
    occurred_on: date
    kind: TransactionKind
    description: str
    amount: float
    category_name: str


class LedgerSnapshot(BaseModel):
    """Aggregated view of the ledger handed to the advice generator."""

    period: str
    total_income: float
    total_expenses: float
    starting_balance: float
    current_balance: float
    expenses_by_category: List[SnapshotCategoryExpense] = Field(default_factory=list)
    budget_goals: List[SnapshotBudgetGoal] = Field(default_factory=list)
    recent_transactions: List[SnapshotTransaction] = Field(default_factory=list)


class FinancialTips(BaseModel):
    """Structured advice. Accepts camelCase keys as some models emit them."""

    unnecessary_spending_areas: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("unnecessary_spending_areas", "unnecessarySpendingAreas"),
    )
    savings_suggestions: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("savings_suggestions", "savingsSuggestions"),
    )
    general_advice: str = Field(
        default=DEFAULT_ADVICE,
        validation_alias=AliasChoices("general_advice", "generalAdvice"),
    )

    @field_validator("unnecessary_spending_areas", "savings_suggestions", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("general_advice", mode="before")
    @classmethod
    def blank_to_default(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_ADVICE
        return value


class MarkdownTips(BaseModel):
    tips: str
