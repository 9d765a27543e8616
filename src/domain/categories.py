from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Iterator

from domain.models import BudgetGoal, Category

INCOME_CATEGORY_ID = "income"
OTHER_CATEGORY_ID = "other"

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="food", name="Food & Dining", icon="utensils", color="hsl(var(--chart-1))"),
    Category(id="transport", name="Transportation", icon="car", color="hsl(var(--chart-2))"),
    Category(id="housing", name="Housing & Utilities", icon="home", color="hsl(var(--chart-3))"),
    Category(id="shopping", name="Shopping", icon="shopping-cart", color="hsl(var(--chart-4))"),
    Category(id="health", name="Health & Wellness", icon="heart-pulse", color="hsl(var(--chart-5))"),
    Category(id=OTHER_CATEGORY_ID, name="Other", icon="more-horizontal", color="hsl(var(--muted-foreground))"),
)


class CategoryRegistry:
    """Immutable lookup over the fixed category set.

    The registry must contain the fallback category (`other`); every unknown
    id resolves to it at read time.
    """

    def __init__(self, categories: Iterable[Category] = DEFAULT_CATEGORIES):
        self._categories: tuple[Category, ...] = tuple(categories)
        self._by_id: dict[str, Category] = {category.id: category for category in self._categories}
        if OTHER_CATEGORY_ID not in self._by_id:
            raise ValueError(f"Category registry requires a {OTHER_CATEGORY_ID!r} category")

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._by_id

    @property
    def ids(self) -> list[str]:
        return [category.id for category in self._categories]

    @property
    def fallback(self) -> Category:
        return self._by_id[OTHER_CATEGORY_ID]

    def get(self, category_id: str) -> Category | None:
        return self._by_id.get(category_id)

    def resolve(self, category_id: str) -> Category:
        return self._by_id.get(category_id) or self.fallback

    def label(self, category_id: str) -> str:
        if category_id == INCOME_CATEGORY_ID:
            return "Income"
        return self.resolve(category_id).name

    def reconcile_goals(self, goals: Iterable[BudgetGoal]) -> list[BudgetGoal]:
        """Return exactly one goal per known category, in registry order.

        Missing categories get a zero goal; goals for unknown categories are
        dropped; negative amounts are clamped to zero. The first stored goal
        for a category wins.
        """
        existing: dict[str, BudgetGoal] = {}
        for goal in goals:
            existing.setdefault(goal.category_id, goal)

        reconciled: list[BudgetGoal] = []
        for category_id in self.ids:
            goal = existing.get(category_id)
            amount = goal.amount if goal is not None else Decimal("0")
            reconciled.append(BudgetGoal(category_id=category_id, amount=max(Decimal("0"), amount)))
        return reconciled


default_registry = CategoryRegistry()
