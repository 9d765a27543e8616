from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable

from domain.models import BudgetGoal, LedgerData, Transaction

ChangeListener = Callable[[], None]
Unsubscribe = Callable[[], None]


class LedgerStoreError(RuntimeError):
    pass


class LedgerStore(ABC):
    """Base persistence contract for one user's ledger.

    `load` never fails on malformed stored values; it substitutes defaults.
    Writes raise `LedgerStoreError`.
    """

    name: str = "store"

    @abstractmethod
    def load(self) -> LedgerData:
        raise NotImplementedError

    @abstractmethod
    def add_transaction(self, txn: Transaction) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def save_budget_goals(self, goals: list[BudgetGoal]) -> None:
        raise NotImplementedError

    @abstractmethod
    def save_starting_balance(self, value: Decimal) -> None:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        raise NotImplementedError
