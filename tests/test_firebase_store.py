from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal
from typing import Any, Callable

from firebase_admin.exceptions import UnavailableError

from domain.models import BudgetGoal, Transaction, TransactionKind
from infrastructure.ledger_stores.firebase_store import FirebaseLedgerStore
from infrastructure.ledger_stores.store import LedgerStoreError


class _FakeRegistration:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class _FakeReference:
    """In-memory stand-in for `firebase_admin.db.Reference` over a nested dict."""

    def __init__(self, tree: dict[str, Any], path: tuple[str, ...] = (), fail_writes: bool = False):
        self._tree = tree
        self._path = path
        self.fail_writes = fail_writes
        self.listener: Callable[[Any], None] | None = None
        self.registration = _FakeRegistration()

    def child(self, key: str) -> "_FakeReference":
        ref = _FakeReference(self._tree, self._path + (key,), self.fail_writes)
        return ref

    def _node(self, create: bool = False) -> Any:
        node: Any = self._tree
        for key in self._path:
            if not isinstance(node, dict) or key not in node:
                if not create:
                    return None
                node[key] = {}
            node = node[key]
        return node

    def get(self) -> Any:
        return self._node()

    def _check(self) -> None:
        if self.fail_writes:
            raise UnavailableError("service unavailable", cause=None)

    def set(self, value: Any) -> None:
        self._check()
        parent = _FakeReference(self._tree, self._path[:-1])._node(create=True)
        parent[self._path[-1]] = value

    def update(self, value: dict[str, Any]) -> None:
        self._check()
        self._node(create=True).update(value)

    def delete(self) -> None:
        self._check()
        parent = _FakeReference(self._tree, self._path[:-1])._node()
        if isinstance(parent, dict):
            parent.pop(self._path[-1], None)

    def listen(self, callback: Callable[[Any], None]) -> _FakeRegistration:
        self.listener = callback
        return self.registration


def _txn(txn_id: str, day: date) -> Transaction:
    return Transaction(
        id=txn_id,
        kind=TransactionKind.EXPENSE,
        description="Groceries",
        amount=Decimal("42.1"),
        occurred_on=day,
        category_id="food",
    )


class FirebaseLedgerStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tree: dict[str, Any] = {}
        self.root = _FakeReference(self.tree)
        self.store = FirebaseLedgerStore("user-1", root=self.root)

    def test_empty_document_loads_defaults(self) -> None:
        data = self.store.load()
        self.assertEqual(data.transactions, [])
        self.assertEqual(data.budget_goals, [])
        self.assertEqual(data.starting_balance, Decimal("0"))

    def test_transactions_are_stored_one_document_per_id(self) -> None:
        self.store.add_transaction(_txn("a", date(2026, 3, 1)))
        self.store.add_transaction(_txn("b", date(2026, 3, 5)))

        self.assertEqual(set(self.tree["transactions"]), {"a", "b"})
        self.assertEqual(self.tree["transactions"]["a"]["type"], "expense")

        loaded = self.store.load().transactions
        self.assertEqual([t.id for t in loaded], ["b", "a"])
        self.assertEqual(loaded[1].amount, Decimal("42.1"))
        self.assertEqual(loaded[1].occurred_on, date(2026, 3, 1))

        self.store.delete_transaction("a")
        self.assertEqual([t.id for t in self.store.load().transactions], ["b"])

    def test_document_key_is_used_when_record_has_no_id(self) -> None:
        self.tree["transactions"] = {
            "key-1": {"type": "income", "description": "Pay", "amount": 100, "date": "2026-03-01", "categoryId": "income"},
            "key-2": {"type": "bogus"},
        }

        loaded = self.store.load().transactions

        self.assertEqual([t.id for t in loaded], ["key-1"])

    def test_settings_round_trip(self) -> None:
        self.store.save_budget_goals([BudgetGoal("food", Decimal("80"))])
        self.store.save_starting_balance(Decimal("-12.5"))

        self.assertEqual(self.tree["settings"], {"budgetGoals": [{"categoryId": "food", "amount": 80.0}], "startingBalance": -12.5})
        data = self.store.load()
        self.assertEqual(data.budget_goals, [BudgetGoal("food", Decimal("80"))])
        self.assertEqual(data.starting_balance, Decimal("-12.5"))

    def test_malformed_settings_fall_back_with_warning(self) -> None:
        self.tree["settings"] = {"budgetGoals": {"food": 10}, "startingBalance": "lots"}

        with self.assertLogs("infrastructure.ledger_stores.firebase_store", level="WARNING") as logs:
            data = self.store.load()

        self.assertEqual(data.budget_goals, [])
        self.assertEqual(data.starting_balance, Decimal("0"))
        self.assertTrue(any("startingBalance" in line for line in logs.output))
        self.assertTrue(any("budgetGoals" in line for line in logs.output))

    def test_write_failures_raise_ledger_store_error(self) -> None:
        store = FirebaseLedgerStore("user-1", root=_FakeReference({}, fail_writes=True))
        with self.assertRaises(LedgerStoreError):
            store.add_transaction(_txn("a", date(2026, 3, 1)))
        with self.assertRaises(LedgerStoreError):
            store.save_starting_balance(Decimal("1"))

    def test_subscribe_forwards_events_and_unsubscribes(self) -> None:
        calls: list[str] = []
        unsubscribe = self.store.subscribe(lambda: calls.append("changed"))

        self.assertIsNotNone(self.root.listener)
        self.root.listener(object())
        unsubscribe()

        self.assertEqual(calls, ["changed"])
        self.assertTrue(self.root.registration.closed)

    def test_requires_user_id(self) -> None:
        with self.assertRaises(ValueError):
            FirebaseLedgerStore("", root=self.root)


if __name__ == "__main__":
    unittest.main()
