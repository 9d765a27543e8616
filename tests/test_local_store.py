from __future__ import annotations

import json
import tempfile
import unittest
from datetime import date
from decimal import Decimal
from pathlib import Path

from domain.categories import OTHER_CATEGORY_ID
from domain.models import BudgetGoal, Transaction, TransactionKind
from infrastructure.ledger_stores.local_store import LocalLedgerStore
from infrastructure.ledger_stores.records import RecordError, parse_day, transaction_from_record, transaction_to_record


def _txn(txn_id: str, day: date, kind: TransactionKind = TransactionKind.EXPENSE, amount: str = "9.99") -> Transaction:
    return Transaction(
        id=txn_id,
        kind=kind,
        description=f"txn {txn_id}",
        amount=Decimal(amount),
        occurred_on=day,
        category_id="food" if kind == TransactionKind.EXPENSE else "income",
    )


class RecordTests(unittest.TestCase):
    def test_record_uses_stored_field_names(self) -> None:
        record = transaction_to_record(_txn("a", date(2026, 3, 2)))
        self.assertEqual(
            record,
            {"id": "a", "type": "expense", "description": "txn a", "amount": 9.99, "date": "2026-03-02", "categoryId": "food"},
        )

    def test_timestamp_dates_keep_the_day(self) -> None:
        txn = transaction_from_record(
            {"id": "a", "type": "income", "description": "pay", "amount": 10, "date": "2026-03-02T18:30:00.000Z"}
        )
        self.assertEqual(txn.occurred_on, date(2026, 3, 2))
        self.assertEqual(txn.category_id, "other")

    def test_parse_day_accepts_input_formats(self) -> None:
        for value in ("2026-07-03", "2026/07/03", "07/03/2026", "07-03-2026", "2026-07-03T23:10:00Z"):
            with self.subTest(value=value):
                self.assertEqual(parse_day(value), date(2026, 7, 3))

    def test_missing_category_falls_back_to_other(self) -> None:
        txn = transaction_from_record({"id": "a", "type": "expense", "amount": 1, "date": "2026-03-01"})
        self.assertEqual(txn.category_id, OTHER_CATEGORY_ID)

    def test_invalid_records_raise(self) -> None:
        bad = [
            "not a dict",
            {"type": "expense", "amount": 1, "date": "2026-01-01"},
            {"id": "a", "type": "transfer", "amount": 1, "date": "2026-01-01"},
            {"id": "a", "type": "expense", "amount": -1, "date": "2026-01-01"},
            {"id": "a", "type": "expense", "amount": True, "date": "2026-01-01"},
            {"id": "a", "type": "expense", "amount": "NaN", "date": "2026-01-01"},
            {"id": "a", "type": "expense", "amount": 1, "date": "yesterday"},
        ]
        for record in bad:
            with self.subTest(record=record):
                with self.assertRaises(RecordError):
                    transaction_from_record(record)


class LocalLedgerStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.data_dir = Path(self._tmp.name)
        self.store = LocalLedgerStore(self.data_dir)

    def test_empty_directory_loads_defaults(self) -> None:
        data = self.store.load()
        self.assertEqual(data.transactions, [])
        self.assertEqual(data.budget_goals, [])
        self.assertEqual(data.starting_balance, Decimal("0"))

    def test_transactions_round_trip_at_day_granularity(self) -> None:
        originals = [
            _txn("a", date(2026, 3, 1)),
            _txn("b", date(2026, 3, 9), kind=TransactionKind.INCOME, amount="1500"),
        ]
        for txn in originals:
            self.store.add_transaction(txn)

        reloaded = {txn.id: txn for txn in LocalLedgerStore(self.data_dir).load().transactions}

        for original in originals:
            loaded = reloaded[original.id]
            self.assertEqual(loaded.kind, original.kind)
            self.assertEqual(loaded.amount, original.amount)
            self.assertEqual(loaded.category_id, original.category_id)
            self.assertEqual(loaded.occurred_on, original.occurred_on)

    def test_load_sorts_newest_first(self) -> None:
        self.store.add_transaction(_txn("old", date(2026, 1, 1)))
        self.store.add_transaction(_txn("new", date(2026, 2, 1)))
        self.assertEqual([t.id for t in self.store.load().transactions], ["new", "old"])

    def test_delete_transaction(self) -> None:
        self.store.add_transaction(_txn("a", date(2026, 3, 1)))
        self.store.add_transaction(_txn("b", date(2026, 3, 2)))

        self.store.delete_transaction("a")
        self.store.delete_transaction("missing")

        self.assertEqual([t.id for t in self.store.load().transactions], ["b"])

    def test_goals_and_starting_balance_persist(self) -> None:
        self.store.save_budget_goals([BudgetGoal("food", Decimal("120")), BudgetGoal("other", Decimal("0"))])
        self.store.save_starting_balance(Decimal("250.75"))

        data = LocalLedgerStore(self.data_dir).load()

        self.assertEqual(data.budget_goals, [BudgetGoal("food", Decimal("120.0")), BudgetGoal("other", Decimal("0.0"))])
        self.assertEqual(data.starting_balance, Decimal("250.75"))
        self.assertEqual(json.loads((self.data_dir / "startingBalance.json").read_text(encoding="utf-8")), 250.75)

    def test_malformed_values_fall_back_to_defaults(self) -> None:
        (self.data_dir / "transactions.json").write_text("{not json", encoding="utf-8")
        (self.data_dir / "budgetGoals.json").write_text(json.dumps({"food": 10}), encoding="utf-8")
        (self.data_dir / "startingBalance.json").write_text(json.dumps("lots"), encoding="utf-8")

        data = self.store.load()

        self.assertEqual(data.transactions, [])
        self.assertEqual(data.budget_goals, [])
        self.assertEqual(data.starting_balance, Decimal("0"))

    def test_bad_records_are_skipped(self) -> None:
        records = [
            transaction_to_record(_txn("good", date(2026, 3, 1))),
            {"id": "bad", "type": "expense", "amount": "abc", "date": "2026-03-01"},
        ]
        (self.data_dir / "transactions.json").write_text(json.dumps(records), encoding="utf-8")

        self.assertEqual([t.id for t in self.store.load().transactions], ["good"])

    def test_writes_keep_records_that_fail_to_load(self) -> None:
        unreadable = {"id": "keep", "type": "expense", "description": "x", "amount": "abc", "date": "2026-03-01"}
        (self.data_dir / "transactions.json").write_text(json.dumps([unreadable]), encoding="utf-8")

        self.store.add_transaction(_txn("new", date(2026, 3, 4)))
        self.store.delete_transaction("missing")

        stored = json.loads((self.data_dir / "transactions.json").read_text(encoding="utf-8"))
        self.assertEqual([r["id"] for r in stored], ["keep", "new"])
        self.assertEqual(stored[0], unreadable)

        self.store.delete_transaction("new")
        stored = json.loads((self.data_dir / "transactions.json").read_text(encoding="utf-8"))
        self.assertEqual([r["id"] for r in stored], ["keep"])

    def test_slash_dates_are_loaded(self) -> None:
        records = [
            {"id": "us", "type": "expense", "description": "x", "amount": 3, "date": "07/03/2026", "categoryId": "food"},
            {"id": "ymd", "type": "income", "description": "y", "amount": 4, "date": "2026/07/04"},
        ]
        (self.data_dir / "transactions.json").write_text(json.dumps(records), encoding="utf-8")

        loaded = {txn.id: txn.occurred_on for txn in self.store.load().transactions}

        self.assertEqual(loaded, {"us": date(2026, 7, 3), "ymd": date(2026, 7, 4)})

    def test_subscribers_are_notified_on_write(self) -> None:
        calls: list[str] = []
        unsubscribe = self.store.subscribe(lambda: calls.append("changed"))

        self.store.save_starting_balance(Decimal("1"))
        unsubscribe()
        self.store.save_starting_balance(Decimal("2"))

        self.assertEqual(calls, ["changed"])


if __name__ == "__main__":
    unittest.main()
