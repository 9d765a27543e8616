from __future__ import annotations

import json
import logging
import os
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Any

from domain.models import BudgetGoal, LedgerData, Transaction
from infrastructure.ledger_stores.records import (
    RecordError,
    goal_from_record,
    goal_to_record,
    transaction_from_record,
    transaction_to_record,
)
from infrastructure.ledger_stores.store import ChangeListener, LedgerStore, LedgerStoreError, Unsubscribe

logger = logging.getLogger(__name__)

TRANSACTIONS_KEY = "transactions"
BUDGET_GOALS_KEY = "budgetGoals"
STARTING_BALANCE_KEY = "startingBalance"


class LocalLedgerStore(LedgerStore):
    """Key-value store on the local filesystem: one JSON document per key.

    Every write replaces the whole value for its key.
    """

    name = "local"

    def __init__(self, data_dir: str | Path | None = None) -> None:
        self._data_dir = Path(data_dir or os.getenv("BUDGETVIEW_DATA_DIR", "data"))
        self._listeners: list[ChangeListener] = []

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    # ---- reads ----
    def load(self) -> LedgerData:
        transactions = self._load_transactions()
        goals = self._load_goals()
        starting_balance = self._load_starting_balance()
        logger.info(
            "LocalLedgerStore loaded dir=%s transactions=%d goals=%d",
            self._data_dir,
            len(transactions),
            len(goals),
        )
        return LedgerData(
            transactions=sorted(transactions, key=lambda t: t.occurred_on, reverse=True),
            budget_goals=goals,
            starting_balance=starting_balance,
        )

    def _load_transactions(self) -> list[Transaction]:
        raw = self._read_key(TRANSACTIONS_KEY, [])
        if not isinstance(raw, list):
            logger.warning("LocalLedgerStore key=%s is not a list; using empty collection", TRANSACTIONS_KEY)
            return []
        transactions: list[Transaction] = []
        for record in raw:
            try:
                transactions.append(transaction_from_record(record))
            except RecordError as exc:
                logger.warning("LocalLedgerStore skipping transaction record: %s", exc)
        return transactions

    def _load_goals(self) -> list[BudgetGoal]:
        raw = self._read_key(BUDGET_GOALS_KEY, [])
        if not isinstance(raw, list):
            logger.warning("LocalLedgerStore key=%s is not a list; using empty collection", BUDGET_GOALS_KEY)
            return []
        goals: list[BudgetGoal] = []
        for record in raw:
            try:
                goals.append(goal_from_record(record))
            except RecordError as exc:
                logger.warning("LocalLedgerStore skipping budget goal record: %s", exc)
        return goals

    def _load_starting_balance(self) -> Decimal:
        raw = self._read_key(STARTING_BALANCE_KEY, 0)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            logger.warning("LocalLedgerStore key=%s is not a number; using 0", STARTING_BALANCE_KEY)
            return Decimal("0")
        return Decimal(str(raw))

    def _read_key(self, key: str, default: Any) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as exc:
            logger.warning("LocalLedgerStore error reading key=%s: %s", key, exc)
            return default

    # ---- writes ----
    def add_transaction(self, txn: Transaction) -> None:
        records = self._raw_records_without(txn.id)
        records.append(transaction_to_record(txn))
        self._write_key(TRANSACTIONS_KEY, records)

    def delete_transaction(self, transaction_id: str) -> None:
        self._write_key(TRANSACTIONS_KEY, self._raw_records_without(transaction_id))

    def _raw_records_without(self, transaction_id: str) -> list[Any]:
        # Works on the stored list as-is: records load() skips are kept on disk.
        raw = self._read_key(TRANSACTIONS_KEY, [])
        if not isinstance(raw, list):
            logger.warning("LocalLedgerStore key=%s is not a list; replacing it", TRANSACTIONS_KEY)
            return []
        return [record for record in raw if not (isinstance(record, dict) and record.get("id") == transaction_id)]

    def save_budget_goals(self, goals: list[BudgetGoal]) -> None:
        self._write_key(BUDGET_GOALS_KEY, [goal_to_record(goal) for goal in goals])

    def save_starting_balance(self, value: Decimal) -> None:
        self._write_key(STARTING_BALANCE_KEY, float(value))

    def _write_key(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(value, handle, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise LedgerStoreError(f"Failed to write key {key!r} to {path}: {exc}") from exc
        logger.debug("LocalLedgerStore wrote key=%s", key)
        self._notify()

    # ---- change notifications ----
    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("LocalLedgerStore change listener failed")

    def _path(self, key: str) -> Path:
        return self._data_dir / f"{key}.json"
