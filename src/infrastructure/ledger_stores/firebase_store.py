from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from firebase_admin import db
from firebase_admin.exceptions import FirebaseError

from domain.models import BudgetGoal, LedgerData, Transaction
from infrastructure.firebase_app import init_firebase_app
from infrastructure.ledger_stores.records import (
    RecordError,
    goal_from_record,
    goal_to_record,
    transaction_from_record,
    transaction_to_record,
)
from infrastructure.ledger_stores.store import ChangeListener, LedgerStore, LedgerStoreError, Unsubscribe

logger = logging.getLogger(__name__)

TRANSACTIONS_PATH = "transactions"
SETTINGS_PATH = "settings"


class FirebaseLedgerStore(LedgerStore):
    """Per-user document tree in the Firebase Realtime Database.

    Layout under `users/<uid>`:
      - transactions/<id>: one document per transaction
      - settings: {"budgetGoals": [...], "startingBalance": number}

    Writes are last-write-wins per document.
    """

    name = "firebase"

    def __init__(self, user_id: str, root: Any | None = None) -> None:
        if not user_id:
            raise ValueError("FirebaseLedgerStore requires a user id")
        self._user_id = user_id
        if root is None:
            init_firebase_app()
            root = db.reference(f"users/{user_id}")
        self._root = root

    @property
    def user_id(self) -> str:
        return self._user_id

    def load(self) -> LedgerData:
        try:
            raw = self._root.get()
        except (FirebaseError, ValueError) as exc:
            raise LedgerStoreError(f"Failed to load ledger for user {self._user_id}: {exc}") from exc

        if not isinstance(raw, dict):
            raw = {}
        transactions = self._parse_transactions(raw.get(TRANSACTIONS_PATH))
        settings = raw.get(SETTINGS_PATH) if isinstance(raw.get(SETTINGS_PATH), dict) else {}
        goals = self._parse_goals(settings.get("budgetGoals"))
        starting_balance = self._parse_starting_balance(settings.get("startingBalance"))

        logger.info(
            "FirebaseLedgerStore loaded user_id=%s transactions=%d goals=%d",
            self._user_id,
            len(transactions),
            len(goals),
        )
        return LedgerData(
            transactions=sorted(transactions, key=lambda t: t.occurred_on, reverse=True),
            budget_goals=goals,
            starting_balance=starting_balance,
        )

    def _parse_transactions(self, raw: Any) -> list[Transaction]:
        if raw is None:
            return []
        if not isinstance(raw, dict):
            logger.warning("FirebaseLedgerStore transactions node is not an object; using empty collection")
            return []
        transactions: list[Transaction] = []
        for key, record in raw.items():
            try:
                transactions.append(transaction_from_record(record, fallback_id=str(key)))
            except RecordError as exc:
                logger.warning("FirebaseLedgerStore skipping transaction %s: %s", key, exc)
        return transactions

    def _parse_goals(self, raw: Any) -> list[BudgetGoal]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("FirebaseLedgerStore budgetGoals is not a list user_id=%s; using empty collection", self._user_id)
            return []
        goals: list[BudgetGoal] = []
        for record in raw:
            try:
                goals.append(goal_from_record(record))
            except RecordError as exc:
                logger.warning("FirebaseLedgerStore skipping budget goal: %s", exc)
        return goals

    def _parse_starting_balance(self, raw: Any) -> Decimal:
        if raw is None:
            return Decimal("0")
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            logger.warning("FirebaseLedgerStore startingBalance is not a number user_id=%s; using 0", self._user_id)
            return Decimal("0")
        return Decimal(str(raw))

    # ---- writes ----
    def add_transaction(self, txn: Transaction) -> None:
        self._write(f"add transaction {txn.id}", lambda: self._root.child(TRANSACTIONS_PATH).child(txn.id).set(transaction_to_record(txn)))

    def delete_transaction(self, transaction_id: str) -> None:
        self._write(f"delete transaction {transaction_id}", lambda: self._root.child(TRANSACTIONS_PATH).child(transaction_id).delete())

    def save_budget_goals(self, goals: list[BudgetGoal]) -> None:
        payload = {"budgetGoals": [goal_to_record(goal) for goal in goals]}
        self._write("save budget goals", lambda: self._root.child(SETTINGS_PATH).update(payload))

    def save_starting_balance(self, value: Decimal) -> None:
        payload = {"startingBalance": float(value)}
        self._write("save starting balance", lambda: self._root.child(SETTINGS_PATH).update(payload))

    def _write(self, action: str, operation: Any) -> None:
        try:
            operation()
        except (FirebaseError, ValueError, TypeError) as exc:
            logger.warning("FirebaseLedgerStore failed to %s user_id=%s: %s", action, self._user_id, exc)
            raise LedgerStoreError(f"Failed to {action}: {exc}") from exc

    # ---- live updates ----
    def subscribe(self, listener: ChangeListener) -> Unsubscribe:
        def on_event(event: Any) -> None:
            logger.debug("FirebaseLedgerStore event type=%s path=%s", getattr(event, "event_type", None), getattr(event, "path", None))
            listener()

        try:
            registration = self._root.listen(on_event)
        except (FirebaseError, ValueError) as exc:
            raise LedgerStoreError(f"Failed to subscribe to ledger for user {self._user_id}: {exc}") from exc

        return registration.close
