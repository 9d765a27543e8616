from __future__ import annotations

import logging
import threading
from decimal import Decimal
from typing import Callable

from application.aggregator import LedgerAggregator
from domain.models import NewTransaction, Transaction
from infrastructure.ledger_stores.store import LedgerStore, LedgerStoreError, Unsubscribe

logger = logging.getLogger(__name__)


class LedgerSession:
    """Keeps one user's aggregator in step with a ledger store.

    Mutations are applied in memory first, then persisted. If the store
    rejects the write the previous value is restored and the
    `LedgerStoreError` propagates to the caller.
    """

    def __init__(self, aggregator: LedgerAggregator, store: LedgerStore):
        self._aggregator = aggregator
        self._store = store
        self._lock = threading.RLock()
        self._unsubscribe: Unsubscribe | None = None
        self._loaded = False

    @property
    def aggregator(self) -> LedgerAggregator:
        return self._aggregator

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        with self._lock:
            data = self._store.load()
            self._aggregator.replace_state(data)
            self._loaded = True
        logger.info("LedgerSession loaded store=%s transactions=%d", self._store.name, len(data.transactions))

    def ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    # ---- live sync ----
    def start_sync(self) -> None:
        with self._lock:
            if self._unsubscribe is not None:
                return
            self._unsubscribe = self._store.subscribe(self._on_store_change)
        logger.info("LedgerSession sync started store=%s", self._store.name)

    def stop_sync(self) -> None:
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            logger.info("LedgerSession sync stopped store=%s", self._store.name)

    def _on_store_change(self) -> None:
        try:
            self.load()
        except LedgerStoreError:
            logger.warning("LedgerSession reload after store change failed; keeping current state", exc_info=True)

    # ---- mutations ----
    def add_transaction(self, new: NewTransaction) -> Transaction:
        with self._lock:
            previous = self._aggregator.export_state()
            txn = self._aggregator.add_transaction(new)
            try:
                self._store.add_transaction(txn)
            except LedgerStoreError:
                self._aggregator.replace_state(previous)
                logger.warning("LedgerSession add_transaction reverted id=%s", txn.id)
                raise
        logger.info("LedgerSession added transaction id=%s kind=%s", txn.id, txn.kind.value)
        return txn

    def delete_transaction(self, transaction_id: str) -> bool:
        with self._lock:
            previous = self._aggregator.export_state()
            removed = self._aggregator.delete_transaction(transaction_id)
            if not removed:
                return False
            try:
                self._store.delete_transaction(transaction_id)
            except LedgerStoreError:
                self._aggregator.replace_state(previous)
                logger.warning("LedgerSession delete_transaction reverted id=%s", transaction_id)
                raise
        logger.info("LedgerSession deleted transaction id=%s", transaction_id)
        return True

    def update_budget_goal(self, category_id: str, amount: Decimal | float | int) -> None:
        with self._lock:
            previous = self._aggregator.export_state()
            self._aggregator.update_budget_goal(category_id, amount)
            try:
                self._store.save_budget_goals(self._aggregator.budget_goals)
            except LedgerStoreError:
                self._aggregator.replace_state(previous)
                logger.warning("LedgerSession update_budget_goal reverted category_id=%s", category_id)
                raise
        logger.info("LedgerSession updated budget goal category_id=%s", category_id)

    def update_starting_balance(self, value: Decimal | float | int) -> None:
        with self._lock:
            previous = self._aggregator.export_state()
            self._aggregator.update_starting_balance(value)
            try:
                self._store.save_starting_balance(self._aggregator.starting_balance)
            except LedgerStoreError:
                self._aggregator.replace_state(previous)
                logger.warning("LedgerSession update_starting_balance reverted")
                raise
        logger.info("LedgerSession updated starting balance")


class SessionPool:
    """Lazily builds and caches one loaded session per user."""

    def __init__(self, factory: Callable[[str], LedgerSession]):
        self._factory = factory
        self._sessions: dict[str, LedgerSession] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> LedgerSession:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = self._factory(user_id)
                self._sessions[user_id] = session
                logger.info("SessionPool created session user_id=%s", user_id)
        session.ensure_loaded()
        return session

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            session.stop_sync()
