from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date
from decimal import Decimal
from typing import Sequence

from pydantic import ValidationError

from application.advice import AdviceService
from application.aggregator import LedgerAggregator
from application.session import LedgerSession
from domain.models import Period, TrendGranularity
from domain.schemas import TransactionCreate
from infrastructure.ledger_stores.firebase_store import FirebaseLedgerStore
from infrastructure.ledger_stores.local_store import LocalLedgerStore
from infrastructure.ledger_stores.store import LedgerStore, LedgerStoreError
from llm.advisor import AdviceUnavailableError

logger = logging.getLogger(__name__)

LOCAL_USER_ID = "local"


def store_backend() -> str:
    return os.getenv("BUDGETVIEW_STORE", "local").strip().lower()


def build_store(user_id: str) -> LedgerStore:
    backend = store_backend()
    if backend == "firebase":
        return FirebaseLedgerStore(user_id)
    if backend == "local":
        return LocalLedgerStore()
    raise ValueError(f"Unknown BUDGETVIEW_STORE backend: {backend!r}")


def build_session(user_id: str = LOCAL_USER_ID, sync: bool = False) -> LedgerSession:
    session = LedgerSession(LedgerAggregator(), build_store(user_id))
    session.load()
    if sync:
        session.start_sync()
    return session


def _money(value: object) -> str:
    return f"${float(value):,.2f}"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="budgetview", description="Personal budget tracker")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Record an income or expense")
    add.add_argument("kind", choices=["income", "expense"])
    add.add_argument("amount", type=float)
    add.add_argument("description")
    add.add_argument("--date", default=date.today().isoformat(), help="YYYY-MM-DD (default: today)")
    add.add_argument("--category", default=None, help="Category id, e.g. food")

    delete = sub.add_parser("delete", help="Delete a transaction by id")
    delete.add_argument("transaction_id")

    listing = sub.add_parser("list", help="List transactions, newest first")
    listing.add_argument("--limit", type=int, default=20)

    summary = sub.add_parser("summary", help="Monthly totals and current balance")
    summary.add_argument("--month", default=None, help="YYYY-MM (default: current month)")

    sub.add_parser("categories", help="Show categories and this month's spend per category")

    trends = sub.add_parser("trends", help="Income and expenses over the current month or year")
    trends.add_argument("granularity", choices=[g.value for g in TrendGranularity], nargs="?", default="month")

    goal = sub.add_parser("goal", help="Set a monthly budget goal for a category")
    goal.add_argument("category_id")
    goal.add_argument("amount", type=float)

    balance = sub.add_parser("starting-balance", help="Set the starting balance")
    balance.add_argument("value", type=float)

    sub.add_parser("progress", help="Spending against budget goals this month")

    tips = sub.add_parser("tips", help="Ask the AI advisor for tips")
    tips.add_argument("--markdown", action="store_true", help="Chat-style Markdown tips")
    return parser


def run(argv: Sequence[str], session: LedgerSession, advice: AdviceService | None = None) -> int:
    args = _build_parser().parse_args(list(argv))
    aggregator = session.aggregator

    if args.command == "add":
        try:
            payload = TransactionCreate(
                kind=args.kind,
                amount=args.amount,
                description=args.description,
                occurred_on=args.date,
                category_id=args.category,
            )
        except ValidationError as exc:
            print(f"Invalid transaction: {exc}", file=sys.stderr)
            return 2
        txn = session.add_transaction(payload.to_new_transaction())
        print(f"Added {txn.kind.value} {_money(txn.amount)} on {txn.occurred_on.isoformat()} id={txn.id}")
    elif args.command == "delete":
        removed = session.delete_transaction(args.transaction_id)
        print("Deleted." if removed else "No transaction with that id.")
    elif args.command == "list":
        for txn in aggregator.transactions[: args.limit]:
            sign = "+" if txn.kind.value == "income" else "-"
            label = aggregator.categories.label(txn.category_id)
            print(f"{txn.occurred_on.isoformat()}  {sign}{_money(txn.amount):>12}  {label:<20} {txn.description}  [{txn.id}]")
    elif args.command == "summary":
        try:
            period = Period.parse(args.month) if args.month else None
        except ValueError:
            print(f"Invalid month {args.month!r}; expected YYYY-MM", file=sys.stderr)
            return 2
        income = aggregator.total_income(period)
        expenses = aggregator.total_expenses(period)
        print(f"Income:           {_money(income)}")
        print(f"Expenses:         {_money(expenses)}")
        print(f"Net:              {_money(income - expenses)}")
        print(f"Starting balance: {_money(aggregator.starting_balance)}")
        print(f"Current balance:  {_money(aggregator.current_balance())}")
    elif args.command == "categories":
        # Keyed by the resolved category so unknown ids count towards "Other".
        spent: dict[str, Decimal] = {}
        for entry in aggregator.expenses_by_category():
            spent[entry.category.id] = spent.get(entry.category.id, Decimal("0")) + entry.amount
        for category in aggregator.categories:
            print(f"{category.id:<10} {category.name:<22} {_money(spent.get(category.id, 0))}")
    elif args.command == "trends":
        for point in aggregator.spending_over_time(args.granularity):
            print(f"{point.label:>6}  income {_money(point.income):>12}  expenses {_money(point.expense):>12}")
    elif args.command == "goal":
        if args.category_id not in aggregator.categories:
            print(f"Unknown category: {args.category_id}", file=sys.stderr)
            return 2
        session.update_budget_goal(args.category_id, args.amount)
        goal = aggregator.get_budget_goal(args.category_id)
        print(f"Budget goal for {args.category_id}: {_money(goal.amount if goal else 0)}")
    elif args.command == "starting-balance":
        session.update_starting_balance(args.value)
        print(f"Starting balance: {_money(aggregator.starting_balance)}")
    elif args.command == "progress":
        entries = aggregator.budget_progress()
        if not entries:
            print("No budget goals set.")
        for entry in entries:
            status = f"over by {_money(entry.over_by)}" if entry.over_budget else f"{_money(entry.remaining)} left"
            print(f"{entry.category.name:<22} {_money(entry.spent)} of {_money(entry.budget)} ({entry.percent:.0f}%) {status}")
    elif args.command == "tips":
        advice = advice or AdviceService()
        if args.markdown:
            print(advice.markdown_tips(aggregator))
        else:
            tips = advice.tips(aggregator)
            print("Potential unnecessary spending:")
            for item in tips.unnecessary_spending_areas:
                print(f"  - {item}")
            print("Savings suggestions:")
            for item in tips.savings_suggestions:
                print(f"  - {item}")
            print(f"General advice: {tips.general_advice}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        session = build_session(os.getenv("BUDGETVIEW_USER_ID", LOCAL_USER_ID))
        return run(argv, session)
    except LedgerStoreError as exc:
        logger.warning("Ledger store error: %s", exc)
        print(f"Could not save your changes: {exc}", file=sys.stderr)
        return 1
    except AdviceUnavailableError as exc:
        print(f"Financial tips unavailable: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
