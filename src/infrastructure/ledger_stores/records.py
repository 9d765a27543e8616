from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from domain.categories import OTHER_CATEGORY_ID
from domain.models import BudgetGoal, Transaction, TransactionKind
from domain.schemas import coerce_day


class RecordError(ValueError):
    pass


def transaction_to_record(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "type": txn.kind.value,
        "description": txn.description,
        "amount": float(txn.amount),
        "date": txn.occurred_on.isoformat(),
        "categoryId": txn.category_id,
    }


def transaction_from_record(record: Any, fallback_id: str | None = None) -> Transaction:
    if not isinstance(record, dict):
        raise RecordError(f"Expected transaction object, got {type(record).__name__}")
    txn_id = record.get("id") or fallback_id
    if not txn_id:
        raise RecordError("Transaction record missing id")
    try:
        kind = TransactionKind(str(record.get("type")))
    except ValueError as exc:
        raise RecordError(f"Unknown transaction type: {record.get('type')!r}") from exc

    amount = parse_amount(record.get("amount"))
    if amount <= 0:
        raise RecordError(f"Transaction {txn_id} has non-positive amount {amount}")

    return Transaction(
        id=str(txn_id),
        kind=kind,
        description=str(record.get("description") or ""),
        amount=amount,
        occurred_on=parse_day(record.get("date")),
        category_id=str(record.get("categoryId") or OTHER_CATEGORY_ID),
    )


def goal_to_record(goal: BudgetGoal) -> dict[str, Any]:
    return {"categoryId": goal.category_id, "amount": float(goal.amount)}


def goal_from_record(record: Any) -> BudgetGoal:
    if not isinstance(record, dict) or not record.get("categoryId"):
        raise RecordError(f"Invalid budget goal record: {record!r}")
    return BudgetGoal(category_id=str(record["categoryId"]), amount=parse_amount(record.get("amount")))


def parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise RecordError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise RecordError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise RecordError(f"Invalid amount: {value!r}")
    return amount


def parse_day(value: Any) -> date:
    """Parse a stored date or timestamp. Only the calendar day is kept.

    Accepts the same formats as transaction input (`coerce_day`).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        raise RecordError("Transaction record missing date")
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    day = coerce_day(text)
    if not isinstance(day, date):
        raise RecordError(f"Unsupported transaction date format: {text!r}")
    return day
