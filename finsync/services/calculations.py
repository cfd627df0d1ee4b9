"""
Financial calculations over transaction lists.

Pure functions, no storage access. Amounts are summed as plain floats;
the balance is income minus expenses minus investments.
"""

from collections import defaultdict
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel

from finsync.models.entities import Transaction, TransactionType


class Period(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class MonthSummary(BaseModel):
    """Totals for one calendar month."""

    month: str
    income: float = 0.0
    expense: float = 0.0
    investment: float = 0.0
    balance: float = 0.0


def parse_date(value: str) -> Optional[date]:
    """ISO date of a transaction, or None if it cannot be parsed."""
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return None


def period_bounds(period: Period, reference: date) -> tuple[date, date]:
    """Inclusive first and last day of the period containing reference. Weeks start on Sunday."""
    period = Period(period)
    if period is Period.DAY:
        return reference, reference
    if period is Period.WEEK:
        start = reference - timedelta(days=(reference.weekday() + 1) % 7)
        return start, start + timedelta(days=6)
    if period is Period.MONTH:
        start = reference.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)
    return date(reference.year, 1, 1), date(reference.year, 12, 31)


def filter_by_period(
    transactions: Iterable[Transaction],
    period: Period,
    reference: date,
) -> list[Transaction]:
    start, end = period_bounds(period, reference)
    result = []
    for transaction in transactions:
        day = parse_date(transaction.date)
        if day is not None and start <= day <= end:
            result.append(transaction)
    return result


def exclude_future(transactions: Iterable[Transaction], today: Optional[date] = None) -> list[Transaction]:
    """Drop transactions flagged isFuture whose date is still ahead."""
    today = today or date.today()
    result = []
    for transaction in transactions:
        day = parse_date(transaction.date)
        if transaction.is_future and (day is None or day > today):
            continue
        result.append(transaction)
    return result


def total_by_type(transactions: Iterable[Transaction], transaction_type: TransactionType) -> float:
    return sum(t.amount for t in transactions if t.type is transaction_type)


def balance(transactions: Iterable[Transaction]) -> float:
    transactions = list(transactions)
    return (
        total_by_type(transactions, TransactionType.INCOME)
        - total_by_type(transactions, TransactionType.EXPENSE)
        - total_by_type(transactions, TransactionType.INVESTMENT)
    )


def expenses_by_category(transactions: Iterable[Transaction]) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for t in transactions:
        if t.type is TransactionType.EXPENSE:
            totals[t.category] += t.amount
    return dict(totals)


def unexpected_income(transactions: Iterable[Transaction]) -> float:
    """Income marked as a surprise (money found, unplanned bonus)."""
    return sum(t.amount for t in transactions if t.type is TransactionType.INCOME and t.is_unexpected)


def unexpected_expenses(transactions: Iterable[Transaction]) -> float:
    """Expenses marked as a surprise (repairs, fines)."""
    return sum(t.amount for t in transactions if t.type is TransactionType.EXPENSE and t.is_unexpected)


def monthly_evolution(
    transactions: Iterable[Transaction],
    months: int = 12,
    today: Optional[date] = None,
) -> list[MonthSummary]:
    """Per-month totals for the last N months, oldest first, current month last."""
    today = today or date.today()
    transactions = list(transactions)

    buckets: dict[str, list[Transaction]] = defaultdict(list)
    for t in transactions:
        day = parse_date(t.date)
        if day is not None:
            buckets[day.strftime("%Y-%m")].append(t)

    result = []
    for offset in range(months - 1, -1, -1):
        index = today.year * 12 + today.month - 1 - offset
        key = f"{index // 12:04d}-{index % 12 + 1:02d}"
        month_transactions = buckets.get(key, [])
        income = total_by_type(month_transactions, TransactionType.INCOME)
        expense = total_by_type(month_transactions, TransactionType.EXPENSE)
        investment = total_by_type(month_transactions, TransactionType.INVESTMENT)
        result.append(MonthSummary(
            month=key,
            income=income,
            expense=expense,
            investment=investment,
            balance=income - expense - investment,
        ))
    return result
