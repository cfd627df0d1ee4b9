"""
Recurring transaction generation.

A rule fires at most once per day. Generation goes through the
repositories, so each generated transaction and each lastGeneratedDate
stamp is enqueued for sync like any user write.
"""

import calendar
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import structlog
from pydantic import BaseModel, Field

from finsync.models.entities import (
    Frequency,
    RecurringTransaction,
    Transaction,
    new_entity_id,
)
from finsync.services.calculations import parse_date

if TYPE_CHECKING:
    from finsync.repositories import Repositories


logger = structlog.get_logger(__name__)


class GenerationReport(BaseModel):
    generated: list[str] = Field(
        default_factory=list,
        description="Ids of the transactions created"
    )
    skipped: int = 0


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def should_generate(rule: RecurringTransaction, today: date) -> bool:
    """
    True if the rule is due today.

    Monthly and yearly rules whose day does not exist in the current
    month fire on its last day.
    """
    if not rule.is_active:
        return False

    start = parse_date(rule.start_date)
    if start is None or start > today:
        return False

    if rule.end_date:
        end = parse_date(rule.end_date)
        if end is not None and end < today:
            return False

    if rule.last_generated_date == today.isoformat():
        return False

    if rule.frequency is Frequency.WEEKLY:
        # Python weeks start on Monday; rules count from Sunday = 0
        return rule.day_of_week == (today.weekday() + 1) % 7

    if rule.frequency is Frequency.MONTHLY:
        target = min(rule.day_of_month or 1, _last_day(today.year, today.month))
        return today.day == target

    if rule.frequency is Frequency.YEARLY:
        month = rule.month_of_year or 1
        target = min(rule.day_of_month or 1, _last_day(today.year, month))
        return today.month == month and today.day == target

    return False


def build_transaction(rule: RecurringTransaction, today: date) -> Transaction:
    return Transaction(
        id=new_entity_id(),
        type=rule.type,
        amount=rule.amount,
        category=rule.category,
        date=today.isoformat(),
        description=rule.description,
        is_future=False,
        is_unexpected=False,
        created_at=int(datetime.now(timezone.utc).timestamp() * 1000),
    )


def generate_due_transactions(
    repositories: "Repositories",
    today: Optional[date] = None,
) -> GenerationReport:
    """Create today's transaction for every due rule and stamp the rule."""
    today = today or date.today()
    report = GenerationReport()

    for rule in repositories.recurring_transactions.get_all():
        if not should_generate(rule, today):
            report.skipped += 1
            continue

        transaction = build_transaction(rule, today)
        repositories.transactions.add(transaction)
        repositories.recurring_transactions.mark_generated(rule.id, today)
        report.generated.append(transaction.id)
        logger.info(
            "recurring_transaction_generated",
            rule_id=rule.id,
            transaction_id=transaction.id,
        )

    return report
