"""
Tests for recurring transaction generation
"""

from datetime import date

from finsync.models.entities import Frequency, RecurringTransaction, TransactionType
from finsync.models.sync import OperationKind
from finsync.services.recurring import generate_due_transactions, should_generate


def rule(**overrides):
    fields = {
        "id": "r1",
        "type": TransactionType.EXPENSE,
        "amount": 1200,
        "category": "moradia",
        "description": "Aluguel",
        "frequency": Frequency.MONTHLY,
        "day_of_month": 5,
        "start_date": "2024-01-01",
        "is_active": True,
        "created_at": "2024-01-01",
    }
    fields.update(overrides)
    return RecurringTransaction(**fields)


class TestShouldGenerate:
    """Tests for the due-date rules."""

    def test_monthly(self):
        """Test monthly rules fire on their day only."""
        assert should_generate(rule(), date(2024, 3, 5))
        assert not should_generate(rule(), date(2024, 3, 6))

    def test_weekly_counts_from_sunday(self):
        """Test dayOfWeek 0 is Sunday."""
        weekly = rule(frequency=Frequency.WEEKLY, day_of_week=0, day_of_month=None)
        assert should_generate(weekly, date(2024, 3, 10))
        assert not should_generate(weekly, date(2024, 3, 11))

    def test_yearly(self):
        """Test yearly rules need both month and day."""
        yearly = rule(frequency=Frequency.YEARLY, month_of_year=6, day_of_month=15)
        assert should_generate(yearly, date(2024, 6, 15))
        assert not should_generate(yearly, date(2024, 7, 15))

    def test_inactive_and_out_of_range(self):
        """Test inactive, not yet started and ended rules never fire."""
        assert not should_generate(rule(is_active=False), date(2024, 3, 5))
        assert not should_generate(rule(start_date="2024-04-01"), date(2024, 3, 5))
        assert not should_generate(rule(end_date="2024-02-28"), date(2024, 3, 5))

    def test_at_most_once_per_day(self):
        """Test a rule already generated today is skipped."""
        assert not should_generate(rule(last_generated_date="2024-03-05"), date(2024, 3, 5))


class TestGenerateDueTransactions:
    """Tests for generation through the repositories."""

    def test_generates_and_stamps(self, repositories, queue):
        """Test due rules create a transaction and record the date."""
        repositories.recurring_transactions.add(rule())
        report = generate_due_transactions(repositories, date(2024, 3, 5))

        assert len(report.generated) == 1
        transaction = repositories.transactions.get(report.generated[0])
        assert transaction.amount == 1200
        assert transaction.date == "2024-03-05"
        assert transaction.description == "Aluguel"
        assert repositories.recurring_transactions.get("r1").last_generated_date == "2024-03-05"

        ops = [(m.entity_kind.value, m.operation_kind) for m in queue.pending()]
        assert ops[-2:] == [
            ("transactions", OperationKind.CREATE),
            ("recurringTransactions", OperationKind.UPDATE),
        ]

    def test_second_run_same_day_generates_nothing(self, repositories):
        """Test generation is idempotent within a day."""
        repositories.recurring_transactions.add(rule())
        generate_due_transactions(repositories, date(2024, 3, 5))
        report = generate_due_transactions(repositories, date(2024, 3, 5))

        assert report.generated == []
        assert report.skipped == 1
        assert len(repositories.transactions.get_all()) == 1
