"""
Intent Execution Engine

DESIGN DECISION: Execution is DETERMINISTIC.
The external parser converts a chat message to an AssistantIntent.
This engine applies that intent to local data: transactions are added
through the repository (and therefore enqueued for sync), questions are
answered from stored transactions.

At no point does the parser answer a question itself.
It only sees what this engine returns.
"""

from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import structlog

from finsync.models.entities import Transaction, TransactionType, new_entity_id
from finsync.models.intents import (
    AssistantIntent,
    IntentOutcome,
    IntentType,
    ParsedQuery,
    ParsedTransaction,
    QueryPeriod,
    QueryResult,
    QueryType,
)
from finsync.services import calculations
from finsync.services.calculations import Period

if TYPE_CHECKING:
    from finsync.repositories import Repositories


logger = structlog.get_logger(__name__)

PERIODS = {
    QueryPeriod.TODAY: Period.DAY,
    QueryPeriod.WEEK: Period.WEEK,
    QueryPeriod.MONTH: Period.MONTH,
    QueryPeriod.YEAR: Period.YEAR,
}


class QueryExecutor:
    """
    Answers ParsedQuery objects from the transaction repository.

    GUARANTEES:
    - Only returns real stored data
    - Never invents or estimates
    - Clear "no data found" if nothing matches
    """

    def __init__(self, repositories: "Repositories"):
        self._repositories = repositories

    def execute(self, query: ParsedQuery, today: Optional[date] = None) -> QueryResult:
        today = today or date.today()
        try:
            if query.query_type is QueryType.BALANCE:
                return self._execute_balance(query, today)
            elif query.query_type is QueryType.SUMMARY:
                return self._execute_summary(query, today)
            elif query.query_type is QueryType.CATEGORY_SPENDING:
                return self._execute_category_spending(query, today)
            else:
                return self._execute_recent(query, today)

        except Exception as e:
            logger.exception("query_failed", query_type=query.query_type.value)
            return QueryResult(
                query_id=query.query_id,
                query_type=query.query_type,
                success=False,
                error_message=str(e),
                data_found=False,
                result_count=0,
                query_description=f"Query failed: {e}",
            )

    # Selection ---------------------------------------------------------------

    def _category_matches(self, transaction: Transaction, wanted: str) -> bool:
        wanted = wanted.strip().lower()
        if transaction.category.lower() == wanted:
            return True
        names = {c.id: c.name.lower() for c in self._repositories.categories.get_all()}
        return names.get(transaction.category) == wanted

    def _select(self, query: ParsedQuery, today: date, default_period: Optional[QueryPeriod]) -> tuple[list[Transaction], Optional[tuple[date, date]]]:
        transactions = calculations.exclude_future(self._repositories.transactions.get_all(), today)

        period = query.period or default_period
        bounds = None
        if period is not None:
            bounds = calculations.period_bounds(PERIODS[period], today)
            transactions = calculations.filter_by_period(transactions, PERIODS[period], today)

        if query.category:
            transactions = [t for t in transactions if self._category_matches(t, query.category)]
        return transactions, bounds

    @staticmethod
    def _describe(prefix: str, query: ParsedQuery, period: Optional[QueryPeriod]) -> str:
        parts = [prefix]
        if query.category:
            parts.append(f"category: {query.category}")
        if period is not None:
            parts.append(f"period: {period.value}")
        return " | ".join(parts)

    @staticmethod
    def _totals(transactions: list[Transaction]) -> dict[str, float]:
        return {t.value: calculations.total_by_type(transactions, t) for t in TransactionType}

    @staticmethod
    def _transaction_to_dict(transaction: Transaction) -> dict:
        return {
            "id": transaction.id,
            "type": transaction.type.value,
            "amount": transaction.amount,
            "category": transaction.category,
            "date": transaction.date,
            "description": transaction.description,
        }

    def _result(
        self,
        query: ParsedQuery,
        transactions: list[Transaction],
        bounds: Optional[tuple[date, date]],
        description: str,
        **fields,
    ) -> QueryResult:
        return QueryResult(
            query_id=query.query_id,
            query_type=query.query_type,
            date_from=bounds[0] if bounds else None,
            date_to=bounds[1] if bounds else None,
            success=True,
            data_found=len(transactions) > 0,
            result_count=len(transactions),
            query_description=description,
            **fields,
        )

    # Handlers ----------------------------------------------------------------

    def _execute_balance(self, query: ParsedQuery, today: date) -> QueryResult:
        period = query.period or QueryPeriod.MONTH
        transactions, bounds = self._select(query, today, period)
        totals = self._totals(transactions)
        totals["balance"] = calculations.balance(transactions)
        return self._result(
            query,
            transactions,
            bounds,
            self._describe("Calculating balance", query, period),
            totals=totals,
        )

    def _execute_summary(self, query: ParsedQuery, today: date) -> QueryResult:
        period = query.period or QueryPeriod.MONTH
        transactions, bounds = self._select(query, today, period)
        totals = self._totals(transactions)
        totals["balance"] = calculations.balance(transactions)
        totals["unexpected_income"] = calculations.unexpected_income(transactions)
        totals["unexpected_expenses"] = calculations.unexpected_expenses(transactions)
        return self._result(
            query,
            transactions,
            bounds,
            self._describe("Summarizing transactions", query, period),
            totals=totals,
            breakdown=calculations.expenses_by_category(transactions),
        )

    def _execute_category_spending(self, query: ParsedQuery, today: date) -> QueryResult:
        period = query.period or QueryPeriod.MONTH
        transactions, bounds = self._select(query, today, period)
        expenses = [t for t in transactions if t.type is TransactionType.EXPENSE]
        breakdown = dict(sorted(
            calculations.expenses_by_category(expenses).items(),
            key=lambda item: item[1],
            reverse=True,
        ))
        return self._result(
            query,
            expenses,
            bounds,
            self._describe("Spending by category", query, period),
            totals={TransactionType.EXPENSE.value: sum(breakdown.values())},
            breakdown=breakdown,
        )

    def _execute_recent(self, query: ParsedQuery, today: date) -> QueryResult:
        transactions, bounds = self._select(query, today, None)
        newest = sorted(
            transactions,
            key=lambda t: (t.date, t.created_at or 0),
            reverse=True,
        )[:query.limit]
        return self._result(
            query,
            newest,
            bounds,
            self._describe(f"Listing last {query.limit} transactions", query, query.period),
            results=[self._transaction_to_dict(t) for t in newest],
        )


class IntentExecutor:
    """Applies parser intents: records transactions, answers queries."""

    def __init__(self, repositories: "Repositories"):
        self._repositories = repositories
        self._queries = QueryExecutor(repositories)

    def record_transaction(self, parsed: ParsedTransaction, today: Optional[date] = None) -> Transaction:
        today = today or date.today()
        transaction = Transaction(
            id=new_entity_id(),
            type=parsed.type,
            amount=parsed.amount,
            category=parsed.category,
            date=parsed.date,
            description=parsed.description,
            is_future=parsed.date > today.isoformat(),
            is_unexpected=False,
            created_at=int(datetime.now(timezone.utc).timestamp() * 1000),
        )
        self._repositories.transactions.add(transaction)
        logger.info(
            "chat_transaction_recorded",
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
        )
        return transaction

    def execute(self, intent: AssistantIntent, today: Optional[date] = None) -> IntentOutcome:
        if intent.intent is IntentType.TRANSACTION:
            transaction = self.record_transaction(intent.transaction, today)
            return IntentOutcome(intent=intent.intent, transaction=transaction)

        if intent.intent is IntentType.QUERY:
            result = self._queries.execute(intent.query, today)
            return IntentOutcome(
                intent=intent.intent,
                success=result.success,
                query_result=result,
            )

        return IntentOutcome(intent=intent.intent, message=intent.message)
