"""
Chat-bot Intent Models

The message parser (an LLM behind the chat-bot) is external. It turns a
user's message into one of these structured intents. Nothing the parser
says is trusted as an answer: transactions are validated like any other
record and questions are answered from stored data only.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from finsync.models.entities import PositiveNumber, Transaction, TransactionType


class IntentType(str, Enum):
    TRANSACTION = "transaction"
    QUERY = "query"
    CONVERSATION = "conversation"


class QueryType(str, Enum):
    BALANCE = "balance"
    SUMMARY = "summary"
    CATEGORY_SPENDING = "category_spending"
    RECENT = "recent"


class QueryPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class _IntentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ParsedTransaction(_IntentModel):
    """A transaction extracted from a chat message."""

    type: TransactionType
    amount: PositiveNumber
    category: str = Field(..., min_length=1)
    date: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}-\d{2}$",
        description="ISO date (YYYY-MM-DD)"
    )
    description: Optional[str] = None


class ParsedQuery(_IntentModel):
    """A question about stored data."""

    query_id: UUID = Field(default_factory=uuid4)
    query_type: QueryType
    period: Optional[QueryPeriod] = None
    category: Optional[str] = None
    limit: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of transactions for 'recent' queries"
    )


class AssistantIntent(_IntentModel):
    """
    Parser output.

    Exactly the payload matching the intent must be present.
    """

    intent: IntentType
    transaction: Optional[ParsedTransaction] = None
    query: Optional[ParsedQuery] = None
    message: Optional[str] = None

    @model_validator(mode="after")
    def payload_matches_intent(self) -> "AssistantIntent":
        if self.intent is IntentType.TRANSACTION and self.transaction is None:
            raise ValueError("transaction intent requires a transaction")
        if self.intent is IntentType.QUERY and self.query is None:
            raise ValueError("query intent requires a query")
        return self


class QueryResult(BaseModel):
    """
    Result of executing a ParsedQuery.

    This is what the chat-bot turns into a reply.
    """

    query_id: UUID
    executed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    query_type: QueryType
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    success: bool
    error_message: Optional[str] = None

    data_found: bool = Field(
        ...,
        description="Was any data found?"
    )
    result_count: int = Field(
        ge=0,
        description="Number of transactions considered"
    )

    totals: dict[str, float] = Field(default_factory=dict)
    breakdown: dict[str, float] = Field(
        default_factory=dict,
        description="Expenses per category"
    )
    results: list[dict] = Field(
        default_factory=list,
        description="Transactions, newest first"
    )

    query_description: str = Field(
        ...,
        description="Human-readable description of what was queried"
    )


class IntentOutcome(BaseModel):
    """What executing an intent did."""

    intent: IntentType
    success: bool = True
    transaction: Optional[Transaction] = None
    query_result: Optional[QueryResult] = None
    message: Optional[str] = None
