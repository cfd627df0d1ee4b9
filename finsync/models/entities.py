"""
Entity Models for Finance Sync

These models define the CURRENT schema of every record held in the local
store. The Validation Gate checks raw JSON against them on every read.

Records are stored as camelCase JSON objects (the format shared with the
remote backend and with backups). Python code uses snake_case attributes;
the alias generator maps between the two.

DESIGN DECISION: Numbers and booleans are checked strictly.
A stored amount of "50" or a flag of "yes" is a corrupt record,
not something to coerce silently.
"""

from datetime import date
from enum import Enum
from typing import Annotated, Any, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntityKind(str, Enum):
    """
    Persisted entity collections.

    The values double as the entity names used in the mutation queue
    and in the remote backend routing.
    """
    TRANSACTIONS = "transactions"
    CATEGORIES = "categories"
    GOALS = "goals"
    PROFILE = "profile"
    ASSETS = "assets"
    RECURRING_TRANSACTIONS = "recurringTransactions"


class TransactionType(str, Enum):
    """Direction of a money movement."""
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"


class CategoryType(str, Enum):
    """Which transaction types a category applies to."""
    MIXED = "mixed"
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"


class Language(str, Enum):
    EN = "en"
    PT = "pt"


class Frequency(str, Enum):
    """Recurrence cadence for recurring transactions."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AssetClass(str, Enum):
    """Investment asset classes tracked in the portfolio."""
    STOCKS = "stocks"
    FIIS = "fiis"
    FIXED_INCOME = "fixed-income"
    ETFS = "etfs"
    CRYPTO = "crypto"


# =============================================================================
# FIELD TYPES
# =============================================================================

def _reject_non_numeric(value: Any) -> Any:
    # bool is an int subclass; neither it nor numeric strings count as numbers
    if isinstance(value, (bool, str)):
        raise ValueError("must be a number")
    return value


Number = Annotated[float, BeforeValidator(_reject_non_numeric)]
PositiveNumber = Annotated[float, BeforeValidator(_reject_non_numeric), Field(gt=0)]
NonNegativeNumber = Annotated[float, BeforeValidator(_reject_non_numeric), Field(ge=0)]
WholeNumber = Annotated[int, BeforeValidator(_reject_non_numeric)]
# Keeps integers as int, accepts fractional values too
EpochMillis = Annotated[Union[int, float], BeforeValidator(_reject_non_numeric)]


def new_entity_id() -> str:
    """Generate a fresh entity id."""
    return str(uuid4())


class StoredModel(BaseModel):
    """
    Base for every persisted entity.

    Unknown keys are ignored on read so that records written by a newer
    client (or the remote backend) still validate.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON object stored on disk."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# ENTITIES
# =============================================================================

class Transaction(StoredModel):
    """A single income, expense or investment entry."""

    id: str
    type: TransactionType
    amount: PositiveNumber
    category: str
    date: str = Field(
        ...,
        description="ISO date (YYYY-MM-DD) the transaction belongs to"
    )
    description: Optional[str] = None
    is_future: Optional[StrictBool] = None
    is_unexpected: Optional[StrictBool] = None
    created_at: Optional[EpochMillis] = Field(
        default=None,
        description="Creation time in epoch milliseconds"
    )


class Category(StoredModel):
    """User-defined grouping for transactions."""

    id: str
    name: str
    type: CategoryType
    icon: Optional[str] = None


class UserProfile(StoredModel):
    """
    Per-user preferences.

    Singleton: stored as one object, not a collection, and has no id.
    """

    name: str
    currency: str
    default_month: str = Field(
        ...,
        description="Month shown by default (YYYY-MM)"
    )
    language: Optional[Language] = None
    telegram_chat_id: Optional[WholeNumber] = None
    telegram_summary_enabled: Optional[StrictBool] = None


class Goal(StoredModel):
    """A savings goal or a simple to-do style goal."""

    id: str
    title: str
    target_amount: Optional[PositiveNumber] = None
    current_amount: Optional[NonNegativeNumber] = None
    deadline: Optional[str] = None
    completed: StrictBool
    created_at: str


class RecurringTransaction(StoredModel):
    """Rule that generates a transaction on a weekly, monthly or yearly cadence."""

    id: str
    type: TransactionType
    amount: PositiveNumber
    category: str
    description: Optional[str] = None
    frequency: Frequency
    day_of_month: Optional[Annotated[WholeNumber, Field(ge=1, le=28)]] = None
    day_of_week: Optional[Annotated[WholeNumber, Field(ge=0, le=6)]] = Field(
        default=None,
        description="0 = Sunday, 6 = Saturday"
    )
    month_of_year: Optional[Annotated[WholeNumber, Field(ge=1, le=12)]] = None
    start_date: str
    end_date: Optional[str] = None
    last_generated_date: Optional[str] = None
    is_active: StrictBool
    created_at: str


class Asset(StoredModel):
    """A position in the investment portfolio."""

    id: str
    symbol: str = Field(
        ...,
        description="Ticker symbol"
    )
    name: str
    asset_class: AssetClass
    quantity: PositiveNumber
    average_price: PositiveNumber
    total_invested: Number
    purchase_date: str
    created_at: EpochMillis


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_CATEGORIES: list[Category] = [
    Category(id="moradia", name="Moradia", type=CategoryType.MIXED, icon="🏠"),
    Category(id="alimentacao", name="Alimentação", type=CategoryType.MIXED, icon="🍽️"),
    Category(id="transporte", name="Transporte", type=CategoryType.MIXED, icon="🚗"),
    Category(id="lazer", name="Lazer", type=CategoryType.MIXED, icon="🎮"),
    Category(id="investimentos", name="Investimentos", type=CategoryType.INVESTMENT, icon="📈"),
    Category(id="saude", name="Saúde", type=CategoryType.MIXED, icon="💊"),
    Category(id="outros", name="Outros", type=CategoryType.MIXED, icon="📦"),
]


def default_profile(today: Optional[date] = None) -> UserProfile:
    """Profile used when none is stored or the stored one is corrupt."""
    today = today or date.today()
    return UserProfile(
        name="",
        currency="BRL",
        default_month=today.strftime("%Y-%m"),
        language=Language.EN,
    )


ENTITY_MODELS: dict[EntityKind, type[StoredModel]] = {
    EntityKind.TRANSACTIONS: Transaction,
    EntityKind.CATEGORIES: Category,
    EntityKind.GOALS: Goal,
    EntityKind.PROFILE: UserProfile,
    EntityKind.ASSETS: Asset,
    EntityKind.RECURRING_TRANSACTIONS: RecurringTransaction,
}
