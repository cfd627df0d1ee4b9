"""
Portfolio calculations over stored assets.

Pure functions, no storage access and no market data fetching. Callers
may pass quotes they obtained elsewhere; an asset without a quote is
valued at its average price, so current value equals cost and the gain
is zero until a quote arrives.

ALLOCATION: the ARCA strategy splits the portfolio into four equal
buckets (fixed income, variable income, ETFs, crypto). Stocks and FIIs
both count as variable income. A bucket within 5 percentage points of
its target is "ideal".
"""

from enum import Enum
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, Field

from finsync.models.entities import Asset, AssetClass
from finsync.models.notices import NoticeSeverity


class ArcaCategory(str, Enum):
    FIXED_INCOME = "fixed-income"
    VARIABLE_INCOME = "variable-income"
    ETFS = "etfs"
    CRYPTO = "crypto"


class AllocationStatus(str, Enum):
    IDEAL = "ideal"
    BELOW = "below"
    ABOVE = "above"


class AlertType(str, Enum):
    ALLOCATION = "allocation"
    VOLATILITY = "volatility"
    CONCENTRATION = "concentration"


ARCA_TARGET: dict[ArcaCategory, float] = {category: 25.0 for category in ArcaCategory}

ASSET_CLASS_TO_ARCA: dict[AssetClass, ArcaCategory] = {
    AssetClass.STOCKS: ArcaCategory.VARIABLE_INCOME,
    AssetClass.FIIS: ArcaCategory.VARIABLE_INCOME,
    AssetClass.FIXED_INCOME: ArcaCategory.FIXED_INCOME,
    AssetClass.ETFS: ArcaCategory.ETFS,
    AssetClass.CRYPTO: ArcaCategory.CRYPTO,
}

ALLOCATION_TOLERANCE = 5.0
ALLOCATION_WARNING_GAP = 10.0
VOLATILITY_THRESHOLD = 10.0
CONCENTRATION_THRESHOLD = 20.0


# =============================================================================
# MODELS
# =============================================================================

class MarketQuote(BaseModel):
    """Latest price for one symbol, supplied by the caller."""

    symbol: str
    current_price: float = Field(..., ge=0)
    daily_change: float = Field(
        default=0.0,
        description="Percentage change since the previous close"
    )


class AssetPosition(BaseModel):
    """An asset together with its valuation."""

    asset: Asset
    quote: Optional[MarketQuote] = None
    current_value: float
    capital_gain: float
    return_percentage: float


class ClassBreakdown(BaseModel):
    invested: float = 0.0
    current_value: float = 0.0
    gain: float = 0.0
    percentage: float = 0.0


class PortfolioSummary(BaseModel):
    total_invested: float = 0.0
    current_value: float = 0.0
    total_gain: float = 0.0
    return_percentage: float = 0.0
    by_asset_class: dict[AssetClass, ClassBreakdown] = Field(
        default_factory=lambda: {asset_class: ClassBreakdown() for asset_class in AssetClass}
    )


class ArcaAllocation(BaseModel):
    """Current share per ARCA bucket against the target, in percent."""

    target: dict[ArcaCategory, float]
    current: dict[ArcaCategory, float]
    difference: dict[ArcaCategory, float]
    status: dict[ArcaCategory, AllocationStatus]


class PortfolioAlert(BaseModel):
    alert_type: AlertType
    severity: NoticeSeverity
    message: str
    asset_class: Optional[AssetClass] = None
    symbol: Optional[str] = None


# =============================================================================
# CALCULATIONS
# =============================================================================

def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def value_asset(asset: Asset, quote: Optional[MarketQuote] = None) -> AssetPosition:
    """Value one asset at its quote, or at its average price without one."""
    price = quote.current_price if quote is not None else asset.average_price
    current_value = asset.quantity * price
    gain = current_value - asset.total_invested
    return AssetPosition(
        asset=asset,
        quote=quote,
        current_value=current_value,
        capital_gain=gain,
        return_percentage=_percent(gain, asset.total_invested),
    )


def value_portfolio(
    assets: Iterable[Asset],
    quotes: Optional[Mapping[str, MarketQuote]] = None,
) -> list[AssetPosition]:
    """Value every asset. Quotes are looked up by upper-cased symbol."""
    by_symbol = {symbol.upper(): quote for symbol, quote in (quotes or {}).items()}
    return [value_asset(asset, by_symbol.get(asset.symbol.upper())) for asset in assets]


def calculate_portfolio_summary(positions: Iterable[AssetPosition]) -> PortfolioSummary:
    """Totals, overall return and per-class breakdown. Every class is present."""
    summary = PortfolioSummary()
    for position in positions:
        breakdown = summary.by_asset_class[position.asset.asset_class]
        breakdown.invested += position.asset.total_invested
        breakdown.current_value += position.current_value
        breakdown.gain += position.capital_gain
        summary.total_invested += position.asset.total_invested
        summary.current_value += position.current_value

    summary.total_gain = summary.current_value - summary.total_invested
    summary.return_percentage = _percent(summary.total_gain, summary.total_invested)
    for breakdown in summary.by_asset_class.values():
        breakdown.percentage = _percent(breakdown.current_value, summary.current_value)
    return summary


def allocation_status(difference: float, tolerance: float = ALLOCATION_TOLERANCE) -> AllocationStatus:
    if abs(difference) <= tolerance:
        return AllocationStatus.IDEAL
    return AllocationStatus.BELOW if difference < 0 else AllocationStatus.ABOVE


def calculate_arca_allocation(summary: PortfolioSummary) -> ArcaAllocation:
    values = {category: 0.0 for category in ArcaCategory}
    for asset_class, breakdown in summary.by_asset_class.items():
        values[ASSET_CLASS_TO_ARCA[asset_class]] += breakdown.current_value

    current = {category: _percent(value, summary.current_value) for category, value in values.items()}
    difference = {category: current[category] - ARCA_TARGET[category] for category in ArcaCategory}
    return ArcaAllocation(
        target=dict(ARCA_TARGET),
        current=current,
        difference=difference,
        status={category: allocation_status(diff) for category, diff in difference.items()},
    )


def generate_alerts(positions: list[AssetPosition], summary: PortfolioSummary) -> list[PortfolioAlert]:
    """
    Allocation, volatility and concentration alerts, in that order.

    - every ARCA bucket outside the tolerance (a warning beyond 10 points)
    - every asset whose quote moved more than 10% in a day
    - every asset above 20% of the portfolio's current value
    """
    alerts = []

    allocation = calculate_arca_allocation(summary)
    for category, status in allocation.status.items():
        if status is AllocationStatus.IDEAL:
            continue
        gap = abs(allocation.difference[category])
        alerts.append(PortfolioAlert(
            alert_type=AlertType.ALLOCATION,
            severity=NoticeSeverity.WARNING if gap > ALLOCATION_WARNING_GAP else NoticeSeverity.INFO,
            message=f"{category.value} is {gap:.1f} points {status.value} its target",
        ))

    for position in positions:
        if position.quote is not None and abs(position.quote.daily_change) > VOLATILITY_THRESHOLD:
            alerts.append(PortfolioAlert(
                alert_type=AlertType.VOLATILITY,
                severity=NoticeSeverity.WARNING,
                message=f"{position.asset.symbol} moved {position.quote.daily_change:.2f}% today",
                asset_class=position.asset.asset_class,
                symbol=position.asset.symbol,
            ))

    for position in positions:
        share = _percent(position.current_value, summary.current_value)
        if share > CONCENTRATION_THRESHOLD:
            alerts.append(PortfolioAlert(
                alert_type=AlertType.CONCENTRATION,
                severity=NoticeSeverity.INFO,
                message=f"{position.asset.symbol} is {share:.1f}% of the portfolio",
                asset_class=position.asset.asset_class,
                symbol=position.asset.symbol,
            ))

    return alerts


class PortfolioReport(BaseModel):
    positions: list[AssetPosition]
    summary: PortfolioSummary
    allocation: ArcaAllocation
    alerts: list[PortfolioAlert]


def build_portfolio_report(
    assets: Iterable[Asset],
    quotes: Optional[Mapping[str, MarketQuote]] = None,
) -> PortfolioReport:
    positions = value_portfolio(assets, quotes)
    summary = calculate_portfolio_summary(positions)
    return PortfolioReport(
        positions=positions,
        summary=summary,
        allocation=calculate_arca_allocation(summary),
        alerts=generate_alerts(positions, summary),
    )
