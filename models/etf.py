from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict

CanaryStatus = Literal["Healthy", "Dying", "Dead"]
CANARY_STATUSES = ("Healthy", "Dying", "Dead")

# Shown unblurred to everyone
FREE_SAMPLE_TICKERS = frozenset({"TSLY", "QYLD", "XYLD", "MSTY"})

# Hidden on locked rows
GATED_FIELDS = (
    "death_clock_years",
    "true_income_yield",
    "total_return_1y",
    "take_home_cash_return_1y",
    "roc_latest",
)


class ETFRow(BaseModel):
    """One fund as served to the dashboard."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticker: str
    name: Optional[str] = None
    issuer: Optional[str] = None
    canary_health: Optional[CanaryStatus] = None
    inception_date: Optional[date] = None
    latest_date: Optional[date] = None
    latest_adj_close: Optional[float] = None
    headline_yield_ttm: Optional[float] = None
    roc_latest: Optional[float] = None
    roc_date: Optional[date] = None
    true_income_yield: Optional[float] = None
    death_clock_years: Optional[float] = None
    aum: Optional[float] = None
    expense_ratio: Optional[float] = None

    total_return_1y: Optional[float] = None
    total_return_ytd: Optional[float] = None
    total_return_inception: Optional[float] = None
    spent_dividends_return_1y: Optional[float] = None
    spent_dividends_return_ytd: Optional[float] = None
    spent_dividends_return_inception: Optional[float] = None
    take_home_return_1y: Optional[float] = None
    take_home_return_ytd: Optional[float] = None
    take_home_return_inception: Optional[float] = None
    take_home_cash_return_1y: Optional[float] = None
    take_home_cash_return_ytd: Optional[float] = None
    take_home_cash_return_inception: Optional[float] = None


class GatedETFRow(ETFRow):
    locked: bool = False


class ETFListResponse(BaseModel):
    count: int
    is_paid: bool
    subscription_tier: str
    sort: str
    direction: str
    issuers: List[str] = []
    etfs: List[GatedETFRow]


_DATE_FIELDS = {"inception_date", "latest_date", "roc_date"}
_TEXT_FIELDS = {"id", "ticker", "name", "issuer", "canary_health"}

NUMERIC_FIELDS = frozenset(ETFRow.model_fields) - _TEXT_FIELDS - _DATE_FIELDS
SORTABLE_FIELDS = frozenset(ETFRow.model_fields) - {"id"}
