"""Performance history and sector allocation schemas."""

import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class PerformancePoint(BaseModel):
    """Portfolio value at the close of one day."""

    date: datetime.date
    cash_balance: Decimal
    holdings_value: Decimal
    total_equity: Decimal
    net_deposits: Decimal
    total_return: Decimal
    total_return_percent: Decimal | None
    unpriced_symbols: list[str] = []


class PerformanceHistory(BaseModel):
    """Equity curve rebuilt from the ledger, one point per day with activity."""

    portfolio_id: UUID
    currency: str
    start_date: datetime.date | None
    end_date: datetime.date | None
    points: list[PerformancePoint]


class SectorHolding(BaseModel):
    symbol: str
    market_value: Decimal
    weight_percent: Decimal


class SectorWeight(BaseModel):
    """Priced holdings of one sector and their share of the holdings value."""

    sector: str
    market_value: Decimal
    weight_percent: Decimal
    holdings: list[SectorHolding]


class SectorAllocation(BaseModel):
    """Holdings grouped by sector at current prices."""

    portfolio_id: UUID
    currency: str
    total_market_value: Decimal
    sector_count: int
    sectors: list[SectorWeight]
    unpriced_symbols: list[str] = []
