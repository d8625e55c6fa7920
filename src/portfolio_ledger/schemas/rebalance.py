"""Rebalancing report schemas."""

import enum
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from portfolio_ledger.services.pricing import PriceStatus


class RebalanceAction(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class RebalanceSuggestion(BaseModel):
    """Suggested trade to bring one holding back to its target."""

    symbol: str
    current_price: Decimal | None
    quantity: Decimal
    market_value: Decimal | None
    current_allocation_percent: Decimal | None
    target_allocation_percent: Decimal
    drift_percent: Decimal | None
    action: RebalanceAction | None
    suggested_quantity: Decimal | None
    suggested_trade_value: Decimal | None
    price_status: PriceStatus


class RebalanceReport(BaseModel):
    """Rebalancing suggestions for a portfolio at current prices."""

    portfolio_id: UUID
    threshold: Decimal
    cash_balance: Decimal
    total_value: Decimal
    total_drift: Decimal
    suggestions: list[RebalanceSuggestion]
    unavailable: list[RebalanceSuggestion]
