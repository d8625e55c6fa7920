"""Holding schemas.

Holdings are not stored; they are projected from the ledger and joined with
the target allocations and live quotes.
"""

from decimal import Decimal

from pydantic import BaseModel

from portfolio_ledger.services.pricing import PriceStatus


class TargetAllocationUpdate(BaseModel):
    """Set (0..100) or clear (null) the target allocation of a held symbol."""

    target_allocation_percent: Decimal | None = None


class TargetAllocationResponse(BaseModel):
    symbol: str
    target_allocation_percent: Decimal | None


class HoldingView(BaseModel):
    """A projected holding with its valuation."""

    symbol: str
    quantity: Decimal
    target_allocation_percent: Decimal | None = None
    current_price: Decimal | None = None
    market_value: Decimal | None = None
    allocation_percent: Decimal | None = None
    drift_percent: Decimal | None = None
    price_status: PriceStatus
