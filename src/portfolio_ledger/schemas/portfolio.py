"""Portfolio schemas.

Field limits (name length, currency format) are enforced by
``services.portfolio_service`` so that violations surface as
``PortfolioValidationError`` with a field and code, like ledger errors do.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class PortfolioCreate(BaseModel):
    """Schema for creating a portfolio."""

    name: str
    description: str | None = None
    currency: str = "USD"
    is_default: bool = False


class PortfolioUpdate(BaseModel):
    """Schema for updating a portfolio (partial)."""

    name: str | None = None
    description: str | None = None
    currency: str | None = None
    is_default: bool | None = None


class PortfolioResponse(BaseModel):
    """Schema for portfolio response."""

    id: UUID
    owner_id: int
    name: str
    description: str | None
    currency: str
    is_default: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PortfolioSummary(BaseModel):
    """Point-in-time valuation of a portfolio."""

    portfolio_id: UUID
    currency: str
    cash_balance: Decimal
    holdings_value: Decimal
    total_equity: Decimal
    holdings_count: int
    net_deposits: Decimal
    total_return: Decimal
    total_return_percent: Decimal | None
    unpriced_symbols: list[str] = []
