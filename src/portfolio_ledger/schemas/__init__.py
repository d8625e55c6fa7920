"""Schemas package."""

from portfolio_ledger.schemas.analytics import (
    PerformanceHistory,
    PerformancePoint,
    SectorAllocation,
    SectorHolding,
    SectorWeight,
)
from portfolio_ledger.schemas.auth import Token, TokenData, UserRegister
from portfolio_ledger.schemas.portfolio import (
    PortfolioCreate,
    PortfolioResponse,
    PortfolioSummary,
    PortfolioUpdate,
)
from portfolio_ledger.schemas.transaction import (
    ImportResult,
    TransactionCreate,
    TransactionDraft,
    TransactionFilters,
    TransactionImportRequest,
    TransactionResponse,
)
from portfolio_ledger.schemas.user import UserResponse

__all__ = [
    # Authentication schemas
    "Token",
    "TokenData",
    "UserRegister",
    # User schemas
    "UserResponse",
    # Portfolio schemas
    "PortfolioCreate",
    "PortfolioResponse",
    "PortfolioSummary",
    "PortfolioUpdate",
    # Analytics schemas
    "PerformanceHistory",
    "PerformancePoint",
    "SectorAllocation",
    "SectorHolding",
    "SectorWeight",
    # Transaction schemas
    "ImportResult",
    "TransactionCreate",
    "TransactionDraft",
    "TransactionFilters",
    "TransactionImportRequest",
    "TransactionResponse",
]
