"""Holding endpoints: projected positions and target allocations."""

from uuid import UUID

from fastapi import APIRouter

from portfolio_ledger.core.deps import CurrentActiveUser, DbSession, Prices
from portfolio_ledger.schemas.holding import (
    HoldingView,
    TargetAllocationResponse,
    TargetAllocationUpdate,
)
from portfolio_ledger.services import portfolio_service

router = APIRouter()


@router.get("", response_model=list[HoldingView])
async def get_holdings(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
    prices: Prices,
) -> list[HoldingView]:
    """Current holdings with live prices, weights and drift from target."""
    return await portfolio_service.get_holdings(db, portfolio_id, current_user.id, prices)


@router.put("/{symbol}/target", response_model=TargetAllocationResponse)
async def set_target_allocation(
    portfolio_id: UUID,
    symbol: str,
    target_in: TargetAllocationUpdate,
    current_user: CurrentActiveUser,
    db: DbSession,
) -> TargetAllocationResponse:
    """
    Set or clear a held symbol's target allocation percent.

    Raises:
        PortfolioValidationError: 400 if the symbol is not held or the
            percent is outside 0..100
    """
    return await portfolio_service.set_target_allocation(
        db, portfolio_id, current_user.id, symbol, target_in.target_allocation_percent
    )
