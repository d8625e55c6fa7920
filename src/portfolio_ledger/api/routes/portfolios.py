"""Portfolio endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from portfolio_ledger.core.constants import APIConstants
from portfolio_ledger.core.deps import CurrentActiveUser, DbSession, Prices
from portfolio_ledger.models.portfolio import Portfolio
from portfolio_ledger.schemas.analytics import PerformanceHistory, SectorAllocation
from portfolio_ledger.schemas.portfolio import (
    PortfolioCreate,
    PortfolioResponse,
    PortfolioSummary,
    PortfolioUpdate,
)
from portfolio_ledger.services import analytics, portfolio_service

router = APIRouter()


@router.post("/", response_model=PortfolioResponse, status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    portfolio_in: PortfolioCreate,
    current_user: CurrentActiveUser,
    db: DbSession,
) -> Portfolio:
    """
    Create a portfolio for the current user.

    Setting ``is_default`` clears the flag on the user's other portfolios.
    """
    return await portfolio_service.create_portfolio(db, current_user.id, portfolio_in)


@router.get("/", response_model=list[PortfolioResponse])
async def list_portfolios(
    current_user: CurrentActiveUser,
    db: DbSession,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=APIConstants.MAX_PAGE_SIZE)] = APIConstants.DEFAULT_PAGE_SIZE,
) -> list[Portfolio]:
    """The current user's portfolios, default first."""
    return await portfolio_service.list_portfolios(db, current_user.id, skip=skip, limit=limit)


@router.get("/{portfolio_id}", response_model=PortfolioResponse)
async def get_portfolio(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
) -> Portfolio:
    """
    Get one portfolio.

    Raises:
        PortfolioNotFoundError: 404 if it does not exist
        PortfolioAccessError: 403 if it belongs to another user
    """
    return await portfolio_service.get_portfolio(db, portfolio_id, current_user.id)


@router.patch("/{portfolio_id}", response_model=PortfolioResponse)
async def update_portfolio(
    portfolio_id: UUID,
    portfolio_in: PortfolioUpdate,
    current_user: CurrentActiveUser,
    db: DbSession,
) -> Portfolio:
    """Update a portfolio's name, description, currency or default flag."""
    return await portfolio_service.update_portfolio(db, portfolio_id, current_user.id, portfolio_in)


@router.delete("/{portfolio_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_portfolio(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
) -> None:
    """Delete a portfolio together with its transactions and targets."""
    await portfolio_service.delete_portfolio(db, portfolio_id, current_user.id)


@router.get("/{portfolio_id}/summary", response_model=PortfolioSummary)
async def get_summary(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
    prices: Prices,
) -> PortfolioSummary:
    """Cash, holdings value, equity and return on net deposits at current prices."""
    return await portfolio_service.get_summary(db, portfolio_id, current_user.id, prices)


@router.get("/{portfolio_id}/history", response_model=PerformanceHistory)
async def get_performance_history(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
    prices: Prices,
    start_date: date | None = None,
    end_date: date | None = None,
) -> PerformanceHistory:
    """
    Daily equity, cash and return rebuilt from the ledger.

    Args:
        start_date: Inclusive first day (YYYY-MM-DD)
        end_date: Inclusive last day (YYYY-MM-DD)
    """
    return await analytics.get_performance_history(
        db, portfolio_id, current_user.id, prices, start_date=start_date, end_date=end_date
    )


@router.get("/{portfolio_id}/allocation", response_model=SectorAllocation)
async def get_sector_allocation(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
    prices: Prices,
) -> SectorAllocation:
    """Holdings grouped by sector, weighted by market value."""
    return await analytics.get_sector_allocation(db, portfolio_id, current_user.id, prices)
