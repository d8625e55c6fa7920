"""Rebalancing endpoint."""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter

from portfolio_ledger.core.config import settings
from portfolio_ledger.core.deps import CurrentActiveUser, DbSession, Prices
from portfolio_ledger.schemas.rebalance import RebalanceReport
from portfolio_ledger.services.rebalancing import RebalancingEngine

router = APIRouter()


@router.get("", response_model=RebalanceReport)
async def get_rebalance_suggestions(
    portfolio_id: UUID,
    current_user: CurrentActiveUser,
    db: DbSession,
    prices: Prices,
    threshold: Decimal = settings.DEFAULT_DRIFT_THRESHOLD,
) -> RebalanceReport:
    """
    Suggested trades for holdings whose weight drifted at least ``threshold``
    percentage points from target.

    Raises:
        PortfolioValidationError: 400 if threshold is negative
    """
    engine = RebalancingEngine(db, prices)
    return await engine.suggest(portfolio_id, current_user.id, threshold)
