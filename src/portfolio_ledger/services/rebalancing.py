"""Rebalancing engine: trades that bring holdings back to their targets.

Only symbols that are currently held and have a target allocation are
considered. Weights are computed against the whole portfolio value, cash
included, so a portfolio sitting on uninvested cash shows every target as
under-weight.
"""

import logging
from decimal import ROUND_DOWN, Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.config import settings
from portfolio_ledger.core.constants import RebalanceConstants
from portfolio_ledger.core.exceptions import PortfolioValidationError, ValidationCode
from portfolio_ledger.db.session import read_only_transaction
from portfolio_ledger.models.holding_target import HoldingTarget
from portfolio_ledger.models.transaction import PortfolioTransaction
from portfolio_ledger.repositories.holding_target import HoldingTargetRepository
from portfolio_ledger.repositories.transaction import TransactionRepository
from portfolio_ledger.schemas.rebalance import (
    RebalanceAction,
    RebalanceReport,
    RebalanceSuggestion,
)
from portfolio_ledger.services.portfolio_service import get_owned_portfolio
from portfolio_ledger.services.pricing import PriceProvider, PriceStatus
from portfolio_ledger.services.projector import ZERO, BalanceProjector
from portfolio_ledger.services.valuation import HUNDRED, fetch_quotes, market_values, round_percent

logger = logging.getLogger(__name__)


def _action_for(drift: Decimal) -> RebalanceAction:
    return RebalanceAction.SELL if drift > ZERO else RebalanceAction.BUY


class RebalancingEngine:
    """Computes rebalancing suggestions from the ledger, targets and live prices.

    Price failures never abort a run: a symbol without a quote is reported in
    ``RebalanceReport.unavailable`` and the rest of the portfolio is valued
    without it.

    Example:
        >>> engine = RebalancingEngine(db, YFinancePriceProvider())
        >>> report = await engine.suggest(portfolio_id, user.id, Decimal("5"))
        >>> [(s.symbol, s.action, s.suggested_quantity) for s in report.suggestions]
        [('AAPL', <RebalanceAction.SELL: 'SELL'>, Decimal('3.1250'))]
    """

    def __init__(
        self,
        db: AsyncSession,
        price_provider: PriceProvider,
        projector: BalanceProjector | None = None,
    ):
        self.db = db
        self.price_provider = price_provider
        self.projector = projector or BalanceProjector(
            TransactionRepository(PortfolioTransaction, db)
        )

    async def suggest(
        self,
        portfolio_id: UUID,
        owner_id: int,
        drift_threshold: Decimal | None = None,
    ) -> RebalanceReport:
        """Suggest trades for every targeted holding that drifted at least ``drift_threshold``.

        Args:
            portfolio_id: Portfolio to analyse
            owner_id: Requesting user's id
            drift_threshold: Minimum absolute drift in percentage points
                (inclusive). Defaults to ``DEFAULT_DRIFT_THRESHOLD``.

        Returns:
            Report with suggestions sorted by absolute drift, largest first

        Raises:
            PortfolioNotFoundError: No such portfolio
            PortfolioAccessError: Portfolio belongs to another user
            PortfolioValidationError: Negative threshold
        """
        threshold = settings.DEFAULT_DRIFT_THRESHOLD if drift_threshold is None else drift_threshold
        if not threshold.is_finite() or threshold < ZERO:
            raise PortfolioValidationError(
                "threshold must be zero or positive",
                field="threshold",
                code=ValidationCode.INVALID_VALUE,
            )

        async with read_only_transaction(self.db):
            await get_owned_portfolio(self.db, portfolio_id, owner_id)
            projection = await self.projector.project_as_of(portfolio_id)
            targets = await HoldingTargetRepository(HoldingTarget, self.db).targets_by_symbol(
                portfolio_id
            )

        quotes = await fetch_quotes(self.price_provider, projection.holdings)
        values = market_values(projection, quotes)
        total_value = projection.cash_balance + sum(values.values(), ZERO)

        suggestions: list[RebalanceSuggestion] = []
        unavailable: list[RebalanceSuggestion] = []
        drifts: dict[str, Decimal] = {}

        for symbol, quantity in sorted(projection.holdings.items()):
            target = targets.get(symbol)
            if target is None:
                continue

            if symbol not in values:
                unavailable.append(
                    RebalanceSuggestion(
                        symbol=symbol,
                        current_price=None,
                        quantity=quantity,
                        market_value=None,
                        current_allocation_percent=None,
                        target_allocation_percent=target,
                        drift_percent=None,
                        action=None,
                        suggested_quantity=None,
                        suggested_trade_value=None,
                        price_status=PriceStatus.UNAVAILABLE,
                    )
                )
                continue

            price = quotes[symbol]
            market_value = values[symbol]
            current = market_value / total_value * HUNDRED if total_value > ZERO else ZERO
            drift = current - target
            # On target: nothing to trade, even at a zero threshold
            if drift == ZERO or abs(drift) < threshold:
                continue

            target_value = total_value * target / HUNDRED
            trade_value = abs(target_value - market_value)
            suggested_quantity = (trade_value / price).quantize(
                RebalanceConstants.QUANTITY_PRECISION, rounding=ROUND_DOWN
            )

            drifts[symbol] = drift
            suggestions.append(
                RebalanceSuggestion(
                    symbol=symbol,
                    current_price=price,
                    quantity=quantity,
                    market_value=market_value,
                    current_allocation_percent=round_percent(current),
                    target_allocation_percent=target,
                    drift_percent=round_percent(drift),
                    action=_action_for(drift),
                    suggested_quantity=suggested_quantity,
                    suggested_trade_value=trade_value,
                    price_status=PriceStatus.LIVE,
                )
            )

        suggestions.sort(key=lambda s: abs(drifts[s.symbol]), reverse=True)
        total_drift = sum((abs(d) for d in drifts.values()), ZERO)

        logger.info(
            f"Rebalance run for portfolio {portfolio_id}: {len(suggestions)} suggestions, "
            f"{len(unavailable)} unpriced, threshold {threshold}"
        )
        return RebalanceReport(
            portfolio_id=portfolio_id,
            threshold=threshold,
            cash_balance=projection.cash_balance,
            total_value=total_value,
            total_drift=round_percent(total_drift),
            suggestions=suggestions,
            unavailable=unavailable,
        )
