"""Read-only analytics derived from the ledger: performance history and sector allocation.

Both reports are folds of the ledger like every other balance read. Market
data is best effort: symbols the provider cannot price are listed as
unpriced and left out of the totals.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_ledger.core.exceptions import PortfolioValidationError, ValidationCode
from portfolio_ledger.db.base import ensure_utc
from portfolio_ledger.db.session import read_only_transaction
from portfolio_ledger.models.transaction import PortfolioTransaction
from portfolio_ledger.repositories.transaction import TransactionRepository
from portfolio_ledger.schemas.analytics import (
    PerformanceHistory,
    PerformancePoint,
    SectorAllocation,
    SectorHolding,
    SectorWeight,
)
from portfolio_ledger.services.portfolio_service import get_owned_portfolio
from portfolio_ledger.services.pricing import PriceProvider
from portfolio_ledger.services.projector import (
    ZERO,
    BalanceProjector,
    LedgerEntry,
    Projection,
    net_deposit_delta,
)
from portfolio_ledger.services.valuation import (
    HUNDRED,
    close_on_or_before,
    fetch_close_history,
    fetch_quotes,
    fetch_sectors,
    market_values,
    round_percent,
    value_projection,
)

logger = logging.getLogger(__name__)

OTHER_SECTOR = "Other"

# Reaches back past weekends and market holidays to the previous close
HISTORY_LOOKBACK = timedelta(days=7)

DailyState = tuple[date, Projection, Decimal]


def _daily_states(entries: Iterable[LedgerEntry]) -> list[DailyState]:
    """End-of-day projection and net deposits for every day with activity."""
    projector = BalanceProjector()
    ordered = projector.order(entries)

    by_day: dict[date, tuple[Projection, Decimal]] = {}
    net_deposits = ZERO
    for entry, state in zip(ordered, projector.replay(ordered), strict=True):
        net_deposits += net_deposit_delta(entry)
        by_day[ensure_utc(entry.transaction_date).date()] = (state, net_deposits)

    return [(day, state, net) for day, (state, net) in by_day.items()]


def _in_range(days: list[DailyState], start: date | None, end: date | None) -> list[DailyState]:
    """Days inside [start, end], opened by the state carried into ``start``."""
    selected: list[DailyState] = []
    opening: DailyState | None = None
    for day, state, net in days:
        if end is not None and day > end:
            break
        if start is not None and day < start:
            opening = (start, state, net)
            continue
        selected.append((day, state, net))

    if opening is not None and (not selected or selected[0][0] != start):
        selected.insert(0, opening)
    return selected


def _point(
    day: date,
    state: Projection,
    net_deposits: Decimal,
    closes: dict[str, dict[date, Decimal]],
) -> PerformancePoint:
    quotes = {}
    for symbol in state.holdings:
        price = close_on_or_before(closes.get(symbol, {}), day)
        if price is not None:
            quotes[symbol] = price

    valuation = value_projection(state, quotes)
    total_return = valuation.total_value - net_deposits
    return PerformancePoint(
        date=day,
        cash_balance=valuation.cash_balance,
        holdings_value=valuation.holdings_value,
        total_equity=valuation.total_value,
        net_deposits=net_deposits,
        total_return=total_return,
        total_return_percent=(
            round_percent(total_return / net_deposits * HUNDRED)
            if net_deposits > ZERO
            else None
        ),
        unpriced_symbols=valuation.unpriced_symbols,
    )


async def get_performance_history(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    provider: PriceProvider,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> PerformanceHistory:
    """Rebuild the portfolio's equity curve from its ledger.

    There is one point per calendar day (UTC) with at least one transaction,
    valued at that day's close or the last close before it. When
    ``start_date`` falls after earlier activity, the first point carries the
    state as of ``start_date``.

    Args:
        db: Database session
        portfolio_id: Portfolio to report on
        owner_id: Requesting user's id
        provider: Source of historical closes
        start_date: Inclusive first day
        end_date: Inclusive last day

    Returns:
        Points in date order; empty if the range holds no activity

    Raises:
        PortfolioValidationError: start_date is after end_date
        PortfolioNotFoundError: No such portfolio
        PortfolioAccessError: Portfolio belongs to another user
    """
    if start_date is not None and end_date is not None and start_date > end_date:
        raise PortfolioValidationError(
            "start_date must be on or before end_date",
            field="start_date",
            code=ValidationCode.INVALID_VALUE,
        )

    async with read_only_transaction(db):
        portfolio = await get_owned_portfolio(db, portfolio_id, owner_id)
        ledger = TransactionRepository(PortfolioTransaction, db)
        entries = await ledger.list_entries(portfolio_id)

    days = _in_range(_daily_states(entries), start_date, end_date)
    closes: dict[str, dict[date, Decimal]] = {}
    if days:
        symbols = {symbol for _, state, _ in days for symbol in state.holdings}
        closes = await fetch_close_history(
            provider, symbols, days[0][0] - HISTORY_LOOKBACK, days[-1][0]
        )

    logger.debug(f"Performance history for portfolio {portfolio_id}: {len(days)} points")
    return PerformanceHistory(
        portfolio_id=portfolio.id,
        currency=portfolio.currency,
        start_date=start_date,
        end_date=end_date,
        points=[_point(day, state, net, closes) for day, state, net in days],
    )


async def get_sector_allocation(
    db: AsyncSession,
    portfolio_id: UUID,
    owner_id: int,
    provider: PriceProvider,
) -> SectorAllocation:
    """Group current holdings by sector.

    Weights are shares of the priced holdings' market value, cash excluded.
    Holdings the provider cannot classify fall under ``"Other"``. Sectors
    and the holdings inside them are sorted by market value, largest first.

    Raises:
        PortfolioNotFoundError: No such portfolio
        PortfolioAccessError: Portfolio belongs to another user
    """
    async with read_only_transaction(db):
        portfolio = await get_owned_portfolio(db, portfolio_id, owner_id)
        ledger = TransactionRepository(PortfolioTransaction, db)
        entries = await ledger.list_entries(portfolio_id)

    projection = BalanceProjector().fold(entries)
    quotes = await fetch_quotes(provider, projection.holdings)
    values = market_values(projection, quotes)
    sectors = await fetch_sectors(provider, values)
    total = sum(values.values(), ZERO)

    def weight(value: Decimal) -> Decimal:
        return round_percent(value / total * HUNDRED) if total > ZERO else ZERO

    grouped: dict[str, list[tuple[str, Decimal]]] = defaultdict(list)
    for symbol, value in values.items():
        grouped[sectors.get(symbol, OTHER_SECTOR)].append((symbol, value))

    rows = []
    for sector, members in grouped.items():
        members.sort(key=lambda member: (-member[1], member[0]))
        sector_value = sum((value for _, value in members), ZERO)
        rows.append(
            SectorWeight(
                sector=sector,
                market_value=sector_value,
                weight_percent=weight(sector_value),
                holdings=[
                    SectorHolding(symbol=symbol, market_value=value, weight_percent=weight(value))
                    for symbol, value in members
                ],
            )
        )
    rows.sort(key=lambda row: (-row.market_value, row.sector))

    return SectorAllocation(
        portfolio_id=portfolio.id,
        currency=portfolio.currency,
        total_market_value=total,
        sector_count=len(rows),
        sectors=rows,
        unpriced_symbols=sorted(set(projection.holdings) - set(values)),
    )
