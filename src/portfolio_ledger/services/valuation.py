"""Valuation of projected holdings at live or historical prices.

Quotes are best effort: a symbol the provider cannot price is reported as
``PriceStatus.UNAVAILABLE`` and left out of the totals instead of failing the
request.
"""

import logging
from bisect import bisect_right
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from portfolio_ledger.core.constants import RebalanceConstants
from portfolio_ledger.schemas.holding import HoldingView
from portfolio_ledger.services.pricing import PriceProvider, PriceStatus
from portfolio_ledger.services.projector import ZERO, Projection

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def round_percent(value: Decimal) -> Decimal:
    return value.quantize(RebalanceConstants.PERCENT_PRECISION, rounding=ROUND_HALF_UP)


async def fetch_quotes(provider: PriceProvider, symbols: Iterable[str]) -> dict[str, Decimal]:
    """Quotes for ``symbols``, or an empty mapping if the provider call fails.

    Args:
        provider: Price provider
        symbols: Symbols to price

    Returns:
        Mapping of symbol to price for the symbols that could be priced
    """
    symbols = sorted(set(symbols))
    if not symbols:
        return {}
    try:
        return dict(await provider.get_multiple_quotes(symbols))
    except Exception as e:
        logger.warning(
            f"Price provider failed for {', '.join(symbols)}: {type(e).__name__}: {e}. "
            "Marking all as unavailable."
        )
        return {}


async def fetch_close_history(
    provider: PriceProvider, symbols: Iterable[str], start: date, end: date
) -> dict[str, dict[date, Decimal]]:
    """Daily closes for ``symbols``, or an empty mapping if the provider call fails."""
    symbols = sorted(set(symbols))
    if not symbols:
        return {}
    try:
        return dict(await provider.get_close_history(symbols, start, end))
    except Exception as e:
        logger.warning(
            f"Price history failed for {', '.join(symbols)}: {type(e).__name__}: {e}. "
            "Marking all as unavailable."
        )
        return {}


async def fetch_sectors(provider: PriceProvider, symbols: Iterable[str]) -> dict[str, str]:
    """Sectors for ``symbols``; a provider failure leaves every symbol unclassified."""
    symbols = sorted(set(symbols))
    if not symbols:
        return {}
    try:
        return dict(await provider.get_sectors(symbols))
    except Exception as e:
        logger.warning(f"Sector lookup failed for {', '.join(symbols)}: {type(e).__name__}: {e}")
        return {}


def close_on_or_before(closes: Mapping[date, Decimal], day: date) -> Decimal | None:
    """Last close dated ``day`` or earlier, covering weekends and holidays."""
    days = sorted(closes)
    index = bisect_right(days, day)
    return closes[days[index - 1]] if index else None


@dataclass
class Valuation:
    """Cash plus priced holdings."""

    cash_balance: Decimal
    holdings_value: Decimal
    holdings: list[HoldingView] = field(default_factory=list)

    @property
    def total_value(self) -> Decimal:
        return self.cash_balance + self.holdings_value

    @property
    def unpriced_symbols(self) -> list[str]:
        return [h.symbol for h in self.holdings if h.price_status is PriceStatus.UNAVAILABLE]


def market_values(projection: Projection, quotes: Mapping[str, Decimal]) -> dict[str, Decimal]:
    """Quantity x price for every held symbol that has a quote."""
    return {
        symbol: quantity * quotes[symbol]
        for symbol, quantity in projection.holdings.items()
        if symbol in quotes
    }


def value_projection(
    projection: Projection,
    quotes: Mapping[str, Decimal],
    targets: Mapping[str, Decimal] | None = None,
) -> Valuation:
    """Value a projection and compute each holding's weight and drift.

    Weights are shares of cash plus priced holdings. Holdings without a
    quote carry no market value, weight or drift.
    """
    targets = targets or {}
    values = market_values(projection, quotes)
    holdings_value = sum(values.values(), ZERO)
    total = projection.cash_balance + holdings_value

    views = []
    for symbol in sorted(projection.holdings):
        target = targets.get(symbol)
        view = HoldingView(
            symbol=symbol,
            quantity=projection.holdings[symbol],
            target_allocation_percent=target,
            price_status=PriceStatus.LIVE if symbol in values else PriceStatus.UNAVAILABLE,
        )
        if symbol in values:
            view.current_price = quotes[symbol]
            view.market_value = values[symbol]
            if total > ZERO:
                weight = values[symbol] / total * HUNDRED
                view.allocation_percent = round_percent(weight)
                if target is not None:
                    view.drift_percent = round_percent(weight - target)
        views.append(view)

    return Valuation(
        cash_balance=projection.cash_balance,
        holdings_value=holdings_value,
        holdings=views,
    )
