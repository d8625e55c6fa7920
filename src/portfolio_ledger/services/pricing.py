"""Market data for valuation, rebalancing, performance history and sector allocation.

Note:
    HTTP caching is configured globally via requests-cache with a Redis
    backend (see ``core.cache``). yfinance's underlying requests are cached
    by URL pattern, so repeated quotes inside ``QUOTE_CACHE_TTL_SECONDS``
    never leave the process.
"""

import asyncio
import enum
import logging
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Protocol

import pandas as pd
import yfinance as yf

from portfolio_ledger.core.exceptions import ExternalAPIError

logger = logging.getLogger(__name__)

PRICE_PRECISION = Decimal("0.0001")


class PriceStatus(str, enum.Enum):
    """Whether a valuation used a live quote."""

    LIVE = "live"
    UNAVAILABLE = "unavailable"


class QuoteError(ExternalAPIError):
    """Base exception for quote lookups."""

    detail = "Market data unavailable"
    error_code = "QUOTE_ERROR"


class InvalidSymbolError(QuoteError):
    """Raised when the provider has no price for a symbol."""

    detail = "Symbol not found"
    error_code = "INVALID_SYMBOL"


class PriceProvider(Protocol):
    """Source of market data, keyed by upper-cased symbol."""

    async def get_quote(self, symbol: str) -> Decimal: ...

    async def get_multiple_quotes(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Quotes for the symbols that have one; missing symbols are omitted."""
        ...

    async def get_close_history(
        self, symbols: Iterable[str], start: date, end: date
    ) -> dict[str, dict[date, Decimal]]:
        """Daily closes between ``start`` and ``end`` inclusive, per symbol."""
        ...

    async def get_sectors(self, symbols: Iterable[str]) -> dict[str, str]:
        """Sector name per symbol; symbols without one are omitted."""
        ...


def _to_price(value: object) -> Decimal | None:
    try:
        price = Decimal(str(float(value))).quantize(PRICE_PRECISION, rounding=ROUND_HALF_UP)
    except (TypeError, ValueError, InvalidOperation):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def _close_column(frame: pd.DataFrame, symbol: str, symbols: list[str]) -> pd.Series | None:
    """Non-null closes for one symbol of a ``yf.download`` frame."""
    if isinstance(frame.columns, pd.MultiIndex):
        if symbol not in frame.columns.get_level_values(0):
            return None
        closes = frame[symbol].get("Close")
    else:
        # Single ticker downloads come back flat on older yfinance releases
        closes = frame.get("Close") if len(symbols) == 1 else None

    if closes is None:
        return None
    closes = closes.dropna()
    return None if closes.empty else closes


def _last_closes(frame: pd.DataFrame, symbols: list[str]) -> dict[str, Decimal]:
    """Reduce a ``yf.download`` frame to the last non-null close per symbol."""
    quotes: dict[str, Decimal] = {}
    if frame is None or frame.empty:
        return quotes

    for symbol in symbols:
        closes = _close_column(frame, symbol, symbols)
        if closes is None:
            continue
        price = _to_price(closes.iloc[-1])
        if price is not None:
            quotes[symbol] = price

    return quotes


def _daily_closes(frame: pd.DataFrame, symbols: list[str]) -> dict[str, dict[date, Decimal]]:
    """Reduce a ``yf.download`` frame to ``{symbol: {day: close}}``."""
    history: dict[str, dict[date, Decimal]] = {}
    if frame is None or frame.empty:
        return history

    for symbol in symbols:
        closes = _close_column(frame, symbol, symbols)
        if closes is None:
            continue
        days = {}
        for stamp, value in closes.items():
            price = _to_price(value)
            if price is not None:
                days[pd.Timestamp(stamp).date()] = price
        if days:
            history[symbol] = days

    return history


class YFinancePriceProvider:
    """Price provider backed by Yahoo Finance.

    yfinance is synchronous, so every download runs in a worker thread to keep
    the event loop free.

    Example:
        >>> provider = YFinancePriceProvider()
        >>> quotes = await provider.get_multiple_quotes(["AAPL", "MSFT"])
        >>> quotes["AAPL"]
        Decimal('189.8400')
    """

    def __init__(self, period: str = "5d", interval: str = "1d"):
        self.period = period
        self.interval = interval

    def _download(self, symbols: list[str]) -> pd.DataFrame:
        return yf.download(
            tickers=symbols,
            period=self.period,
            interval=self.interval,
            group_by="ticker",
            auto_adjust=True,
            threads=True,
            progress=False,
        )

    async def get_multiple_quotes(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Fetch the latest close for several symbols in one download.

        Args:
            symbols: Ticker symbols (case-insensitive)

        Returns:
            Mapping of upper-cased symbol to price. Symbols without data are
            left out rather than failing the whole call.

        Raises:
            QuoteError: If the download itself fails
        """
        unique = sorted({s.upper() for s in symbols if s})
        if not unique:
            return {}

        try:
            frame = await asyncio.to_thread(self._download, unique)
        except Exception as e:
            logger.error(f"Error downloading quotes for {unique}: {e}")
            raise QuoteError(f"Failed to fetch quotes: {e}") from e

        quotes = _last_closes(frame, unique)
        missing = [s for s in unique if s not in quotes]
        if missing:
            logger.warning(f"No quote available for: {', '.join(missing)}")
        return quotes

    async def get_quote(self, symbol: str) -> Decimal:
        """Fetch the latest close for one symbol.

        Raises:
            InvalidSymbolError: If no price is available for the symbol
            QuoteError: If the download itself fails
        """
        symbol = symbol.upper()
        quotes = await self.get_multiple_quotes([symbol])
        if symbol not in quotes:
            raise InvalidSymbolError(f"No price available for symbol '{symbol}'")
        return quotes[symbol]

    def _download_range(self, symbols: list[str], start: date, end: date) -> pd.DataFrame:
        # yfinance treats ``end`` as exclusive
        return yf.download(
            tickers=symbols,
            start=start.isoformat(),
            end=(end + timedelta(days=1)).isoformat(),
            interval="1d",
            group_by="ticker",
            auto_adjust=True,
            threads=True,
            progress=False,
        )

    async def get_close_history(
        self, symbols: Iterable[str], start: date, end: date
    ) -> dict[str, dict[date, Decimal]]:
        """Fetch daily closes for several symbols in one download.

        Raises:
            QuoteError: If the download itself fails
        """
        unique = sorted({s.upper() for s in symbols if s})
        if not unique:
            return {}

        try:
            frame = await asyncio.to_thread(self._download_range, unique, start, end)
        except Exception as e:
            logger.error(f"Error downloading price history for {unique}: {e}")
            raise QuoteError(f"Failed to fetch price history: {e}") from e

        history = _daily_closes(frame, unique)
        missing = [s for s in unique if s not in history]
        if missing:
            logger.warning(f"No price history available for: {', '.join(missing)}")
        return history

    @staticmethod
    def _sector(symbol: str) -> str | None:
        info = yf.Ticker(symbol).info or {}
        sector = info.get("sector")
        return str(sector) if sector else None

    async def get_sectors(self, symbols: Iterable[str]) -> dict[str, str]:
        """Look up each symbol's sector, one ``Ticker.info`` call per symbol.

        A failed lookup leaves that symbol out instead of failing the call.
        """
        unique = sorted({s.upper() for s in symbols if s})
        results = await asyncio.gather(
            *(asyncio.to_thread(self._sector, symbol) for symbol in unique),
            return_exceptions=True,
        )

        sectors: dict[str, str] = {}
        for symbol, result in zip(unique, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(f"Sector lookup failed for {symbol}: {result}")
            elif result:
                sectors[symbol] = result
        return sectors
