"""Tests for the yfinance price provider and quote helpers."""

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from portfolio_ledger.services.pricing import (
    InvalidSymbolError,
    QuoteError,
    YFinancePriceProvider,
    _daily_closes,
    _last_closes,
)
from portfolio_ledger.services.valuation import fetch_quotes

pytestmark = pytest.mark.unit


def grouped_frame() -> pd.DataFrame:
    """Shape of ``yf.download(..., group_by="ticker")`` for several tickers."""
    return pd.DataFrame(
        {
            ("AAPL", "Open"): [187.0, 188.5],
            ("AAPL", "Close"): [188.12, 189.84],
            ("MSFT", "Open"): [401.0, 402.0],
            ("MSFT", "Close"): [402.555, float("nan")],
        },
        index=pd.to_datetime(["2024-05-01", "2024-05-02"]),
    )


@pytest.fixture
def mock_download(mocker):
    return mocker.patch("portfolio_ledger.services.pricing.yf.download")


class TestLastCloses:
    def test_grouped_frame(self):
        quotes = _last_closes(grouped_frame(), ["AAPL", "MSFT"])

        assert quotes == {"AAPL": Decimal("189.8400"), "MSFT": Decimal("402.5550")}

    def test_flat_frame_for_single_symbol(self):
        frame = pd.DataFrame({"Open": [10.0], "Close": [10.5]})
        assert _last_closes(frame, ["ABC"]) == {"ABC": Decimal("10.5000")}

    def test_missing_symbol_and_empty_frame(self):
        assert _last_closes(grouped_frame(), ["TSLA"]) == {}
        assert _last_closes(pd.DataFrame(), ["AAPL"]) == {}


class TestYFinancePriceProvider:
    async def test_get_multiple_quotes(self, mock_download):
        mock_download.return_value = grouped_frame()
        provider = YFinancePriceProvider()

        quotes = await provider.get_multiple_quotes(["msft", "AAPL", "aapl", "ZZZZ"])

        assert quotes["AAPL"] == Decimal("189.8400")
        assert "ZZZZ" not in quotes
        kwargs = mock_download.call_args.kwargs
        assert kwargs["tickers"] == ["AAPL", "MSFT", "ZZZZ"]
        assert kwargs["group_by"] == "ticker"
        assert kwargs["progress"] is False

    async def test_no_symbols_skips_download(self, mock_download):
        assert await YFinancePriceProvider().get_multiple_quotes([]) == {}
        mock_download.assert_not_called()

    async def test_download_failure(self, mock_download):
        mock_download.side_effect = ConnectionError("Yahoo is down")

        with pytest.raises(QuoteError):
            await YFinancePriceProvider().get_multiple_quotes(["AAPL"])

    async def test_get_quote(self, mock_download):
        mock_download.return_value = grouped_frame()
        assert await YFinancePriceProvider().get_quote("aapl") == Decimal("189.8400")

    async def test_get_quote_unknown_symbol(self, mock_download):
        mock_download.return_value = pd.DataFrame()

        with pytest.raises(InvalidSymbolError):
            await YFinancePriceProvider().get_quote("NOPE")


class TestFetchQuotes:
    async def test_provider_failure_yields_no_quotes(self, make_prices):
        assert await fetch_quotes(make_prices(fail=True), ["AAPL"]) == {}

    async def test_symbols_are_deduplicated_and_sorted(self, make_prices):
        provider = make_prices({"AAPL": "1", "MSFT": "2"})

        quotes = await fetch_quotes(provider, ["MSFT", "AAPL", "MSFT"])

        assert quotes == {"AAPL": Decimal("1"), "MSFT": Decimal("2")}
        assert provider.calls == [["AAPL", "MSFT"]]


class TestDailyCloses:
    def test_grouped_frame(self):
        history = _daily_closes(grouped_frame(), ["AAPL", "MSFT", "TSLA"])

        assert history == {
            "AAPL": {
                date(2024, 5, 1): Decimal("188.1200"),
                date(2024, 5, 2): Decimal("189.8400"),
            },
            "MSFT": {date(2024, 5, 1): Decimal("402.5550")},
        }


class TestHistoryAndSectors:
    async def test_get_close_history_downloads_an_inclusive_range(self, mock_download):
        mock_download.return_value = grouped_frame()

        history = await YFinancePriceProvider().get_close_history(
            ["aapl"], date(2024, 5, 1), date(2024, 5, 2)
        )

        assert history["AAPL"][date(2024, 5, 2)] == Decimal("189.8400")
        kwargs = mock_download.call_args.kwargs
        assert kwargs["start"] == "2024-05-01"
        assert kwargs["end"] == "2024-05-03"

    async def test_get_close_history_failure(self, mock_download):
        mock_download.side_effect = ConnectionError("Yahoo is down")

        with pytest.raises(QuoteError):
            await YFinancePriceProvider().get_close_history(
                ["AAPL"], date(2024, 5, 1), date(2024, 5, 2)
            )

    async def test_get_sectors(self, mocker):
        def ticker(symbol):
            if symbol == "BAD":
                raise ConnectionError("Yahoo is down")
            info = {"AAPL": {"sector": "Technology"}, "SPY": {"quoteType": "ETF"}}[symbol]
            return mocker.Mock(info=info)

        mocker.patch("portfolio_ledger.services.pricing.yf.Ticker", side_effect=ticker)

        sectors = await YFinancePriceProvider().get_sectors(["aapl", "SPY", "BAD"])

        assert sectors == {"AAPL": "Technology"}
