"""Tests for RebalancingEngine."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from portfolio_ledger.core.exceptions import (
    PortfolioAccessError,
    PortfolioNotFoundError,
    PortfolioValidationError,
    ValidationCode,
)
from portfolio_ledger.schemas.rebalance import RebalanceAction
from portfolio_ledger.schemas.transaction import TransactionCreate
from portfolio_ledger.services import portfolio_service
from portfolio_ledger.services.pricing import PriceStatus
from portfolio_ledger.services.rebalancing import RebalancingEngine

pytestmark = pytest.mark.integration

START = datetime(2024, 4, 1, tzinfo=UTC)


@pytest.fixture
def build(test_db, test_portfolio, test_user):
    """Fund the test portfolio, buy positions and set targets.

    ``positions`` maps symbol to (quantity, price, target percent or None).
    """
    portfolio_id, owner_id = test_portfolio.id, test_user.id

    async def _build(cash: str, positions: dict[str, tuple[str, str, str | None]]):
        await portfolio_service.add_transaction(
            test_db,
            portfolio_id,
            owner_id,
            TransactionCreate(
                transaction_type="DEPOSIT", total_amount=Decimal(cash), transaction_date=START
            ),
        )
        for symbol, (quantity, price, _) in positions.items():
            await portfolio_service.add_transaction(
                test_db,
                portfolio_id,
                owner_id,
                TransactionCreate(
                    transaction_type="BUY",
                    symbol=symbol,
                    quantity=Decimal(quantity),
                    price_per_unit=Decimal(price),
                    total_amount=Decimal(quantity) * Decimal(price),
                    transaction_date=START,
                ),
            )
        for symbol, (_, _, target) in positions.items():
            if target is not None:
                await portfolio_service.set_target_allocation(
                    test_db, portfolio_id, owner_id, symbol, Decimal(target)
                )
        return portfolio_id, owner_id

    return _build


class TestThreshold:
    """Drift threshold is inclusive and compared exactly."""

    async def test_drift_equal_to_threshold_is_included(self, test_db, build, make_prices):
        portfolio_id, owner_id = await build(
            "10000", {"AAA": ("52", "100", "50"), "BBB": ("48", "100", "50")}
        )
        engine = RebalancingEngine(test_db, make_prices({"AAA": "100", "BBB": "100"}))

        report = await engine.suggest(portfolio_id, owner_id, Decimal("2"))

        by_symbol = {s.symbol: s for s in report.suggestions}
        assert set(by_symbol) == {"AAA", "BBB"}
        assert by_symbol["AAA"].drift_percent == Decimal("2.0000")
        assert by_symbol["AAA"].action == RebalanceAction.SELL
        assert by_symbol["AAA"].suggested_quantity == Decimal("2.0000")
        assert by_symbol["BBB"].drift_percent == Decimal("-2.0000")
        assert by_symbol["BBB"].action == RebalanceAction.BUY
        assert by_symbol["BBB"].suggested_trade_value == Decimal("200")
        assert report.cash_balance == Decimal("0")
        assert report.total_value == Decimal("10000")
        assert report.total_drift == Decimal("4.0000")

    async def test_drift_just_below_threshold_is_excluded(self, test_db, build, make_prices):
        portfolio_id, owner_id = await build(
            "10000", {"AAA": ("5199", "1", "50"), "BBB": ("4801", "1", "50")}
        )
        engine = RebalancingEngine(test_db, make_prices({"AAA": "1", "BBB": "1"}))

        report = await engine.suggest(portfolio_id, owner_id, Decimal("2"))
        assert report.suggestions == []
        assert report.total_drift == Decimal("0.0000")

        lower = await engine.suggest(portfolio_id, owner_id, Decimal("1.99"))
        assert {s.symbol for s in lower.suggestions} == {"AAA", "BBB"}

    async def test_default_threshold(self, test_db, build, make_prices):
        portfolio_id, owner_id = await build("1000", {"AAA": ("5", "100", "50")})
        engine = RebalancingEngine(test_db, make_prices({"AAA": "100"}))

        report = await engine.suggest(portfolio_id, owner_id)

        assert report.threshold == Decimal("2")
        assert report.suggestions == []

    async def test_zero_threshold_skips_holdings_on_target(self, test_db, build, make_prices):
        portfolio_id, owner_id = await build("1000", {"AAA": ("5", "100", "50")})
        engine = RebalancingEngine(test_db, make_prices({"AAA": "100"}))

        report = await engine.suggest(portfolio_id, owner_id, Decimal("0"))

        assert report.suggestions == []
        assert report.total_drift == Decimal("0")

    async def test_negative_threshold(self, test_db, test_portfolio, test_user, make_prices):
        engine = RebalancingEngine(test_db, make_prices())
        with pytest.raises(PortfolioValidationError) as exc_info:
            await engine.suggest(test_portfolio.id, test_user.id, Decimal("-0.5"))

        assert exc_info.value.field == "threshold"
        assert exc_info.value.code == ValidationCode.INVALID_VALUE


class TestSuggestions:
    """Suggestion content and ordering."""

    async def test_sorted_by_absolute_drift(self, test_db, build, make_prices):
        portfolio_id, owner_id = await build(
            "1000",
            {
                "AAA": ("1", "100", "30"),
                "BBB": ("3", "100", "35"),
                "CCC": ("1", "100", None),
            },
        )
        engine = RebalancingEngine(
            test_db, make_prices({"AAA": "100", "BBB": "100", "CCC": "100"})
        )

        report = await engine.suggest(portfolio_id, owner_id, Decimal("1"))

        # CCC has no target and is never suggested
        assert [s.symbol for s in report.suggestions] == ["AAA", "BBB"]
        assert [s.drift_percent for s in report.suggestions] == [
            Decimal("-20.0000"),
            Decimal("-5.0000"),
        ]
        assert report.total_drift == Decimal("25.0000")

    async def test_quantity_is_floored(self, test_db, build, make_prices):
        portfolio_id, owner_id = await build("1000", {"AAA": ("10", "30", "50")})
        engine = RebalancingEngine(test_db, make_prices({"AAA": "30"}))

        report = await engine.suggest(portfolio_id, owner_id, Decimal("1"))

        (suggestion,) = report.suggestions
        assert suggestion.action == RebalanceAction.BUY
        assert suggestion.suggested_trade_value == Decimal("200")
        assert suggestion.suggested_quantity == Decimal("6.6666")

    async def test_unpriced_symbol_is_reported_separately(self, test_db, build, make_prices):
        portfolio_id, owner_id = await build(
            "1000", {"AAA": ("2", "100", "40"), "BBB": ("2", "100", "40")}
        )
        engine = RebalancingEngine(test_db, make_prices({"AAA": "100"}))

        report = await engine.suggest(portfolio_id, owner_id, Decimal("0"))

        assert [s.symbol for s in report.suggestions] == ["AAA"]
        (missing,) = report.unavailable
        assert missing.symbol == "BBB"
        assert missing.price_status is PriceStatus.UNAVAILABLE
        assert missing.suggested_quantity is None
        # BBB's value is left out of the total
        assert report.total_value == Decimal("800")

    async def test_provider_outage_marks_everything_unavailable(
        self, test_db, build, make_prices
    ):
        portfolio_id, owner_id = await build(
            "1000", {"AAA": ("2", "100", "40"), "BBB": ("2", "100", "40")}
        )
        engine = RebalancingEngine(test_db, make_prices(fail=True))

        report = await engine.suggest(portfolio_id, owner_id, Decimal("0"))

        assert report.suggestions == []
        assert [s.symbol for s in report.unavailable] == ["AAA", "BBB"]
        assert report.total_value == Decimal("600")

    async def test_empty_portfolio(self, test_db, test_portfolio, test_user, make_prices):
        prices = make_prices()
        engine = RebalancingEngine(test_db, prices)

        report = await engine.suggest(test_portfolio.id, test_user.id)

        assert report.suggestions == []
        assert report.unavailable == []
        assert report.total_value == Decimal("0")
        assert prices.calls == []


class TestAccess:
    async def test_missing_portfolio(self, test_db, test_user, make_prices):
        engine = RebalancingEngine(test_db, make_prices())
        with pytest.raises(PortfolioNotFoundError):
            await engine.suggest(uuid.uuid4(), test_user.id)

    async def test_other_owner(self, test_db, test_user, other_portfolio, make_prices):
        engine = RebalancingEngine(test_db, make_prices())
        with pytest.raises(PortfolioAccessError):
            await engine.suggest(other_portfolio.id, test_user.id)
