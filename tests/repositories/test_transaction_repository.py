"""Tests for TransactionRepository and LedgerView."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from portfolio_ledger.core.exceptions import PersistenceError
from portfolio_ledger.models.transaction import PortfolioTransaction, TransactionType
from portfolio_ledger.repositories.transaction import TransactionRepository
from portfolio_ledger.schemas.transaction import TransactionDraft, TransactionFilters

pytestmark = pytest.mark.integration


def day(n: int) -> datetime:
    return datetime(2024, 3, n, tzinfo=UTC)


def deposit(amount: str, when: datetime) -> TransactionDraft:
    return TransactionDraft(
        transaction_type=TransactionType.DEPOSIT,
        total_amount=Decimal(amount),
        transaction_date=when,
    )


def buy(symbol: str, quantity: str, price: str, when: datetime) -> TransactionDraft:
    return TransactionDraft(
        transaction_type=TransactionType.BUY,
        symbol=symbol,
        quantity=Decimal(quantity),
        price_per_unit=Decimal(price),
        total_amount=Decimal(quantity) * Decimal(price),
        transaction_date=when,
    )


@pytest.fixture
def ledger(test_db) -> TransactionRepository:
    return TransactionRepository(PortfolioTransaction, test_db)


class TestAppend:
    """Tests for appending ledger entries."""

    async def test_assigns_increasing_sequence(self, ledger, test_portfolio):
        first = await ledger.append(test_portfolio.id, deposit("100", day(5)))
        second = await ledger.append(test_portfolio.id, deposit("50", day(1)))

        assert first.sequence == 1
        assert second.sequence == 2
        assert first.id != second.id
        assert first.created_at is not None

    async def test_sequence_is_per_portfolio(self, ledger, test_portfolio, other_portfolio):
        await ledger.append(test_portfolio.id, deposit("100", day(1)))
        entry = await ledger.append(other_portfolio.id, deposit("100", day(1)))

        assert entry.sequence == 1

    async def test_storage_failure_is_wrapped(self, ledger, test_db, test_portfolio, mocker):
        mocker.patch.object(
            test_db, "flush", side_effect=OperationalError("INSERT", {}, Exception("disk I/O"))
        )

        with pytest.raises(PersistenceError):
            await ledger.append(test_portfolio.id, deposit("100", day(1)))


class TestListing:
    """Tests for ordered and filtered reads."""

    @pytest.fixture
    async def populated(self, ledger, test_portfolio):
        await ledger.append(test_portfolio.id, deposit("1000", day(1)))
        await ledger.append(test_portfolio.id, buy("AAPL", "2", "100", day(3)))
        await ledger.append(test_portfolio.id, buy("MSFT", "1", "300", day(2)))
        await ledger.append(test_portfolio.id, buy("AAPL", "1", "110", day(3)))
        return test_portfolio.id

    async def test_oldest_first_by_date_then_sequence(self, ledger, populated):
        entries = await ledger.list_entries(populated)
        assert [e.sequence for e in entries] == [1, 3, 2, 4]

    async def test_newest_first(self, ledger, populated):
        entries = await ledger.list_entries(populated, newest_first=True)
        assert [e.sequence for e in entries] == [4, 2, 3, 1]

    async def test_filter_by_type(self, ledger, populated):
        entries = await ledger.list_entries(
            populated, TransactionFilters(transaction_type=TransactionType.DEPOSIT)
        )
        assert [e.transaction_type for e in entries] == [TransactionType.DEPOSIT]

    async def test_filter_by_symbol_ignores_case(self, ledger, populated):
        entries = await ledger.list_entries(populated, TransactionFilters(symbol="aapl"))
        assert {e.symbol for e in entries} == {"AAPL"}
        assert len(entries) == 2

    async def test_date_bounds_are_inclusive(self, ledger, populated):
        entries = await ledger.list_entries(
            populated, TransactionFilters(start_date=day(2), end_date=day(3))
        )
        assert [e.sequence for e in entries] == [3, 2, 4]

    async def test_other_portfolios_are_excluded(self, ledger, populated, other_portfolio):
        await ledger.append(other_portfolio.id, deposit("5", day(1)))
        entries = await ledger.list_entries(populated)
        assert all(e.portfolio_id == populated for e in entries)


class TestLedgerView:
    """Tests for the lazy, restartable view."""

    async def test_view_reads_at_iteration_time(self, ledger, test_portfolio):
        view = ledger.iter_entries(test_portfolio.id)
        assert await view.to_list() == []

        await ledger.append(test_portfolio.id, deposit("100", day(1)))

        entries = [entry async for entry in view]
        assert len(entries) == 1

    async def test_view_is_restartable(self, ledger, test_portfolio):
        await ledger.append(test_portfolio.id, deposit("100", day(2)))
        await ledger.append(test_portfolio.id, deposit("200", day(1)))

        view = ledger.iter_entries(test_portfolio.id)
        first_pass = [e.sequence for e in await view.to_list()]
        second_pass = [e.sequence async for e in view]

        assert first_pass == second_pass == [2, 1]

    async def test_view_honours_filters(self, ledger, test_portfolio):
        await ledger.append(test_portfolio.id, deposit("100", day(1)))
        await ledger.append(test_portfolio.id, deposit("200", day(9)))

        view = ledger.iter_entries(test_portfolio.id, TransactionFilters(end_date=day(5)))
        assert [e.total_amount for e in await view.to_list()] == [Decimal("100")]


async def test_remove_all(ledger, test_portfolio, other_portfolio):
    await ledger.append(test_portfolio.id, deposit("100", day(1)))
    await ledger.append(test_portfolio.id, deposit("100", day(2)))
    await ledger.append(other_portfolio.id, deposit("100", day(1)))

    removed = await ledger.remove_all(test_portfolio.id)

    assert removed == 2
    assert await ledger.list_entries(test_portfolio.id) == []
    assert len(await ledger.list_entries(other_portfolio.id)) == 1
