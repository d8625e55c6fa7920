"""Pytest fixtures for testing."""

from collections.abc import AsyncGenerator, Iterable
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from main import app
from portfolio_ledger.core.deps import get_price_provider
from portfolio_ledger.core.rate_limit import limiter
from portfolio_ledger.core.security import create_access_token, get_password_hash
from portfolio_ledger.db.base import Base
from portfolio_ledger.db.session import get_db
from portfolio_ledger.models.portfolio import Portfolio
from portfolio_ledger.models.user import User
from portfolio_ledger.services.pricing import InvalidSymbolError, QuoteError

# Test database URL (SQLite in-memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakePriceProvider:
    """In-memory market data.

    Symbols missing from ``prices`` have no quote, symbols missing from
    ``history`` have no closes and symbols missing from ``sectors`` are
    unclassified. With ``fail=True`` every call raises, like a provider outage.
    """

    def __init__(
        self,
        prices: dict[str, Decimal | str] | None = None,
        fail: bool = False,
        history: dict[str, dict[date, Decimal | str]] | None = None,
        sectors: dict[str, str] | None = None,
    ):
        self.prices = {k: Decimal(v) for k, v in (prices or {}).items()}
        self.fail = fail
        self.history = {
            symbol: {day: Decimal(close) for day, close in closes.items()}
            for symbol, closes in (history or {}).items()
        }
        self.sectors = dict(sectors or {})
        self.calls: list[list[str]] = []
        self.history_calls: list[tuple[list[str], date, date]] = []

    async def get_multiple_quotes(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        requested = list(symbols)
        self.calls.append(requested)
        if self.fail:
            raise QuoteError("provider down")
        return {s: self.prices[s] for s in requested if s in self.prices}

    async def get_quote(self, symbol: str) -> Decimal:
        quotes = await self.get_multiple_quotes([symbol])
        if symbol not in quotes:
            raise InvalidSymbolError(f"No price available for symbol '{symbol}'")
        return quotes[symbol]

    async def get_close_history(
        self, symbols: Iterable[str], start: date, end: date
    ) -> dict[str, dict[date, Decimal]]:
        requested = list(symbols)
        self.history_calls.append((requested, start, end))
        if self.fail:
            raise QuoteError("provider down")
        return {
            s: {day: close for day, close in self.history[s].items() if start <= day <= end}
            for s in requested
            if s in self.history
        }

    async def get_sectors(self, symbols: Iterable[str]) -> dict[str, str]:
        if self.fail:
            raise QuoteError("provider down")
        return {s: self.sectors[s] for s in symbols if s in self.sectors}


@pytest.fixture(autouse=True)
def reset_limiter():
    """Start every test with empty rate limit counters."""
    limiter.reset()
    yield
    limiter.reset()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_db(test_engine) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture(scope="function")
def fake_prices() -> FakePriceProvider:
    """Price provider used by the HTTP client; tests set prices on it."""
    return FakePriceProvider()


@pytest_asyncio.fixture(scope="function")
async def client(
    test_db: AsyncSession, fake_prices: FakePriceProvider
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database and price provider overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_price_provider] = lambda: fake_prices

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()


async def _create_user(db: AsyncSession, username: str, password: str, **kwargs) -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        hashed_password=get_password_hash(password),
        is_active=kwargs.pop("is_active", True),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def test_user(test_db: AsyncSession) -> User:
    """Create a test user."""
    return await _create_user(test_db, "testuser", "TestPass123")


@pytest_asyncio.fixture(scope="function")
async def other_user(test_db: AsyncSession) -> User:
    """A second user who must never see test_user's portfolios."""
    return await _create_user(test_db, "otheruser", "OtherPass123")


@pytest_asyncio.fixture(scope="function")
async def test_inactive_user(test_db: AsyncSession) -> User:
    """Create an inactive test user."""
    return await _create_user(test_db, "inactiveuser", "InactivePass123", is_active=False)


@pytest.fixture(scope="function")
def user_token(test_user: User) -> str:
    """Generate a valid access token for test user."""
    return create_access_token(data={"sub": test_user.username})


@pytest.fixture(scope="function")
def auth_headers(user_token: str) -> dict[str, str]:
    """Generate authorization headers with user token."""
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture(scope="function")
def other_auth_headers(other_user: User) -> dict[str, str]:
    token = create_access_token(data={"sub": other_user.username})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def inactive_user_auth_headers(test_inactive_user: User) -> dict[str, str]:
    token = create_access_token(data={"sub": test_inactive_user.username})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def test_portfolio(test_db: AsyncSession, test_user: User) -> Portfolio:
    """An empty USD portfolio owned by test_user."""
    portfolio = Portfolio(owner_id=test_user.id, name="Main", currency="USD", is_default=True)
    test_db.add(portfolio)
    await test_db.commit()
    await test_db.refresh(portfolio)
    return portfolio


@pytest_asyncio.fixture(scope="function")
async def other_portfolio(test_db: AsyncSession, other_user: User) -> Portfolio:
    """A portfolio owned by other_user."""
    portfolio = Portfolio(owner_id=other_user.id, name="Other", currency="USD")
    test_db.add(portfolio)
    await test_db.commit()
    await test_db.refresh(portfolio)
    return portfolio


@pytest.fixture(scope="function")
def make_prices() -> type[FakePriceProvider]:
    """Factory for standalone price providers in service tests."""
    return FakePriceProvider


@pytest.fixture(scope="function")
def portfolio_url(test_portfolio: Portfolio) -> str:
    """URL of test_portfolio, built before any request can expire the instance."""
    return f"/api/v1/portfolios/{test_portfolio.id}"
