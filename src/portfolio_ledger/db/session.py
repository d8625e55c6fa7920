"""Database session management with transaction utilities.

This module provides:
- AsyncSession factory for dependency injection
- Transaction context managers for explicit transaction control
- A per-portfolio write lock that serializes ledger appends
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from portfolio_ledger.core.config import settings

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Held only while a writer is inside portfolio_write_lock()
_portfolio_locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency for route handlers.

    Automatically manages commit/rollback/close lifecycle.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def transactional(
    db: AsyncSession,
    *,
    commit: bool = True,
) -> AsyncGenerator[AsyncSession, None]:
    """Explicit transaction context manager with automatic commit/rollback.

    Everything done on ``db`` inside the block commits together or rolls
    back together. Ledger appends and bulk imports run inside one of these so
    a failure part-way leaves no partial history.

    Args:
        db: The database session
        commit: Whether to commit on success (default: True)

    Yields:
        AsyncSession: The database session

    Raises:
        Exception: Re-raises any exception after rollback

    Example:
        ```python
        async with transactional(db):
            for draft in drafts:
                await ledger.append(portfolio_id, draft)
        ```
    """
    try:
        yield db
        if commit:
            await db.commit()
            logger.debug("Transaction committed successfully")
        else:
            await db.rollback()
    except Exception as e:
        await db.rollback()
        logger.error(f"Transaction rolled back due to error: {type(e).__name__}: {e}")
        raise


@asynccontextmanager
async def read_only_transaction(
    db: AsyncSession,
) -> AsyncGenerator[AsyncSession, None]:
    """Read-only transaction context manager (never commits).

    Use this for projections and listings that must never modify the ledger.

    Args:
        db: The database session

    Yields:
        AsyncSession: The database session
    """
    try:
        yield db
    except Exception as e:
        logger.error(f"Read-only transaction error: {type(e).__name__}: {e}")
        raise


@asynccontextmanager
async def portfolio_write_lock(portfolio_id: UUID) -> AsyncIterator[None]:
    """Serialize writers on a single portfolio within this process.

    The row lock taken by ``PortfolioRepository.get_for_update``
    serializes writers across processes on PostgreSQL; SQLite has no row
    locks, so the in-process lock is what keeps two appends on the same
    portfolio from validating against the same stale balance there.

    Args:
        portfolio_id: The portfolio being written to
    """
    lock = _portfolio_locks.get(portfolio_id)
    if lock is None:
        lock = asyncio.Lock()
        _portfolio_locks[portfolio_id] = lock

    async with lock:
        yield
