"""FastAPI application entry point."""

import logging
import logging.config
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from portfolio_ledger.api.routes import auth, health, holdings, portfolios, rebalance, transactions
from portfolio_ledger.core.cache import configure_quote_cache
from portfolio_ledger.core.config import settings
from portfolio_ledger.core.exceptions import (
    AppException,
    app_exception_handler,
    request_validation_exception_handler,
)
from portfolio_ledger.core.middleware import RequestLoggingMiddleware
from portfolio_ledger.core.rate_limit import limiter, rate_limit_exceeded_handler
from portfolio_ledger.db.base import Base
from portfolio_ledger.db.session import engine

logging.config.dictConfig(settings.LOGGING_CONFIG)
logging.getLogger("portfolio_ledger").setLevel(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")

    # Alembic owns the schema outside development
    if settings.ENVIRONMENT == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    configure_quote_cache()

    yield

    logger.info("Shutting down")
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

# Added last, so it runs outermost
app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(
    RequestValidationError, request_validation_exception_handler  # type: ignore[arg-type]
)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]

PORTFOLIOS = "/api/v1/portfolios"

app.include_router(health.router, tags=["health"])
app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(portfolios.router, prefix=PORTFOLIOS, tags=["portfolios"])
app.include_router(
    transactions.router,
    prefix=f"{PORTFOLIOS}/{{portfolio_id}}/transactions",
    tags=["transactions"],
)
app.include_router(
    holdings.router,
    prefix=f"{PORTFOLIOS}/{{portfolio_id}}/holdings",
    tags=["holdings"],
)
app.include_router(
    rebalance.router,
    prefix=f"{PORTFOLIOS}/{{portfolio_id}}/rebalance",
    tags=["rebalance"],
)
