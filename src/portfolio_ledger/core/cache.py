"""HTTP cache for market data requests (requests-cache on Redis).

yfinance makes its HTTP calls through ``requests``; installing a global
requests-cache session means repeated quotes for the same symbols inside the
quote TTL are served from Redis. If Redis is unreachable the app runs
uncached.
"""

import logging
from datetime import timedelta
from typing import Any

import requests_cache
from redis import Redis
from redis.exceptions import RedisError
from requests_cache.backends.redis import RedisCache

from portfolio_ledger.core.config import settings

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "portfolio_ledger:quotes"

CACHE_EXPIRATION = {
    # Latest-close quotes used for valuation and rebalancing
    "quotes": timedelta(seconds=settings.QUOTE_CACHE_TTL_SECONDS),
    # Symbol metadata changes rarely
    "symbol_info": timedelta(hours=6),
    "default": timedelta(minutes=15),
}


def get_redis_connection() -> "Redis[Any] | None":
    """
    Connect to Redis for the HTTP cache.

    Returns:
        Redis client, or None if Redis cannot be reached
    """
    try:
        redis_client: Redis[Any] = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=False,  # requests-cache stores binary payloads
            socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        redis_client.ping()
        logger.info(f"Connected to Redis at {settings.REDIS_URL}")
        return redis_client
    except RedisError as e:
        logger.warning(f"Failed to connect to Redis: {e}. Quote caching disabled.")
        return None


def configure_quote_cache() -> bool:
    """
    Install the global requests-cache session used by yfinance.

    Called once from the app lifespan.

    Returns:
        True if caching was enabled
    """
    redis_conn = get_redis_connection()
    if redis_conn is None:
        logger.warning("Skipping quote cache configuration - Redis unavailable")
        return False

    urls_expire_after = {
        "*/v8/finance/chart/*": CACHE_EXPIRATION["quotes"],
        "*/v7/finance/quote*": CACHE_EXPIRATION["quotes"],
        "*/v10/finance/quoteSummary/*": CACHE_EXPIRATION["symbol_info"],
        "*": CACHE_EXPIRATION["default"],
    }

    requests_cache.install_cache(
        backend=RedisCache(namespace=CACHE_NAMESPACE, connection=redis_conn),
        urls_expire_after=urls_expire_after,
        allowable_methods=("GET",),
        stale_if_error=True,  # serve the last quote if Yahoo is down
    )
    logger.info(f"Quote cache enabled (quote TTL {CACHE_EXPIRATION['quotes']})")
    return True


def clear_quote_cache() -> None:
    """Drop every cached market data response."""
    cache = requests_cache.get_cache()
    if cache is None:
        logger.warning("No active cache to clear")
        return
    cache.clear()
    logger.info("Cleared quote cache")


def get_cache_stats() -> dict[str, Any]:
    """
    Cache status for the health endpoint.

    Returns:
        ``{"enabled": False}`` when no cache is installed, otherwise the
        backend name and the number of cached responses
    """
    cache = requests_cache.get_cache()
    if cache is None:
        return {"enabled": False}

    stats: dict[str, Any] = {"enabled": True, "backend": type(cache).__name__}
    try:
        stats["size"] = len(cache.responses)
    except RedisError as e:
        logger.warning(f"Could not read cache size: {e}")
        stats["size"] = "unavailable"
    return stats
