"""Tests for the Redis-backed quote cache."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from portfolio_ledger.core import cache

pytestmark = pytest.mark.unit


class TestRedisConnection:
    def test_connects_and_pings(self, mocker):
        redis_cls = mocker.patch("portfolio_ledger.core.cache.Redis")
        client = redis_cls.from_url.return_value

        assert cache.get_redis_connection() is client
        client.ping.assert_called_once()
        assert redis_cls.from_url.call_args.kwargs["decode_responses"] is False

    def test_unreachable_redis_returns_none(self, mocker):
        redis_cls = mocker.patch("portfolio_ledger.core.cache.Redis")
        redis_cls.from_url.return_value.ping.side_effect = RedisConnectionError("refused")

        assert cache.get_redis_connection() is None


class TestConfigureQuoteCache:
    def test_skipped_without_redis(self, mocker):
        mocker.patch.object(cache, "get_redis_connection", return_value=None)
        install = mocker.patch.object(cache.requests_cache, "install_cache")

        assert cache.configure_quote_cache() is False
        install.assert_not_called()

    def test_installs_redis_backend(self, mocker):
        connection = mocker.Mock()
        mocker.patch.object(cache, "get_redis_connection", return_value=connection)
        backend_cls = mocker.patch.object(cache, "RedisCache")
        install = mocker.patch.object(cache.requests_cache, "install_cache")

        assert cache.configure_quote_cache() is True

        backend_cls.assert_called_once_with(namespace=cache.CACHE_NAMESPACE, connection=connection)
        kwargs = install.call_args.kwargs
        assert kwargs["backend"] is backend_cls.return_value
        assert kwargs["allowable_methods"] == ("GET",)
        assert kwargs["stale_if_error"] is True
        assert kwargs["urls_expire_after"]["*/v8/finance/chart/*"] == cache.CACHE_EXPIRATION["quotes"]


class FakeCache:
    def __init__(self, responses=None, broken=False):
        self._responses = responses or {}
        self._broken = broken

    @property
    def responses(self):
        if self._broken:
            raise RedisConnectionError("connection lost")
        return self._responses


class TestCacheStats:
    def test_disabled(self, mocker):
        mocker.patch.object(cache.requests_cache, "get_cache", return_value=None)
        assert cache.get_cache_stats() == {"enabled": False}

    def test_enabled(self, mocker):
        mocker.patch.object(
            cache.requests_cache, "get_cache", return_value=FakeCache({"a": 1, "b": 2})
        )
        assert cache.get_cache_stats() == {"enabled": True, "backend": "FakeCache", "size": 2}

    def test_size_unavailable(self, mocker):
        mocker.patch.object(
            cache.requests_cache, "get_cache", return_value=FakeCache(broken=True)
        )
        assert cache.get_cache_stats()["size"] == "unavailable"

    def test_clear(self, mocker):
        installed = mocker.Mock()
        mocker.patch.object(cache.requests_cache, "get_cache", return_value=installed)

        cache.clear_quote_cache()

        installed.clear.assert_called_once()
