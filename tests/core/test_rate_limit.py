"""
Unit tests for the sliding-window rate limiter.
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from studyhub.core import rate_limit
from studyhub.core.rate_limit import check_rate_limit


@pytest.fixture
def mock_redis():
    """Create a mock Redis client with a pipeline."""
    redis = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[0, 0, 1, True])
    redis.pipeline.return_value = pipe
    return redis


class TestMemoryRateLimit:
    """Tests for the in-memory fallback."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        with patch.object(rate_limit, "get_redis", return_value=None):
            results = [await check_rate_limit("key", 3, 60) for _ in range(4)]

        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        with patch.object(rate_limit, "get_redis", return_value=None):
            assert await check_rate_limit("a", 1, 60)
            assert await check_rate_limit("b", 1, 60)
            assert not await check_rate_limit("a", 1, 60)

    @pytest.mark.asyncio
    async def test_old_requests_fall_out_of_window(self):
        rate_limit._memory_store["key"] = [time.time() - 120]

        with patch.object(rate_limit, "get_redis", return_value=None):
            assert await check_rate_limit("key", 1, 60)

        assert len(rate_limit._memory_store["key"]) == 1


class TestRedisRateLimit:
    """Tests for the Redis-backed limiter."""

    @pytest.mark.asyncio
    async def test_under_limit_allowed(self, mock_redis):
        with patch.object(rate_limit, "get_redis", return_value=mock_redis):
            assert await check_rate_limit("key", 10, 60)

        mock_redis.pipeline.return_value.zadd.assert_called_once()

    @pytest.mark.asyncio
    async def test_at_limit_rejected(self, mock_redis):
        mock_redis.pipeline.return_value.execute = AsyncMock(return_value=[0, 10, 1, True])

        with patch.object(rate_limit, "get_redis", return_value=mock_redis):
            assert not await check_rate_limit("key", 10, 60)

    @pytest.mark.asyncio
    async def test_redis_error_falls_back_to_memory(self, mock_redis):
        mock_redis.pipeline.return_value.execute = AsyncMock(
            side_effect=RedisConnectionError("gone")
        )

        with patch.object(rate_limit, "get_redis", return_value=mock_redis):
            assert await check_rate_limit("key", 1, 60)
            assert not await check_rate_limit("key", 1, 60)


class TestTriggerRateLimit:
    """Tests for the FastAPI dependency."""

    @staticmethod
    def _request(host: str = "10.0.0.1") -> MagicMock:
        request = MagicMock()
        request.client.host = host
        request.url.path = "/api/v1/cron/run-jobs"
        return request

    @pytest.mark.asyncio
    async def test_raises_429_with_retry_after(self):
        limiter = rate_limit.TriggerRateLimit(limit=1, window_seconds=30)

        with patch.object(rate_limit, "get_redis", return_value=None):
            await limiter(self._request())
            with pytest.raises(rate_limit.RateLimitExceeded) as exc_info:
                await limiter(self._request())

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers == {"Retry-After": "30"}

    @pytest.mark.asyncio
    async def test_limits_each_client_separately(self):
        limiter = rate_limit.TriggerRateLimit(limit=1, window_seconds=30)

        with patch.object(rate_limit, "get_redis", return_value=None):
            await limiter(self._request("10.0.0.1"))
            await limiter(self._request("10.0.0.2"))
