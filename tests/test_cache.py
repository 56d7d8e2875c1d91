"""
Tests for the Redis-backed exchange rate lookup
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.cache import CURRENCY_RATE_KEY, get_currency_rate
from app.core.redis_cache import RedisCache


@pytest.fixture
def mock_cache():
    """Mock Redis cache"""
    cache = MagicMock()
    cache.get_float.return_value = None
    return cache


class TestGetCurrencyRate:
    """Test rate lookup and fallback"""

    def test_uses_published_rate(self, mock_cache):
        mock_cache.get_float.return_value = 1.95

        assert get_currency_rate(mock_cache) == Decimal("1.95")
        mock_cache.get_float.assert_called_once_with(CURRENCY_RATE_KEY)

    def test_falls_back_to_default(self, mock_cache):
        assert get_currency_rate(mock_cache) == Decimal("1.9558")

    def test_ignores_non_positive_rate(self, mock_cache):
        mock_cache.get_float.return_value = 0.0

        assert get_currency_rate(mock_cache) == Decimal("1.9558")


class TestRedisCache:
    """Test RedisCache against a mocked client"""

    @patch("app.core.redis_cache.redis.from_url")
    def test_get_float(self, mock_from_url):
        client = MagicMock()
        client.get.return_value = b"1.9558"
        mock_from_url.return_value = client

        assert RedisCache("redis://localhost:6379/1").get_float(CURRENCY_RATE_KEY) == 1.9558

    @patch("app.core.redis_cache.redis.from_url")
    def test_malformed_value(self, mock_from_url):
        client = MagicMock()
        client.get.return_value = b"not-a-number"
        mock_from_url.return_value = client

        assert RedisCache("redis://localhost:6379/1").get_float(CURRENCY_RATE_KEY) is None

    @patch("app.core.redis_cache.redis.from_url")
    def test_redis_down(self, mock_from_url):
        client = MagicMock()
        client.ping.side_effect = RedisConnectionError("refused")
        mock_from_url.return_value = client

        assert RedisCache("redis://localhost:6379/1").get_float(CURRENCY_RATE_KEY) is None
