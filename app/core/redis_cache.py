import logging
from typing import Optional
import redis
from redis.exceptions import RedisError
from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Read side of the externally published values (exchange rates) kept in Redis"""

    def __init__(self, url: Optional[str] = None, password: Optional[str] = None):
        """Initialize Redis cache (lazy connection)"""
        self._url = url or settings.redis_url
        self._password = password if password is not None else settings.redis_password
        self._client: Optional[redis.Redis] = None

    def _ensure_connected(self) -> Optional[redis.Redis]:
        if self._client is not None:
            return self._client

        try:
            client_kwargs = {
                'decode_responses': False,
                'socket_connect_timeout': 2,
                'socket_timeout': 2,
                'retry_on_timeout': False,
            }
            # settings.redis_password takes precedence over a password in the URL
            if self._password:
                client_kwargs['password'] = self._password
            client = redis.from_url(self._url, **client_kwargs)
            client.ping()
            self._client = client
            logger.info("RedisCache: Connected")
        except RedisError as e:
            logger.warning(f"RedisCache: Connection failed - {e}")
            self._client = None
        return self._client

    def get_float(self, key: str) -> Optional[float]:
        """Get a numeric value; None when missing, malformed or Redis is down"""
        client = self._ensure_connected()
        if client is None:
            logger.warning(f"RedisCache: Cannot get key {key} - Redis not available")
            return None

        try:
            data = client.get(key)
            if data is None:
                logger.debug(f"Cache miss: {key}")
                return None
            return float(data.decode('utf-8'))
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"RedisCache: Failed to decode value for key {key}: {e}")
            return None
        except RedisError as e:
            logger.error(f"RedisCache: Error getting key {key}: {e}")
            self._client = None
            return None

