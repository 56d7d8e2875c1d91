import logging
from decimal import Decimal
from typing import Optional
from app.core.config import settings
from app.core.redis_cache import RedisCache

logger = logging.getLogger(__name__)

CURRENCY_RATE_KEY = "fx:eur_rate"


def get_cache() -> RedisCache:
    """FastAPI dependency returning a Redis reader"""
    return RedisCache()


def get_currency_rate(cache: Optional[RedisCache] = None) -> Decimal:
    """
    EUR -> local rate as published to Redis by the external rate job.
    Falls back to the configured default; callers pass the value into pricing.
    """
    cache = cache or get_cache()
    rate = cache.get_float(CURRENCY_RATE_KEY)
    if rate is None or rate <= 0:
        logger.info("get_currency_rate: Using default rate")
        return Decimal(str(settings.default_currency_rate))
    return Decimal(str(rate))
