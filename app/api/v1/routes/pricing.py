import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.deps import get_pricing_service, to_http_exception
from app.core.cache import get_cache, get_currency_rate
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import DomainError
from app.core.redis_cache import RedisCache
from app.services.pricing_service import PriceQuote, PricingService, PromoValidation

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/quote", response_model=PriceQuote)
async def get_price_quote(
    box_type: str,
    promo_code: Optional[str] = None,
    db: Session = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
    pricing_service: PricingService = Depends(get_pricing_service)
):
    """
    Price a box with an optional promo code.
    Public endpoint; an invalid code simply yields no discount.
    """
    try:
        return pricing_service.compute_price(
            db,
            box_type,
            promo_code,
            currency_rate=get_currency_rate(cache),
            currency=settings.local_currency
        )
    except DomainError as e:
        raise to_http_exception(e)


@router.get("/promo/{code}", response_model=PromoValidation)
async def validate_promo_code(
    code: str,
    db: Session = Depends(get_db),
    pricing_service: PricingService = Depends(get_pricing_service)
):
    return pricing_service.validate_promo_code(db, code)
