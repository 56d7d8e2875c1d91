import logging
import uuid
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, PromoInvalid
from app.models.box_type import BoxType
from app.models.promo_code import PromoCode, PromoCodeUsage

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(amount: Decimal) -> Decimal:
    """Round to 2 decimals, half up"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_code(code: Optional[str]) -> Optional[str]:
    """Uppercase and strip a promo code; None and blank strings both become None"""
    if not code or not isinstance(code, str):
        return None
    normalized = code.strip().upper()
    return normalized or None


def convert_price(amount_eur: Decimal, rate: Decimal) -> Decimal:
    """Convert an EUR amount for display. Rounds after conversion."""
    return round_money(Decimal(amount_eur) * Decimal(str(rate)))


class PriceQuote(BaseModel):
    """Result of compute_price. EUR figures are authoritative."""
    box_type: str
    original_price_eur: Decimal
    discount_percent: Decimal
    final_price_eur: Decimal
    resolved_code: Optional[str] = None
    currency: Optional[str] = None
    original_price_local: Optional[Decimal] = None
    final_price_local: Optional[Decimal] = None


class PromoValidation(BaseModel):
    valid: bool
    code: Optional[str] = None
    discount_percent: Decimal = Decimal("0")
    reason_code: Optional[str] = None


class PricingService:
    """Box pricing and promo code resolution.

    Queries here never write. Usage is recorded through increment_promo_usage,
    which callers invoke only once the order or subscription it belongs to has
    been committed.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def get_box_type(self, db: Session, box_type: str) -> Optional[BoxType]:
        return db.query(BoxType).filter(BoxType.id == box_type).first()

    def _find_promo(self, db: Session, normalized: str) -> Optional[PromoCode]:
        return db.query(PromoCode).filter(func.upper(PromoCode.code) == normalized).first()

    def _count_user_uses(self, db: Session, promo: PromoCode, user_id: str) -> int:
        return db.query(PromoCodeUsage).filter(
            PromoCodeUsage.promo_code_id == promo.id,
            PromoCodeUsage.user_id == user_id
        ).count()

    def resolve_promo(
        self,
        db: Session,
        code: Optional[str],
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PromoCode:
        """
        Return the promo row for `code` if it can be applied right now.
        Raises PromoInvalid with a reason code otherwise; checks run in order
        existence/enabled, date window, global cap, per-user cap.
        """
        normalized = normalize_code(code)
        if normalized is None:
            raise PromoInvalid("No promo code given", reason_code="empty")

        promo = self._find_promo(db, normalized)
        if not promo:
            raise PromoInvalid(f"Unknown promo code: {normalized}", reason_code="not_found")
        if not promo.is_enabled:
            raise PromoInvalid(f"Promo code disabled: {normalized}", reason_code="disabled")

        now = now or datetime.utcnow()
        if promo.starts_at and promo.starts_at > now:
            raise PromoInvalid(f"Promo code not yet active: {normalized}", reason_code="not_started")
        if promo.ends_at and promo.ends_at < now:
            raise PromoInvalid(f"Promo code expired: {normalized}", reason_code="expired")

        if promo.max_uses is not None and promo.current_uses >= promo.max_uses:
            raise PromoInvalid(f"Promo code usage limit reached: {normalized}", reason_code="usage_limit_reached")

        if user_id and promo.max_uses_per_user is not None:
            if self._count_user_uses(db, promo, user_id) >= promo.max_uses_per_user:
                raise PromoInvalid(f"Promo code per-user limit reached: {normalized}", reason_code="user_limit_reached")

        return promo

    def validate_promo_code(
        self,
        db: Session,
        code: Optional[str],
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PromoValidation:
        """Check a promo code without applying it"""
        self.logger.info(f"validate_promo_code: Entry - code: {code}, user: {user_id}")

        try:
            promo = self.resolve_promo(db, code, user_id=user_id, now=now)
        except PromoInvalid as e:
            self.logger.info(f"validate_promo_code: Invalid - {e.reason_code}")
            return PromoValidation(valid=False, code=normalize_code(code), reason_code=e.reason_code)

        self.logger.info(f"validate_promo_code: Success - code: {promo.code}")
        return PromoValidation(
            valid=True,
            code=promo.code.upper(),
            discount_percent=Decimal(promo.discount_percent)
        )

    def compute_price(
        self,
        db: Session,
        box_type: str,
        promo_code: Optional[str] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
        currency_rate: Optional[Decimal] = None,
        currency: Optional[str] = None
    ) -> PriceQuote:
        """
        Price a box with an optional promo code.
        An unusable promo code is treated as no code at all; only an unknown
        box type is an error.
        """
        self.logger.info(f"compute_price: Entry - box: {box_type}, code: {promo_code}")

        box = self.get_box_type(db, box_type)
        if not box:
            self.logger.error(f"compute_price: Failure - unknown box type {box_type}")
            raise NotFoundError(f"Invalid box type: {box_type}")

        original = round_money(box.price_eur)
        discount = Decimal("0")
        resolved_code = None

        if normalize_code(promo_code) is not None:
            try:
                promo = self.resolve_promo(db, promo_code, user_id=user_id, now=now)
                discount = Decimal(promo.discount_percent)
                resolved_code = promo.code.upper()
            except PromoInvalid as e:
                self.logger.info(f"compute_price: Promo ignored - {e.reason_code}")

        unrounded_final = original * (1 - discount / HUNDRED)
        quote = PriceQuote(
            box_type=box_type,
            original_price_eur=original,
            discount_percent=discount,
            final_price_eur=round_money(unrounded_final),
            resolved_code=resolved_code,
        )

        if currency_rate is not None:
            quote.currency = currency
            quote.original_price_local = convert_price(original, currency_rate)
            quote.final_price_local = convert_price(unrounded_final, currency_rate)

        self.logger.info(f"compute_price: Success - box: {box_type}, final: {quote.final_price_eur}")
        return quote

    def increment_promo_usage(
        self,
        db: Session,
        code: str,
        user_id: Optional[str] = None,
        order_id: Optional[str] = None,
        commit: bool = True
    ) -> bool:
        """
        Record one redemption. The increment is a single conditional UPDATE so
        the cap check and the write cannot interleave with another redemption.
        Returns False when the code is unknown, already at its cap, or the user
        has used up their own allowance.
        """
        normalized = normalize_code(code)
        self.logger.info(f"increment_promo_usage: Entry - code: {normalized}, user: {user_id}, order: {order_id}")
        if normalized is None:
            return False

        try:
            updated = db.query(PromoCode).filter(
                func.upper(PromoCode.code) == normalized,
                or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses)
            ).update(
                {PromoCode.current_uses: PromoCode.current_uses + 1},
                synchronize_session=False
            )

            if updated == 0:
                self.logger.info(f"increment_promo_usage: Not applied - code: {normalized}")
                return False

            if user_id:
                promo = self._find_promo(db, normalized)
                # The counter UPDATE holds the promo row lock, so this count sees every committed redemption
                if promo.max_uses_per_user is not None and \
                        self._count_user_uses(db, promo, user_id) >= promo.max_uses_per_user:
                    db.query(PromoCode).filter(PromoCode.id == promo.id).update(
                        {PromoCode.current_uses: PromoCode.current_uses - 1},
                        synchronize_session=False
                    )
                    if commit:
                        db.commit()
                    else:
                        db.flush()
                    self.logger.info(f"increment_promo_usage: Not applied - code: {normalized}, "
                                     f"user: {user_id} at per-user limit")
                    return False
                db.add(PromoCodeUsage(
                    id=str(uuid.uuid4()),
                    promo_code_id=promo.id,
                    user_id=user_id,
                    order_id=order_id
                ))

            if commit:
                db.commit()
            else:
                db.flush()

            self.logger.info(f"increment_promo_usage: Success - code: {normalized}")
            return True
        except Exception as e:
            db.rollback()
            self.logger.error(f"increment_promo_usage: Failure - {e}")
            raise
