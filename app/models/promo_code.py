from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, ForeignKey,
                        Index, Integer, Numeric, String, Text, func, text)
from app.core.database import Base
from datetime import datetime


class PromoCode(Base):
    __tablename__ = "promo_codes"
    __table_args__ = (
        CheckConstraint("discount_percent > 0 AND discount_percent <= 100",
                        name="ck_promo_codes_discount_percent"),
        CheckConstraint("max_uses IS NULL OR current_uses <= max_uses",
                        name="ck_promo_codes_usage_cap"),
    )

    id = Column(String, primary_key=True, index=True)
    code = Column(String, nullable=False)  # stored as entered, matched case-insensitively
    discount_percent = Column(Numeric(5, 2), nullable=False)
    description = Column(Text, nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    max_uses = Column(Integer, nullable=True)  # null = unlimited
    current_uses = Column(Integer, nullable=False, default=0)
    max_uses_per_user = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PromoCodeUsage(Base):
    """One row per redemption, used for per-user caps"""

    __tablename__ = "promo_code_usages"
    __table_args__ = (
        Index("ix_promo_code_usages_user", "promo_code_id", "user_id"),
        Index(
            "uq_promo_code_usages_order",
            "promo_code_id",
            "order_id",
            unique=True,
            postgresql_where=text("order_id IS NOT NULL"),
            sqlite_where=text("order_id IS NOT NULL"),
        ),
    )

    id = Column(String, primary_key=True, index=True)
    promo_code_id = Column(String, ForeignKey("promo_codes.id"), nullable=False)
    user_id = Column(String, nullable=False)
    order_id = Column(String, ForeignKey("orders.id"), nullable=True)
    used_at = Column(DateTime, default=datetime.utcnow, nullable=False)


Index("uq_promo_codes_code_upper", func.upper(PromoCode.code), unique=True)
