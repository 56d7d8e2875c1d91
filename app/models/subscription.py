from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, Enum,
                        ForeignKey, Numeric, String, Text, JSON)
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime
import enum


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Frequency(str, enum.Enum):
    MONTHLY = "monthly"
    SEASONAL = "seasonal"


# Personalization columns, replaced as a whole by update_preferences
PREFERENCE_FIELDS = (
    'wants_personalization',
    'sports',
    'sport_other',
    'colors',
    'flavors',
    'flavor_other',
    'dietary',
    'dietary_other',
    'size_upper',
    'size_lower',
    'additional_notes',
)


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("base_price_eur >= 0", name="ck_subscriptions_base_price"),
        CheckConstraint("current_price_eur >= 0", name="ck_subscriptions_current_price"),
        CheckConstraint(
            "discount_percent IS NULL OR (discount_percent >= 0 AND discount_percent <= 100)",
            name="ck_subscriptions_discount_percent",
        ),
        CheckConstraint(
            "(status = 'cancelled') = (cancellation_reason IS NOT NULL)",
            name="ck_subscriptions_cancellation_reason",
        ),
    )

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    box_type = Column(String, ForeignKey("box_types.id"), nullable=False)
    frequency = Column(Enum(Frequency, values_callable=lambda e: [m.value for m in e]),
                       nullable=False, default=Frequency.MONTHLY)
    status = Column(Enum(SubscriptionStatus, values_callable=lambda e: [m.value for m in e]),
                    nullable=False, default=SubscriptionStatus.ACTIVE, index=True)

    # Personalization (updates affect future orders only)
    wants_personalization = Column(Boolean, nullable=False, default=False)
    sports = Column(JSON, nullable=True)
    sport_other = Column(String, nullable=True)
    colors = Column(JSON, nullable=True)
    flavors = Column(JSON, nullable=True)
    flavor_other = Column(String, nullable=True)
    dietary = Column(JSON, nullable=True)
    dietary_other = Column(String, nullable=True)
    size_upper = Column(String, nullable=True)
    size_lower = Column(String, nullable=True)
    additional_notes = Column(Text, nullable=True)

    # Pricing, all in EUR
    promo_code = Column(String, nullable=True)
    discount_percent = Column(Numeric(5, 2), nullable=True)
    base_price_eur = Column(Numeric(10, 2), nullable=False)
    current_price_eur = Column(Numeric(10, 2), nullable=False)

    default_address_id = Column(String, ForeignKey("addresses.id"), nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    first_cycle_id = Column(String, ForeignKey("delivery_cycles.id"), nullable=True)
    last_delivered_cycle_id = Column(String, ForeignKey("delivery_cycles.id"), nullable=True)

    paused_at = Column(DateTime, nullable=True)
    resumed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    first_cycle = relationship("DeliveryCycle", foreign_keys=[first_cycle_id])
    history = relationship("SubscriptionHistory", back_populates="subscription",
                           order_by="SubscriptionHistory.created_at")

    def preferences_snapshot(self) -> dict:
        """Current personalization fields as a plain dict"""
        return {field: getattr(self, field) for field in PREFERENCE_FIELDS}
