from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Index, JSON, text
from app.core.database import Base
from datetime import datetime


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        # One order per subscription per cycle; one-off orders have no subscription
        Index(
            "uq_orders_subscription_cycle",
            "subscription_id",
            "delivery_cycle_id",
            unique=True,
            postgresql_where=text("subscription_id IS NOT NULL"),
            sqlite_where=text("subscription_id IS NOT NULL"),
        ),
    )

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    subscription_id = Column(String, ForeignKey("subscriptions.id"), nullable=True)
    delivery_cycle_id = Column(String, ForeignKey("delivery_cycles.id"), nullable=True, index=True)
    order_type = Column(String, nullable=False, default="subscription")  # 'subscription', 'one_time'
    box_type = Column(String, nullable=False)
    address_id = Column(String, nullable=True)
    personalization = Column(JSON, nullable=True)  # snapshot of subscription preferences
    promo_code = Column(String, nullable=True)
    discount_percent = Column(Numeric(5, 2), nullable=True)
    original_price_eur = Column(Numeric(10, 2), nullable=False)
    final_price_eur = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
