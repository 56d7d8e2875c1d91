from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime
import enum


class HistoryAction(str, enum.Enum):
    CREATED = "created"
    PAUSED = "paused"
    RESUMED = "resumed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PREFERENCES_UPDATED = "preferences_updated"
    ADDRESS_CHANGED = "address_changed"
    FREQUENCY_CHANGED = "frequency_changed"
    ORDER_GENERATED = "order_generated"


class SubscriptionHistory(Base):
    """Append-only audit trail. Rows are inserted by HistoryRecorder and never updated."""

    __tablename__ = "subscription_history"
    __table_args__ = (
        Index("ix_subscription_history_subscription_created", "subscription_id", "created_at"),
    )

    id = Column(String, primary_key=True, index=True)
    subscription_id = Column(String, ForeignKey("subscriptions.id"), nullable=False, index=True)
    action = Column(String, nullable=False, index=True)
    performed_by = Column(String, nullable=True)  # user id, staff id or 'system'
    details = Column(Text, nullable=True)  # JSON before/after snapshot
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="history")
