from sqlalchemy import Column, String, DateTime, Boolean, Numeric, Integer
from app.core.database import Base
from datetime import datetime


class BoxType(Base):
    __tablename__ = "box_types"

    id = Column(String, primary_key=True)  # 'monthly-standard', 'monthly-premium', ...
    name = Column(String, nullable=False)
    price_eur = Column(Numeric(10, 2), nullable=False)
    is_premium = Column(Boolean, default=False, nullable=False)
    is_subscription = Column(Boolean, default=True, nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_sellable(self) -> bool:
        return bool(self.is_enabled and self.is_subscription)
