from sqlalchemy import Column, String, DateTime, Date, Boolean, Enum
from app.core.database import Base
from datetime import datetime
import enum


class CycleStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    DELIVERED = "delivered"
    ARCHIVED = "archived"


class DeliveryCycle(Base):
    __tablename__ = "delivery_cycles"

    id = Column(String, primary_key=True, index=True)
    delivery_date = Column(Date, nullable=False, unique=True)
    is_seasonal = Column(Boolean, nullable=False, default=False)  # representative cycle for seasonal subscribers
    status = Column(Enum(CycleStatus, values_callable=lambda e: [m.value for m in e]),
                    nullable=False, default=CycleStatus.UPCOMING, index=True)
    title = Column(String, nullable=True)
    generated_at = Column(DateTime, nullable=True)  # first batch run for this cycle
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
