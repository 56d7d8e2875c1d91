from sqlalchemy import Column, String, DateTime, Text, Integer
from app.core.database import Base
from datetime import datetime


class SideEffectOutbox(Base):
    """Pending notification / contact-sync intents, written with the mutation that caused them"""

    __tablename__ = "side_effect_outbox"

    id = Column(String, primary_key=True, index=True)
    kind = Column(String, nullable=False, index=True)  # 'subscription_paused', 'contact_sync', ...
    subscription_id = Column(String, nullable=True, index=True)
    payload = Column(Text, nullable=False)  # JSON
    status = Column(String, nullable=False, default="pending", index=True)  # 'pending', 'sent', 'failed'
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    processed_at = Column(DateTime, nullable=True)
