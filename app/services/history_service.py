import json
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from app.models.subscription_history import HistoryAction, SubscriptionHistory

logger = logging.getLogger(__name__)


def _json_default(value):
    if isinstance(value, (datetime,)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'value'):  # enums
        return value.value
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


@event.listens_for(SubscriptionHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise RuntimeError("subscription_history rows are append-only")


@event.listens_for(SubscriptionHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise RuntimeError("subscription_history rows are append-only")


class HistoryRecorder:
    """Writes and reads the subscription audit trail.

    record() only adds the row to the session; the caller commits it together
    with the mutation it describes.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def record(
        self,
        db: Session,
        subscription_id: str,
        action: HistoryAction,
        performed_by: Optional[str],
        details: Optional[dict] = None,
        created_at: Optional[datetime] = None
    ) -> SubscriptionHistory:
        entry = SubscriptionHistory(
            id=str(uuid.uuid4()),
            subscription_id=subscription_id,
            action=HistoryAction(action).value,
            performed_by=performed_by,
            details=json.dumps(details, default=_json_default) if details is not None else None,
            created_at=created_at or datetime.utcnow()
        )
        db.add(entry)
        self.logger.info(f"record: {entry.action} - subscription: {subscription_id}, by: {performed_by}")
        return entry

    def get_subscription_history(self, db: Session, subscription_id: str) -> list[dict]:
        """Get a subscription's history, newest first"""
        self.logger.info(f"get_subscription_history: Entry - subscription: {subscription_id}")

        try:
            history = db.query(SubscriptionHistory).filter(
                SubscriptionHistory.subscription_id == subscription_id
            ).order_by(SubscriptionHistory.created_at.desc()).all()

            result = []
            for entry in history:
                result.append({
                    'id': entry.id,
                    'action': entry.action,
                    'performed_by': entry.performed_by,
                    'created_at': entry.created_at.isoformat(),
                    'details': json.loads(entry.details) if entry.details else None
                })

            self.logger.info(
                f"get_subscription_history: Success - subscription: {subscription_id}, count: {len(result)}")
            return result
        except Exception as e:
            self.logger.error(f"get_subscription_history: Failure - {e}")
            raise
