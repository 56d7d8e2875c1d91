import json
import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

import httpx
from sqlalchemy.orm import Session

from app.models.side_effect import SideEffectIntent
from app.models.side_effect_outbox import SideEffectOutbox

logger = logging.getLogger(__name__)


def enqueue_side_effects(db: Session, intents: Iterable[SideEffectIntent]) -> list[SideEffectOutbox]:
    """Add intents to the outbox. Committed by the caller with the mutation."""
    rows = []
    for intent in intents:
        row = SideEffectOutbox(
            id=str(uuid.uuid4()),
            kind=intent.kind,
            subscription_id=intent.subscription_id,
            payload=json.dumps(intent.payload, default=str),
            status="pending",
            attempts=0
        )
        db.add(row)
        rows.append(row)
    return rows


class NotificationDispatcher:
    """Delivers pending outbox rows to the notification webhook.

    Delivery is best-effort: failures are logged and stored on the row, and
    dispatch_pending never raises to its caller.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 10.0,
        max_attempts: int = 5,
        client_factory: Optional[Callable[[], httpx.Client]] = None
    ):
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.client_factory = client_factory or (lambda: httpx.Client(timeout=self.timeout_seconds))
        self.logger = logging.getLogger(__name__)

    def dispatch_pending(self, db: Session, limit: int = 100) -> dict:
        """Send up to `limit` pending intents, oldest first"""
        self.logger.info(f"dispatch_pending: Entry - limit: {limit}")
        sent = 0
        failed = 0

        try:
            if not self.webhook_url:
                self.logger.warning("dispatch_pending: No notification webhook configured")
                return {'sent': 0, 'failed': 0}

            rows = db.query(SideEffectOutbox).filter(
                SideEffectOutbox.status == "pending"
            ).order_by(SideEffectOutbox.created_at).limit(limit).all()

            with self.client_factory() as client:
                for row in rows:
                    if self._deliver(client, row):
                        sent += 1
                    else:
                        failed += 1
                    db.commit()

            self.logger.info(f"dispatch_pending: Success - sent: {sent}, failed: {failed}")
        except Exception as e:
            db.rollback()
            self.logger.error(f"dispatch_pending: Failure - {e}")
        return {'sent': sent, 'failed': failed}

    def _deliver(self, client: httpx.Client, row: SideEffectOutbox) -> bool:
        row.attempts = (row.attempts or 0) + 1
        try:
            response = client.post(
                self.webhook_url,
                json={
                    'id': row.id,
                    'kind': row.kind,
                    'subscription_id': row.subscription_id,
                    'payload': json.loads(row.payload),
                    'created_at': row.created_at.isoformat() if row.created_at else None,
                },
                headers={'Idempotency-Key': row.id},
            )
            response.raise_for_status()
            row.status = "sent"
            row.processed_at = datetime.utcnow()
            row.last_error = None
            return True
        except httpx.HTTPError as e:
            row.last_error = str(e)[:1000]
            if row.attempts >= self.max_attempts:
                row.status = "failed"
                row.processed_at = datetime.utcnow()
            self.logger.error(f"_deliver: Failed - intent: {row.id}, kind: {row.kind}, error: {e}")
            return False


def dispatch_outbox_in_background(session_factory, webhook_url: Optional[str], timeout_seconds: float = 10.0):
    """Entry point for FastAPI BackgroundTasks; opens its own session"""
    db = session_factory()
    try:
        NotificationDispatcher(webhook_url, timeout_seconds=timeout_seconds).dispatch_pending(db)
    finally:
        db.close()
