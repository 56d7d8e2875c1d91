"""
Tests for the side-effect outbox and NotificationDispatcher
"""

import json

import httpx
import pytest

from app.models.side_effect import SideEffectIntent
from app.models.side_effect_outbox import SideEffectOutbox
from app.services.notification_service import NotificationDispatcher, enqueue_side_effects

WEBHOOK_URL = "https://hooks.example.com/boxcycle"


def _client_factory(handler):
    return lambda: httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def queued(db_session):
    enqueue_side_effects(db_session, [
        SideEffectIntent(kind="subscription_paused", subscription_id="sub_1", payload={'user_id': "user_1"}),
        SideEffectIntent(kind="contact_sync", subscription_id="sub_1", payload={'is_subscriber': False}),
    ])
    db_session.commit()
    return db_session.query(SideEffectOutbox).all()


class TestEnqueue:
    def test_rows_pending_until_committed(self, db_session):
        rows = enqueue_side_effects(db_session, [SideEffectIntent(kind="delivery_upcoming", payload={'n': 1})])
        db_session.rollback()

        assert len(rows) == 1
        assert db_session.query(SideEffectOutbox).count() == 0


class TestNotificationDispatcher:
    """Test webhook delivery of outbox rows"""

    def test_delivers_pending(self, db_session, queued):
        received = []

        def handler(request):
            received.append((request.headers['Idempotency-Key'], json.loads(request.content)))
            return httpx.Response(200)

        dispatcher = NotificationDispatcher(WEBHOOK_URL, client_factory=_client_factory(handler))
        counts = dispatcher.dispatch_pending(db_session)

        assert counts == {'sent': 2, 'failed': 0}
        assert {body['kind'] for _, body in received} == {"subscription_paused", "contact_sync"}
        assert all(key == body['id'] for key, body in received)
        assert all(row.status == "sent" for row in db_session.query(SideEffectOutbox).all())

    def test_failure_keeps_row_pending(self, db_session, queued):
        dispatcher = NotificationDispatcher(
            WEBHOOK_URL, max_attempts=3, client_factory=_client_factory(lambda request: httpx.Response(503)))

        counts = dispatcher.dispatch_pending(db_session)

        assert counts == {'sent': 0, 'failed': 2}
        rows = db_session.query(SideEffectOutbox).all()
        assert all(row.status == "pending" and row.attempts == 1 for row in rows)
        assert all(row.last_error for row in rows)

    def test_gives_up_after_max_attempts(self, db_session, queued):
        dispatcher = NotificationDispatcher(
            WEBHOOK_URL, max_attempts=2, client_factory=_client_factory(lambda request: httpx.Response(500)))

        dispatcher.dispatch_pending(db_session)
        dispatcher.dispatch_pending(db_session)
        third = dispatcher.dispatch_pending(db_session)

        assert third == {'sent': 0, 'failed': 0}
        assert all(row.status == "failed" for row in db_session.query(SideEffectOutbox).all())

    def test_connection_error_does_not_raise(self, db_session, queued):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = NotificationDispatcher(WEBHOOK_URL, client_factory=_client_factory(handler))

        assert dispatcher.dispatch_pending(db_session) == {'sent': 0, 'failed': 2}

    def test_no_webhook_configured(self, db_session, queued):
        assert NotificationDispatcher(None).dispatch_pending(db_session) == {'sent': 0, 'failed': 0}
        assert all(row.status == "pending" for row in db_session.query(SideEffectOutbox).all())
