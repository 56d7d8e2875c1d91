"""
Tests for API endpoints
"""

import pytest
from datetime import date, datetime
from unittest.mock import MagicMock, patch

from app.models.delivery_cycle import CycleStatus
from app.models.subscription import SubscriptionStatus


@pytest.fixture
def api_app(db_session):
    """App with the database and auth dependencies pointed at the test session"""
    with patch('firebase_admin.credentials.Certificate'), \
         patch('firebase_admin.initialize_app'), \
         patch('firebase_admin.auth'):
        from app.main import app as fastapi_app

    from app.core.cache import get_cache
    from app.core.database import get_db

    def override_get_db():
        yield db_session

    cache = MagicMock()
    cache.get_float.return_value = None

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_cache] = lambda: cache
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


def _login(api, uid="user_1", role=None):
    from app.core.middleware import get_current_user

    api.dependency_overrides[get_current_user] = lambda: {
        "uid": uid,
        "email": f"{uid}@example.com",
        "role": role,
        "token": {"uid": uid},
    }


@pytest.fixture
def client(api_app):
    from fastapi.testclient import TestClient

    return TestClient(api_app)


class TestHealthEndpoint:
    """Test health check endpoint"""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestSubscriptionEndpoints:
    """Test subscriber-facing endpoints"""

    def test_requires_auth(self, client):
        response = client.get("/api/v1/subscriptions")

        assert response.status_code in (401, 403)

    def test_list_own_subscriptions(self, api_app, client, standard_box, make_subscription):
        make_subscription(user_id="user_1")
        make_subscription(user_id="user_2")
        _login(api_app, "user_1")

        response = client.get("/api/v1/subscriptions")

        assert response.status_code == 200
        subscriptions = response.json()["subscriptions"]
        assert len(subscriptions) == 1
        assert subscriptions[0]["state"]["can_pause"] is True

    def test_pause(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription(user_id="user_1")
        _login(api_app, "user_1")

        response = client.post(f"/api/v1/subscriptions/{sub.id}/pause")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "paused"
        assert body["side_effects"][0]["kind"] == "subscription_paused"

    def test_resume_cancelled_conflict(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription(user_id="user_1", status=SubscriptionStatus.CANCELLED)
        _login(api_app, "user_1")

        response = client.post(f"/api/v1/subscriptions/{sub.id}/resume")

        assert response.status_code == 409
        assert response.json()["detail"]["reason_code"] == "invalid_state_transition"

    def test_cancel_requires_reason(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription(user_id="user_1")
        _login(api_app, "user_1")

        response = client.post(f"/api/v1/subscriptions/{sub.id}/cancel", json={"reason": "  "})

        assert response.status_code == 422
        assert response.json()["detail"]["reason_code"] == "invalid_cancellation_reason"

    def test_cancel_then_history(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription(user_id="user_1")
        _login(api_app, "user_1")

        cancel = client.post(f"/api/v1/subscriptions/{sub.id}/cancel", json={"reason": "Moving"})
        history = client.get(f"/api/v1/subscriptions/{sub.id}/history")

        assert cancel.status_code == 200
        assert [entry["action"] for entry in history.json()["history"]] == ["cancelled"]

    def test_other_users_subscription_not_found(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription(user_id="user_2")
        _login(api_app, "user_1")

        response = client.post(f"/api/v1/subscriptions/{sub.id}/pause")

        assert response.status_code == 404
        assert response.json()["detail"]["reason_code"] == "not_found"

    def test_update_preferences_validation(self, api_app, client, premium_box, make_subscription):
        sub = make_subscription(user_id="user_1", box_type="monthly-premium")
        _login(api_app, "user_1")

        response = client.put(f"/api/v1/subscriptions/{sub.id}/preferences", json={
            "wants_personalization": True,
            "sports": ["running"],
            "flavors": ["vanilla"],
            "dietary": ["vegan"],
        })

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["reason_code"] == "invalid_preferences"
        assert len(detail["errors"]) == 3

    def test_update_frequency(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription(user_id="user_1")
        _login(api_app, "user_1")

        response = client.put(f"/api/v1/subscriptions/{sub.id}/frequency", json={"frequency": "seasonal"})

        assert response.status_code == 200
        assert response.json()["side_effects"][0]["payload"]["frequency"] == "seasonal"


class TestAdminEndpoints:
    """Test staff-only endpoints"""

    def test_non_staff_forbidden(self, api_app, client):
        _login(api_app, "user_1")

        response = client.get("/api/v1/admin/subscriptions")

        assert response.status_code == 403

    def test_list_filtered_by_status(self, api_app, client, standard_box, make_subscription):
        make_subscription(user_id="a")
        make_subscription(user_id="b", status=SubscriptionStatus.PAUSED)
        _login(api_app, "staff_1", role="staff")

        response = client.get("/api/v1/admin/subscriptions", params={"status": "paused"})

        assert response.status_code == 200
        assert [s["status"] for s in response.json()["subscriptions"]] == ["paused"]

    def test_staff_expire(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription(user_id="user_1")
        _login(api_app, "staff_1", role="admin")

        response = client.post(f"/api/v1/admin/subscriptions/{sub.id}/expire")
        detail = client.get(f"/api/v1/admin/subscriptions/{sub.id}")

        assert response.status_code == 200
        assert response.json()["status"] == "expired"
        assert detail.json()["history"][0]["performed_by"] == "staff_1"

    def test_unknown_action(self, api_app, client, standard_box, make_subscription):
        sub = make_subscription()
        _login(api_app, "staff_1", role="staff")

        response = client.post(f"/api/v1/admin/subscriptions/{sub.id}/teleport")

        assert response.status_code == 422
        assert response.json()["detail"]["reason_code"] == "unknown_action"


class TestCycleEndpoints:
    """Test batch triggers"""

    def test_cron_requires_secret(self, client):
        response = client.get("/api/v1/cycles/cron/generate-orders")

        assert response.status_code == 401

    def test_cron_wrong_secret(self, client):
        response = client.get("/api/v1/cycles/cron/generate-orders",
                              headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401

    def test_cron_nothing_due(self, client, make_cycle):
        make_cycle(delivery_date=date(2099, 1, 1))

        response = client.get("/api/v1/cycles/cron/generate-orders",
                              headers={"Authorization": "Bearer test-cron-secret"})

        assert response.status_code == 200
        assert response.json()["cycle_id"] is None
        assert response.json()["message"]

    def test_staff_generate(self, api_app, client, standard_box, make_cycle, make_subscription):
        cycle = make_cycle()
        make_subscription()
        make_subscription(status=SubscriptionStatus.PAUSED)
        _login(api_app, "staff_1", role="staff")

        response = client.post(f"/api/v1/cycles/{cycle.id}/generate")

        assert response.status_code == 200
        body = response.json()
        assert (body["generated"], body["skipped"], body["excluded"]) == (1, 0, 1)

    def test_generate_archived_cycle(self, api_app, client, make_cycle):
        cycle = make_cycle(status=CycleStatus.ARCHIVED)
        _login(api_app, "staff_1", role="staff")

        response = client.post(f"/api/v1/cycles/{cycle.id}/generate")

        assert response.status_code == 422
        assert response.json()["detail"]["reason_code"] == "cycle_not_generatable"

    def test_late_order(self, api_app, client, standard_box, make_cycle, make_subscription):
        cycle = make_cycle(status=CycleStatus.DELIVERED)
        sub = make_subscription()
        _login(api_app, "staff_1", role="staff")

        first = client.post(f"/api/v1/cycles/{cycle.id}/subscriptions/{sub.id}/order")
        second = client.post(f"/api/v1/cycles/{cycle.id}/subscriptions/{sub.id}/order")

        assert first.json()["created"] is True
        assert second.json() == {"created": False, "order_id": None}


class TestPricingEndpoints:
    """Test public pricing endpoints"""

    def test_quote_with_promo(self, client, standard_box, make_promo):
        make_promo("SAVE10", discount_percent="10")

        response = client.get("/api/v1/pricing/quote", params={"box_type": "monthly-standard",
                                                               "promo_code": "save10"})

        assert response.status_code == 200
        body = response.json()
        assert body["final_price_eur"] == "18.00"
        assert body["currency"] == "BGN"
        assert body["final_price_local"] == "35.20"

    def test_quote_unknown_box(self, client):
        response = client.get("/api/v1/pricing/quote", params={"box_type": "nope"})

        assert response.status_code == 404

    def test_promo_validation(self, client, make_promo):
        make_promo("EXPIRED", ends_at=datetime(2020, 1, 1))

        response = client.get("/api/v1/pricing/promo/expired")

        assert response.status_code == 200
        assert response.json() == {"valid": False, "code": "EXPIRED", "discount_percent": "0",
                                   "reason_code": "expired"}
