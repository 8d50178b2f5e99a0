"""
Tests for the HTTP surface
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import auth.middleware
from auth.dependencies import get_current_user, get_feature_access_service, get_subscription_orchestrator
from auth.middleware import AuthMiddleware
from conftest import FakeSupabase, NOW
from index import app
from services.account_service import AccountService
from services.feature_access_service import FeatureAccessService
from services.quota_service import QuotaTracker
from services.subscription_orchestrator import SubscriptionOrchestrator

JWT_SECRET = "test-jwt-secret"


@pytest.fixture
def db():
    db = FakeSupabase()
    db.insert_row("users", id="user_1", email="owner@example.com", role="normal", selected_plan="starter", subscription_status="active", business_size="small")
    db.insert_row("users", id="admin_1", email="ops@example.com", role="superadmin", subscription_status="cancelled")
    db.insert_row("user_profiles", id=1, user_id="user_1", role="admin", is_active=True)
    return db


@pytest.fixture
def client(db, fake_stripe, monkeypatch):
    middleware = AuthMiddleware(supabase_client=db, jwt_secret=JWT_SECRET)
    monkeypatch.setattr(auth.middleware, "auth_middleware", middleware)

    accounts = AccountService(db)
    app.dependency_overrides[get_feature_access_service] = lambda: FeatureAccessService(
        account_service=accounts,
        quota_tracker=QuotaTracker(accounts, clock=lambda: NOW),
    )
    app.dependency_overrides[get_subscription_orchestrator] = lambda: SubscriptionOrchestrator(fake_stripe, accounts)
    yield TestClient(app)
    app.dependency_overrides.clear()


def bearer(user_id, email="user@example.com", expires_in=timedelta(hours=1)):
    token = auth.middleware.auth_middleware.create_access_token(user_id, email, expires_in)
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_feature_check(client):
    response = client.get("/access/features/clients", headers=bearer("user_1"))
    assert response.status_code == 200
    body = response.json()
    assert body["allowed"] is True
    assert body["level"] == "limited"
    assert body["plan"] == "starter"

    denied = client.get("/access/features/multiUser", headers=bearer("user_1")).json()
    assert denied["allowed"] is False
    assert denied["reason"] == "feature_not_in_plan"


def test_unknown_feature_is_rejected(client):
    assert client.get("/access/features/teleport", headers=bearer("user_1")).status_code == 422


def test_expired_token(client):
    response = client.get("/access/features/quotes", headers=bearer("user_1", expires_in=timedelta(seconds=-60)))
    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


def test_token_with_wrong_secret(client):
    forged = AuthMiddleware(supabase_client=FakeSupabase(), jwt_secret="another-secret").create_access_token("user_1", "x@example.com")
    response = client.get("/access/features/quotes", headers={"Authorization": f"Bearer {forged}"})
    assert response.status_code == 401


def test_token_for_unknown_user(client):
    response = client.get("/access/features/quotes", headers=bearer("ghost"))
    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"


def test_module_check(client):
    allowed = client.get("/access/modules/quotesManagement", params={"permission": "full_access"}, headers=bearer("user_1"))
    assert allowed.json()["allowed"] is True

    gated = client.get("/access/modules/quotesFollowUp", headers=bearer("user_1")).json()
    assert gated["allowed"] is False
    assert gated["upgrade_required"] is True
    assert gated["required_plan"] == "pro"


def test_module_check_rejects_no_access_level(client):
    response = client.get("/access/modules/dashboard", params={"permission": "no_access"}, headers=bearer("user_1"))
    assert response.status_code == 400


def test_module_action(client):
    response = client.get("/access/modules/clientInvoices/actions/delete", headers=bearer("user_1"))
    assert response.json()["allowed"] is True


def test_quota_routes(client, db):
    db.insert_row("clients", id=1, user_id="user_1", created_at="2026-03-05T00:00:00Z")

    quota = client.get("/access/quotas/clientsPerMonth", headers=bearer("user_1")).json()
    assert quota["within_limit"] is True
    assert quota["usage"] == 1
    assert quota["remaining"] == 29

    shortcut = client.get("/access/can-create/quotes", headers=bearer("user_1")).json()
    assert shortcut["unlimited"] is True

    assert client.get("/access/can-create/invoices", headers=bearer("user_1")).status_code == 200
    assert client.get("/access/can-create/widgets", headers=bearer("user_1")).status_code == 404


def test_profile_capacity(client):
    body = client.get("/access/profiles/capacity", headers=bearer("user_1")).json()
    assert body == {"can_create": False, "current": 1, "max": 1, "remaining": 0}


def test_upgrade_features(client):
    features = client.get("/access/upgrade-features", headers=bearer("user_1")).json()
    assert "multiUser" in features
    assert "quotes" not in features


def test_plan_change_requires_superadmin(client, fake_stripe):
    fake_stripe.add_subscription()
    response = client.post(
        "/admin/subscriptions",
        json={"action": "cancel", "stripe_subscription_id": "sub_123"},
        headers=bearer("user_1"),
    )
    assert response.status_code == 403
    assert fake_stripe.calls == []


def test_plan_change_upgrade(client, fake_stripe):
    fake_stripe.add_subscription(price_id="price_starter_m")
    response = client.post(
        "/admin/subscriptions",
        json={"action": "update_plan", "stripe_subscription_id": "sub_123", "plan_type": "pro", "billing_interval": "monthly"},
        headers=bearer("admin_1"),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["change"] == "upgrade"
    assert body["new_state"]["plan"] == "price_pro_m"


def test_plan_change_by_user_id(client, db, fake_stripe):
    db.tables["users"][0]["stripe_subscription_id"] = "sub_123"
    fake_stripe.add_subscription(price_id="price_pro_m")
    response = client.post(
        "/admin/subscriptions",
        json={"action": "update_plan", "user_id": "user_1", "plan_type": "starter", "billing_interval": "monthly"},
        headers=bearer("admin_1"),
    )
    body = response.json()
    assert body["change"] == "downgrade"
    assert body["new_state"]["scheduled_change"]["new_plan"] == "price_starter_m"


def test_plan_change_validation_error(client, fake_stripe):
    response = client.post(
        "/admin/subscriptions",
        json={"action": "update_plan", "stripe_subscription_id": "sub_123", "plan_type": "gold", "billing_interval": "monthly"},
        headers=bearer("admin_1"),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error_type"] == "validation"
    assert fake_stripe.calls == []


def test_plan_change_processor_error(client, fake_stripe):
    fake_stripe.add_subscription()
    fake_stripe.fail_on["cancel_subscription"] = "This subscription cannot be cancelled."
    response = client.post(
        "/admin/subscriptions",
        json={"action": "cancel", "stripe_subscription_id": "sub_123"},
        headers=bearer("admin_1"),
    )
    assert response.status_code == 502
    assert response.json()["detail"] == {
        "error": "This subscription cannot be cancelled.",
        "error_type": "processor",
    }


def test_dependency_override_for_current_user(client, fake_stripe):
    fake_stripe.add_subscription()
    app.dependency_overrides[get_current_user] = lambda: {"id": "admin_1", "email": None, "role": "superadmin"}
    response = client.post("/admin/subscriptions", json={"action": "update_status", "stripe_subscription_id": "sub_123"})
    assert response.status_code == 200
    assert response.json()["new_state"]["status"] == "active"


def test_profile_quota_route(client):
    body = client.get("/access/quotas/maxProfiles", headers=bearer("user_1")).json()
    assert body["within_limit"] is False
    assert body["usage"] == 1
    assert body["limit"] == 1
    assert body["reason"] == "quota_exceeded"
