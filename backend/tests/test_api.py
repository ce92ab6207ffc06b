"""API tests using FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from selliox.api.main import app
from selliox.referral.codes import code_registry

PASSWORD = "Sellio123"


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _register(client, email, referral_code=None):
    payload = {"email": email, "password": PASSWORD, "name": email.split("@")[0]}
    if referral_code:
        payload["referral_code"] = referral_code
    response = client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == 201, response.text
    body = response.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_register_grants_signup_ticket(client):
    _, user = _register(client, "seller@example.com")

    assert user["email"] == "seller@example.com"
    assert user["active_draw_tickets"] == 1


def test_register_rejects_weak_password_and_duplicates(client):
    weak = client.post("/api/v1/auth/register", json={"email": "weak@example.com", "password": "password"})
    assert weak.status_code == 422

    _register(client, "dupe@example.com")
    dupe = client.post("/api/v1/auth/register", json={"email": "dupe@example.com", "password": PASSWORD})
    assert dupe.status_code == 409
    assert dupe.json()["code"] == "CONFLICT"


def test_register_with_unknown_code_fails(client):
    response = client.post(
        "/api/v1/auth/register",
        json={"email": "new@example.com", "password": PASSWORD, "referral_code": "NOPE42"},
    )
    assert response.status_code == 404
    assert response.json() == {"detail": "Invalid or inactive referral code", "code": "NOT_FOUND"}


def test_login(client):
    _register(client, "login@example.com")

    ok = client.post("/api/v1/auth/login", json={"email": "LOGIN@example.com", "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["token_type"] == "bearer"

    bad = client.post("/api/v1/auth/login", json={"email": "login@example.com", "password": "Wrong1234"})
    assert bad.status_code == 401


def test_referral_flow(client):
    referrer_headers, referrer = _register(client, "referrer@example.com")

    generated = client.post("/api/v1/referral/generate-code", headers=referrer_headers)
    assert generated.status_code == 200
    code = generated.json()["code"]
    assert generated.json()["link"].endswith(f"/referral/{code}")

    validated = client.get(f"/api/v1/referral/validate-code/{code.lower()}")
    assert validated.json()["referrer"]["id"] == referrer["id"]

    redeemer_headers, _ = _register(client, "buyer@example.com", referral_code=code)
    applied = client.post("/api/v1/referral/apply-code", json={"code": code}, headers=redeemer_headers)
    assert applied.status_code == 200
    assert applied.json()["created"] is False
    assert applied.json()["reward"]["tickets"] == 5

    repeat = client.post("/api/v1/referral/apply-code", json={"code": code}, headers=redeemer_headers)
    assert repeat.status_code == 409
    assert repeat.json()["code"] == "ALREADY_PROCESSED"

    data = client.get("/api/v1/referral/user-data", headers=referrer_headers).json()
    assert data["total_tickets"] == 6
    assert data["referral_stats"]["successful_conversions"] == 1

    notifications = client.get("/api/v1/referral/notifications", headers=referrer_headers).json()["notifications"]
    assert len(notifications) == 1
    read = client.post(f"/api/v1/referral/notifications/read/{notifications[0]['id']}", headers=referrer_headers)
    assert read.status_code == 200
    missing = client.post("/api/v1/referral/notifications/read/9999", headers=referrer_headers)
    assert missing.status_code == 404


def test_own_code_is_rejected(client):
    headers, _ = _register(client, "self@example.com")
    code = client.post("/api/v1/referral/generate-code", headers=headers).json()["code"]

    response = client.post("/api/v1/referral/apply-code", json={"code": code}, headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "SELF_REFERRAL"


def test_requires_authentication(client):
    assert client.get("/api/v1/referral/dashboard").status_code == 401
    assert client.post("/api/v1/admin/run-draw").status_code == 401


def test_admin_routes_require_admin(client):
    headers, _ = _register(client, "member@example.com")

    response = client.get("/api/v1/admin/draw-management", headers=headers)

    assert response.status_code == 403
    assert response.json() == {"detail": "Access denied. Admin privileges required.", "code": "UNAUTHORIZED"}


def test_draw_and_payout_flow(client, make_user, auth_header):
    admin_headers = auth_header(make_user(is_admin=True))
    winner_headers, winner = _register(client, "lucky@example.com")

    drawn = client.post("/api/v1/admin/run-draw", json={"month": 5, "year": 2026}, headers=admin_headers)
    assert drawn.status_code == 200
    draw = drawn.json()["draw"]
    assert draw["winner"] == {"user_id": winner["id"], "tickets": 1}

    again = client.post("/api/v1/admin/run-draw", json={"month": 5, "year": 2026}, headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_COMPLETED"
    assert again.json()["draw"]["id"] == draw["id"]

    early = client.post(f"/api/v1/admin/process-payment/{draw['id']}", headers=admin_headers)
    assert early.status_code == 409
    assert early.json()["code"] == "NOT_CLAIMED"

    submitted = client.post(
        "/api/v1/referral/payment-details",
        json={"bank_name": "First Bank", "account_holder": "Lucky", "account_number": "9876543210"},
        headers=winner_headers,
    )
    assert submitted.status_code == 201
    assert submitted.json()["account_number"] == "****3210"

    paid = client.post(f"/api/v1/admin/process-payment/{draw['id']}", headers=admin_headers)
    assert paid.status_code == 200
    assert paid.json()["draw"]["payment_status"] == "paid"

    summary = client.get("/api/v1/admin/draw-management", headers=admin_headers).json()
    assert summary["pending_payments"] == 0


def test_admin_promotion_and_code_deactivation(client, make_user, auth_header):
    admin_headers = auth_header(make_user(is_admin=True))
    member = make_user()
    code = code_registry.generate_code(member.id).code

    granted = client.post(
        "/api/v1/admin/promotions",
        json={"user_id": member.id, "tickets": 4},
        headers=admin_headers,
    )
    assert granted.status_code == 200
    assert granted.json()["draw_entry"]["source"] == "promotion"

    deactivated = client.post(f"/api/v1/admin/referral-codes/{code}/deactivate", headers=admin_headers)
    assert deactivated.json()["is_active"] is False
    assert client.get(f"/api/v1/referral/validate-code/{code}").status_code == 404
