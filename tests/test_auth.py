import pytest

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.security import create_token

from conftest import API, PASSWORD, register, register_payload, set_user_columns


def test_register_returns_user_and_tokens(client, outbox):
    payload = register_payload(email="Mixed.Case@Mail.com")
    response = client.post(f"{API}/auth/register", json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Registration successful. Please verify your email."
    user = body["data"]["user"]
    assert user["email"] == "mixed.case@mail.com"
    assert user["role"] == "client"
    assert user["status"] == "pending_verification"
    assert "password" not in user
    assert len(user["referral_code"]) == 8
    assert body["data"]["access_token"] and body["data"]["refresh_token"]
    assert "mixed.case@mail.com" in outbox["verification"]


def test_register_rejects_duplicate_email(client):
    first = register(client)
    response = client.post(f"{API}/auth/register", json=register_payload(email=first["user"]["email"]))
    assert response.status_code == 409
    assert response.json()["message"] == "Email already registered"


def test_register_validates_body(client):
    response = client.post(f"{API}/auth/register", json=register_payload(password="short", phone="abc"))
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    fields = {item["field"] for item in body["error"]["errors"]}
    assert {"password", "phone"} <= fields


def test_vendor_registration_requires_profile(client):
    response = client.post(f"{API}/auth/register", json=register_payload(is_vendor=True))
    assert response.status_code == 400
    assert response.json()["message"] == "Vendor profile is required for vendor registration"


def test_vendor_registration_creates_unverified_profile(client):
    user = register(client, is_vendor=True, vendor_profile={"business_name": "Glow", "vendor_type": "in_shop"})
    assert user["user"]["role"] == "vendor"
    assert user["user"]["is_vendor"] is True
    assert user["user"]["vendor_profile"]["business_name"] == "Glow"
    assert user["user"]["vendor_profile"]["is_verified"] is False


def test_verify_email_activates_account(client, outbox):
    user = register(client)
    token = outbox["verification"][user["user"]["email"]]
    response = client.post(f"{API}/auth/verify-email", json={"token": token})
    assert response.status_code == 200
    verified = response.json()["data"]["user"]
    assert verified["is_email_verified"] is True
    assert verified["status"] == "active"

    again = client.post(f"{API}/auth/verify-email", json={"token": token})
    assert again.status_code == 400


def test_resend_verification_for_verified_email_fails(client, outbox):
    user = register(client)
    client.post(f"{API}/auth/verify-email", json={"token": outbox["verification"][user["user"]["email"]]})
    response = client.post(f"{API}/auth/resend-verification", json={"email": user["user"]["email"]})
    assert response.status_code == 400
    assert response.json()["message"] == "Email is already verified"


def test_login_and_me(client):
    user = register(client)
    response = client.post(f"{API}/auth/login", json={"email": user["user"]["email"], "password": PASSWORD})
    assert response.status_code == 200
    token = response.json()["data"]["access_token"]
    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["user"]["id"] == user.id


def test_login_with_wrong_password(client):
    user = register(client)
    response = client.post(f"{API}/auth/login", json={"email": user["user"]["email"], "password": "Wrong1234"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"


def test_account_locks_after_repeated_failures(client, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    user = register(client)
    email = user["user"]["email"]
    for _ in range(5):
        client.post(f"{API}/auth/login", json={"email": email, "password": "Wrong1234"})
    response = client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 401
    assert "locked" in response.json()["message"]


def test_failed_logins_are_rate_limited(client):
    user = register(client)
    email = user["user"]["email"]
    codes = [
        client.post(f"{API}/auth/login", json={"email": email, "password": "Wrong1234"}).status_code
        for _ in range(6)
    ]
    assert codes[:5] == [401] * 5
    assert codes[5] == 429


def test_me_requires_token(client):
    response = client.get(f"{API}/auth/me")
    assert response.status_code == 401
    assert response.json()["message"] == "No token provided. Please log in"


def test_refresh_rotates_tokens(client):
    user = register(client)
    response = client.post(f"{API}/auth/refresh-token", json={"refresh_token": user["refresh_token"]})
    assert response.status_code == 200
    fresh = response.json()["data"]
    assert fresh["refresh_token"] != user["refresh_token"]

    stale = client.post(f"{API}/auth/refresh-token", json={"refresh_token": user["refresh_token"]})
    assert stale.status_code == 401


def test_logout_revokes_refresh_token(client):
    user = register(client)
    assert client.post(f"{API}/auth/logout", headers=user.headers).status_code == 200
    response = client.post(f"{API}/auth/refresh-token", json={"refresh_token": user["refresh_token"]})
    assert response.status_code == 401


def test_access_token_is_not_a_refresh_token(client):
    user = register(client)
    response = client.post(f"{API}/auth/refresh-token", json={"refresh_token": user["access_token"]})
    assert response.status_code == 401


def test_password_reset_flow(client, outbox):
    user = register(client)
    email = user["user"]["email"]
    response = client.post(f"{API}/auth/forgot-password", json={"email": email})
    assert response.status_code == 200
    token = outbox["reset"][email]

    response = client.post(f"{API}/auth/reset-password", json={"token": token, "new_password": "Brandnew123"})
    assert response.status_code == 200
    login = client.post(f"{API}/auth/login", json={"email": email, "password": "Brandnew123"})
    assert login.status_code == 200


def test_forgot_password_hides_unknown_email(client, outbox):
    response = client.post(f"{API}/auth/forgot-password", json={"email": "nobody@mail.com"})
    assert response.status_code == 200
    assert outbox["reset"] == {}


def test_change_password_checks_current(client):
    user = register(client)
    wrong = client.post(
        f"{API}/auth/change-password",
        json={"current_password": "Nope12345", "new_password": "Another123"},
        headers=user.headers,
    )
    assert wrong.status_code == 401
    ok = client.post(
        f"{API}/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "Another123"},
        headers=user.headers,
    )
    assert ok.status_code == 200


def test_referral_code_at_registration(client):
    referrer = register(client)
    referee = register(client, referred_by=referrer["user"]["referral_code"])
    assert referee["user"]["referred_by"] == referrer.id


def test_expired_token_is_rejected(client):
    user = register(client)
    token = create_token({"id": user.id, "email": user["user"]["email"], "role": "client"}, settings.secret_key, -10)
    response = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    body = response.json()
    assert body["error"]["code"] == "TOKEN_EXPIRED"
    assert body["message"] == "Your token has expired. Please log in again"


def test_tampered_token_is_rejected(client):
    user = register(client)
    forged = create_token({"id": user.id, "role": "super_admin"}, "not-the-secret", 3600)
    for token in ("garbage", forged):
        response = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"


@pytest.mark.parametrize("status", ["suspended", "inactive"])
def test_deactivated_account_is_rejected(client, status):
    user = register(client)
    set_user_columns(user.id, status=status)
    response = client.get(f"{API}/auth/me", headers=user.headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Your account has been deactivated"
