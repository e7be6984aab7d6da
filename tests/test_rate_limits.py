from sharplook_api.app.core.config import settings

from conftest import API, PASSWORD, register


def limited(response, code):
    assert response.status_code == 429
    assert response.json()["error"]["code"] == code


def test_forwarded_for_header_does_not_reset_the_auth_limit(client):
    email = register(client)["user"]["email"]
    codes = [
        client.post(
            f"{API}/auth/login",
            json={"email": email, "password": "Wrong1234"},
            headers={"X-Forwarded-For": f"10.0.0.{attempt}"},
        ).status_code
        for attempt in range(8)
    ]
    assert codes[:5] == [401] * 5
    assert set(codes[5:]) == {429}


def test_successful_logins_are_not_counted(client):
    email = register(client)["user"]["email"]
    for _ in range(8):
        response = client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 200


def test_auth_limit_message(client):
    email = register(client)["user"]["email"]
    for _ in range(5):
        client.post(f"{API}/auth/login", json={"email": email, "password": "Wrong1234"})
    response = client.post(f"{API}/auth/login", json={"email": email, "password": "Wrong1234"})
    limited(response, "AUTH_RATE_LIMIT_EXCEEDED")
    assert response.json()["message"] == "Too many authentication attempts, please try again later"


def test_search_limit(client):
    for _ in range(30):
        assert client.get(f"{API}/services").status_code == 200
    limited(client.get(f"{API}/services"), "SEARCH_RATE_LIMIT_EXCEEDED")


def test_upload_limit(client, make_client):
    user = make_client()
    body = {"evidence": [{"type": "text", "content": "Receipt"}]}
    for _ in range(10):
        assert client.post(f"{API}/disputes/999/evidence", json=body, headers=user.headers).status_code == 404
    limited(
        client.post(f"{API}/disputes/999/evidence", json=body, headers=user.headers),
        "UPLOAD_RATE_LIMIT_EXCEEDED",
    )


def test_payment_limit(client, make_client):
    user = make_client()
    for _ in range(20):
        response = client.post(f"{API}/payments/initialize", json={"booking_id": 999}, headers=user.headers)
        assert response.status_code == 404
    response = client.post(f"{API}/payments/initialize", json={"booking_id": 999}, headers=user.headers)
    limited(response, "PAYMENT_RATE_LIMIT_EXCEEDED")
    assert response.json()["message"] == "Too many payment requests, please try again later"


def test_limits_can_be_switched_off(client, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    for _ in range(35):
        assert client.get(f"{API}/services").status_code == 200
