"""
Shared fixtures for the API tests.

Every test runs against a fresh SQLite file, with rate limiters reset,
outgoing email captured in memory and Paystack replaced by a local
fake so no network call is ever made.
"""

import os

# Settings are read when ``core.config`` is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_secret")
os.environ.setdefault("RATE_LIMIT_MAX_REQUESTS", "10000")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import itertools
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.db import get_cursor, init_db
from sharplook_api.app.core.rate_limit import reset_all_limiters
from sharplook_api.app.main import app
from sharplook_api.app.services.email_service import EmailService
from sharplook_api.app.services.paystack import PaystackGateway


API = "/api/v1"
PASSWORD = "Password123"

_counter = itertools.count(1)


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", str(tmp_path / "sharplook.db"))
    init_db()
    reset_all_limiters()
    yield
    reset_all_limiters()


@pytest.fixture(autouse=True)
def outbox(monkeypatch) -> Dict[str, Dict[str, str]]:
    """Capture verification and reset tokens by recipient email."""
    sent: Dict[str, Dict[str, str]] = {"verification": {}, "reset": {}}

    async def fake_welcome(user, verification_token):
        sent["verification"][user["email"]] = verification_token
        return True

    async def fake_reset(user, reset_token):
        sent["reset"][user["email"]] = reset_token
        return True

    monkeypatch.setattr(EmailService, "send_welcome_email", fake_welcome)
    monkeypatch.setattr(EmailService, "send_password_reset_email", fake_reset)
    return sent


class FakePaystack:
    """Stands in for the Paystack HTTP API."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.verify_status = "success"

    def request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append((method, path, payload))
        if path == "/transaction/initialize":
            return {
                "authorization_url": f"https://checkout.paystack.com/{payload['reference']}",
                "access_code": "access_" + payload["reference"],
                "reference": payload["reference"],
            }
        if path.startswith("/transaction/verify/"):
            return {"status": self.verify_status, "channel": "card", "reference": path.rsplit("/", 1)[1]}
        if path == "/transferrecipient":
            return {"recipient_code": "RCP_test"}
        if path == "/transfer":
            return {"transfer_code": "TRF_test"}
        raise AssertionError(f"Unexpected Paystack call {method} {path}")


@pytest.fixture(autouse=True)
def paystack(monkeypatch) -> FakePaystack:
    fake = FakePaystack()
    monkeypatch.setattr(
        PaystackGateway, "_request", classmethod(lambda cls, method, path, payload=None: fake.request(method, path, payload))
    )
    return fake


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_payload(**overrides: Any) -> Dict[str, Any]:
    n = next(_counter)
    payload = {
        "first_name": "Ada",
        "last_name": "Obi",
        "email": f"user{n}@mail.com",
        "phone": f"+234800{n:07d}",
        "password": PASSWORD,
    }
    payload.update(overrides)
    return payload


def vendor_profile(**overrides: Any) -> Dict[str, Any]:
    profile = {"business_name": "Glow Studio", "vendor_type": "in_shop"}
    profile.update(overrides)
    return profile


class User(dict):
    """Registered account: the serialised user plus its tokens."""

    @property
    def id(self) -> int:
        return self["user"]["id"]

    @property
    def headers(self) -> Dict[str, str]:
        return auth_headers(self["access_token"])


def register(client: TestClient, **overrides: Any) -> User:
    response = client.post(f"{API}/auth/register", json=register_payload(**overrides))
    assert response.status_code == 201, response.text
    return User(response.json()["data"])


def set_user_columns(user_id: int, **columns: Any) -> None:
    assignments = ", ".join(f"{name} = ?" for name in columns)
    with get_cursor() as cursor:
        cursor.execute(f"UPDATE users SET {assignments} WHERE id = ?", (*columns.values(), user_id))


def verify_vendor(user_id: int) -> None:
    with get_cursor() as cursor:
        cursor.execute("UPDATE vendor_profiles SET is_verified = 1 WHERE user_id = ?", (user_id,))


@pytest.fixture
def make_client(client):
    def _make(**overrides: Any) -> User:
        user = register(client, **overrides)
        set_user_columns(user.id, status="active", is_email_verified=1)
        return user

    return _make


@pytest.fixture
def make_vendor(client):
    def _make(verified: bool = True, **profile: Any) -> User:
        user = register(client, is_vendor=True, vendor_profile=vendor_profile(**profile))
        set_user_columns(user.id, status="active", is_email_verified=1)
        if verified:
            verify_vendor(user.id)
        return user

    return _make


@pytest.fixture
def make_admin(client):
    def _make(role: str = "super_admin") -> User:
        user = register(client)
        set_user_columns(user.id, status="active", is_email_verified=1, role=role)
        return user

    return _make


@pytest.fixture
def admin(make_admin) -> User:
    return make_admin()


@pytest.fixture
def category(client, admin) -> Dict[str, Any]:
    response = client.post(f"{API}/categories", json={"name": "Hair Styling"}, headers=admin.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["category"]


@pytest.fixture
def make_service(client, admin, category):
    def _make(vendor: User, approve: bool = True, **fields: Any) -> Dict[str, Any]:
        payload = {
            "name": "Braiding",
            "description": "Knotless braids, any length",
            "category_id": category["id"],
            "base_price": 5000,
            "duration": 120,
        }
        payload.update(fields)
        response = client.post(f"{API}/services", json=payload, headers=vendor.headers)
        assert response.status_code == 201, response.text
        service = response.json()["data"]["service"]
        if approve:
            response = client.post(f"{API}/services/{service['id']}/approve", headers=admin.headers)
            assert response.status_code == 200, response.text
            service = response.json()["data"]["service"]
        return service

    return _make


@pytest.fixture
def make_booking(client):
    def _make(customer: User, service: Dict[str, Any], pay: bool = False, **fields: Any) -> Dict[str, Any]:
        payload = {"service_id": service["id"], "scheduled_date": "2030-01-15", "scheduled_time": "10:30"}
        payload.update(fields)
        response = client.post(f"{API}/bookings", json=payload, headers=customer.headers)
        assert response.status_code == 201, response.text
        booking = response.json()["data"]["booking"]
        if pay:
            response = client.post(
                f"{API}/payments/initialize", json={"booking_id": booking["id"]}, headers=customer.headers
            )
            assert response.status_code == 200, response.text
            reference = response.json()["data"]["payment"]["reference"]
            response = client.get(f"{API}/payments/verify/{reference}", headers=customer.headers)
            assert response.status_code == 200, response.text
            booking = client.get(f"{API}/bookings/{booking['id']}", headers=customer.headers).json()["data"]["booking"]
        return booking

    return _make
