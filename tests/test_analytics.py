import pytest

from conftest import API

ANALYTICS = f"{API}/analytics"


@pytest.fixture
def completed_booking(client, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    vendor = make_vendor()
    booking = make_booking(customer, make_service(vendor), pay=True)
    client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    client.post(f"{API}/bookings/{booking['id']}/start", headers=vendor.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=customer.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=vendor.headers)
    return booking


def test_dashboard_counts(client, admin, completed_booking):
    response = client.get(f"{ANALYTICS}/dashboard", headers=admin.headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["users"] == {"total": 3, "vendors": 1, "clients": 2, "active_vendors": 1}
    assert data["bookings"]["total"] == 1
    assert data["bookings"]["completed"] == 1
    assert data["bookings"]["completion_rate"] == 100
    assert data["revenue"]["total"] == 5000
    assert data["services"]["total"] == 1


def test_analytics_requires_analytics_role(client, make_admin, make_client):
    assert client.get(f"{ANALYTICS}/dashboard", headers=make_admin("admin").headers).status_code == 403
    assert client.get(f"{ANALYTICS}/users", headers=make_client().headers).status_code == 403
    assert client.get(f"{ANALYTICS}/dashboard").status_code == 401

    analyst = make_admin("analytics_admin")
    assert client.get(f"{ANALYTICS}/dashboard", headers=analyst.headers).status_code == 200


def test_revenue_counts_released_payments(client, admin, completed_booking):
    data = client.get(f"{ANALYTICS}/revenue", headers=admin.headers).json()["data"]
    assert data["total_revenue"] == 5000
    assert data["platform_fees"] == 500
    assert data["vendor_payouts"] == 4500


def test_booking_and_user_breakdowns(client, admin, completed_booking):
    bookings = client.get(f"{ANALYTICS}/bookings", headers=admin.headers).json()["data"]
    assert bookings["total"] == 1
    assert {"status": "completed", "count": 1} in bookings["by_status"]

    users = client.get(f"{ANALYTICS}/users", headers=admin.headers).json()["data"]
    assert users["total"] == 3
    assert users["new_today"] == 3


def test_export_report(client, admin, completed_booking):
    response = client.get(f"{ANALYTICS}/export/services", headers=admin.headers)
    assert response.status_code == 200
    body = response.json()["data"]
    assert body["type"] == "services"
    assert body["data"]["total_services"] == 1
    assert "generated_at" in body


def test_export_unknown_report(client, admin):
    response = client.get(f"{ANALYTICS}/export/weather", headers=admin.headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Invalid analytics type"


def test_audit_logs_record_admin_actions(client, admin, make_admin, make_vendor, make_service):
    service = make_service(make_vendor())
    response = client.get(f"{ANALYTICS}/audit-logs", params={"action": "approve"}, headers=admin.headers)
    assert response.status_code == 200
    logs = response.json()["data"]
    assert len(logs) == 1
    assert logs[0]["object_type"] == "service"
    assert logs[0]["object_id"] == service["id"]
    assert logs[0]["user_id"] == admin.id
    assert response.json()["meta"]["pagination"]["totalItems"] == 1

    analyst = make_admin("analytics_admin")
    assert client.get(f"{ANALYTICS}/audit-logs", headers=analyst.headers).status_code == 403


def test_period_filter(client, admin, completed_booking):
    response = client.get(f"{ANALYTICS}/users", params={"period": "day"}, headers=admin.headers)
    assert response.status_code == 200
    assert response.json()["data"]["total"] == 3

    response = client.get(f"{ANALYTICS}/users", params={"period": "fortnight"}, headers=admin.headers)
    assert response.status_code == 400
    assert response.json()["error"]["errors"][0]["field"] == "period"
