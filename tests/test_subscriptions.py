from conftest import API, set_user_columns


def subscribe(client, vendor, plan):
    return client.post(f"{API}/subscriptions", json={"plan": plan}, headers=vendor.headers)


def rate(client, vendor):
    return client.get(f"{API}/subscriptions/commission-rate", headers=vendor.headers).json()["data"]["commission_rate"]


def test_clients_cannot_subscribe(client, make_client):
    response = subscribe(client, make_client(), "in_shop")
    assert response.status_code == 400
    assert response.json()["message"] == "User must be a vendor"


def test_unknown_plan(client, make_vendor):
    assert subscribe(client, make_vendor(), "platinum").status_code == 400


def test_free_plan_is_active(client, make_vendor):
    vendor = make_vendor()
    subscription = subscribe(client, vendor, "home_service").json()["data"]["subscription"]
    assert subscription["status"] == "active"
    assert subscription["monthly_fee"] == 0
    assert rate(client, vendor) == 10

    response = client.post(f"{API}/subscriptions/{subscription['id']}/pay", headers=vendor.headers)
    assert response.status_code == 400
    assert response.json()["message"] == "This subscription has no monthly fee"

    again = subscribe(client, vendor, "both")
    assert again.status_code == 400
    assert again.json()["message"] == "Vendor already has an active subscription"


def test_paid_plan_activates_on_payment(client, make_vendor):
    vendor = make_vendor()
    subscription = subscribe(client, vendor, "in_shop").json()["data"]["subscription"]
    assert subscription["status"] == "pending"
    assert rate(client, vendor) == 10

    broke = client.post(f"{API}/subscriptions/{subscription['id']}/pay", headers=vendor.headers)
    assert broke.status_code == 400
    assert broke.json()["message"] == "Insufficient wallet balance"

    set_user_columns(vendor.id, wallet_balance=8000)
    paid = client.post(f"{API}/subscriptions/{subscription['id']}/pay", headers=vendor.headers)
    assert paid.status_code == 200
    assert paid.json()["data"]["subscription"]["status"] == "active"
    assert rate(client, vendor) == 0
    assert client.get(f"{API}/payments/wallet/balance", headers=vendor.headers).json()["data"]["balance"] == 3000


def test_commission_applies_to_payments(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    set_user_columns(vendor.id, wallet_balance=5000)
    subscription = subscribe(client, vendor, "in_shop").json()["data"]["subscription"]
    client.post(f"{API}/subscriptions/{subscription['id']}/pay", headers=vendor.headers)

    customer = make_client()
    booking = make_booking(customer, make_service(vendor))
    payment = client.post(
        f"{API}/payments/initialize", json={"booking_id": booking["id"]}, headers=customer.headers
    ).json()["data"]["payment"]
    assert payment["commission_rate"] == 0
    assert payment["vendor_amount"] == 5000


def test_change_plan_and_cancel(client, make_vendor):
    vendor = make_vendor()
    missing = client.put(f"{API}/subscriptions/change-plan", json={"plan": "both"}, headers=vendor.headers)
    assert missing.status_code == 404
    assert missing.json()["message"] == "No active subscription found"

    subscribe(client, vendor, "home_service")
    changed = client.put(f"{API}/subscriptions/change-plan", json={"plan": "both"}, headers=vendor.headers)
    subscription = changed.json()["data"]["subscription"]
    assert subscription["type"] == "both"
    assert subscription["status"] == "pending"
    assert subscription["commission_rate"] == 12

    cancelled = client.put(f"{API}/subscriptions/cancel", json={"reason": "Closing shop"}, headers=vendor.headers)
    body = cancelled.json()["data"]["subscription"]
    assert body["status"] == "cancelled"
    assert body["auto_renew"] is False
    assert client.get(f"{API}/subscriptions/my-subscription", headers=vendor.headers).json()["data"]["subscription"] is None
    assert client.put(f"{API}/subscriptions/cancel", headers=vendor.headers).status_code == 404


def test_admin_views(client, admin, make_vendor):
    subscribe(client, make_vendor(), "home_service")
    subscribe(client, make_vendor(), "in_shop")
    stats = client.get(f"{API}/subscriptions/stats", headers=admin.headers).json()["data"]["stats"]
    assert stats["total_subscriptions"] == 2
    assert stats["active_subscriptions"] == 1
    assert stats["pending_subscriptions"] == 1

    listing = client.get(f"{API}/subscriptions", params={"plan": "in_shop"}, headers=admin.headers).json()
    assert listing["data"][0]["business_name"] == "Glow Studio"
    assert listing["meta"]["pagination"]["totalItems"] == 1
