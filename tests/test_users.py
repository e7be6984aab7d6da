from conftest import API, register


def test_profile_update(client, make_client):
    user = make_client()
    response = client.put(f"{API}/users/profile", json={"first_name": "Chioma"}, headers=user.headers)
    assert response.status_code == 200
    updated = response.json()["data"]["user"]
    assert updated["first_name"] == "Chioma"
    assert updated["last_name"] == "Obi"
    assert updated["full_name"] == "Chioma Obi"


def test_profile_phone_must_be_unique(client, make_client):
    first = make_client()
    second = make_client()
    response = client.put(
        f"{API}/users/profile", json={"phone": first["user"]["phone"]}, headers=second.headers
    )
    assert response.status_code == 409


def test_preferences_are_merged(client, make_client):
    user = make_client()
    response = client.put(f"{API}/users/preferences", json={"dark_mode": True}, headers=user.headers)
    assert response.status_code == 200
    preferences = response.json()["data"]["preferences"]
    assert preferences["dark_mode"] is True
    assert preferences["notifications_enabled"] is True


def test_withdrawal_pin(client, make_client):
    user = make_client()
    bad = client.post(f"{API}/users/withdrawal-pin", json={"pin": "12ab"}, headers=user.headers)
    assert bad.status_code == 400
    assert bad.json()["message"] == "PIN must be 4-6 digits"

    assert client.post(f"{API}/users/withdrawal-pin", json={"pin": "4321"}, headers=user.headers).status_code == 200
    ok = client.post(f"{API}/users/verify-withdrawal-pin", json={"pin": "4321"}, headers=user.headers)
    assert ok.status_code == 200
    assert ok.json()["data"]["valid"] is True
    wrong = client.post(f"{API}/users/verify-withdrawal-pin", json={"pin": "0000"}, headers=user.headers)
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Invalid withdrawal PIN"

    profile = client.get(f"{API}/users/profile", headers=user.headers).json()["data"]["user"]
    assert profile["has_withdrawal_pin"] is True
    assert "withdrawal_pin" not in profile


def test_become_vendor_once(client, make_client):
    user = make_client()
    body = {"business_name": "Fade Lab", "vendor_type": "both",
            "location": {"coordinates": [3.3792, 6.5244], "city": "Lagos"}}
    response = client.post(f"{API}/users/become-vendor", json=body, headers=user.headers)
    assert response.status_code == 200
    vendor = response.json()["data"]["user"]
    assert vendor["is_vendor"] is True
    assert vendor["vendor_profile"]["is_verified"] is False
    assert vendor["vendor_profile"]["latitude"] == 6.5244

    again = client.post(f"{API}/users/become-vendor", json=body, headers=user.headers)
    assert again.status_code == 400
    assert again.json()["message"] == "User is already a vendor"


def test_vendor_profile_update_requires_vendor(client, make_client, make_vendor):
    customer = make_client()
    response = client.put(f"{API}/users/vendor-profile", json={"business_name": "X"}, headers=customer.headers)
    assert response.status_code == 400

    vendor = make_vendor()
    response = client.put(
        f"{API}/users/vendor-profile", json={"business_description": "Walk-ins welcome"}, headers=vendor.headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["user"]["vendor_profile"]["business_description"] == "Walk-ins welcome"


def test_stats_include_vendor_section(client, make_vendor):
    vendor = make_vendor()
    stats = client.get(f"{API}/users/stats", headers=vendor.headers).json()["data"]["stats"]
    assert stats["wallet_balance"] == 0
    assert stats["vendor_stats"]["is_verified"] is True


def test_public_vendor_listing_only_shows_verified(client, make_vendor):
    verified = make_vendor(business_name="Verified Cuts")
    make_vendor(verified=False, business_name="Hidden Cuts")
    response = client.get(f"{API}/users/vendors")
    assert response.status_code == 200
    body = response.json()
    ids = [vendor["id"] for vendor in body["data"]]
    assert ids == [verified.id]
    assert body["meta"]["pagination"]["totalItems"] == 1

    detail = client.get(f"{API}/users/vendors/{verified.id}")
    assert detail.status_code == 200
    assert detail.json()["data"]["vendor"]["id"] == verified.id


def test_vendor_detail_for_client_is_rejected(client, make_client):
    customer = make_client()
    response = client.get(f"{API}/users/vendors/{customer.id}")
    assert response.status_code == 400


def test_admin_routes_require_admin_role(client, make_client):
    user = make_client()
    response = client.get(f"{API}/users", headers=user.headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_admin_verifies_vendor(client, admin, make_vendor):
    vendor = make_vendor(verified=False)
    response = client.post(f"{API}/users/{vendor.id}/verify-vendor", headers=admin.headers)
    assert response.status_code == 200
    assert response.json()["data"]["user"]["vendor_profile"]["is_verified"] is True


def test_suspended_user_loses_access(client, admin, make_client):
    user = make_client()
    response = client.put(f"{API}/users/{user.id}/status", json={"status": "suspended"}, headers=admin.headers)
    assert response.status_code == 200
    assert client.get(f"{API}/users/profile", headers=user.headers).status_code == 401


def test_admin_lists_and_filters_users(client, admin, make_client, make_vendor):
    make_client()
    make_vendor()
    response = client.get(f"{API}/users", params={"is_vendor": True}, headers=admin.headers)
    assert response.status_code == 200
    assert all(user["is_vendor"] for user in response.json()["data"])


def test_soft_delete_and_restore(client, make_admin, make_client):
    super_admin = make_admin("super_admin")
    plain_admin = make_admin("admin")
    user = make_client()

    forbidden = client.delete(f"{API}/users/{user.id}", headers=plain_admin.headers)
    assert forbidden.status_code == 403

    assert client.delete(f"{API}/users/{user.id}", headers=super_admin.headers).status_code == 200
    assert client.get(f"{API}/users/profile", headers=user.headers).status_code == 401

    restored = client.post(f"{API}/users/{user.id}/restore", headers=super_admin.headers)
    assert restored.status_code == 200
    assert client.get(f"{API}/users/profile", headers=user.headers).status_code == 200


def test_unknown_user_is_404(client, admin):
    response = client.get(f"{API}/users/9999", headers=admin.headers)
    assert response.status_code == 404
    assert response.json()["message"] == "User not found"


def test_pending_user_can_use_api(client):
    user = register(client)
    assert client.get(f"{API}/users/profile", headers=user.headers).status_code == 200
