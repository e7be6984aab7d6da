from conftest import API


def test_create_booking(client, make_client, make_vendor, make_service):
    vendor = make_vendor()
    service = make_service(vendor)
    customer = make_client()
    response = client.post(
        f"{API}/bookings",
        json={"service_id": service["id"], "scheduled_date": "2030-01-15", "scheduled_time": "10:30"},
        headers=customer.headers,
    )
    assert response.status_code == 201
    booking = response.json()["data"]["booking"]
    assert booking["status"] == "pending"
    assert booking["payment_status"] == "pending"
    assert booking["total_amount"] == 5000
    assert booking["vendor"]["business_name"] == "Glow Studio"
    assert booking["status_history"][0]["status"] == "pending"

    inbox = client.get(f"{API}/notifications", headers=vendor.headers).json()
    assert inbox["data"][0]["title"] == "New booking request"


def test_cannot_book_unpublished_service(client, make_client, make_vendor, make_service):
    service = make_service(make_vendor(), approve=False)
    response = client.post(
        f"{API}/bookings", json={"service_id": service["id"], "scheduled_date": "2030-01-15"},
        headers=make_client().headers,
    )
    assert response.status_code == 404


def test_cannot_book_own_service(client, make_vendor, make_service):
    vendor = make_vendor()
    service = make_service(vendor)
    response = client.post(
        f"{API}/bookings", json={"service_id": service["id"], "scheduled_date": "2030-01-15"}, headers=vendor.headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == "You cannot book your own service"


def test_home_service_requires_location(client, make_client, make_vendor, make_service):
    service = make_service(make_vendor(vendor_type="home_service"))
    customer = make_client()
    payload = {"service_id": service["id"], "scheduled_date": "2030-01-15"}
    missing = client.post(f"{API}/bookings", json=payload, headers=customer.headers)
    assert missing.status_code == 400
    assert missing.json()["message"] == "Location is required for home service"

    payload["location"] = {"coordinates": [3.3792, 6.5244], "address": "12 Allen Avenue"}
    response = client.post(f"{API}/bookings", json=payload, headers=customer.headers)
    assert response.status_code == 201
    assert response.json()["data"]["booking"]["location"]["address"] == "12 Allen Avenue"


def test_invalid_time_format(client, make_client, make_vendor, make_service):
    service = make_service(make_vendor())
    response = client.post(
        f"{API}/bookings",
        json={"service_id": service["id"], "scheduled_date": "2030-01-15", "scheduled_time": "25:00"},
        headers=make_client().headers,
    )
    assert response.status_code == 400


def test_accept_requires_escrowed_payment(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    booking = make_booking(make_client(), make_service(vendor))
    response = client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Payment must be completed before accepting"


def test_only_vendor_accepts(client, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    booking = make_booking(customer, make_service(make_vendor()), pay=True)
    response = client.post(f"{API}/bookings/{booking['id']}/accept", headers=customer.headers)
    assert response.status_code == 403


def test_full_lifecycle_releases_escrow(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    customer = make_client()
    booking = make_booking(customer, make_service(vendor), pay=True)
    assert booking["payment_status"] == "escrowed"

    accepted = client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    assert accepted.json()["data"]["booking"]["status"] == "accepted"

    assert client.post(f"{API}/bookings/{booking['id']}/start", headers=customer.headers).status_code == 403
    started = client.post(f"{API}/bookings/{booking['id']}/start", headers=vendor.headers)
    assert started.json()["data"]["booking"]["status"] == "in_progress"

    half = client.post(f"{API}/bookings/{booking['id']}/complete", headers=customer.headers)
    assert half.json()["message"] == "Booking marked as complete"
    half_booking = half.json()["data"]["booking"]
    assert half_booking["status"] == "in_progress"
    assert half_booking["client_marked_complete"] is True

    done = client.post(f"{API}/bookings/{booking['id']}/complete", headers=vendor.headers)
    assert done.json()["message"] == "Booking completed successfully"
    completed = done.json()["data"]["booking"]
    assert completed["status"] == "completed"
    assert completed["payment_status"] == "released"
    assert [entry["status"] for entry in completed["status_history"]] == [
        "pending", "accepted", "in_progress", "completed"
    ]

    balance = client.get(f"{API}/payments/wallet/balance", headers=vendor.headers).json()["data"]["balance"]
    assert balance == 4500


def test_cancel_refunds_client(client, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    booking = make_booking(customer, make_service(make_vendor()), pay=True)
    response = client.post(
        f"{API}/bookings/{booking['id']}/cancel", json={"reason": "Change of plans"}, headers=customer.headers
    )
    assert response.status_code == 200
    cancelled = response.json()["data"]["booking"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["payment_status"] == "refunded"
    assert cancelled["cancellation_reason"] == "Change of plans"
    assert client.get(f"{API}/payments/wallet/balance", headers=customer.headers).json()["data"]["balance"] == 5000

    again = client.post(f"{API}/bookings/{booking['id']}/cancel", headers=customer.headers)
    assert again.status_code == 400


def test_vendor_reject_refunds(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    customer = make_client()
    booking = make_booking(customer, make_service(vendor), pay=True)
    response = client.post(
        f"{API}/bookings/{booking['id']}/reject", json={"reason": "Fully booked"}, headers=vendor.headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["booking"]["status"] == "cancelled"
    assert client.get(f"{API}/payments/wallet/balance", headers=customer.headers).json()["data"]["balance"] == 5000


def test_strangers_cannot_view(client, make_client, make_vendor, make_service, make_booking, admin):
    booking = make_booking(make_client(), make_service(make_vendor()))
    stranger = make_client()
    assert client.get(f"{API}/bookings/{booking['id']}", headers=stranger.headers).status_code == 403
    assert client.get(f"{API}/bookings/{booking['id']}", headers=admin.headers).status_code == 200
    assert client.get(f"{API}/bookings/9999", headers=admin.headers).status_code == 404


def test_notes_are_per_party(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    customer = make_client()
    booking = make_booking(customer, make_service(vendor))
    client.put(f"{API}/bookings/{booking['id']}", json={"client_notes": "Gate code 1234"}, headers=customer.headers)
    response = client.put(
        f"{API}/bookings/{booking['id']}",
        json={"vendor_notes": "Bring extensions", "client_notes": "ignored"},
        headers=vendor.headers,
    )
    updated = response.json()["data"]["booking"]
    assert updated["client_notes"] == "Gate code 1234"
    assert updated["vendor_notes"] == "Bring extensions"


def test_my_bookings_and_stats(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    customer = make_client()
    service = make_service(vendor)
    make_booking(customer, service)
    second = make_booking(customer, service)
    client.post(f"{API}/bookings/{second['id']}/cancel", headers=customer.headers)

    mine = client.get(f"{API}/bookings/my-bookings", params={"status": "pending"}, headers=customer.headers).json()
    assert mine["meta"]["pagination"]["totalItems"] == 1

    incoming = client.get(f"{API}/bookings/my-bookings", params={"role": "vendor"}, headers=vendor.headers).json()
    assert incoming["meta"]["pagination"]["totalItems"] == 2

    stats = client.get(f"{API}/bookings/stats", headers=customer.headers).json()["data"]["stats"]
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["cancelled"] == 1
