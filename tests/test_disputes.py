import pytest

from conftest import API


@pytest.fixture
def accepted_booking(client, make_client, make_vendor, make_service, make_booking):
    """A paid, accepted booking and its two parties."""
    vendor = make_vendor()
    customer = make_client()
    booking = make_booking(customer, make_service(vendor), pay=True)
    client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    return booking, customer, vendor


def raise_dispute(client, booking, user, **fields):
    payload = {
        "booking_id": booking["id"],
        "reason": "Service not delivered",
        "description": "The stylist never arrived",
        "category": "service_quality",
        "evidence": [{"type": "text", "content": "Waited two hours"}],
    }
    payload.update(fields)
    return client.post(f"{API}/disputes", json=payload, headers=user.headers)


def balance(client, user):
    return client.get(f"{API}/payments/wallet/balance", headers=user.headers).json()["data"]["balance"]


def test_raise_dispute(client, accepted_booking):
    booking, customer, vendor = accepted_booking
    response = raise_dispute(client, booking, customer)
    assert response.status_code == 201
    dispute = response.json()["data"]["dispute"]
    assert dispute["status"] == "open"
    assert dispute["priority"] == "medium"
    assert dispute["against"] == vendor.id
    assert dispute["evidence"][0]["uploaded_by"] == customer.id

    updated = client.get(f"{API}/bookings/{booking['id']}", headers=customer.headers).json()["data"]["booking"]
    assert updated["status"] == "disputed"
    assert updated["has_dispute"] is True

    cancel = client.post(f"{API}/bookings/{booking['id']}/cancel", headers=customer.headers)
    assert cancel.status_code == 400


def test_pending_booking_cannot_be_disputed(client, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    booking = make_booking(customer, make_service(make_vendor()))
    response = raise_dispute(client, booking, customer)
    assert response.status_code == 400


def test_outsiders_cannot_dispute(client, accepted_booking, make_client):
    booking, _, _ = accepted_booking
    response = raise_dispute(client, booking, make_client())
    assert response.status_code == 403


def test_one_active_dispute_per_booking(client, accepted_booking, admin):
    booking, customer, vendor = accepted_booking
    raise_dispute(client, booking, customer)
    # the booking is now disputed, so the vendor is refused on its status
    response = raise_dispute(client, booking, vendor)
    assert response.status_code == 400


def test_evidence_and_messages(client, accepted_booking, admin, make_client):
    booking, customer, vendor = accepted_booking
    dispute = raise_dispute(client, booking, customer).json()["data"]["dispute"]

    evidence = client.post(
        f"{API}/disputes/{dispute['id']}/evidence",
        json={"evidence": [{"type": "image", "content": "https://cdn.example.com/proof.jpg"}]},
        headers=vendor.headers,
    )
    assert len(evidence.json()["data"]["dispute"]["evidence"]) == 2

    message = client.post(
        f"{API}/disputes/{dispute['id']}/messages", json={"message": "I was there on time"}, headers=vendor.headers
    )
    assert message.json()["data"]["dispute"]["messages"][0]["sender_id"] == vendor.id
    assert client.post(
        f"{API}/disputes/{dispute['id']}/messages", json={"message": "Reviewing"}, headers=admin.headers
    ).status_code == 200
    assert client.post(
        f"{API}/disputes/{dispute['id']}/messages", json={"message": "hi"}, headers=make_client().headers
    ).status_code == 403


def test_assign_moves_to_review(client, accepted_booking, admin, make_admin, make_client):
    booking, customer, _ = accepted_booking
    dispute = raise_dispute(client, booking, customer).json()["data"]["dispute"]
    support = make_admin(role="support")

    refused = client.post(
        f"{API}/disputes/{dispute['id']}/assign", json={"assign_to": customer.id}, headers=admin.headers
    )
    assert refused.status_code == 400

    response = client.post(
        f"{API}/disputes/{dispute['id']}/assign", json={"assign_to": support.id}, headers=admin.headers
    )
    assigned = response.json()["data"]["dispute"]
    assert assigned["status"] == "in_review"
    assert assigned["assigned_to_user"]["id"] == support.id

    urgent = client.put(f"{API}/disputes/{dispute['id']}/priority", json={"priority": "urgent"}, headers=admin.headers)
    assert urgent.json()["data"]["dispute"]["priority"] == "urgent"

    queue = client.get(f"{API}/disputes", params={"assigned_to": support.id}, headers=admin.headers).json()
    assert queue["meta"]["pagination"]["totalItems"] == 1


def test_refund_client_resolution(client, accepted_booking, admin):
    booking, customer, vendor = accepted_booking
    dispute = raise_dispute(client, booking, customer).json()["data"]["dispute"]
    response = client.post(
        f"{API}/disputes/{dispute['id']}/resolve",
        json={"resolution": "refund_client", "resolution_details": "No-show confirmed"},
        headers=admin.headers,
    )
    assert response.status_code == 200
    resolved = response.json()["data"]["dispute"]
    assert resolved["status"] == "resolved"
    assert resolved["booking"]["status"] == "cancelled"
    assert balance(client, customer) == 5000
    assert balance(client, vendor) == 0

    again = client.post(
        f"{API}/disputes/{dispute['id']}/resolve", json={"resolution": "pay_vendor"}, headers=admin.headers
    )
    assert again.status_code == 400

    closed = client.post(f"{API}/disputes/{dispute['id']}/close", headers=admin.headers)
    assert closed.json()["data"]["dispute"]["status"] == "closed"


def test_pay_vendor_resolution(client, accepted_booking, admin):
    booking, customer, vendor = accepted_booking
    dispute = raise_dispute(client, booking, vendor).json()["data"]["dispute"]
    client.post(f"{API}/disputes/{dispute['id']}/resolve", json={"resolution": "pay_vendor"}, headers=admin.headers)
    assert balance(client, vendor) == 4500
    detail = client.get(f"{API}/bookings/{booking['id']}", headers=vendor.headers).json()["data"]["booking"]
    assert detail["status"] == "completed"


def test_partial_refund(client, accepted_booking, admin):
    booking, customer, vendor = accepted_booking
    dispute = raise_dispute(client, booking, customer).json()["data"]["dispute"]
    missing = client.post(
        f"{API}/disputes/{dispute['id']}/resolve", json={"resolution": "partial_refund"}, headers=admin.headers
    )
    assert missing.status_code == 400

    too_much = client.post(
        f"{API}/disputes/{dispute['id']}/resolve",
        json={"resolution": "partial_refund", "refund_amount": 4000, "vendor_payment_amount": 2000},
        headers=admin.headers,
    )
    assert too_much.status_code == 400

    response = client.post(
        f"{API}/disputes/{dispute['id']}/resolve",
        json={"resolution": "partial_refund", "refund_amount": 3000, "vendor_payment_amount": 2000},
        headers=admin.headers,
    )
    assert response.status_code == 200
    assert balance(client, customer) == 3000
    assert balance(client, vendor) == 2000


def test_close_requires_resolution(client, accepted_booking, admin):
    booking, customer, _ = accepted_booking
    dispute = raise_dispute(client, booking, customer).json()["data"]["dispute"]
    response = client.post(f"{API}/disputes/{dispute['id']}/close", headers=admin.headers)
    assert response.status_code == 400


def test_visibility_and_stats(client, accepted_booking, admin, make_client):
    booking, customer, vendor = accepted_booking
    dispute = raise_dispute(client, booking, customer, category="payment").json()["data"]["dispute"]
    assert client.get(f"{API}/disputes/{dispute['id']}", headers=vendor.headers).status_code == 200
    assert client.get(f"{API}/disputes/{dispute['id']}", headers=make_client().headers).status_code == 403
    assert client.get(f"{API}/disputes/stats", headers=customer.headers).status_code == 403

    mine = client.get(f"{API}/disputes/my-disputes", headers=vendor.headers).json()
    assert mine["meta"]["pagination"]["totalItems"] == 1

    stats = client.get(f"{API}/disputes/stats", headers=admin.headers).json()["data"]["stats"]
    assert stats["total"] == 1
    assert stats["open"] == 1
    assert stats["by_category"] == [{"category": "payment", "count": 1}]
