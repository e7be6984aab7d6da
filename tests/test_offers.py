import pytest

from sharplook_api.app.core.db import get_cursor

from conftest import API


OFFERS = f"{API}/bookings/offers"


@pytest.fixture
def make_offer(client, category):
    def _make(customer, **fields):
        payload = {
            "title": "Bridal hair",
            "description": "Updo for a wedding party of four",
            "category_id": category["id"],
            "proposed_price": 20000,
            "preferred_date": "2030-02-01",
            "preferred_time": "08:00",
        }
        payload.update(fields)
        response = client.post(OFFERS, json=payload, headers=customer.headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]["offer"]

    return _make


def test_create_offer(client, make_client, make_offer):
    offer = make_offer(make_client())
    assert offer["status"] == "open"
    assert offer["responses"] == []
    assert offer["category"]["name"] == "Hair Styling"
    assert offer["flexibility"] == "flexible"


def test_offer_category_must_exist(client, make_client):
    response = client.post(
        OFFERS,
        json={"title": "x", "description": "y", "category_id": 42, "proposed_price": 100},
        headers=make_client().headers,
    )
    assert response.status_code == 404


def test_available_offers_exclude_answered(client, make_client, make_vendor, make_offer):
    customer = make_client()
    first = make_offer(customer)
    second = make_offer(customer, title="Gele tying", proposed_price=5000)
    vendor = make_vendor()

    available = client.get(f"{OFFERS}/available", headers=vendor.headers).json()
    assert available["meta"]["pagination"]["totalItems"] == 2

    client.post(f"{OFFERS}/{first['id']}/respond", json={"proposed_price": 18000}, headers=vendor.headers)
    available = client.get(f"{OFFERS}/available", headers=vendor.headers).json()
    assert [offer["id"] for offer in available["data"]] == [second["id"]]

    cheap = client.get(f"{OFFERS}/available", params={"price_max": 1000}, headers=vendor.headers).json()
    assert cheap["data"] == []


def test_unverified_vendor_cannot_browse(client, make_vendor):
    vendor = make_vendor(verified=False)
    response = client.get(f"{OFFERS}/available", headers=vendor.headers)
    assert response.status_code == 403
    assert response.json()["message"] == "Your vendor account is not verified"


def test_vendor_responds_once(client, make_client, make_vendor, make_offer):
    offer = make_offer(make_client())
    vendor = make_vendor()
    response = client.post(
        f"{OFFERS}/{offer['id']}/respond",
        json={"proposed_price": 18000, "message": "Available that morning"},
        headers=vendor.headers,
    )
    assert response.status_code == 200
    responses = response.json()["data"]["offer"]["responses"]
    assert responses[0]["id"] == 1
    assert responses[0]["vendor"]["business_name"] == "Glow Studio"

    again = client.post(f"{OFFERS}/{offer['id']}/respond", json={"proposed_price": 1}, headers=vendor.headers)
    assert again.status_code == 400
    assert again.json()["message"] == "You have already responded to this offer"


def test_offer_visibility(client, make_client, make_vendor, make_offer):
    customer = make_client()
    offer = make_offer(customer)
    vendor = make_vendor()
    assert client.get(f"{OFFERS}/{offer['id']}", headers=vendor.headers).status_code == 403
    client.post(f"{OFFERS}/{offer['id']}/respond", json={"proposed_price": 18000}, headers=vendor.headers)
    assert client.get(f"{OFFERS}/{offer['id']}", headers=vendor.headers).status_code == 200
    mine = client.get(f"{OFFERS}/my-responses", headers=vendor.headers).json()
    assert [o["id"] for o in mine["data"]] == [offer["id"]]


def test_counter_and_accept_creates_booking(client, make_client, make_vendor, make_offer):
    customer = make_client()
    offer = make_offer(customer)
    vendor = make_vendor()
    client.post(f"{OFFERS}/{offer['id']}/respond", json={"proposed_price": 25000}, headers=vendor.headers)

    outsider = make_client()
    forbidden = client.post(
        f"{OFFERS}/{offer['id']}/responses/1/counter", json={"counter_price": 1}, headers=outsider.headers
    )
    assert forbidden.status_code == 403

    countered = client.post(
        f"{OFFERS}/{offer['id']}/responses/1/counter", json={"counter_price": 22000}, headers=customer.headers
    )
    assert countered.json()["data"]["offer"]["responses"][0]["counter_offer"] == 22000

    accepted = client.post(f"{OFFERS}/{offer['id']}/responses/1/accept", headers=customer.headers)
    assert accepted.status_code == 200
    data = accepted.json()["data"]
    assert data["offer"]["status"] == "accepted"
    assert data["offer"]["selected_vendor_id"] == vendor.id
    booking = data["booking"]
    assert booking["booking_type"] == "offer_based"
    assert booking["total_amount"] == 22000
    assert booking["vendor_id"] == vendor.id
    assert booking["scheduled_date"] == "2030-02-01"

    late = client.post(f"{OFFERS}/{offer['id']}/respond", json={"proposed_price": 1}, headers=make_vendor().headers)
    assert late.status_code == 400


def test_unknown_response(client, make_client, make_offer):
    customer = make_client()
    offer = make_offer(customer)
    response = client.post(f"{OFFERS}/{offer['id']}/responses/7/accept", headers=customer.headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Response not found"


def test_close_offer(client, make_client, make_offer):
    customer = make_client()
    offer = make_offer(customer)
    closed = client.post(f"{OFFERS}/{offer['id']}/close", headers=customer.headers)
    assert closed.json()["data"]["offer"]["status"] == "closed"
    again = client.post(f"{OFFERS}/{offer['id']}/close", headers=customer.headers)
    assert again.status_code == 400
    listing = client.get(f"{OFFERS}/my-offers", headers=customer.headers).json()
    assert listing["data"][0]["status"] == "closed"


def test_expired_offer_cannot_be_answered(client, make_client, make_vendor, make_offer):
    customer = make_client()
    offer = make_offer(customer)
    with get_cursor() as cursor:
        cursor.execute("UPDATE offers SET expires_at = ? WHERE id = ?", ("2000-01-01T00:00:00+00:00", offer["id"]))
    response = client.post(f"{OFFERS}/{offer['id']}/respond", json={"proposed_price": 18000},
                           headers=make_vendor().headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Offer has expired"
    detail = client.get(f"{OFFERS}/{offer['id']}", headers=customer.headers).json()["data"]["offer"]
    assert detail["status"] == "expired"
