import pytest

from conftest import API


@pytest.fixture
def completed(client, make_client, make_vendor, make_service, make_booking):
    """A completed booking with its customer, vendor and service."""
    vendor = make_vendor()
    customer = make_client()
    service = make_service(vendor)
    booking = make_booking(customer, service, pay=True)
    client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=customer.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=vendor.headers)
    return booking, customer, vendor, service


def review(client, booking, user, rating=5, **fields):
    payload = {"booking_id": booking["id"], "rating": rating, "comment": "Neat and on time"}
    payload.update(fields)
    return client.post(f"{API}/reviews", json=payload, headers=user.headers)


def test_client_review_updates_ratings(client, completed):
    booking, customer, vendor, service = completed
    response = review(client, booking, customer, rating=4, title="Lovely")
    assert response.status_code == 201
    created = response.json()["data"]["review"]
    assert created["reviewer_type"] == "client"
    assert created["reviewee"]["id"] == vendor.id

    detail = client.get(f"{API}/services/{service['id']}").json()["data"]["service"]
    assert detail["average_rating"] == 4
    assert detail["total_reviews"] == 1

    booking_detail = client.get(f"{API}/bookings/{booking['id']}", headers=customer.headers).json()["data"]["booking"]
    assert booking_detail["has_review"] is True


def test_vendor_reviews_client(client, completed):
    booking, customer, vendor, service = completed
    response = review(client, booking, vendor, rating=5, comment="Great client")
    assert response.json()["data"]["review"]["reviewee"]["id"] == customer.id
    listing = client.get(f"{API}/reviews/service/{service['id']}").json()
    assert listing["data"] == []


def test_review_rules(client, completed, make_client, make_vendor, make_service, make_booking):
    booking, customer, vendor, _ = completed
    assert review(client, booking, make_client()).status_code == 403
    review(client, booking, customer)
    duplicate = review(client, booking, customer)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "You have already reviewed this booking"

    pending = make_booking(customer, make_service(make_vendor(), name="Silk press"))
    response = review(client, pending, customer)
    assert response.status_code == 400
    assert response.json()["message"] == "Can only review completed bookings"


def test_rating_range_is_validated(client, completed):
    booking, customer, _, _ = completed
    assert review(client, booking, customer, rating=6).status_code == 400
    assert review(client, booking, customer, comment="   ").status_code == 400


def test_review_via_service_route(client, completed, make_vendor, make_service):
    booking, customer, _, service = completed
    other = make_service(make_vendor(), name="Wig install")
    wrong = client.post(
        f"{API}/services/{other['id']}/reviews",
        json={"booking_id": booking["id"], "rating": 5, "comment": "Good"},
        headers=customer.headers,
    )
    assert wrong.status_code == 400
    ok = client.post(
        f"{API}/services/{service['id']}/reviews",
        json={"booking_id": booking["id"], "rating": 5, "comment": "Good"},
        headers=customer.headers,
    )
    assert ok.status_code == 201
    listing = client.get(f"{API}/services/{service['id']}/reviews").json()
    assert listing["meta"]["pagination"]["totalItems"] == 1


def test_vendor_response(client, completed):
    booking, customer, vendor, _ = completed
    created = review(client, booking, customer).json()["data"]["review"]
    assert client.post(
        f"{API}/reviews/{created['id']}/respond", json={"comment": "Thanks"}, headers=customer.headers
    ).status_code == 403
    response = client.post(f"{API}/reviews/{created['id']}/respond", json={"comment": "Thanks!"}, headers=vendor.headers)
    assert response.json()["data"]["review"]["response"]["comment"] == "Thanks!"
    again = client.post(f"{API}/reviews/{created['id']}/respond", json={"comment": "Again"}, headers=vendor.headers)
    assert again.status_code == 400


def test_helpful_votes(client, completed, make_client):
    booking, customer, _, _ = completed
    created = review(client, booking, customer).json()["data"]["review"]
    voter = make_client()
    voted = client.post(f"{API}/reviews/{created['id']}/vote", json={"is_helpful": True}, headers=voter.headers)
    assert voted.json()["data"]["review"]["helpful_count"] == 1
    twice = client.post(f"{API}/reviews/{created['id']}/vote", json={"is_helpful": False}, headers=voter.headers)
    assert twice.status_code == 400


def test_moderation(client, admin, completed, make_client):
    booking, customer, vendor, service = completed
    created = review(client, booking, customer, rating=2).json()["data"]["review"]

    flagged = client.post(
        f"{API}/reviews/{created['id']}/flag", json={"reason": "Abusive"}, headers=vendor.headers
    ).json()["data"]["review"]
    assert flagged["is_flagged"] is True
    queue = client.get(f"{API}/reviews", params={"is_flagged": True}, headers=admin.headers).json()
    assert queue["meta"]["pagination"]["totalItems"] == 1
    assert client.get(f"{API}/reviews", headers=customer.headers).status_code == 403

    hidden = client.post(f"{API}/reviews/{created['id']}/hide", json={"reason": "Abusive"}, headers=admin.headers)
    assert hidden.json()["data"]["review"]["is_hidden"] is True
    assert client.get(f"{API}/services/{service['id']}").json()["data"]["service"]["total_reviews"] == 0
    assert client.get(f"{API}/reviews/user/{vendor.id}").json()["data"] == []

    client.post(f"{API}/reviews/{created['id']}/unhide", headers=admin.headers)
    assert client.get(f"{API}/services/{service['id']}").json()["data"]["service"]["average_rating"] == 2


def test_stats_and_my_reviews(client, completed):
    booking, customer, vendor, _ = completed
    review(client, booking, customer, rating=5)
    stats = client.get(f"{API}/reviews/user/{vendor.id}/stats").json()["data"]["stats"]
    assert stats["total"] == 1
    assert stats["average_rating"] == 5
    assert stats["by_rating"] == [{"rating": 5, "count": 1}]

    mine = client.get(f"{API}/reviews/my-reviews", headers=customer.headers).json()
    assert mine["meta"]["pagination"]["totalItems"] == 1
    assert client.get(f"{API}/reviews/999").status_code == 404
