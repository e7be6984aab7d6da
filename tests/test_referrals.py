from conftest import API
from sharplook_api.app.core.db import get_cursor


def code_of(user):
    return user["user"]["referral_code"]


def apply(client, user, code):
    return client.post(f"{API}/referrals/apply", json={"referral_code": code}, headers=user.headers)


def test_apply_code(client, make_client):
    referrer = make_client()
    referee = make_client()
    response = apply(client, referee, code_of(referrer).lower())
    assert response.status_code == 200
    referral = response.json()["data"]["referral"]
    assert referral["status"] == "pending"
    assert referral["referrer_id"] == referrer.id
    assert referral["referrer_reward"] == 1000
    assert referral["referee_reward"] == 500


def test_apply_code_rules(client, make_client):
    referrer = make_client()
    referee = make_client()
    unknown = apply(client, referee, "NOPE1234")
    assert unknown.status_code == 404
    assert unknown.json()["message"] == "Invalid referral code"

    own = apply(client, referrer, code_of(referrer))
    assert own.status_code == 400
    assert own.json()["message"] == "You cannot refer yourself"

    apply(client, referee, code_of(referrer))
    twice = apply(client, referee, code_of(make_client()))
    assert twice.status_code == 400
    assert twice.json()["message"] == "You have already used a referral code"


def test_first_completed_booking_pays_rewards(client, make_client, make_vendor, make_service, make_booking):
    referrer = make_client()
    referee = make_client()
    apply(client, referee, code_of(referrer))

    vendor = make_vendor()
    booking = make_booking(referee, make_service(vendor), pay=True)
    client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=referee.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=vendor.headers)

    def balance(user):
        return client.get(f"{API}/payments/wallet/balance", headers=user.headers).json()["data"]["balance"]

    assert balance(referrer) == 1000
    assert balance(referee) == 500

    stats = client.get(f"{API}/referrals/stats", headers=referrer.headers).json()["data"]["stats"]
    assert stats["completed_referrals"] == 1
    assert stats["total_earnings"] == 1000
    assert stats["referral_code"] == code_of(referrer)

    leaders = client.get(f"{API}/referrals/leaderboard").json()["data"]["leaderboard"]
    assert leaders[0]["user"]["id"] == referrer.id
    assert leaders[0]["referral_count"] == 1


def test_referral_visibility(client, make_client):
    referrer = make_client()
    referee = make_client()
    referral = apply(client, referee, code_of(referrer)).json()["data"]["referral"]
    assert client.get(f"{API}/referrals/{referral['id']}", headers=referrer.headers).status_code == 200
    assert client.get(f"{API}/referrals/{referral['id']}", headers=make_client().headers).status_code == 403
    mine = client.get(f"{API}/referrals/my-referrals", headers=referrer.headers).json()
    assert mine["data"][0]["referee"]["id"] == referee.id


def test_admin_expire_and_stats(client, admin, make_client):
    referrer = make_client()
    referral = apply(client, make_client(), code_of(referrer)).json()["data"]["referral"]
    apply(client, make_client(), code_of(referrer))
    with get_cursor() as cursor:
        cursor.execute(
            "UPDATE referrals SET expires_at = '2000-01-01T00:00:00+00:00' WHERE id = ?", (referral["id"],)
        )

    expired = client.post(f"{API}/referrals/admin/expire", headers=admin.headers).json()["data"]["expired"]
    assert expired == 1

    stats = client.get(f"{API}/referrals/admin/stats", headers=admin.headers).json()["data"]["stats"]
    assert stats["total_referrals"] == 2
    assert stats["expired_referrals"] == 1
    assert stats["pending_referrals"] == 1
    assert stats["conversion_rate"] == 0

    listing = client.get(f"{API}/referrals", params={"status": "pending"}, headers=admin.headers).json()
    assert listing["meta"]["pagination"]["totalItems"] == 1
    assert client.get(f"{API}/referrals", headers=referrer.headers).status_code == 403


def test_expired_referral_pays_nothing(client, make_client, make_vendor, make_service, make_booking):
    referrer = make_client()
    referee = make_client()
    referral = apply(client, referee, code_of(referrer)).json()["data"]["referral"]
    with get_cursor() as cursor:
        cursor.execute(
            "UPDATE referrals SET expires_at = '2000-01-01T00:00:00+00:00' WHERE id = ?", (referral["id"],)
        )

    vendor = make_vendor()
    booking = make_booking(referee, make_service(vendor), pay=True)
    client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=referee.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=vendor.headers)

    for user in (referrer, referee):
        balance = client.get(f"{API}/payments/wallet/balance", headers=user.headers).json()["data"]["balance"]
        assert balance == 0
    detail = client.get(f"{API}/referrals/{referral['id']}", headers=referrer.headers).json()["data"]["referral"]
    assert detail["status"] == "pending"
    assert detail["first_booking_id"] is None
