import hashlib
import hmac
import json

import pytest

from conftest import API, set_user_columns
from sharplook_api.app.core.config import settings
from sharplook_api.app.core.errors import PaymentError
from sharplook_api.app.services.paystack import PaystackGateway


def signed(body: dict):
    raw = json.dumps(body).encode("utf-8")
    signature = hmac.new(b"sk_test_secret", raw, hashlib.sha512).hexdigest()
    return raw, {"x-paystack-signature": signature, "Content-Type": "application/json"}


@pytest.fixture
def funded_vendor(client, make_client, make_vendor, make_service, make_booking):
    """A vendor with a 4,500 wallet balance from one completed booking and a PIN of 1234."""
    vendor = make_vendor()
    customer = make_client()
    booking = make_booking(customer, make_service(vendor), pay=True)
    client.post(f"{API}/bookings/{booking['id']}/accept", headers=vendor.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=customer.headers)
    client.post(f"{API}/bookings/{booking['id']}/complete", headers=vendor.headers)
    client.post(f"{API}/users/withdrawal-pin", json={"pin": "1234"}, headers=vendor.headers)
    return vendor


def withdrawal_payload(**overrides):
    payload = {
        "amount": 2000,
        "bank_name": "GTBank",
        "account_number": "0123456789",
        "account_name": "Glow Studio",
        "pin": "1234",
    }
    payload.update(overrides)
    return payload


def test_initialize_and_verify(client, paystack, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    booking = make_booking(customer, make_service(make_vendor()))
    response = client.post(f"{API}/payments/initialize", json={"booking_id": booking["id"]}, headers=customer.headers)
    assert response.status_code == 200
    data = response.json()["data"]
    payment = data["payment"]
    assert data["authorization_url"].endswith(payment["reference"])
    assert payment["status"] == "pending"
    assert payment["platform_fee"] == 500
    assert payment["vendor_amount"] == 4500
    assert paystack.calls[0][2]["amount"] == 500000

    verified = client.get(f"{API}/payments/verify/{payment['reference']}", headers=customer.headers)
    assert verified.json()["data"]["payment"]["escrow_status"] == "held"

    again = client.post(f"{API}/payments/initialize", json={"booking_id": booking["id"]}, headers=customer.headers)
    assert again.status_code == 400
    assert again.json()["message"] == "This booking has already been paid"


def test_failed_verification(client, paystack, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    booking = make_booking(customer, make_service(make_vendor()))
    reference = client.post(
        f"{API}/payments/initialize", json={"booking_id": booking["id"]}, headers=customer.headers
    ).json()["data"]["payment"]["reference"]
    paystack.verify_status = "failed"
    payment = client.get(f"{API}/payments/verify/{reference}", headers=customer.headers).json()["data"]["payment"]
    assert payment["status"] == "failed"
    assert payment["escrow_status"] == "pending"


def test_only_booking_client_can_pay(client, make_client, make_vendor, make_service, make_booking):
    booking = make_booking(make_client(), make_service(make_vendor()))
    response = client.post(
        f"{API}/payments/initialize", json={"booking_id": booking["id"]}, headers=make_client().headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == "You can only pay for your own bookings"


def test_verify_unknown_reference(client, make_client):
    response = client.get(f"{API}/payments/verify/PAY-NOPE", headers=make_client().headers)
    assert response.status_code == 404


def test_webhook_rejects_bad_signature(client):
    response = client.post(
        f"{API}/payments/webhook",
        content=b'{"event": "charge.success"}',
        headers={"x-paystack-signature": "forged", "Content-Type": "application/json"},
    )
    assert response.status_code == 401


def test_webhook_charge_success(client, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    booking = make_booking(customer, make_service(make_vendor()))
    reference = client.post(
        f"{API}/payments/initialize", json={"booking_id": booking["id"]}, headers=customer.headers
    ).json()["data"]["payment"]["reference"]

    raw, headers = signed({"event": "charge.success", "data": {"reference": reference, "channel": "bank"}})
    response = client.post(f"{API}/payments/webhook", content=raw, headers=headers)
    assert response.status_code == 200

    updated = client.get(f"{API}/bookings/{booking['id']}", headers=customer.headers).json()["data"]["booking"]
    assert updated["payment_status"] == "escrowed"
    payments = client.get(f"{API}/payments/my-payments", headers=customer.headers).json()["data"]
    assert payments[0]["payment_method"] == "bank"


def test_admin_refund(client, admin, make_client, make_vendor, make_service, make_booking):
    customer = make_client()
    booking = make_booking(customer, make_service(make_vendor()), pay=True)
    response = client.post(
        f"{API}/payments/refund/{booking['id']}", json={"reason": "Vendor no-show"}, headers=admin.headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["payment"]["escrow_status"] == "refunded"
    assert client.get(f"{API}/payments/wallet/balance", headers=customer.headers).json()["data"]["balance"] == 5000

    again = client.post(f"{API}/payments/refund/{booking['id']}", headers=admin.headers)
    assert again.status_code == 400


def test_release_requires_completed_booking(client, admin, make_client, make_vendor, make_service, make_booking):
    booking = make_booking(make_client(), make_service(make_vendor()), pay=True)
    response = client.post(f"{API}/payments/release/{booking['id']}", headers=admin.headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Booking must be completed before releasing payment"


def test_financial_routes_need_financial_admin(client, make_admin, make_client, make_vendor, make_service,
                                               make_booking):
    booking = make_booking(make_client(), make_service(make_vendor()), pay=True)
    support = make_admin(role="admin")
    assert client.post(f"{API}/payments/release/{booking['id']}", headers=support.headers).status_code == 403
    finance = make_admin(role="financial_admin")
    assert client.post(f"{API}/payments/refund/{booking['id']}", headers=finance.headers).status_code == 200


def test_payment_visibility(client, make_client, make_vendor, make_service, make_booking):
    vendor = make_vendor()
    customer = make_client()
    booking = make_booking(customer, make_service(vendor), pay=True)
    payment_id = booking["payment_id"]
    assert client.get(f"{API}/payments/{payment_id}", headers=vendor.headers).status_code == 200
    detail = client.get(f"{API}/payments/{payment_id}", headers=customer.headers).json()["data"]["payment"]
    assert detail["booking"]["id"] == booking["id"]
    assert client.get(f"{API}/payments/{payment_id}", headers=make_client().headers).status_code == 403


def test_wallet_ledger_and_stats(client, funded_vendor):
    transactions = client.get(f"{API}/payments/wallet/transactions", headers=funded_vendor.headers).json()
    entry = transactions["data"][0]
    assert entry["type"] == "booking_payment"
    assert entry["balance_before"] == 0
    assert entry["balance_after"] == 4500
    stats = client.get(f"{API}/payments/wallet/stats", headers=funded_vendor.headers).json()["data"]["stats"]
    assert stats["total_received"] == 4500


def test_withdrawal_is_held_immediately(client, funded_vendor):
    response = client.post(f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=funded_vendor.headers)
    assert response.status_code == 200
    withdrawal = response.json()["data"]["withdrawal"]
    assert withdrawal["status"] == "pending"
    assert withdrawal["fee"] == 100
    assert withdrawal["net_amount"] == 1900
    balance = client.get(f"{API}/payments/wallet/balance", headers=funded_vendor.headers).json()["data"]["balance"]
    assert balance == 2500
    stats = client.get(f"{API}/payments/wallet/stats", headers=funded_vendor.headers).json()["data"]["stats"]
    assert stats["pending_withdrawals"] == 2000


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"pin": "9999"}, "Invalid withdrawal PIN"),
        ({"amount": 50000}, "Insufficient wallet balance"),
        ({"amount": 500}, "Minimum withdrawal is ₦1,000"),
    ],
)
def test_withdrawal_rules(client, funded_vendor, overrides, message):
    response = client.post(
        f"{API}/payments/wallet/withdraw", json=withdrawal_payload(**overrides), headers=funded_vendor.headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == message


def test_withdrawal_needs_pin(client, make_vendor):
    vendor = make_vendor()
    set_user_columns(vendor.id, wallet_balance=5000)
    response = client.post(f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=vendor.headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Please set up your withdrawal PIN first"


def test_process_withdrawal_and_transfer_webhook(client, admin, paystack, funded_vendor):
    withdrawal = client.post(
        f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=funded_vendor.headers
    ).json()["data"]["withdrawal"]
    response = client.post(f"{API}/payments/wallet/withdrawals/{withdrawal['id']}/process", headers=admin.headers)
    assert response.status_code == 200
    processed = response.json()["data"]["withdrawal"]
    assert processed["status"] == "processing"
    assert processed["transfer_code"] == "TRF_test"
    transfer = [call for call in paystack.calls if call[1] == "/transfer"][0]
    assert transfer[2]["amount"] == 190000

    raw, headers = signed({"event": "transfer.success", "data": {"reference": withdrawal["reference"]}})
    client.post(f"{API}/payments/webhook", content=raw, headers=headers)
    done = client.get(
        f"{API}/payments/wallet/withdrawals/{withdrawal['id']}", headers=funded_vendor.headers
    ).json()["data"]["withdrawal"]
    assert done["status"] == "completed"


def test_failed_transfer_refunds_wallet(client, admin, monkeypatch, funded_vendor):
    def refuse(cls, *args):
        raise PaymentError("Insufficient balance")

    monkeypatch.setattr(PaystackGateway, "initiate_transfer", classmethod(refuse))
    withdrawal = client.post(
        f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=funded_vendor.headers
    ).json()["data"]["withdrawal"]
    processed = client.post(
        f"{API}/payments/wallet/withdrawals/{withdrawal['id']}/process", headers=admin.headers
    ).json()["data"]["withdrawal"]
    assert processed["status"] == "failed"
    assert processed["failure_reason"] == "Insufficient balance"
    balance = client.get(f"{API}/payments/wallet/balance", headers=funded_vendor.headers).json()["data"]["balance"]
    assert balance == 4500


def test_reject_withdrawal(client, admin, funded_vendor):
    withdrawal = client.post(
        f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=funded_vendor.headers
    ).json()["data"]["withdrawal"]
    response = client.post(
        f"{API}/payments/wallet/withdrawals/{withdrawal['id']}/reject",
        json={"reason": "Account name mismatch"},
        headers=admin.headers,
    )
    assert response.json()["data"]["withdrawal"]["status"] == "rejected"
    balance = client.get(f"{API}/payments/wallet/balance", headers=funded_vendor.headers).json()["data"]["balance"]
    assert balance == 4500

    listing = client.get(
        f"{API}/payments/wallet/withdrawals", params={"status": "rejected"}, headers=admin.headers
    ).json()
    assert listing["meta"]["pagination"]["totalItems"] == 1


def withdrawal_status(client, vendor, withdrawal_id):
    return client.get(
        f"{API}/payments/wallet/withdrawals/{withdrawal_id}", headers=vendor.headers
    ).json()["data"]["withdrawal"]["status"]


def wallet_balance(client, user):
    return client.get(f"{API}/payments/wallet/balance", headers=user.headers).json()["data"]["balance"]


def test_transfer_failed_webhook_refunds_wallet(client, admin, funded_vendor):
    withdrawal = client.post(
        f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=funded_vendor.headers
    ).json()["data"]["withdrawal"]
    client.post(f"{API}/payments/wallet/withdrawals/{withdrawal['id']}/process", headers=admin.headers)
    assert wallet_balance(client, funded_vendor) == 2500

    raw, headers = signed(
        {"event": "transfer.failed", "data": {"reference": withdrawal["reference"], "reason": "Account closed"}}
    )
    assert client.post(f"{API}/payments/webhook", content=raw, headers=headers).status_code == 200
    assert withdrawal_status(client, funded_vendor, withdrawal["id"]) == "failed"
    assert wallet_balance(client, funded_vendor) == 4500


def test_late_transfer_success_does_not_pay_twice(client, admin, monkeypatch, funded_vendor):
    def time_out(cls, *args):
        raise PaymentError("Payment gateway request failed")

    monkeypatch.setattr(PaystackGateway, "initiate_transfer", classmethod(time_out))
    withdrawal = client.post(
        f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=funded_vendor.headers
    ).json()["data"]["withdrawal"]
    client.post(f"{API}/payments/wallet/withdrawals/{withdrawal['id']}/process", headers=admin.headers)
    assert wallet_balance(client, funded_vendor) == 4500

    raw, headers = signed({"event": "transfer.success", "data": {"reference": withdrawal["reference"]}})
    assert client.post(f"{API}/payments/webhook", content=raw, headers=headers).status_code == 200
    assert withdrawal_status(client, funded_vendor, withdrawal["id"]) == "failed"
    assert wallet_balance(client, funded_vendor) == 4500
    ledger = client.get(
        f"{API}/payments/wallet/transactions", params={"type": "withdrawal"}, headers=funded_vendor.headers
    ).json()["data"]
    assert [entry["status"] for entry in ledger] == ["failed"]


def test_transfer_events_need_a_processed_withdrawal(client, funded_vendor):
    withdrawal = client.post(
        f"{API}/payments/wallet/withdraw", json=withdrawal_payload(), headers=funded_vendor.headers
    ).json()["data"]["withdrawal"]
    for event in ("transfer.success", "transfer.failed"):
        raw, headers = signed({"event": event, "data": {"reference": withdrawal["reference"]}})
        client.post(f"{API}/payments/webhook", content=raw, headers=headers)
        assert withdrawal_status(client, funded_vendor, withdrawal["id"]) == "pending"
    assert wallet_balance(client, funded_vendor) == 2500


def test_webhook_refused_without_secret_key(client, monkeypatch):
    monkeypatch.setattr(settings, "paystack_secret_key", "")
    raw = json.dumps({"event": "transfer.success", "data": {"reference": "WTH-1"}}).encode("utf-8")
    forged = hmac.new(b"", raw, hashlib.sha512).hexdigest()
    assert PaystackGateway.verify_signature(raw, forged) is False

    response = client.post(
        f"{API}/payments/webhook",
        content=raw,
        headers={"x-paystack-signature": forged, "Content-Type": "application/json"},
    )
    assert response.status_code == 401
