"""
Thin client for the Paystack REST API.

Requests are made synchronously with ``httpx``; any transport error,
non-2xx status or ``status: false`` body is turned into a
``PaymentError`` so callers never see raw HTTP exceptions.  Amounts are
passed to Paystack in kobo.
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.errors import PaymentError, ServiceUnavailableError


logger = logging.getLogger(__name__)

BANK_CODES = {
    "Access Bank": "044",
    "GTBank": "058",
    "First Bank": "011",
    "UBA": "033",
    "Zenith Bank": "057",
    "Fidelity Bank": "070",
    "FCMB": "214",
    "Sterling Bank": "232",
    "Union Bank": "032",
    "Wema Bank": "035",
    "Polaris Bank": "076",
    "Stanbic IBTC": "221",
    "Standard Chartered": "068",
    "Keystone Bank": "082",
    "Unity Bank": "215",
    "Jaiz Bank": "301",
    "Heritage Bank": "030",
    "Ecobank": "050",
    "Kuda Bank": "50211",
    "Opay": "999992",
    "Palmpay": "999991",
}
DEFAULT_BANK_CODE = "044"


def to_kobo(amount: float) -> int:
    return int(round(amount * 100))


class PaystackGateway:
    """Calls to the Paystack transaction and transfer endpoints."""

    @classmethod
    def _request(cls, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and return the ``data`` member of the response.

        Raises
        ------
        PaymentError
            On network failures, error statuses or an unsuccessful body.
        ServiceUnavailableError
            When no Paystack secret key is configured.
        """
        if not settings.paystack_secret_key:
            raise ServiceUnavailableError("Payment gateway is not configured")
        url = f"{settings.paystack_base_url}{path}"
        headers = {
            "Authorization": f"Bearer {settings.paystack_secret_key}",
            "Content-Type": "application/json",
        }
        try:
            response = httpx.request(method, url, headers=headers, json=payload, timeout=30)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Paystack %s %s failed: %s", method, path, exc)
            raise PaymentError("Payment gateway request failed") from exc
        if not body.get("status"):
            logger.error("Paystack %s %s rejected: %s", method, path, body.get("message"))
            raise PaymentError(body.get("message") or "Payment gateway request failed")
        return body.get("data") or {}

    @classmethod
    def initialize_transaction(
        cls, email: str, amount: float, reference: str, callback_url: str, metadata: Dict[str, Any]
    ) -> Dict[str, Any]:
        return cls._request(
            "POST",
            "/transaction/initialize",
            {
                "email": email,
                "amount": to_kobo(amount),
                "reference": reference,
                "currency": settings.currency,
                "callback_url": callback_url,
                "metadata": metadata,
            },
        )

    @classmethod
    def verify_transaction(cls, reference: str) -> Dict[str, Any]:
        return cls._request("GET", f"/transaction/verify/{reference}")

    @classmethod
    def create_transfer_recipient(cls, account_name: str, account_number: str, bank_name: str) -> str:
        data = cls._request(
            "POST",
            "/transferrecipient",
            {
                "type": "nuban",
                "name": account_name,
                "account_number": account_number,
                "bank_code": BANK_CODES.get(bank_name, DEFAULT_BANK_CODE),
                "currency": settings.currency,
            },
        )
        return data["recipient_code"]

    @classmethod
    def initiate_transfer(cls, amount: float, recipient_code: str, reference: str, reason: str) -> str:
        data = cls._request(
            "POST",
            "/transfer",
            {
                "source": "balance",
                "amount": to_kobo(amount),
                "recipient": recipient_code,
                "reference": reference,
                "reason": reason,
            },
        )
        return data["transfer_code"]

    @staticmethod
    def verify_signature(raw_body: bytes, signature: Optional[str]) -> bool:
        """Check the ``x-paystack-signature`` header (HMAC-SHA512 of the raw body).

        Always ``False`` without a configured secret key.
        """
        if not signature or not settings.paystack_secret_key:
            return False
        expected = hmac.new(settings.paystack_secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)
