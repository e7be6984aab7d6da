"""
Booking payments and escrow.

A client pays for a booking through Paystack.  Once the charge is
confirmed (by ``verify`` or the ``charge.success`` webhook) the money is
held in escrow: the payment's ``escrow_status`` becomes ``held`` and the
booking's ``payment_status`` becomes ``escrowed``.  Completing the
booking releases the vendor's share (amount minus the platform fee) to
the vendor wallet; cancelling or rejecting it refunds the client wallet.

The escrow helpers work on the caller's cursor so bookings and disputes
can settle money in the same transaction as their own state change.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from sharplook_api.app.core.helpers import generate_transaction_ref, now_iso
from sharplook_api.app.services.audit_service import AuditService
from sharplook_api.app.services.notification_service import notify
from sharplook_api.app.services.paystack import PaystackGateway
from sharplook_api.app.services.subscription_service import commission_rate
from sharplook_api.app.services.wallet_service import complete_transfer, credit_wallet, fail_transfer


logger = logging.getLogger(__name__)


def serialize_payment(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    return row_to_dict(row, json_fields=("gateway_response",))


def _held_payment(cursor: sqlite3.Cursor, booking_id: int) -> Optional[sqlite3.Row]:
    return cursor.execute(
        "SELECT * FROM payments WHERE booking_id = ? AND escrow_status = 'held' ORDER BY id DESC LIMIT 1",
        (booking_id,),
    ).fetchone()


def _latest_payment(cursor: sqlite3.Cursor, booking_id: int) -> Optional[sqlite3.Row]:
    return cursor.execute(
        "SELECT * FROM payments WHERE booking_id = ? ORDER BY id DESC LIMIT 1",
        (booking_id,),
    ).fetchone()


def mark_paid(cursor: sqlite3.Cursor, payment: sqlite3.Row, gateway_data: Dict[str, Any]) -> None:
    """Record a confirmed charge and put the money in escrow."""
    if payment["escrow_status"] != "pending":
        return
    now = now_iso()
    cursor.execute(
        """
        UPDATE payments SET status = 'completed', escrow_status = 'held', paid_at = ?, escrowed_at = ?,
            payment_method = COALESCE(?, payment_method), gateway_response = ?, updated_at = ?
        WHERE id = ?
        """,
        (now, now, gateway_data.get("channel"), dump_json(gateway_data), now, payment["id"]),
    )
    cursor.execute(
        "UPDATE bookings SET payment_status = 'escrowed', payment_id = ?, payment_reference = ?, updated_at = ? "
        "WHERE id = ?",
        (payment["id"], payment["reference"], now, payment["booking_id"]),
    )
    notify(cursor, payment["vendor_id"], "payment", "Booking paid",
           "Payment for a booking has been received and is held in escrow.",
           related_booking=payment["booking_id"], related_payment=payment["id"])
    logger.info("Payment successful: %s", payment["reference"])


def release_escrow(cursor: sqlite3.Cursor, booking_id: int) -> Optional[int]:
    """Pay the vendor's share of a held payment into their wallet.

    Returns the payment id, or ``None`` when nothing is held.
    """
    payment = _held_payment(cursor, booking_id)
    if not payment:
        return None
    now = now_iso()
    cursor.execute(
        "UPDATE payments SET status = 'released', escrow_status = 'released', released_at = ?, updated_at = ? "
        "WHERE id = ?",
        (now, now, payment["id"]),
    )
    credit_wallet(
        cursor,
        payment["vendor_id"],
        payment["vendor_amount"],
        "booking_payment",
        f"Payment received for booking #{booking_id}",
        booking_id=booking_id,
        payment_id=payment["id"],
        metadata={"platform_fee": payment["platform_fee"], "commission_rate": payment["commission_rate"]},
    )
    cursor.execute(
        "UPDATE bookings SET payment_status = 'released', updated_at = ? WHERE id = ?",
        (now, booking_id),
    )
    notify(cursor, payment["vendor_id"], "payment", "Payment released",
           f"{payment['vendor_amount']:,.2f} has been added to your wallet.",
           related_booking=booking_id, related_payment=payment["id"])
    logger.info("Payment released to vendor: %s", payment["reference"])
    return payment["id"]


def refund_escrow(
    cursor: sqlite3.Cursor,
    booking_id: int,
    refunded_by: Optional[int],
    reason: Optional[str],
    amount: Optional[float] = None,
) -> Optional[int]:
    """Return a held payment (or ``amount`` of it) to the client's wallet.

    Returns the payment id, or ``None`` when nothing is held.
    """
    payment = _held_payment(cursor, booking_id)
    if not payment:
        return None
    refund_amount = payment["amount"] if amount is None else amount
    now = now_iso()
    cursor.execute(
        """
        UPDATE payments SET status = 'refunded', escrow_status = 'refunded', refund_amount = ?, refund_reason = ?,
            refunded_at = ?, refunded_by = ?, updated_at = ?
        WHERE id = ?
        """,
        (refund_amount, reason, now, refunded_by, now, payment["id"]),
    )
    if refund_amount > 0:
        credit_wallet(
            cursor,
            payment["user_id"],
            refund_amount,
            "refund",
            f"Refund for booking #{booking_id}",
            booking_id=booking_id,
            payment_id=payment["id"],
        )
    cursor.execute(
        "UPDATE bookings SET payment_status = 'refunded', updated_at = ? WHERE id = ?",
        (now, booking_id),
    )
    notify(cursor, payment["user_id"], "payment", "Payment refunded",
           f"{refund_amount:,.2f} has been refunded to your wallet.",
           related_booking=booking_id, related_payment=payment["id"])
    logger.info("Payment refunded: %s (%s)", payment["reference"], refund_amount)
    return payment["id"]


def split_escrow(
    cursor: sqlite3.Cursor,
    booking_id: int,
    refund_amount: float,
    vendor_amount: float,
    settled_by: int,
    reason: str,
) -> Optional[int]:
    """Settle a held payment partly to the client and partly to the vendor."""
    payment = _held_payment(cursor, booking_id)
    if not payment:
        return None
    if refund_amount + vendor_amount > payment["amount"]:
        raise BadRequestError("Refund and vendor amounts exceed the amount paid")
    refund_escrow(cursor, booking_id, settled_by, reason, amount=refund_amount)
    if vendor_amount > 0:
        credit_wallet(
            cursor,
            payment["vendor_id"],
            vendor_amount,
            "booking_payment",
            f"Partial payment for booking #{booking_id}",
            booking_id=booking_id,
            payment_id=payment["id"],
        )
    return payment["id"]


class PaymentService:
    """Paystack charges, escrow release and refunds."""

    @classmethod
    async def initialize_payment(
        cls, user_id: int, booking_id: int, metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Start a Paystack checkout for a booking.

        Returns
        -------
        dict
            ``payment``, ``authorization_url`` and ``access_code``.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cursor.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
            if not booking:
                raise NotFoundError("Booking not found")
            if booking["client_id"] != user_id:
                raise BadRequestError("You can only pay for your own bookings")
            if booking["payment_status"] in ("escrowed", "released"):
                raise BadRequestError("This booking has already been paid")
            if booking["status"] == "cancelled":
                raise BadRequestError("Cannot pay for a cancelled booking")
            user = cursor.execute("SELECT email FROM users WHERE id = ?", (user_id,)).fetchone()
            rate = commission_rate(cursor, booking["vendor_id"])
        finally:
            conn.close()

        total = booking["total_amount"]
        platform_fee = round(total * rate / 100)
        reference = generate_transaction_ref("PAY")
        callback_url = settings.paystack_callback_url or f"{settings.frontend_url}/bookings/{booking_id}/payment/verify"
        gateway = PaystackGateway.initialize_transaction(
            user["email"],
            total,
            reference,
            callback_url,
            {"booking_id": booking_id, "user_id": user_id, **(metadata or {})},
        )

        conn = get_connection()
        try:
            cursor = conn.cursor()
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO payments (user_id, vendor_id, booking_id, amount, currency, status, payment_method,
                    reference, authorization_url, access_code, commission_rate, platform_fee, vendor_amount,
                    escrow_status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 'pending', 'card', ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (
                    user_id,
                    booking["vendor_id"],
                    booking_id,
                    total,
                    settings.currency,
                    reference,
                    gateway.get("authorization_url"),
                    gateway.get("access_code"),
                    rate,
                    platform_fee,
                    total - platform_fee,
                    now,
                    now,
                ),
            )
            payment_id = cursor.lastrowid
            cursor.execute(
                "UPDATE bookings SET payment_id = ?, payment_reference = ?, updated_at = ? WHERE id = ?",
                (payment_id, reference, now, booking_id),
            )
            conn.commit()
            payment = serialize_payment(cursor.execute("SELECT * FROM payments WHERE id = ?", (payment_id,)).fetchone())
        finally:
            conn.close()
        logger.info("Payment initialized: %s for booking %s", reference, booking_id)
        return {
            "payment": payment,
            "authorization_url": gateway.get("authorization_url"),
            "access_code": gateway.get("access_code"),
        }

    @classmethod
    async def verify_payment(cls, reference: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            exists = conn.execute("SELECT 1 FROM payments WHERE reference = ?", (reference,)).fetchone()
        finally:
            conn.close()
        if not exists:
            raise NotFoundError("Payment not found")

        data = PaystackGateway.verify_transaction(reference)

        conn = get_connection()
        try:
            cursor = conn.cursor()
            payment = cursor.execute("SELECT * FROM payments WHERE reference = ?", (reference,)).fetchone()
            if data.get("status") == "success":
                mark_paid(cursor, payment, data)
            elif payment["escrow_status"] == "pending":
                cursor.execute(
                    "UPDATE payments SET status = 'failed', gateway_response = ?, updated_at = ? WHERE id = ?",
                    (dump_json(data), now_iso(), payment["id"]),
                )
            conn.commit()
            result = serialize_payment(cursor.execute("SELECT * FROM payments WHERE id = ?", (payment["id"],)).fetchone())
        finally:
            conn.close()
        logger.info("Payment verified: %s - %s", reference, data.get("status"))
        return result

    @classmethod
    async def handle_webhook(cls, event: Dict[str, Any]) -> None:
        """Apply a Paystack webhook event whose signature was already checked."""
        event_type = event.get("event")
        data = event.get("data") or {}
        reference = data.get("reference")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if event_type == "charge.success":
                payment = cursor.execute("SELECT * FROM payments WHERE reference = ?", (reference,)).fetchone()
                if not payment:
                    logger.error("Payment not found for reference: %s", reference)
                    return
                mark_paid(cursor, payment, data)
            elif event_type == "transfer.success":
                complete_transfer(cursor, reference, data.get("transfer_code"))
            elif event_type in ("transfer.failed", "transfer.reversed"):
                fail_transfer(cursor, reference, data.get("transfer_code"), data.get("reason") or "Transfer failed")
            else:
                logger.warning("Unhandled Paystack event: %s", event_type)
                return
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def release_payment(cls, booking_id: int, admin: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cursor.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
            if not booking:
                raise NotFoundError("Booking not found")
            payment = _latest_payment(cursor, booking_id)
            if not payment:
                raise NotFoundError("Payment not found")
            if payment["escrow_status"] == "released":
                raise BadRequestError("Payment already released")
            if booking["status"] != "completed":
                raise BadRequestError("Booking must be completed before releasing payment")
            if payment["escrow_status"] != "held":
                raise BadRequestError("Payment is not held in escrow")
            release_escrow(cursor, booking_id)
            conn.commit()
            result = serialize_payment(cursor.execute("SELECT * FROM payments WHERE id = ?", (payment["id"],)).fetchone())
        finally:
            conn.close()
        await AuditService.log(user_id=admin["id"], action="release", object_type="payment", object_id=payment["id"])
        return result

    @classmethod
    async def refund_payment(cls, booking_id: int, admin: Dict[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if not cursor.execute("SELECT 1 FROM bookings WHERE id = ?", (booking_id,)).fetchone():
                raise NotFoundError("Booking not found")
            payment = _latest_payment(cursor, booking_id)
            if not payment:
                raise NotFoundError("Payment not found")
            if payment["escrow_status"] == "refunded":
                raise BadRequestError("Payment already refunded")
            if payment["escrow_status"] != "held":
                raise BadRequestError("Payment is not held in escrow")
            refund_escrow(cursor, booking_id, admin["id"], reason)
            conn.commit()
            result = serialize_payment(cursor.execute("SELECT * FROM payments WHERE id = ?", (payment["id"],)).fetchone())
        finally:
            conn.close()
        await AuditService.log(user_id=admin["id"], action="refund", object_type="payment", object_id=payment["id"],
                               details={"reason": reason})
        return result

    @classmethod
    async def get_payment(cls, payment_id: int, user_id: int, is_admin: bool = False) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT * FROM payments WHERE id = ?", (payment_id,)).fetchone()
            if not row:
                raise NotFoundError("Payment not found")
            if not is_admin and user_id not in (row["user_id"], row["vendor_id"]):
                raise ForbiddenError("Not authorized to view this payment")
            payment = serialize_payment(row)
            booking = cursor.execute(
                "SELECT id, service_id, scheduled_date, status, payment_status FROM bookings WHERE id = ?",
                (row["booking_id"],),
            ).fetchone()
            payment["booking"] = dict(booking) if booking else None
            return payment
        finally:
            conn.close()

    @classmethod
    async def list_payments(
        cls, user_id: int, status: Optional[str] = None, limit: int = 10, offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Payments the user made as a client or received as a vendor."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = ["(user_id = ? OR vendor_id = ?)"]
            params: list = [user_id, user_id]
            if status:
                where.append("status = ?")
                params.append(status)
            clause = " AND ".join(where)
            total = cursor.execute(f"SELECT COUNT(*) FROM payments WHERE {clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM payments WHERE {clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return [serialize_payment(row) for row in rows], total
        finally:
            conn.close()
