"""
Booking lifecycle.

::

    pending --accept--> accepted --start--> in_progress
       |                   |                    |
       |                   +----- both parties mark complete ----> completed
       +--reject/cancel--> cancelled <--cancel--+

A vendor can only accept a booking whose payment is in escrow.
Completion releases the escrow to the vendor; rejection and
cancellation refund it to the client.  Every status change is appended
to ``status_history``.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from sharplook_api.app.core.helpers import calculate_distance, calculate_service_charge, now_iso
from sharplook_api.app.services.notification_service import notify
from sharplook_api.app.services.payment_service import refund_escrow, release_escrow
from sharplook_api.app.services.referral_service import process_referral_booking


logger = logging.getLogger(__name__)

BOOKING_JSON_FIELDS = ("location", "status_history")
BOOKING_BOOL_FIELDS = ("client_marked_complete", "vendor_marked_complete", "has_dispute", "has_review")
BOOKING_STATUSES = ("pending", "accepted", "in_progress", "completed", "cancelled", "disputed")


def serialize_booking(cursor: sqlite3.Cursor, row: sqlite3.Row) -> Dict[str, Any]:
    booking = row_to_dict(row, json_fields=BOOKING_JSON_FIELDS, bool_fields=BOOKING_BOOL_FIELDS)
    client = cursor.execute(
        "SELECT id, first_name, last_name, email, phone, avatar FROM users WHERE id = ?",
        (row["client_id"],),
    ).fetchone()
    vendor = cursor.execute(
        """
        SELECT u.id, u.first_name, u.last_name, u.email, u.phone, u.avatar, vp.business_name
        FROM users u LEFT JOIN vendor_profiles vp ON vp.user_id = u.id WHERE u.id = ?
        """,
        (row["vendor_id"],),
    ).fetchone()
    service = None
    if row["service_id"] is not None:
        service = cursor.execute(
            "SELECT id, name, description, base_price, images FROM services WHERE id = ?",
            (row["service_id"],),
        ).fetchone()
    booking["client"] = dict(client) if client else None
    booking["vendor"] = dict(vendor) if vendor else None
    booking["service"] = row_to_dict(service, json_fields=("images",))
    return booking


def fetch_booking(cursor: sqlite3.Cursor, booking_id: int) -> sqlite3.Row:
    row = cursor.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
    if not row:
        raise NotFoundError("Booking not found")
    return row


def set_status(
    cursor: sqlite3.Cursor,
    booking: sqlite3.Row,
    status: str,
    changed_by: Optional[int],
    note: Optional[str] = None,
    **columns: Any,
) -> None:
    """Move ``booking`` to ``status``, record the change and update extra columns."""
    history = json.loads(booking["status_history"])
    entry = {"status": status, "changed_at": now_iso(), "changed_by": changed_by}
    if note:
        entry["note"] = note
    history.append(entry)
    columns.update(status=status, status_history=dump_json(history), updated_at=now_iso())
    assignments = ", ".join(f"{name} = ?" for name in columns)
    cursor.execute(f"UPDATE bookings SET {assignments} WHERE id = ?", (*columns.values(), booking["id"]))


def insert_booking(
    cursor: sqlite3.Cursor,
    client_id: int,
    vendor_id: int,
    scheduled_date: str,
    service_price: float,
    booking_type: str = "standard",
    service_id: Optional[int] = None,
    offer_id: Optional[int] = None,
    scheduled_time: Optional[str] = None,
    duration: Optional[int] = None,
    location: Optional[Dict[str, Any]] = None,
    distance_charge: float = 0,
    client_notes: Optional[str] = None,
) -> int:
    now = now_iso()
    history = [{"status": "pending", "changed_at": now, "changed_by": client_id}]
    cursor.execute(
        """
        INSERT INTO bookings (booking_type, client_id, vendor_id, service_id, offer_id, scheduled_date,
            scheduled_time, duration, location, service_price, distance_charge, total_amount, status,
            status_history, client_notes, payment_status, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, 'pending', ?, ?)
        """,
        (
            booking_type,
            client_id,
            vendor_id,
            service_id,
            offer_id,
            scheduled_date,
            scheduled_time,
            duration,
            dump_json(location),
            service_price,
            distance_charge,
            service_price + distance_charge,
            dump_json(history),
            client_notes,
            now,
            now,
        ),
    )
    return cursor.lastrowid


class BookingService:
    """Create bookings and drive them through their lifecycle."""

    @classmethod
    async def create_booking(cls, client_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Book a service.

        Home-service vendors (``home_service`` or ``both``) need the
        client's location; the travel charge is computed from the
        distance between the vendor and that location.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            service = cursor.execute(
                "SELECT * FROM services WHERE id = ? AND is_deleted = 0", (data["service_id"],)
            ).fetchone()
            if not service or not service["is_active"]:
                raise NotFoundError("Service not found or not available")
            vendor = cursor.execute(
                """
                SELECT u.id, u.is_vendor, vp.is_verified, vp.vendor_type, vp.latitude, vp.longitude
                FROM users u LEFT JOIN vendor_profiles vp ON vp.user_id = u.id
                WHERE u.id = ? AND u.is_deleted = 0
                """,
                (service["vendor_id"],),
            ).fetchone()
            if not vendor or not vendor["is_vendor"] or not vendor["is_verified"]:
                raise BadRequestError("Vendor is not available")
            if vendor["id"] == client_id:
                raise BadRequestError("You cannot book your own service")

            location = data.get("location")
            distance_charge = 0
            if vendor["vendor_type"] in ("home_service", "both"):
                if not location:
                    raise BadRequestError("Location is required for home service")
                if vendor["latitude"] is not None and vendor["longitude"] is not None:
                    longitude, latitude = location["coordinates"]
                    distance = calculate_distance(vendor["latitude"], vendor["longitude"], latitude, longitude)
                    distance_charge = calculate_service_charge(distance)
            else:
                location = None

            booking_id = insert_booking(
                cursor,
                client_id=client_id,
                vendor_id=service["vendor_id"],
                scheduled_date=data["scheduled_date"],
                service_price=service["base_price"],
                service_id=service["id"],
                scheduled_time=data.get("scheduled_time"),
                duration=service["duration"],
                location=location,
                distance_charge=distance_charge,
                client_notes=data.get("client_notes"),
            )
            cursor.execute("UPDATE services SET bookings = bookings + 1 WHERE id = ?", (service["id"],))
            notify(cursor, service["vendor_id"], "booking", "New booking request",
                   f'You have a new booking request for "{service["name"]}".',
                   action_url=f"/bookings/{booking_id}", related_booking=booking_id)
            conn.commit()
            logger.info("Booking created: %s by client %s", booking_id, client_id)
            return serialize_booking(cursor, fetch_booking(cursor, booking_id))
        finally:
            conn.close()

    @classmethod
    async def accept_booking(cls, booking_id: int, vendor_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, booking_id)
            if booking["vendor_id"] != vendor_id:
                raise ForbiddenError("You can only accept your own bookings")
            if booking["status"] != "pending":
                raise BadRequestError("Only pending bookings can be accepted")
            if booking["payment_status"] != "escrowed":
                raise BadRequestError("Payment must be completed before accepting")
            set_status(cursor, booking, "accepted", vendor_id, accepted_at=now_iso())
            notify(cursor, booking["client_id"], "booking", "Booking accepted",
                   "Your booking has been accepted by the vendor.",
                   action_url=f"/bookings/{booking_id}", related_booking=booking_id)
            conn.commit()
            logger.info("Booking accepted: %s by vendor %s", booking_id, vendor_id)
            return serialize_booking(cursor, fetch_booking(cursor, booking_id))
        finally:
            conn.close()

    @classmethod
    async def reject_booking(cls, booking_id: int, vendor_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, booking_id)
            if booking["vendor_id"] != vendor_id:
                raise ForbiddenError("You can only reject your own bookings")
            if booking["status"] != "pending":
                raise BadRequestError("Only pending bookings can be rejected")
            reason = reason or "Rejected by vendor"
            now = now_iso()
            set_status(cursor, booking, "cancelled", vendor_id, reason, rejected_at=now, cancelled_at=now,
                       cancelled_by=vendor_id, cancellation_reason=reason)
            refund_escrow(cursor, booking_id, vendor_id, reason)
            notify(cursor, booking["client_id"], "booking", "Booking rejected",
                   f"Your booking was rejected: {reason}", related_booking=booking_id)
            conn.commit()
            logger.info("Booking rejected: %s by vendor %s", booking_id, vendor_id)
            return serialize_booking(cursor, fetch_booking(cursor, booking_id))
        finally:
            conn.close()

    @classmethod
    async def start_booking(cls, booking_id: int, vendor_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, booking_id)
            if booking["vendor_id"] != vendor_id:
                raise ForbiddenError("Only the vendor can start this booking")
            if booking["status"] != "accepted":
                raise BadRequestError("Only accepted bookings can be started")
            set_status(cursor, booking, "in_progress", vendor_id)
            notify(cursor, booking["client_id"], "booking", "Booking started",
                   "The vendor has started your booking.", related_booking=booking_id)
            conn.commit()
            logger.info("Booking started: %s", booking_id)
            return serialize_booking(cursor, fetch_booking(cursor, booking_id))
        finally:
            conn.close()

    @classmethod
    async def complete_booking(cls, booking_id: int, user_id: int) -> Dict[str, Any]:
        """Record that one party considers the booking done.

        When both the client and the vendor have marked it complete the
        booking becomes ``completed``, the escrow is released to the
        vendor and the client's pending referral (if any) is rewarded.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, booking_id)
            if user_id == booking["client_id"]:
                role, other = "client", booking["vendor_id"]
            elif user_id == booking["vendor_id"]:
                role, other = "vendor", booking["client_id"]
            else:
                raise ForbiddenError("Not authorized")
            if booking["status"] not in ("accepted", "in_progress"):
                raise BadRequestError("Only accepted or in-progress bookings can be completed")

            cursor.execute(
                f"UPDATE bookings SET {role}_marked_complete = 1, updated_at = ? WHERE id = ?",
                (now_iso(), booking_id),
            )
            booking = fetch_booking(cursor, booking_id)
            if booking["client_marked_complete"] and booking["vendor_marked_complete"]:
                set_status(cursor, booking, "completed", user_id, completed_at=now_iso(), completed_by="both")
                release_escrow(cursor, booking_id)
                if booking["service_id"] is not None:
                    cursor.execute(
                        "UPDATE services SET completed_bookings = completed_bookings + 1 WHERE id = ?",
                        (booking["service_id"],),
                    )
                cursor.execute(
                    "UPDATE vendor_profiles SET completed_bookings = completed_bookings + 1 WHERE user_id = ?",
                    (booking["vendor_id"],),
                )
                process_referral_booking(cursor, booking["client_id"], booking_id)
                for party in (booking["client_id"], booking["vendor_id"]):
                    notify(cursor, party, "booking", "Booking completed",
                           "The booking has been completed.", related_booking=booking_id)
            else:
                notify(cursor, other, "booking", "Booking marked complete",
                       f"The {role} marked the booking as complete. Please confirm.", related_booking=booking_id)
            conn.commit()
            logger.info("Booking marked complete by %s: %s", role, booking_id)
            return serialize_booking(cursor, fetch_booking(cursor, booking_id))
        finally:
            conn.close()

    @classmethod
    async def cancel_booking(cls, booking_id: int, user_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, booking_id)
            if user_id not in (booking["client_id"], booking["vendor_id"]):
                raise ForbiddenError("Not authorized to cancel this booking")
            if booking["status"] in ("completed", "cancelled"):
                raise BadRequestError("Cannot cancel completed or already cancelled bookings")
            if booking["status"] == "disputed":
                raise BadRequestError("Disputed bookings cannot be cancelled")
            set_status(cursor, booking, "cancelled", user_id, reason, cancelled_at=now_iso(),
                       cancelled_by=user_id, cancellation_reason=reason)
            refund_escrow(cursor, booking_id, user_id, reason or "Booking cancelled")
            other = booking["vendor_id"] if user_id == booking["client_id"] else booking["client_id"]
            notify(cursor, other, "booking", "Booking cancelled",
                   f"A booking was cancelled{': ' + reason if reason else ''}.", related_booking=booking_id)
            conn.commit()
            logger.info("Booking cancelled: %s by user %s", booking_id, user_id)
            return serialize_booking(cursor, fetch_booking(cursor, booking_id))
        finally:
            conn.close()

    @classmethod
    async def get_booking(cls, booking_id: int, user_id: int, is_admin: bool = False) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, booking_id)
            if not is_admin and user_id not in (booking["client_id"], booking["vendor_id"]):
                raise ForbiddenError("Not authorized to view this booking")
            return serialize_booking(cursor, booking)
        finally:
            conn.close()

    @classmethod
    async def update_booking(cls, booking_id: int, user_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update notes: clients edit ``client_notes`` and vendors ``vendor_notes``."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, booking_id)
            if user_id not in (booking["client_id"], booking["vendor_id"]):
                raise ForbiddenError("Not authorized")
            field = "client_notes" if user_id == booking["client_id"] else "vendor_notes"
            if updates.get(field) is not None:
                cursor.execute(
                    f"UPDATE bookings SET {field} = ?, updated_at = ? WHERE id = ?",
                    (updates[field], now_iso(), booking_id),
                )
                conn.commit()
            return serialize_booking(cursor, fetch_booking(cursor, booking_id))
        finally:
            conn.close()

    @classmethod
    async def list_bookings(
        cls,
        user_id: int,
        role: str = "client",
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = ["vendor_id = ?" if role == "vendor" else "client_id = ?"]
            params: list = [user_id]
            if status:
                where.append("status = ?")
                params.append(status)
            if start_date:
                where.append("scheduled_date >= ?")
                params.append(start_date)
            if end_date:
                where.append("scheduled_date <= ?")
                params.append(end_date)
            clause = " AND ".join(where)
            total = cursor.execute(f"SELECT COUNT(*) FROM bookings WHERE {clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM bookings WHERE {clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return [serialize_booking(cursor, row) for row in rows], total
        finally:
            conn.close()

    @classmethod
    async def get_stats(cls, user_id: int, role: str = "client") -> Dict[str, int]:
        column = "vendor_id" if role == "vendor" else "client_id"
        conn = get_connection()
        try:
            rows = conn.execute(
                f"SELECT status, COUNT(*) AS count FROM bookings WHERE {column} = ? GROUP BY status",
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        counts = {row["status"]: row["count"] for row in rows}
        stats = {"total": sum(counts.values())}
        for status in BOOKING_STATUSES:
            stats[status] = counts.get(status, 0)
        return stats
