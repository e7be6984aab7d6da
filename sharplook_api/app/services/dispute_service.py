"""
Booking disputes.

Either party of an accepted, in-progress or completed booking can raise
a dispute against the other.  The booking is flagged ``disputed`` while
the dispute is handled.  Administrators assign it (``open`` ->
``in_review``), set its priority and resolve it by refunding the
client, paying the vendor or splitting the escrowed payment.  Only a
resolved dispute can be closed.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from sharplook_api.app.core.helpers import now_iso
from sharplook_api.app.core.security import ADMIN_ROLES
from sharplook_api.app.services.audit_service import AuditService
from sharplook_api.app.services.booking_service import fetch_booking, set_status
from sharplook_api.app.services.notification_service import notify
from sharplook_api.app.services.payment_service import refund_escrow, release_escrow, split_escrow


logger = logging.getLogger(__name__)

DISPUTE_JSON_FIELDS = ("evidence", "messages")
PRIORITY_ORDER = "CASE priority WHEN 'urgent' THEN 4 WHEN 'high' THEN 3 WHEN 'medium' THEN 2 ELSE 1 END"


def _person(cursor: sqlite3.Cursor, user_id: Optional[int]) -> Optional[Dict[str, Any]]:
    if user_id is None:
        return None
    row = cursor.execute(
        "SELECT id, first_name, last_name, email, avatar FROM users WHERE id = ?", (user_id,)
    ).fetchone()
    return dict(row) if row else None


def serialize_dispute(cursor: sqlite3.Cursor, row: sqlite3.Row) -> Dict[str, Any]:
    dispute = row_to_dict(row, json_fields=DISPUTE_JSON_FIELDS)
    dispute["raised_by_user"] = _person(cursor, row["raised_by"])
    dispute["against_user"] = _person(cursor, row["against"])
    dispute["assigned_to_user"] = _person(cursor, row["assigned_to"])
    booking = cursor.execute(
        "SELECT id, service_id, scheduled_date, status, total_amount, payment_status FROM bookings WHERE id = ?",
        (row["booking_id"],),
    ).fetchone()
    dispute["booking"] = dict(booking) if booking else None
    return dispute


def _fetch_dispute(cursor: sqlite3.Cursor, dispute_id: int) -> sqlite3.Row:
    row = cursor.execute("SELECT * FROM disputes WHERE id = ?", (dispute_id,)).fetchone()
    if not row:
        raise NotFoundError("Dispute not found")
    return row


def _evidence_items(items: List[Dict[str, Any]], user_id: int) -> List[Dict[str, Any]]:
    now = now_iso()
    return [
        {"type": item["type"], "content": item["content"], "uploaded_at": now, "uploaded_by": user_id}
        for item in items
    ]


class DisputeService:
    """Raise, discuss and settle booking disputes."""

    @classmethod
    async def create_dispute(cls, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = fetch_booking(cursor, data["booking_id"])
            if user_id not in (booking["client_id"], booking["vendor_id"]):
                raise ForbiddenError("You can only create disputes for your own bookings")
            if booking["status"] not in ("accepted", "in_progress", "completed"):
                raise BadRequestError("Disputes can only be created for accepted, in-progress, or completed bookings")
            active = cursor.execute(
                "SELECT 1 FROM disputes WHERE booking_id = ? AND status IN ('open', 'in_review')",
                (booking["id"],),
            ).fetchone()
            if active:
                raise BadRequestError("An active dispute already exists for this booking")
            against = booking["vendor_id"] if user_id == booking["client_id"] else booking["client_id"]
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO disputes (booking_id, raised_by, against, reason, description, category, priority,
                    status, evidence, messages, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 'medium', 'open', ?, '[]', ?, ?)
                """,
                (
                    booking["id"],
                    user_id,
                    against,
                    data["reason"],
                    data["description"],
                    data["category"],
                    dump_json(_evidence_items(data.get("evidence") or [], user_id)),
                    now,
                    now,
                ),
            )
            dispute_id = cursor.lastrowid
            set_status(cursor, booking, "disputed", user_id, data["reason"], has_dispute=1, dispute_id=dispute_id)
            notify(cursor, against, "booking", "Dispute raised",
                   f"A dispute was raised on booking #{booking['id']}: {data['reason']}",
                   action_url=f"/disputes/{dispute_id}", related_booking=booking["id"], related_dispute=dispute_id)
            conn.commit()
            logger.info("Dispute created: %s for booking %s", dispute_id, booking["id"])
            return serialize_dispute(cursor, _fetch_dispute(cursor, dispute_id))
        finally:
            conn.close()

    @classmethod
    async def add_evidence(cls, dispute_id: int, user_id: int, evidence: List[Dict[str, Any]]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            dispute = _fetch_dispute(cursor, dispute_id)
            if user_id not in (dispute["raised_by"], dispute["against"]):
                raise ForbiddenError("You are not part of this dispute")
            if dispute["status"] in ("resolved", "closed"):
                raise BadRequestError("Cannot add evidence to resolved/closed disputes")
            items = json.loads(dispute["evidence"]) + _evidence_items(evidence, user_id)
            cursor.execute(
                "UPDATE disputes SET evidence = ?, updated_at = ? WHERE id = ?",
                (dump_json(items), now_iso(), dispute_id),
            )
            conn.commit()
            logger.info("Evidence added to dispute: %s", dispute_id)
            return serialize_dispute(cursor, _fetch_dispute(cursor, dispute_id))
        finally:
            conn.close()

    @classmethod
    async def add_message(
        cls,
        dispute_id: int,
        user: Dict[str, Any],
        message: str,
        attachments: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            dispute = _fetch_dispute(cursor, dispute_id)
            is_party = user["id"] in (dispute["raised_by"], dispute["against"])
            if not is_party and user["role"] not in ADMIN_ROLES:
                raise ForbiddenError("You are not authorized to send messages in this dispute")
            messages = json.loads(dispute["messages"])
            messages.append(
                {"sender_id": user["id"], "message": message, "attachments": attachments or [], "sent_at": now_iso()}
            )
            cursor.execute(
                "UPDATE disputes SET messages = ?, updated_at = ? WHERE id = ?",
                (dump_json(messages), now_iso(), dispute_id),
            )
            for party in (dispute["raised_by"], dispute["against"]):
                if party != user["id"]:
                    notify(cursor, party, "message", "New dispute message", message[:100],
                           action_url=f"/disputes/{dispute_id}", related_dispute=dispute_id)
            conn.commit()
            return serialize_dispute(cursor, _fetch_dispute(cursor, dispute_id))
        finally:
            conn.close()

    @classmethod
    async def assign_dispute(cls, dispute_id: int, admin: Dict[str, Any], assign_to: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            dispute = _fetch_dispute(cursor, dispute_id)
            assignee = cursor.execute(
                "SELECT role FROM users WHERE id = ? AND is_deleted = 0", (assign_to,)
            ).fetchone()
            if not assignee:
                raise NotFoundError("User not found")
            if assignee["role"] not in ADMIN_ROLES:
                raise BadRequestError("Disputes can only be assigned to administrators")
            now = now_iso()
            status = dispute["status"]
            reviewed_at = dispute["reviewed_at"]
            if status == "open":
                status, reviewed_at = "in_review", now
            cursor.execute(
                "UPDATE disputes SET assigned_to = ?, status = ?, reviewed_at = ?, updated_at = ? WHERE id = ?",
                (assign_to, status, reviewed_at, now, dispute_id),
            )
            conn.commit()
            result = serialize_dispute(cursor, _fetch_dispute(cursor, dispute_id))
        finally:
            conn.close()
        logger.info("Dispute %s assigned to %s", dispute_id, assign_to)
        await AuditService.log(user_id=admin["id"], action="assign", object_type="dispute", object_id=dispute_id,
                               details={"assigned_to": assign_to})
        return result

    @classmethod
    async def update_priority(cls, dispute_id: int, priority: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            _fetch_dispute(cursor, dispute_id)
            cursor.execute(
                "UPDATE disputes SET priority = ?, updated_at = ? WHERE id = ?", (priority, now_iso(), dispute_id)
            )
            conn.commit()
            return serialize_dispute(cursor, _fetch_dispute(cursor, dispute_id))
        finally:
            conn.close()

    @classmethod
    async def resolve_dispute(cls, dispute_id: int, admin: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        """Settle a dispute and the escrowed payment of its booking.

        ``refund_client`` refunds the full payment and cancels the
        booking; ``pay_vendor`` releases it to the vendor and
        ``partial_refund`` splits it between ``refund_amount`` and
        ``vendor_payment_amount``, both completing the booking.
        """
        resolution = data["resolution"]
        refund_amount = data.get("refund_amount")
        vendor_amount = data.get("vendor_payment_amount")
        if resolution == "partial_refund" and (refund_amount is None or vendor_amount is None):
            raise BadRequestError("Refund and vendor payment amounts required for partial refund")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            dispute = _fetch_dispute(cursor, dispute_id)
            if dispute["status"] in ("resolved", "closed"):
                raise BadRequestError("Dispute already resolved/closed")
            booking = fetch_booking(cursor, dispute["booking_id"])
            reason = data.get("resolution_details") or "Dispute resolved"
            if resolution == "refund_client":
                if refund_escrow(cursor, booking["id"], admin["id"], "Dispute resolved in favor of client") is None:
                    raise BadRequestError("No payment is held in escrow for this booking")
                set_status(cursor, booking, "cancelled", admin["id"], reason, cancelled_at=now_iso(),
                           cancelled_by=admin["id"], cancellation_reason=reason)
            elif resolution == "pay_vendor":
                release_escrow(cursor, booking["id"])
                set_status(cursor, booking, "completed", admin["id"], reason,
                           completed_at=booking["completed_at"] or now_iso())
            else:
                if split_escrow(cursor, booking["id"], refund_amount, vendor_amount, admin["id"], reason) is None:
                    raise BadRequestError("No payment is held in escrow for this booking")
                set_status(cursor, booking, "completed", admin["id"], reason,
                           completed_at=booking["completed_at"] or now_iso())
            now = now_iso()
            cursor.execute(
                """
                UPDATE disputes SET status = 'resolved', resolution = ?, resolution_details = ?, refund_amount = ?,
                    vendor_payment_amount = ?, resolved_at = ?, resolved_by = ?, updated_at = ?
                WHERE id = ?
                """,
                (resolution, data.get("resolution_details"), refund_amount, vendor_amount, now, admin["id"], now,
                 dispute_id),
            )
            for party in (dispute["raised_by"], dispute["against"]):
                notify(cursor, party, "booking", "Dispute resolved",
                       f"Dispute #{dispute_id} has been resolved.", action_url=f"/disputes/{dispute_id}",
                       related_dispute=dispute_id)
            conn.commit()
            result = serialize_dispute(cursor, _fetch_dispute(cursor, dispute_id))
        finally:
            conn.close()
        logger.info("Dispute resolved: %s - %s", dispute_id, resolution)
        await AuditService.log(user_id=admin["id"], action="resolve", object_type="dispute", object_id=dispute_id,
                               details={"resolution": resolution})
        return result

    @classmethod
    async def close_dispute(cls, dispute_id: int, admin: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            dispute = _fetch_dispute(cursor, dispute_id)
            if dispute["status"] != "resolved":
                raise BadRequestError("Only resolved disputes can be closed")
            now = now_iso()
            cursor.execute(
                "UPDATE disputes SET status = 'closed', closed_at = ?, closed_by = ?, updated_at = ? WHERE id = ?",
                (now, admin["id"], now, dispute_id),
            )
            conn.commit()
            return serialize_dispute(cursor, _fetch_dispute(cursor, dispute_id))
        finally:
            conn.close()

    @classmethod
    async def get_dispute(cls, dispute_id: int, user: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            dispute = _fetch_dispute(cursor, dispute_id)
            is_party = user["id"] in (dispute["raised_by"], dispute["against"])
            if not is_party and user["role"] not in ADMIN_ROLES:
                raise ForbiddenError("Not authorized to view this dispute")
            return serialize_dispute(cursor, dispute)
        finally:
            conn.close()

    @classmethod
    async def list_disputes(
        cls,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        assigned_to: Optional[int] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """List a user's disputes, or (``user_id`` omitted) all of them by priority."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where: List[str] = []
            params: list = []
            if user_id is not None:
                where.append("(raised_by = ? OR against = ?)")
                params.extend([user_id, user_id])
            for column, value in (("status", status), ("category", category), ("priority", priority),
                                  ("assigned_to", assigned_to)):
                if value is not None:
                    where.append(f"{column} = ?")
                    params.append(value)
            clause = " WHERE " + " AND ".join(where) if where else ""
            order = "created_at DESC, id DESC" if user_id is not None else f"{PRIORITY_ORDER} DESC, created_at DESC, id DESC"
            total = cursor.execute(f"SELECT COUNT(*) FROM disputes{clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM disputes{clause} ORDER BY {order} LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return [serialize_dispute(cursor, row) for row in rows], total
        finally:
            conn.close()

    @classmethod
    async def get_stats(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            counts = {
                row["status"]: row["count"]
                for row in cursor.execute("SELECT status, COUNT(*) AS count FROM disputes GROUP BY status")
            }
            by_category = cursor.execute(
                "SELECT category, COUNT(*) AS count FROM disputes GROUP BY category ORDER BY count DESC"
            ).fetchall()
            by_priority = cursor.execute(
                f"SELECT priority, COUNT(*) AS count FROM disputes GROUP BY priority ORDER BY {PRIORITY_ORDER} DESC"
            ).fetchall()
        finally:
            conn.close()
        return {
            "total": sum(counts.values()),
            "open": counts.get("open", 0),
            "in_review": counts.get("in_review", 0),
            "resolved": counts.get("resolved", 0),
            "closed": counts.get("closed", 0),
            "by_category": [dict(row) for row in by_category],
            "by_priority": [dict(row) for row in by_priority],
        }
