"""
Client offers and vendor responses.

A client posts an offer (what they need, in which category, for how
much).  Verified vendors answer with their own price; the client may
counter a response and finally accept one, which creates an
``offer_based`` booking at the agreed price.  Responses are stored as a
JSON list on the offer and numbered from 1.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from sharplook_api.app.core.helpers import add_days, calculate_distance, now_iso, parse_iso, to_iso, utcnow
from sharplook_api.app.services.booking_service import fetch_booking, insert_booking, serialize_booking
from sharplook_api.app.services.notification_service import notify
from sharplook_api.app.services.user_service import location_columns


logger = logging.getLogger(__name__)

OFFER_JSON_FIELDS = ("location", "images", "responses")
DEFAULT_EXPIRY_DAYS = 7
DEFAULT_RADIUS_KM = 20


def _vendor_summary(cursor: sqlite3.Cursor, vendor_id: int) -> Optional[Dict[str, Any]]:
    row = cursor.execute(
        """
        SELECT u.id, u.first_name, u.last_name, u.avatar, vp.business_name, vp.rating
        FROM users u LEFT JOIN vendor_profiles vp ON vp.user_id = u.id WHERE u.id = ?
        """,
        (vendor_id,),
    ).fetchone()
    return dict(row) if row else None


def serialize_offer(cursor: sqlite3.Cursor, row: sqlite3.Row) -> Dict[str, Any]:
    offer = row_to_dict(row, json_fields=OFFER_JSON_FIELDS)
    client = cursor.execute(
        "SELECT id, first_name, last_name, avatar FROM users WHERE id = ?", (row["client_id"],)
    ).fetchone()
    category = cursor.execute("SELECT id, name, icon FROM categories WHERE id = ?", (row["category_id"],)).fetchone()
    service = None
    if row["service_id"] is not None:
        service = cursor.execute("SELECT id, name FROM services WHERE id = ?", (row["service_id"],)).fetchone()
    offer["client"] = dict(client) if client else None
    offer["category"] = dict(category) if category else None
    offer["service"] = dict(service) if service else None
    for response in offer["responses"]:
        response["vendor"] = _vendor_summary(cursor, response["vendor_id"])
    return offer


def _fetch_offer(cursor: sqlite3.Cursor, offer_id: int) -> sqlite3.Row:
    row = cursor.execute("SELECT * FROM offers WHERE id = ?", (offer_id,)).fetchone()
    if not row:
        raise NotFoundError("Offer not found")
    return row


def _owned_open_offer(cursor: sqlite3.Cursor, offer_id: int, client_id: int, action: str) -> sqlite3.Row:
    offer = _fetch_offer(cursor, offer_id)
    if offer["client_id"] != client_id:
        raise ForbiddenError(f"Only the offer creator can {action}")
    if offer["status"] != "open":
        raise BadRequestError("Offer is no longer open")
    return offer


def _find_response(responses: List[Dict[str, Any]], response_id: int) -> Dict[str, Any]:
    for response in responses:
        if response["id"] == response_id:
            return response
    raise NotFoundError("Response not found")


class OfferService:

    @classmethod
    async def create_offer(cls, client_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if not cursor.execute(
                "SELECT 1 FROM categories WHERE id = ? AND is_deleted = 0", (data["category_id"],)
            ).fetchone():
                raise NotFoundError("Category not found")
            if data.get("service_id") is not None and not cursor.execute(
                "SELECT 1 FROM services WHERE id = ? AND is_deleted = 0", (data["service_id"],)
            ).fetchone():
                raise NotFoundError("Service not found")
            latitude, longitude = location_columns(data.get("location"))
            expires_at = add_days(utcnow(), data.get("expires_in_days") or DEFAULT_EXPIRY_DAYS)
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO offers (client_id, title, description, category_id, service_id, proposed_price, location,
                    latitude, longitude, preferred_date, preferred_time, flexibility, images, status, responses,
                    expires_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'open', '[]', ?, ?, ?)
                """,
                (
                    client_id,
                    data["title"],
                    data["description"],
                    data["category_id"],
                    data.get("service_id"),
                    data["proposed_price"],
                    dump_json(data.get("location")),
                    latitude,
                    longitude,
                    data.get("preferred_date"),
                    data.get("preferred_time"),
                    data.get("flexibility") or "flexible",
                    dump_json(data.get("images") or []),
                    to_iso(expires_at),
                    now,
                    now,
                ),
            )
            offer_id = cursor.lastrowid
            conn.commit()
            logger.info("Offer created: %s by client %s", offer_id, client_id)
            return serialize_offer(cursor, _fetch_offer(cursor, offer_id))
        finally:
            conn.close()

    @classmethod
    async def get_available_offers(
        cls,
        vendor_id: int,
        category_id: Optional[int] = None,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        max_distance: float = DEFAULT_RADIUS_KM,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Open, unexpired offers this vendor has not answered yet."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = [
                "status = 'open'",
                "expires_at > ?",
                "NOT EXISTS (SELECT 1 FROM json_each(offers.responses) r "
                "WHERE json_extract(r.value, '$.vendor_id') = ?)",
                "client_id != ?",
            ]
            params: list = [now_iso(), vendor_id, vendor_id]
            if category_id is not None:
                where.append("category_id = ?")
                params.append(category_id)
            if price_min is not None:
                where.append("proposed_price >= ?")
                params.append(price_min)
            if price_max is not None:
                where.append("proposed_price <= ?")
                params.append(price_max)
            rows = cursor.execute(
                f"SELECT * FROM offers WHERE {' AND '.join(where)} ORDER BY created_at DESC, id DESC",
                tuple(params),
            ).fetchall()
            if latitude is not None and longitude is not None:
                rows = [
                    row
                    for row in rows
                    if row["latitude"] is not None
                    and calculate_distance(latitude, longitude, row["latitude"], row["longitude"]) <= max_distance
                ]
            page = rows[offset:offset + limit]
            return [serialize_offer(cursor, row) for row in page], len(rows)
        finally:
            conn.close()

    @classmethod
    async def respond_to_offer(cls, offer_id: int, vendor_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            offer = _fetch_offer(cursor, offer_id)
            if offer["status"] != "open":
                raise BadRequestError("Offer is no longer open")
            if utcnow() > parse_iso(offer["expires_at"]):
                cursor.execute(
                    "UPDATE offers SET status = 'expired', updated_at = ? WHERE id = ?", (now_iso(), offer_id)
                )
                conn.commit()
                raise BadRequestError("Offer has expired")
            responses = json.loads(offer["responses"])
            if any(response["vendor_id"] == vendor_id for response in responses):
                raise BadRequestError("You have already responded to this offer")
            vendor = cursor.execute(
                """
                SELECT u.is_vendor, vp.is_verified FROM users u
                LEFT JOIN vendor_profiles vp ON vp.user_id = u.id WHERE u.id = ?
                """,
                (vendor_id,),
            ).fetchone()
            if not vendor or not vendor["is_vendor"] or not vendor["is_verified"]:
                raise BadRequestError("Only verified vendors can respond to offers")
            responses.append(
                {
                    "id": max((response["id"] for response in responses), default=0) + 1,
                    "vendor_id": vendor_id,
                    "proposed_price": data["proposed_price"],
                    "message": data.get("message"),
                    "estimated_duration": data.get("estimated_duration"),
                    "counter_offer": None,
                    "is_accepted": False,
                    "responded_at": now_iso(),
                }
            )
            cursor.execute(
                "UPDATE offers SET responses = ?, updated_at = ? WHERE id = ?",
                (dump_json(responses), now_iso(), offer_id),
            )
            notify(cursor, offer["client_id"], "booking", "New offer response",
                   f'A vendor responded to your offer "{offer["title"]}".', action_url=f"/offers/{offer_id}")
            conn.commit()
            logger.info("Vendor %s responded to offer %s", vendor_id, offer_id)
            return serialize_offer(cursor, _fetch_offer(cursor, offer_id))
        finally:
            conn.close()

    @classmethod
    async def counter_offer(cls, offer_id: int, client_id: int, response_id: int, counter_price: float) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            offer = _owned_open_offer(cursor, offer_id, client_id, "submit counter offers")
            responses = json.loads(offer["responses"])
            response = _find_response(responses, response_id)
            response["counter_offer"] = counter_price
            cursor.execute(
                "UPDATE offers SET responses = ?, updated_at = ? WHERE id = ?",
                (dump_json(responses), now_iso(), offer_id),
            )
            notify(cursor, response["vendor_id"], "booking", "Counter offer received",
                   f'The client countered your response to "{offer["title"]}" with {counter_price:,.2f}.',
                   action_url=f"/offers/{offer_id}")
            conn.commit()
            logger.info("Counter offer submitted for offer %s", offer_id)
            return serialize_offer(cursor, _fetch_offer(cursor, offer_id))
        finally:
            conn.close()

    @classmethod
    async def accept_response(cls, offer_id: int, client_id: int, response_id: int) -> Dict[str, Any]:
        """Accept a vendor's response and create the booking.

        The booking price is the counter offer when one was made,
        otherwise the vendor's proposed price; no distance charge is
        added on top of a negotiated price.

        Returns
        -------
        dict
            ``offer`` and ``booking``.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            offer = _owned_open_offer(cursor, offer_id, client_id, "accept responses")
            responses = json.loads(offer["responses"])
            response = _find_response(responses, response_id)
            response["is_accepted"] = True
            final_price = response["counter_offer"] or response["proposed_price"]
            booking_id = insert_booking(
                cursor,
                client_id=client_id,
                vendor_id=response["vendor_id"],
                scheduled_date=offer["preferred_date"] or now_iso(),
                service_price=final_price,
                booking_type="offer_based",
                service_id=offer["service_id"],
                offer_id=offer_id,
                scheduled_time=offer["preferred_time"],
                duration=response.get("estimated_duration"),
                location=json.loads(offer["location"]) if offer["location"] else None,
            )
            now = now_iso()
            cursor.execute(
                """
                UPDATE offers SET status = 'accepted', responses = ?, selected_vendor_id = ?, selected_response_id = ?,
                    accepted_at = ?, booking_id = ?, updated_at = ?
                WHERE id = ?
                """,
                (dump_json(responses), response["vendor_id"], response_id, now, booking_id, now, offer_id),
            )
            notify(cursor, response["vendor_id"], "booking", "Offer accepted",
                   f'Your response to "{offer["title"]}" was accepted.',
                   action_url=f"/bookings/{booking_id}", related_booking=booking_id)
            conn.commit()
            logger.info("Offer accepted: %s, booking created: %s", offer_id, booking_id)
            return {
                "offer": serialize_offer(cursor, _fetch_offer(cursor, offer_id)),
                "booking": serialize_booking(cursor, fetch_booking(cursor, booking_id)),
            }
        finally:
            conn.close()

    @classmethod
    async def get_offer(cls, offer_id: int, user_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            offer = _fetch_offer(cursor, offer_id)
            responded = any(r["vendor_id"] == user_id for r in json.loads(offer["responses"]))
            if offer["client_id"] != user_id and not responded:
                raise ForbiddenError("Not authorized to view this offer")
            return serialize_offer(cursor, offer)
        finally:
            conn.close()

    @classmethod
    async def get_client_offers(cls, client_id: int, limit: int = 10, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute("SELECT COUNT(*) FROM offers WHERE client_id = ?", (client_id,)).fetchone()[0]
            rows = cursor.execute(
                "SELECT * FROM offers WHERE client_id = ? ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (client_id, limit, offset),
            ).fetchall()
            return [serialize_offer(cursor, row) for row in rows], total
        finally:
            conn.close()

    @classmethod
    async def get_vendor_responses(cls, vendor_id: int, limit: int = 10, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        """Offers the vendor has responded to."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            clause = (
                "EXISTS (SELECT 1 FROM json_each(offers.responses) r "
                "WHERE json_extract(r.value, '$.vendor_id') = ?)"
            )
            total = cursor.execute(f"SELECT COUNT(*) FROM offers WHERE {clause}", (vendor_id,)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM offers WHERE {clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (vendor_id, limit, offset),
            ).fetchall()
            return [serialize_offer(cursor, row) for row in rows], total
        finally:
            conn.close()

    @classmethod
    async def close_offer(cls, offer_id: int, client_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            offer = _fetch_offer(cursor, offer_id)
            if offer["client_id"] != client_id:
                raise ForbiddenError("Only the offer creator can close offers")
            if offer["status"] != "open":
                raise BadRequestError("Only open offers can be closed")
            cursor.execute("UPDATE offers SET status = 'closed', updated_at = ? WHERE id = ?", (now_iso(), offer_id))
            conn.commit()
            logger.info("Offer closed: %s", offer_id)
            return serialize_offer(cursor, _fetch_offer(cursor, offer_id))
        finally:
            conn.close()
