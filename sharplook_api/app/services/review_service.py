"""
Reviews left by the parties of a completed booking.

Clients review vendors and vendors review clients; each party may
review a booking once.  Client reviews feed the vendor's profile rating
and the booked service's average rating, which are recalculated from
approved, visible reviews whenever a review is created or moderated.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from sharplook_api.app.core.helpers import now_iso
from sharplook_api.app.services.audit_service import AuditService
from sharplook_api.app.services.notification_service import notify


logger = logging.getLogger(__name__)

REVIEW_JSON_FIELDS = ("detailed_ratings", "images", "response", "helpful_votes")
REVIEW_BOOL_FIELDS = ("is_approved", "is_flagged", "is_hidden")
VISIBLE = "is_approved = 1 AND is_hidden = 0"


def _person(cursor: sqlite3.Cursor, user_id: int) -> Optional[Dict[str, Any]]:
    row = cursor.execute(
        """
        SELECT u.id, u.first_name, u.last_name, u.avatar, vp.business_name
        FROM users u LEFT JOIN vendor_profiles vp ON vp.user_id = u.id WHERE u.id = ?
        """,
        (user_id,),
    ).fetchone()
    return dict(row) if row else None


def serialize_review(cursor: sqlite3.Cursor, row: sqlite3.Row) -> Dict[str, Any]:
    review = row_to_dict(row, json_fields=REVIEW_JSON_FIELDS, bool_fields=REVIEW_BOOL_FIELDS)
    review["reviewer"] = _person(cursor, row["reviewer_id"])
    review["reviewee"] = _person(cursor, row["reviewee_id"])
    return review


def _fetch_review(cursor: sqlite3.Cursor, review_id: int) -> sqlite3.Row:
    row = cursor.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
    if not row:
        raise NotFoundError("Review not found")
    return row


def update_ratings(cursor: sqlite3.Cursor, reviewee_id: int, service_id: Optional[int]) -> None:
    """Recalculate the vendor profile rating and the service average rating."""
    vendor = cursor.execute(
        f"""
        SELECT COUNT(*) AS count, AVG(rating) AS average FROM reviews
        WHERE reviewee_id = ? AND reviewer_type = 'client' AND {VISIBLE}
        """,
        (reviewee_id,),
    ).fetchone()
    cursor.execute(
        "UPDATE vendor_profiles SET rating = ?, total_ratings = ? WHERE user_id = ?",
        (round(vendor["average"] or 0, 1), vendor["count"], reviewee_id),
    )
    if service_id is None:
        return
    service = cursor.execute(
        f"""
        SELECT COUNT(*) AS count, AVG(rating) AS average FROM reviews
        WHERE service_id = ? AND reviewer_type = 'client' AND {VISIBLE}
        """,
        (service_id,),
    ).fetchone()
    cursor.execute(
        "UPDATE services SET average_rating = ?, total_reviews = ? WHERE id = ?",
        (round(service["average"] or 0, 1), service["count"], service_id),
    )


class ReviewService:

    @classmethod
    async def create_review(
        cls, user_id: int, data: Dict[str, Any], service_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Review the other party of a completed booking.

        Parameters
        ----------
        user_id : int
            The reviewer.
        data : dict
            ``booking_id``, ``rating`` and ``comment``; optionally
            ``title``, ``detailed_ratings`` and ``images``.
        service_id : int, optional
            When given the booking must be for this service.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cursor.execute("SELECT * FROM bookings WHERE id = ?", (data["booking_id"],)).fetchone()
            if not booking:
                raise NotFoundError("Booking not found")
            if service_id is not None and booking["service_id"] != service_id:
                raise BadRequestError("This booking is not for this service")
            if booking["status"] != "completed":
                raise BadRequestError("Can only review completed bookings")
            if user_id == booking["client_id"]:
                reviewer_type, reviewee_id = "client", booking["vendor_id"]
            elif user_id == booking["vendor_id"]:
                reviewer_type, reviewee_id = "vendor", booking["client_id"]
            else:
                raise ForbiddenError("You can only review your own bookings")
            if cursor.execute(
                "SELECT 1 FROM reviews WHERE booking_id = ? AND reviewer_id = ?", (booking["id"], user_id)
            ).fetchone():
                raise BadRequestError("You have already reviewed this booking")
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO reviews (booking_id, service_id, reviewer_id, reviewee_id, reviewer_type, rating, title,
                    comment, detailed_ratings, images, helpful_votes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, '[]', ?, ?)
                """,
                (
                    booking["id"],
                    booking["service_id"],
                    user_id,
                    reviewee_id,
                    reviewer_type,
                    data["rating"],
                    data.get("title"),
                    data["comment"],
                    dump_json(data.get("detailed_ratings")),
                    dump_json(data.get("images") or []),
                    now,
                    now,
                ),
            )
            review_id = cursor.lastrowid
            if reviewer_type == "client":
                cursor.execute(
                    "UPDATE bookings SET has_review = 1, review_id = ?, updated_at = ? WHERE id = ?",
                    (review_id, now, booking["id"]),
                )
                update_ratings(cursor, reviewee_id, booking["service_id"])
            notify(cursor, reviewee_id, "system", "New review",
                   f"You received a {data['rating']}-star review.", related_review=review_id)
            conn.commit()
            logger.info("Review created: %s for booking %s", review_id, booking["id"])
            return serialize_review(cursor, _fetch_review(cursor, review_id))
        finally:
            conn.close()

    @classmethod
    async def respond_to_review(cls, review_id: int, user_id: int, comment: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            review = _fetch_review(cursor, review_id)
            if review["reviewee_id"] != user_id:
                raise ForbiddenError("Only the reviewee can respond to this review")
            if review["response"]:
                raise BadRequestError("You have already responded to this review")
            cursor.execute(
                "UPDATE reviews SET response = ?, updated_at = ? WHERE id = ?",
                (dump_json({"comment": comment, "responded_at": now_iso()}), now_iso(), review_id),
            )
            conn.commit()
            return serialize_review(cursor, _fetch_review(cursor, review_id))
        finally:
            conn.close()

    @classmethod
    async def vote(cls, review_id: int, user_id: int, is_helpful: bool) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            review = _fetch_review(cursor, review_id)
            votes = json.loads(review["helpful_votes"])
            if user_id in votes:
                raise BadRequestError("You have already voted on this review")
            votes.append(user_id)
            counter = "helpful_count" if is_helpful else "not_helpful_count"
            cursor.execute(
                f"UPDATE reviews SET helpful_votes = ?, {counter} = {counter} + 1, updated_at = ? WHERE id = ?",
                (dump_json(votes), now_iso(), review_id),
            )
            conn.commit()
            return serialize_review(cursor, _fetch_review(cursor, review_id))
        finally:
            conn.close()

    @classmethod
    async def flag_review(cls, review_id: int, user_id: int, reason: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            _fetch_review(cursor, review_id)
            now = now_iso()
            cursor.execute(
                """
                UPDATE reviews SET is_flagged = 1, flag_reason = ?, flagged_by = ?, flagged_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (reason, user_id, now, now, review_id),
            )
            conn.commit()
            logger.info("Review flagged: %s by user %s", review_id, user_id)
            return serialize_review(cursor, _fetch_review(cursor, review_id))
        finally:
            conn.close()

    @classmethod
    async def get_review(cls, review_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            return serialize_review(cursor, _fetch_review(cursor, review_id))
        finally:
            conn.close()

    @classmethod
    async def _list(cls, where: List[str], params: list, limit: int, offset: int) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            clause = " WHERE " + " AND ".join(where) if where else ""
            total = cursor.execute(f"SELECT COUNT(*) FROM reviews{clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM reviews{clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return [serialize_review(cursor, row) for row in rows], total
        finally:
            conn.close()

    @staticmethod
    def _rating_filters(where: List[str], params: list, rating: Optional[int], min_rating: Optional[int]) -> None:
        if min_rating is not None:
            where.append("rating >= ?")
            params.append(min_rating)
        elif rating is not None:
            where.append("rating = ?")
            params.append(rating)

    @classmethod
    async def get_user_reviews(cls, user_id: int, limit: int = 10, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        """Reviews written by ``user_id``."""
        return await cls._list(["reviewer_id = ?"], [user_id], limit, offset)

    @classmethod
    async def get_reviews_for_user(
        cls,
        user_id: int,
        rating: Optional[int] = None,
        min_rating: Optional[int] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Visible reviews received by ``user_id``."""
        where = ["reviewee_id = ?", VISIBLE]
        params: list = [user_id]
        cls._rating_filters(where, params, rating, min_rating)
        return await cls._list(where, params, limit, offset)

    @classmethod
    async def get_service_reviews(
        cls,
        service_id: int,
        rating: Optional[int] = None,
        min_rating: Optional[int] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        where = ["service_id = ?", "reviewer_type = 'client'", VISIBLE]
        params: list = [service_id]
        cls._rating_filters(where, params, rating, min_rating)
        return await cls._list(where, params, limit, offset)

    @classmethod
    async def get_all_reviews(
        cls,
        is_flagged: Optional[bool] = None,
        is_approved: Optional[bool] = None,
        rating: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        where: List[str] = []
        params: list = []
        if is_flagged is not None:
            where.append("is_flagged = ?")
            params.append(1 if is_flagged else 0)
        if is_approved is not None:
            where.append("is_approved = ?")
            params.append(1 if is_approved else 0)
        cls._rating_filters(where, params, rating, None)
        return await cls._list(where, params, limit, offset)

    @classmethod
    async def _moderate(cls, review_id: int, admin: Dict[str, Any], action: str, **columns: Any) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            review = _fetch_review(cursor, review_id)
            now = now_iso()
            columns.update(moderated_by=admin["id"], moderated_at=now, updated_at=now)
            assignments = ", ".join(f"{name} = ?" for name in columns)
            cursor.execute(f"UPDATE reviews SET {assignments} WHERE id = ?", (*columns.values(), review_id))
            if review["reviewer_type"] == "client":
                update_ratings(cursor, review["reviewee_id"], review["service_id"])
            conn.commit()
            result = serialize_review(cursor, _fetch_review(cursor, review_id))
        finally:
            conn.close()
        await AuditService.log(user_id=admin["id"], action=action, object_type="review", object_id=review_id)
        return result

    @classmethod
    async def approve_review(cls, review_id: int, admin: Dict[str, Any]) -> Dict[str, Any]:
        return await cls._moderate(review_id, admin, "approve", is_approved=1)

    @classmethod
    async def hide_review(cls, review_id: int, admin: Dict[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
        return await cls._moderate(review_id, admin, "hide", is_hidden=1, hidden_reason=reason)

    @classmethod
    async def unhide_review(cls, review_id: int, admin: Dict[str, Any]) -> Dict[str, Any]:
        return await cls._moderate(review_id, admin, "unhide", is_hidden=0, hidden_reason=None)

    @classmethod
    async def get_stats(cls, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Rating breakdown for the reviews a user received, or for all reviews."""
        clause = " WHERE reviewee_id = ?" if user_id is not None else ""
        params = (user_id,) if user_id is not None else ()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                f"""
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(is_flagged), 0) AS flagged,
                       COALESCE(SUM(is_approved), 0) AS approved,
                       AVG(CASE WHEN is_approved = 1 AND is_hidden = 0 THEN rating END) AS average
                FROM reviews{clause}
                """,
                params,
            ).fetchone()
            by_rating = cursor.execute(
                f"SELECT rating, COUNT(*) AS count FROM reviews{clause} GROUP BY rating ORDER BY rating DESC",
                params,
            ).fetchall()
        finally:
            conn.close()
        return {
            "total": row["total"],
            "by_rating": [dict(item) for item in by_rating],
            "flagged": row["flagged"],
            "approved": row["approved"],
            "average_rating": round(row["average"] or 0, 2),
        }
