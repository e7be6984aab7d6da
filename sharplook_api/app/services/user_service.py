"""
Business logic for user accounts and vendor profiles.

Besides the ``UserService`` operations used by the ``/users`` routes,
this module exposes ``fetch_user`` and ``serialize_user`` which every
other service uses to load a user together with its vendor profile
without leaking password hashes or one-time tokens.
"""

import json
import logging
import re
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict, rows_to_dicts
from sharplook_api.app.core.errors import BadRequestError, ConflictError, NotFoundError
from sharplook_api.app.core.helpers import calculate_distance, now_iso
from sharplook_api.app.core.security import hash_password, verify_password
from sharplook_api.app.services.audit_service import AuditService


logger = logging.getLogger(__name__)

USER_PRIVATE_FIELDS = (
    "password",
    "email_verification_token",
    "email_verification_expires",
    "password_reset_token",
    "password_reset_expires",
    "refresh_token",
    "withdrawal_pin",
)
USER_BOOL_FIELDS = ("is_email_verified", "is_phone_verified", "is_online", "is_vendor", "is_deleted")
VENDOR_JSON_FIELDS = ("categories", "location", "availability_schedule", "documents")

DEFAULT_PREFERENCES = {
    "dark_mode": False,
    "fingerprint_enabled": False,
    "notifications_enabled": True,
    "email_notifications": True,
    "push_notifications": True,
}

DEFAULT_SCHEDULE = {
    day: {"is_available": True, "from": "09:00", "to": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
}
DEFAULT_SCHEDULE["sunday"] = {"is_available": False}

PIN_RE = re.compile(r"^\d{4,6}$")


def serialize_vendor_profile(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    profile = row_to_dict(row, json_fields=VENDOR_JSON_FIELDS, bool_fields=("is_verified",))
    if profile is not None:
        profile.pop("user_id", None)
    return profile


def serialize_user(row: sqlite3.Row, vendor_row: Optional[sqlite3.Row] = None) -> Dict[str, Any]:
    """Public representation of a user row (hashes and tokens removed)."""
    user = row_to_dict(row, json_fields=("preferences",), bool_fields=USER_BOOL_FIELDS, exclude=USER_PRIVATE_FIELDS)
    user["has_withdrawal_pin"] = bool(row["withdrawal_pin"])
    user["full_name"] = f"{row['first_name']} {row['last_name']}"
    user["vendor_profile"] = serialize_vendor_profile(vendor_row)
    return user


def fetch_user(cursor: sqlite3.Cursor, user_id: Optional[int], include_deleted: bool = False) -> Optional[Dict[str, Any]]:
    """Load a user and its vendor profile; ``None`` when missing."""
    if user_id is None:
        return None
    query = "SELECT * FROM users WHERE id = ?"
    if not include_deleted:
        query += " AND is_deleted = 0"
    row = cursor.execute(query, (user_id,)).fetchone()
    if not row:
        return None
    vendor_row = cursor.execute("SELECT * FROM vendor_profiles WHERE user_id = ?", (user_id,)).fetchone()
    return serialize_user(row, vendor_row)


def require_user(cursor: sqlite3.Cursor, user_id: int, message: str = "User not found") -> Dict[str, Any]:
    user = fetch_user(cursor, user_id)
    if not user:
        raise NotFoundError(message)
    return user


def serialize_users(cursor: sqlite3.Cursor, rows: List[sqlite3.Row]) -> List[Dict[str, Any]]:
    """Serialise several user rows, loading vendor profiles in one query."""
    ids = [row["id"] for row in rows]
    profiles: Dict[int, sqlite3.Row] = {}
    if ids:
        placeholders = ",".join("?" for _ in ids)
        for vp in cursor.execute(f"SELECT * FROM vendor_profiles WHERE user_id IN ({placeholders})", ids):
            profiles[vp["user_id"]] = vp
    return [serialize_user(row, profiles.get(row["id"])) for row in rows]


def location_columns(location: Optional[Dict[str, Any]]) -> Tuple[Optional[float], Optional[float]]:
    """Return ``(latitude, longitude)`` from a ``coordinates: [lng, lat]`` location."""
    if not location:
        return None, None
    coordinates = location.get("coordinates") or []
    if len(coordinates) != 2:
        return None, None
    return coordinates[1], coordinates[0]


def insert_vendor_profile(cursor: sqlite3.Cursor, user_id: int, data: Dict[str, Any]) -> None:
    location = data.get("location")
    latitude, longitude = location_columns(location)
    cursor.execute(
        """
        INSERT INTO vendor_profiles (user_id, business_name, business_description, vendor_type,
            categories, location, latitude, longitude, service_radius, availability_schedule, documents)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_id,
            data["business_name"],
            data.get("business_description"),
            data["vendor_type"],
            dump_json(data.get("categories") or []),
            dump_json(location),
            latitude,
            longitude,
            data.get("service_radius") if data.get("service_radius") is not None else 10,
            dump_json(data.get("availability_schedule") or DEFAULT_SCHEDULE),
            dump_json(data.get("documents")),
        ),
    )


class UserService:
    """Service for profiles, vendor onboarding and user administration."""

    @classmethod
    async def get_user_by_id(cls, user_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            return require_user(conn.cursor(), user_id)
        finally:
            conn.close()

    @classmethod
    async def update_profile(cls, user_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update first/last name, phone or avatar.

        Raises ``ConflictError`` when the new phone number belongs to
        another account.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            require_user(cursor, user_id)
            allowed = {k: v for k, v in updates.items() if k in ("first_name", "last_name", "phone", "avatar") and v is not None}
            if "phone" in allowed:
                clash = cursor.execute(
                    "SELECT id FROM users WHERE phone = ? AND id != ?",
                    (allowed["phone"], user_id),
                ).fetchone()
                if clash:
                    raise ConflictError("Phone number already in use")
            if allowed:
                assignments = ", ".join(f"{field} = ?" for field in allowed)
                cursor.execute(
                    f"UPDATE users SET {assignments}, updated_at = ? WHERE id = ?",
                    (*allowed.values(), now_iso(), user_id),
                )
                conn.commit()
                logger.info("Profile updated for user %s", user_id)
            return fetch_user(cursor, user_id)
        finally:
            conn.close()

    @classmethod
    async def update_preferences(cls, user_id: int, preferences: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = require_user(cursor, user_id)
            merged = dict(DEFAULT_PREFERENCES, **(user["preferences"] or {}))
            merged.update({k: v for k, v in preferences.items() if k in DEFAULT_PREFERENCES and v is not None})
            cursor.execute(
                "UPDATE users SET preferences = ?, updated_at = ? WHERE id = ?",
                (json.dumps(merged), now_iso(), user_id),
            )
            conn.commit()
            return merged
        finally:
            conn.close()

    @classmethod
    async def set_withdrawal_pin(cls, user_id: int, pin: str) -> None:
        if not PIN_RE.match(pin or ""):
            raise BadRequestError("PIN must be 4-6 digits")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            require_user(cursor, user_id)
            cursor.execute(
                "UPDATE users SET withdrawal_pin = ?, updated_at = ? WHERE id = ?",
                (hash_password(pin), now_iso(), user_id),
            )
            conn.commit()
            logger.info("Withdrawal PIN set for user %s", user_id)
        finally:
            conn.close()

    @staticmethod
    def check_withdrawal_pin(cursor: sqlite3.Cursor, user_id: int, pin: str) -> bool:
        row = cursor.execute("SELECT withdrawal_pin FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("User not found")
        if not row["withdrawal_pin"]:
            raise BadRequestError("Withdrawal PIN not set")
        return verify_password(pin, row["withdrawal_pin"])

    @classmethod
    async def verify_withdrawal_pin(cls, user_id: int, pin: str) -> bool:
        conn = get_connection()
        try:
            return cls.check_withdrawal_pin(conn.cursor(), user_id, pin)
        finally:
            conn.close()

    @classmethod
    async def become_vendor(cls, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Turn a client account into an (unverified) vendor account.

        The profile starts with a Monday to Saturday 09:00-17:00
        availability schedule and must be verified by an administrator
        before the vendor can publish services or accept bookings.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = require_user(cursor, user_id)
            if user["is_vendor"]:
                raise BadRequestError("User is already a vendor")
            insert_vendor_profile(cursor, user_id, data)
            cursor.execute(
                "UPDATE users SET is_vendor = 1, updated_at = ? WHERE id = ?",
                (now_iso(), user_id),
            )
            conn.commit()
            logger.info("User became vendor: %s", user["email"])
            return fetch_user(cursor, user_id)
        finally:
            conn.close()

    @classmethod
    async def update_vendor_profile(cls, user_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = require_user(cursor, user_id)
            if not user["is_vendor"] or not user["vendor_profile"]:
                raise BadRequestError("User is not a vendor")
            columns: Dict[str, Any] = {}
            for field in ("business_name", "business_description", "vendor_type", "service_radius"):
                if updates.get(field) is not None:
                    columns[field] = updates[field]
            for field in ("categories", "availability_schedule", "documents"):
                if updates.get(field) is not None:
                    columns[field] = dump_json(updates[field])
            if updates.get("location") is not None:
                columns["location"] = dump_json(updates["location"])
                columns["latitude"], columns["longitude"] = location_columns(updates["location"])
            if columns:
                assignments = ", ".join(f"{field} = ?" for field in columns)
                cursor.execute(
                    f"UPDATE vendor_profiles SET {assignments} WHERE user_id = ?",
                    (*columns.values(), user_id),
                )
                cursor.execute("UPDATE users SET updated_at = ? WHERE id = ?", (now_iso(), user_id))
                conn.commit()
            return fetch_user(cursor, user_id)
        finally:
            conn.close()

    @classmethod
    async def get_user_stats(cls, user_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            user = require_user(conn.cursor(), user_id)
        finally:
            conn.close()
        stats: Dict[str, Any] = {
            "joined_date": user["created_at"],
            "last_login": user["last_login"],
            "email_verified": user["is_email_verified"],
            "phone_verified": user["is_phone_verified"],
            "wallet_balance": user["wallet_balance"],
        }
        profile = user["vendor_profile"]
        if user["is_vendor"] and profile:
            stats["vendor_stats"] = {
                "rating": profile["rating"],
                "total_ratings": profile["total_ratings"],
                "completed_bookings": profile["completed_bookings"],
                "is_verified": profile["is_verified"],
            }
        return stats

    @classmethod
    async def get_vendors(
        cls,
        vendor_type: Optional[str] = None,
        category_id: Optional[int] = None,
        search: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        max_distance: float = 10,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """List verified, active vendors.

        With ``latitude``/``longitude`` only vendors within
        ``max_distance`` km are returned, nearest first, each carrying a
        ``distance`` field.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            query = (
                "SELECT u.id FROM users u JOIN vendor_profiles vp ON vp.user_id = u.id "
                "WHERE u.is_vendor = 1 AND u.is_deleted = 0 AND u.status = 'active' AND vp.is_verified = 1"
            )
            params: list = []
            if vendor_type:
                query += " AND (vp.vendor_type = ? OR vp.vendor_type = 'both')"
                params.append(vendor_type)
            if category_id is not None:
                query += " AND EXISTS (SELECT 1 FROM json_each(vp.categories) WHERE json_each.value = ?)"
                params.append(category_id)
            if search:
                query += " AND (vp.business_name LIKE ? OR u.first_name LIKE ? OR u.last_name LIKE ?)"
                params.extend([f"%{search}%"] * 3)
            query += " ORDER BY vp.rating DESC, vp.completed_bookings DESC"
            ids = [row["id"] for row in cursor.execute(query, tuple(params)).fetchall()]
            vendors = [fetch_user(cursor, vendor_id) for vendor_id in ids]
            if latitude is not None and longitude is not None:
                nearby = []
                for vendor in vendors:
                    profile = vendor["vendor_profile"]
                    if profile.get("latitude") is None or profile.get("longitude") is None:
                        continue
                    distance = calculate_distance(latitude, longitude, profile["latitude"], profile["longitude"])
                    if distance <= max_distance:
                        vendor["distance"] = distance
                        nearby.append(vendor)
                vendors = sorted(nearby, key=lambda v: v["distance"])
            return vendors[offset:offset + limit], len(vendors)
        finally:
            conn.close()

    @classmethod
    async def get_top_vendors(cls, limit: int = 10) -> List[Dict[str, Any]]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(
                """
                SELECT u.id FROM users u JOIN vendor_profiles vp ON vp.user_id = u.id
                WHERE u.is_vendor = 1 AND u.is_deleted = 0 AND u.status = 'active' AND vp.is_verified = 1
                ORDER BY vp.rating DESC, vp.completed_bookings DESC, vp.total_ratings DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [fetch_user(cursor, row["id"]) for row in rows]
        finally:
            conn.close()

    @classmethod
    async def get_vendor_details(cls, vendor_id: int) -> Dict[str, Any]:
        """Vendor profile with active services and the latest visible reviews."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            vendor = fetch_user(cursor, vendor_id)
            if not vendor:
                raise NotFoundError("Vendor not found")
            if not vendor["is_vendor"]:
                raise BadRequestError("User is not a vendor")
            services = cursor.execute(
                """
                SELECT id, name, slug, base_price, price_type, duration, images, average_rating, total_reviews
                FROM services
                WHERE vendor_id = ? AND is_deleted = 0 AND is_active = 1 AND approval_status = 'approved'
                ORDER BY created_at DESC
                """,
                (vendor_id,),
            ).fetchall()
            reviews = cursor.execute(
                """
                SELECT id, reviewer_id, rating, title, comment, response, created_at FROM reviews
                WHERE reviewee_id = ? AND is_approved = 1 AND is_hidden = 0
                ORDER BY created_at DESC LIMIT 5
                """,
                (vendor_id,),
            ).fetchall()
            for field in USER_PRIVATE_FIELDS + ("wallet_balance", "preferences", "login_attempts", "lock_until"):
                vendor.pop(field, None)
            vendor["services"] = rows_to_dicts(services, json_fields=("images",))
            vendor["recent_reviews"] = rows_to_dicts(reviews, json_fields=("response",))
            return vendor
        finally:
            conn.close()

    @classmethod
    async def get_all_users(
        cls,
        role: Optional[str] = None,
        status: Optional[str] = None,
        is_vendor: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = ["is_deleted = 0"]
            params: list = []
            if role:
                where.append("role = ?")
                params.append(role)
            if status:
                where.append("status = ?")
                params.append(status)
            if is_vendor is not None:
                where.append("is_vendor = ?")
                params.append(1 if is_vendor else 0)
            if search:
                where.append("(first_name LIKE ? OR last_name LIKE ? OR email LIKE ? OR phone LIKE ?)")
                params.extend([f"%{search}%"] * 4)
            clause = " AND ".join(where)
            total = cursor.execute(f"SELECT COUNT(*) FROM users WHERE {clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM users WHERE {clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return serialize_users(cursor, rows), total
        finally:
            conn.close()

    @classmethod
    async def update_user_status(cls, user_id: int, status: str, admin: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = require_user(cursor, user_id)
            cursor.execute(
                "UPDATE users SET status = ?, updated_at = ? WHERE id = ?",
                (status, now_iso(), user_id),
            )
            conn.commit()
            logger.info("User %s status changed from %s to %s", user_id, user["status"], status)
        finally:
            conn.close()
        await AuditService.log(
            user_id=admin["id"],
            action="update_status",
            object_type="user",
            object_id=user_id,
            details={"from": user["status"], "to": status},
        )
        return await cls.get_user_by_id(user_id)

    @classmethod
    async def verify_vendor(cls, user_id: int, admin: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = require_user(cursor, user_id)
            if not user["is_vendor"] or not user["vendor_profile"]:
                raise BadRequestError("User is not a vendor")
            now = now_iso()
            cursor.execute(
                "UPDATE vendor_profiles SET is_verified = 1, verification_date = ? WHERE user_id = ?",
                (now, user_id),
            )
            cursor.execute("UPDATE users SET updated_at = ? WHERE id = ?", (now, user_id))
            conn.commit()
            logger.info("Vendor verified: %s", user["email"])
        finally:
            conn.close()
        await AuditService.log(user_id=admin["id"], action="verify_vendor", object_type="user", object_id=user_id)
        return await cls.get_user_by_id(user_id)

    @classmethod
    async def soft_delete_user(cls, user_id: int, deleted_by: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = require_user(cursor, user_id)
            now = now_iso()
            cursor.execute(
                """
                UPDATE users SET is_deleted = 1, deleted_at = ?, deleted_by = ?, refresh_token = NULL, updated_at = ?
                WHERE id = ?
                """,
                (now, deleted_by, now, user_id),
            )
            conn.commit()
            logger.info("User soft deleted: %s", user["email"])
        finally:
            conn.close()
        await AuditService.log(user_id=deleted_by, action="delete", object_type="user", object_id=user_id)

    @classmethod
    async def restore_user(cls, user_id: int, restored_by: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT id FROM users WHERE id = ? AND is_deleted = 1", (user_id,)).fetchone()
            if not row:
                raise NotFoundError("Deleted user not found")
            cursor.execute(
                "UPDATE users SET is_deleted = 0, deleted_at = NULL, deleted_by = NULL, updated_at = ? WHERE id = ?",
                (now_iso(), user_id),
            )
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(user_id=restored_by, action="restore", object_type="user", object_id=user_id)
        return await cls.get_user_by_id(user_id)
