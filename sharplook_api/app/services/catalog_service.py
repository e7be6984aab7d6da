"""
Business logic for the service catalogue.

Vendors publish services which stay inactive until an administrator
approves them.  Public listings only ever show services that are both
active and approved.  Changing the name, description, category, price
or images of an approved service sends it back for approval.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError, UnauthorizedError
from sharplook_api.app.core.helpers import calculate_distance, now_iso, slugify
from sharplook_api.app.services.audit_service import AuditService
from sharplook_api.app.services.notification_service import notify


logger = logging.getLogger(__name__)

SERVICE_JSON_FIELDS = ("images", "tags", "requirements", "what_is_included", "faqs", "availability")
SERVICE_BOOL_FIELDS = ("is_active", "is_deleted")
EDITABLE_FIELDS = (
    "name",
    "description",
    "category_id",
    "subcategory_id",
    "base_price",
    "price_type",
    "duration",
) + SERVICE_JSON_FIELDS
SIGNIFICANT_FIELDS = ("name", "description", "category_id", "base_price", "images")

SORT_COLUMNS = {
    "created_at": "s.created_at",
    "base_price": "s.base_price",
    "name": "s.name",
    "average_rating": "s.average_rating",
    "bookings": "s.bookings",
    "views": "s.views",
}


def serialize_service(cursor: sqlite3.Cursor, row: sqlite3.Row) -> Dict[str, Any]:
    service = row_to_dict(row, json_fields=SERVICE_JSON_FIELDS, bool_fields=SERVICE_BOOL_FIELDS)
    vendor = cursor.execute(
        """
        SELECT u.id, u.first_name, u.last_name, u.avatar, vp.business_name, vp.rating, vp.vendor_type
        FROM users u LEFT JOIN vendor_profiles vp ON vp.user_id = u.id WHERE u.id = ?
        """,
        (row["vendor_id"],),
    ).fetchone()
    service["vendor"] = dict(vendor) if vendor else None
    for field, key in (("category_id", "category"), ("subcategory_id", "subcategory")):
        category = None
        if row[field] is not None:
            category = cursor.execute(
                "SELECT id, name, slug, icon FROM categories WHERE id = ?", (row[field],)
            ).fetchone()
        service[key] = dict(category) if category else None
    return service


def fetch_service(cursor: sqlite3.Cursor, service_id: int) -> Optional[sqlite3.Row]:
    return cursor.execute("SELECT * FROM services WHERE id = ? AND is_deleted = 0", (service_id,)).fetchone()


def _unique_slug(cursor: sqlite3.Cursor, name: str, exclude_id: Optional[int] = None) -> str:
    base = slugify(name)
    slug = base
    counter = 1
    while cursor.execute(
        "SELECT 1 FROM services WHERE slug = ? AND id != ?", (slug, exclude_id or 0)
    ).fetchone():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _check_categories(cursor: sqlite3.Cursor, category_id: Optional[int], subcategory_id: Optional[int]) -> None:
    if category_id is not None and not cursor.execute(
        "SELECT 1 FROM categories WHERE id = ? AND is_deleted = 0", (category_id,)
    ).fetchone():
        raise NotFoundError("Category not found")
    if subcategory_id is not None and not cursor.execute(
        "SELECT 1 FROM categories WHERE id = ? AND is_deleted = 0", (subcategory_id,)
    ).fetchone():
        raise NotFoundError("Subcategory not found")


def _owned_service(cursor: sqlite3.Cursor, service_id: int, vendor_id: int, action: str) -> sqlite3.Row:
    row = fetch_service(cursor, service_id)
    if not row:
        raise NotFoundError("Service not found")
    if row["vendor_id"] != vendor_id:
        raise ForbiddenError(f"You can only {action} your own services")
    return row


def _vendors_near(cursor: sqlite3.Cursor, latitude: float, longitude: float, max_distance: float) -> List[int]:
    rows = cursor.execute(
        """
        SELECT vp.user_id, vp.latitude, vp.longitude FROM vendor_profiles vp
        JOIN users u ON u.id = vp.user_id
        WHERE vp.is_verified = 1 AND u.is_deleted = 0 AND vp.latitude IS NOT NULL AND vp.longitude IS NOT NULL
        """
    ).fetchall()
    return [
        row["user_id"]
        for row in rows
        if calculate_distance(latitude, longitude, row["latitude"], row["longitude"]) <= max_distance
    ]


class CatalogService:
    """Create, search and moderate vendor services."""

    @classmethod
    async def create_service(cls, vendor_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a service for ``vendor_id``.

        The service starts inactive with ``pending`` approval status and
        gets a unique slug (``name``, ``name-1``, ``name-2``...).
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            vendor = cursor.execute(
                """
                SELECT u.is_vendor, vp.is_verified FROM users u
                LEFT JOIN vendor_profiles vp ON vp.user_id = u.id
                WHERE u.id = ? AND u.is_deleted = 0
                """,
                (vendor_id,),
            ).fetchone()
            if not vendor or not vendor["is_vendor"]:
                raise UnauthorizedError("Only vendors can create services")
            if not vendor["is_verified"]:
                raise ForbiddenError("Vendor account must be verified to create services")
            _check_categories(cursor, data["category_id"], data.get("subcategory_id"))
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO services (vendor_id, name, slug, description, category_id, subcategory_id, base_price,
                    price_type, duration, images, tags, requirements, what_is_included, faqs, availability,
                    is_active, approval_status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 'pending', ?, ?)
                """,
                (
                    vendor_id,
                    data["name"],
                    _unique_slug(cursor, data["name"]),
                    data["description"],
                    data["category_id"],
                    data.get("subcategory_id"),
                    data["base_price"],
                    data.get("price_type") or "fixed",
                    data.get("duration"),
                    dump_json(data.get("images") or []),
                    dump_json(data.get("tags") or []),
                    dump_json(data.get("requirements") or []),
                    dump_json(data.get("what_is_included") or []),
                    dump_json(data.get("faqs") or []),
                    dump_json(data.get("availability")),
                    now,
                    now,
                ),
            )
            service_id = cursor.lastrowid
            conn.commit()
            logger.info("Service created: %s by vendor %s - pending approval", data["name"], vendor_id)
            return serialize_service(cursor, fetch_service(cursor, service_id))
        finally:
            conn.close()

    @classmethod
    async def list_services(
        cls,
        vendor_id: Optional[int] = None,
        category_id: Optional[int] = None,
        subcategory_id: Optional[int] = None,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        rating: Optional[float] = None,
        search: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        max_distance: float = 10,
        approval_status: Optional[str] = None,
        is_active: Optional[bool] = None,
        include_unpublished: bool = False,
        sort_by: str = "created_at",
        sort_order: str = "DESC",
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Search services.

        Unless ``include_unpublished`` is set (vendors looking at their
        own catalogue, administrators) only active, approved services are
        returned and the ``approval_status``/``is_active`` filters are
        ignored.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = ["s.is_deleted = 0"]
            params: list = []
            if include_unpublished:
                if approval_status:
                    where.append("s.approval_status = ?")
                    params.append(approval_status)
                if is_active is not None:
                    where.append("s.is_active = ?")
                    params.append(1 if is_active else 0)
            else:
                where.append("s.is_active = 1 AND s.approval_status = 'approved'")
            if vendor_id is not None:
                where.append("s.vendor_id = ?")
                params.append(vendor_id)
            if category_id is not None:
                where.append("s.category_id = ?")
                params.append(category_id)
            if subcategory_id is not None:
                where.append("s.subcategory_id = ?")
                params.append(subcategory_id)
            if price_min is not None:
                where.append("s.base_price >= ?")
                params.append(price_min)
            if price_max is not None:
                where.append("s.base_price <= ?")
                params.append(price_max)
            if rating is not None:
                where.append("s.average_rating >= ?")
                params.append(rating)
            if search:
                where.append("(s.name LIKE ? OR s.description LIKE ? OR s.tags LIKE ?)")
                params.extend([f"%{search}%"] * 3)
            if latitude is not None and longitude is not None:
                nearby = _vendors_near(cursor, latitude, longitude, max_distance)
                if not nearby:
                    return [], 0
                where.append(f"s.vendor_id IN ({','.join('?' for _ in nearby)})")
                params.extend(nearby)
            clause = " AND ".join(where)
            order_column = SORT_COLUMNS.get(sort_by, "s.created_at")
            total = cursor.execute(f"SELECT COUNT(*) FROM services s WHERE {clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT s.* FROM services s WHERE {clause} ORDER BY {order_column} {sort_order}, s.id {sort_order} "
                "LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return [serialize_service(cursor, row) for row in rows], total
        finally:
            conn.close()

    @classmethod
    async def get_service(
        cls, service_id: int, increment_view: bool = False, viewer_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Return one service.  Views by its own vendor are not counted."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = fetch_service(cursor, service_id)
            if not row:
                raise NotFoundError("Service not found")
            if increment_view and row["vendor_id"] != viewer_id:
                cursor.execute("UPDATE services SET views = views + 1 WHERE id = ?", (service_id,))
                conn.commit()
                row = fetch_service(cursor, service_id)
            return serialize_service(cursor, row)
        finally:
            conn.close()

    @classmethod
    async def get_service_by_slug(
        cls, slug: str, increment_view: bool = False, viewer_id: Optional[int] = None
    ) -> Dict[str, Any]:
        conn = get_connection()
        try:
            row = conn.execute("SELECT id FROM services WHERE slug = ? AND is_deleted = 0", (slug,)).fetchone()
        finally:
            conn.close()
        if not row:
            raise NotFoundError("Service not found")
        return await cls.get_service(row["id"], increment_view=increment_view, viewer_id=viewer_id)

    @classmethod
    async def update_service(cls, service_id: int, vendor_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = _owned_service(cursor, service_id, vendor_id, "update")
            changes = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS and v is not None}
            if "name" in changes and changes["name"] != row["name"]:
                changes["slug"] = _unique_slug(cursor, changes["name"], exclude_id=service_id)
            _check_categories(cursor, changes.get("category_id"), changes.get("subcategory_id"))
            if row["approval_status"] == "approved" and any(field in changes for field in SIGNIFICANT_FIELDS):
                changes["approval_status"] = "pending"
                changes["is_active"] = 0
                logger.info("Service %s reset to pending approval after significant changes", service_id)
            for field in SERVICE_JSON_FIELDS:
                if field in changes:
                    changes[field] = dump_json(changes[field])
            if changes:
                assignments = ", ".join(f"{field} = ?" for field in changes)
                cursor.execute(
                    f"UPDATE services SET {assignments}, updated_at = ? WHERE id = ?",
                    (*changes.values(), now_iso(), service_id),
                )
                conn.commit()
                logger.info("Service updated: %s", service_id)
            return serialize_service(cursor, fetch_service(cursor, service_id))
        finally:
            conn.close()

    @classmethod
    async def delete_service(cls, service_id: int, vendor_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = _owned_service(cursor, service_id, vendor_id, "delete")
            now = now_iso()
            cursor.execute(
                "UPDATE services SET is_deleted = 1, deleted_at = ?, is_active = 0, updated_at = ? WHERE id = ?",
                (now, now, service_id),
            )
            conn.commit()
            logger.info("Service deleted: %s", row["name"])
        finally:
            conn.close()

    @classmethod
    async def toggle_status(cls, service_id: int, vendor_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = _owned_service(cursor, service_id, vendor_id, "update")
            if row["approval_status"] != "approved":
                raise BadRequestError("Service must be approved before it can be activated")
            cursor.execute(
                "UPDATE services SET is_active = ?, updated_at = ? WHERE id = ?",
                (0 if row["is_active"] else 1, now_iso(), service_id),
            )
            conn.commit()
            logger.info("Service status toggled: %s - %s", service_id, not row["is_active"])
            return serialize_service(cursor, fetch_service(cursor, service_id))
        finally:
            conn.close()

    @classmethod
    async def approve_service(cls, service_id: int, admin: Dict[str, Any], notes: Optional[str] = None) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = fetch_service(cursor, service_id)
            if not row:
                raise NotFoundError("Service not found")
            if row["approval_status"] == "approved":
                raise BadRequestError("Service is already approved")
            now = now_iso()
            cursor.execute(
                """
                UPDATE services SET approval_status = 'approved', is_active = 1, approved_by = ?, approved_at = ?,
                    approval_notes = ?, rejection_reason = NULL, updated_at = ?
                WHERE id = ?
                """,
                (admin["id"], now, notes, now, service_id),
            )
            notify(cursor, row["vendor_id"], "system", "Service approved",
                   f'Your service "{row["name"]}" has been approved and is now live.')
            conn.commit()
            result = serialize_service(cursor, fetch_service(cursor, service_id))
        finally:
            conn.close()
        logger.info("Service approved: %s by admin %s", service_id, admin["id"])
        await AuditService.log(user_id=admin["id"], action="approve", object_type="service", object_id=service_id)
        return result

    @classmethod
    async def reject_service(cls, service_id: int, admin: Dict[str, Any], reason: str) -> Dict[str, Any]:
        if not reason or not reason.strip():
            raise BadRequestError("Rejection reason is required")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = fetch_service(cursor, service_id)
            if not row:
                raise NotFoundError("Service not found")
            now = now_iso()
            cursor.execute(
                """
                UPDATE services SET approval_status = 'rejected', is_active = 0, rejected_by = ?, rejected_at = ?,
                    rejection_reason = ?, updated_at = ?
                WHERE id = ?
                """,
                (admin["id"], now, reason, now, service_id),
            )
            notify(cursor, row["vendor_id"], "system", "Service rejected",
                   f'Your service "{row["name"]}" was rejected: {reason}')
            conn.commit()
            result = serialize_service(cursor, fetch_service(cursor, service_id))
        finally:
            conn.close()
        logger.info("Service rejected: %s by admin %s - %s", service_id, admin["id"], reason)
        await AuditService.log(user_id=admin["id"], action="reject", object_type="service", object_id=service_id,
                               details={"reason": reason})
        return result

    @classmethod
    async def get_pending_services(cls, limit: int = 20, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        """Services awaiting approval, oldest first."""
        return await cls.list_services(
            approval_status="pending",
            include_unpublished=True,
            sort_order="ASC",
            limit=limit,
            offset=offset,
        )

    @classmethod
    async def get_approval_stats(cls) -> Dict[str, int]:
        conn = get_connection()
        try:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(approval_status = 'pending'), 0) AS pending,
                       COALESCE(SUM(approval_status = 'approved'), 0) AS approved,
                       COALESCE(SUM(approval_status = 'rejected'), 0) AS rejected
                FROM services WHERE is_deleted = 0
                """
            ).fetchone()
            return dict(row)
        finally:
            conn.close()

    @classmethod
    async def _ranked(cls, order_by: str, limit: int, category_id: Optional[int] = None) -> List[Dict[str, Any]]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            query = "SELECT * FROM services WHERE is_deleted = 0 AND is_active = 1 AND approval_status = 'approved'"
            params: list = []
            if category_id is not None:
                query += " AND category_id = ?"
                params.append(category_id)
            rows = cursor.execute(f"{query} ORDER BY {order_by}, id DESC LIMIT ?", (*params, limit)).fetchall()
            return [serialize_service(cursor, row) for row in rows]
        finally:
            conn.close()

    @classmethod
    async def get_trending(cls, limit: int = 10) -> List[Dict[str, Any]]:
        return await cls._ranked("bookings DESC, average_rating DESC", limit)

    @classmethod
    async def get_popular_by_category(cls, category_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        return await cls._ranked("average_rating DESC, bookings DESC", limit, category_id=category_id)
