"""
Business logic for service categories.

Categories form a two level tree through ``parent_id``.  Deleting a
category is a soft delete and is refused while it still has
subcategories or services.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ConflictError, NotFoundError
from sharplook_api.app.core.helpers import now_iso, slugify


logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ("name", "description", "icon", "image", "parent_id", "is_active", "order")


def serialize_category(row: sqlite3.Row) -> Dict[str, Any]:
    category = row_to_dict(row, bool_fields=("is_active", "is_deleted"))
    category["order"] = category.pop("display_order")
    return category


def _summary(cursor: sqlite3.Cursor, category_id: Optional[int]) -> Optional[Dict[str, Any]]:
    if category_id is None:
        return None
    row = cursor.execute("SELECT id, name, slug, icon FROM categories WHERE id = ?", (category_id,)).fetchone()
    return dict(row) if row else None


def _subcategories(cursor: sqlite3.Cursor, category_id: int, active_only: bool = False) -> List[Dict[str, Any]]:
    query = "SELECT * FROM categories WHERE parent_id = ? AND is_deleted = 0"
    if active_only:
        query += " AND is_active = 1"
    query += " ORDER BY display_order, name"
    return [serialize_category(row) for row in cursor.execute(query, (category_id,)).fetchall()]


def fetch_category(cursor: sqlite3.Cursor, category_id: int) -> Optional[sqlite3.Row]:
    return cursor.execute(
        "SELECT * FROM categories WHERE id = ? AND is_deleted = 0",
        (category_id,),
    ).fetchone()


def _with_relations(cursor: sqlite3.Cursor, row: sqlite3.Row) -> Dict[str, Any]:
    category = serialize_category(row)
    category["parent"] = _summary(cursor, row["parent_id"])
    category["subcategories"] = _subcategories(cursor, row["id"])
    return category


class CategoryService:
    """CRUD and ordering for categories."""

    @classmethod
    async def create_category(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if cursor.execute("SELECT 1 FROM categories WHERE name = ?", (data["name"],)).fetchone():
                raise ConflictError("Category with this name already exists")
            if data.get("parent_id") is not None and not fetch_category(cursor, data["parent_id"]):
                raise NotFoundError("Parent category not found")
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO categories (name, slug, description, icon, image, parent_id, is_active, display_order,
                    created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["name"],
                    slugify(data["name"]),
                    data.get("description"),
                    data.get("icon"),
                    data.get("image"),
                    data.get("parent_id"),
                    0 if data.get("is_active") is False else 1,
                    data.get("order") or 0,
                    now,
                    now,
                ),
            )
            category_id = cursor.lastrowid
            conn.commit()
            logger.info("Category created: %s", data["name"])
            return _with_relations(cursor, fetch_category(cursor, category_id))
        finally:
            conn.close()

    @classmethod
    async def list_categories(
        cls,
        parent_id: Optional[int] = None,
        root_only: bool = False,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = ["is_deleted = 0"]
            params: list = []
            if parent_id is not None:
                where.append("parent_id = ?")
                params.append(parent_id)
            elif root_only:
                where.append("parent_id IS NULL")
            if is_active is not None:
                where.append("is_active = ?")
                params.append(1 if is_active else 0)
            if search:
                where.append("name LIKE ?")
                params.append(f"%{search}%")
            clause = " AND ".join(where)
            total = cursor.execute(f"SELECT COUNT(*) FROM categories WHERE {clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM categories WHERE {clause} ORDER BY display_order, name LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            categories = []
            for row in rows:
                category = serialize_category(row)
                category["parent"] = _summary(cursor, row["parent_id"])
                categories.append(category)
            return categories, total
        finally:
            conn.close()

    @classmethod
    async def get_tree(cls) -> List[Dict[str, Any]]:
        """Active root categories with their active subcategories."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            roots = cursor.execute(
                """
                SELECT * FROM categories WHERE parent_id IS NULL AND is_active = 1 AND is_deleted = 0
                ORDER BY display_order, name
                """
            ).fetchall()
            tree = []
            for row in roots:
                category = serialize_category(row)
                category["subcategories"] = _subcategories(cursor, row["id"], active_only=True)
                tree.append(category)
            return tree
        finally:
            conn.close()

    @classmethod
    async def get_category(cls, category_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = fetch_category(cursor, category_id)
            if not row:
                raise NotFoundError("Category not found")
            return _with_relations(cursor, row)
        finally:
            conn.close()

    @classmethod
    async def get_category_by_slug(cls, slug: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT * FROM categories WHERE slug = ? AND is_deleted = 0", (slug,)).fetchone()
            if not row:
                raise NotFoundError("Category not found")
            return _with_relations(cursor, row)
        finally:
            conn.close()

    @classmethod
    async def update_category(cls, category_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = fetch_category(cursor, category_id)
            if not row:
                raise NotFoundError("Category not found")
            columns: Dict[str, Any] = {}
            for field in CATEGORY_FIELDS:
                if field in updates and updates[field] is not None:
                    columns["display_order" if field == "order" else field] = updates[field]
            if "name" in columns and columns["name"] != row["name"]:
                clash = cursor.execute(
                    "SELECT 1 FROM categories WHERE name = ? AND id != ?",
                    (columns["name"], category_id),
                ).fetchone()
                if clash:
                    raise ConflictError("Category with this name already exists")
                columns["slug"] = slugify(columns["name"])
            if "parent_id" in columns:
                if columns["parent_id"] == category_id:
                    raise BadRequestError("Category cannot be its own parent")
                if not fetch_category(cursor, columns["parent_id"]):
                    raise NotFoundError("Parent category not found")
            if "is_active" in columns:
                columns["is_active"] = 1 if columns["is_active"] else 0
            if columns:
                assignments = ", ".join(f"{field} = ?" for field in columns)
                cursor.execute(
                    f"UPDATE categories SET {assignments}, updated_at = ? WHERE id = ?",
                    (*columns.values(), now_iso(), category_id),
                )
                conn.commit()
                logger.info("Category updated: %s", category_id)
            return _with_relations(cursor, fetch_category(cursor, category_id))
        finally:
            conn.close()

    @classmethod
    async def delete_category(cls, category_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = fetch_category(cursor, category_id)
            if not row:
                raise NotFoundError("Category not found")
            if cursor.execute(
                "SELECT 1 FROM categories WHERE parent_id = ? AND is_deleted = 0", (category_id,)
            ).fetchone():
                raise BadRequestError("Cannot delete category with subcategories. Please delete subcategories first.")
            if cursor.execute(
                "SELECT 1 FROM services WHERE (category_id = ? OR subcategory_id = ?) AND is_deleted = 0",
                (category_id, category_id),
            ).fetchone():
                raise BadRequestError(
                    "Cannot delete category with active services. Please reassign or delete services first."
                )
            now = now_iso()
            cursor.execute(
                "UPDATE categories SET is_deleted = 1, deleted_at = ?, updated_at = ? WHERE id = ?",
                (now, now, category_id),
            )
            conn.commit()
            logger.info("Category deleted: %s", row["name"])
        finally:
            conn.close()

    @classmethod
    async def restore_category(cls, category_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT * FROM categories WHERE id = ? AND is_deleted = 1", (category_id,)).fetchone()
            if not row:
                raise NotFoundError("Deleted category not found")
            cursor.execute(
                "UPDATE categories SET is_deleted = 0, deleted_at = NULL, updated_at = ? WHERE id = ?",
                (now_iso(), category_id),
            )
            conn.commit()
            logger.info("Category restored: %s", row["name"])
            return _with_relations(cursor, fetch_category(cursor, category_id))
        finally:
            conn.close()

    @classmethod
    async def reorder_categories(cls, orders: List[Dict[str, int]]) -> None:
        """Apply ``[{"category_id": ..., "order": ...}]``; unknown ids are ignored."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            now = now_iso()
            for item in orders:
                cursor.execute(
                    "UPDATE categories SET display_order = ?, updated_at = ? WHERE id = ?",
                    (item["order"], now, item["category_id"]),
                )
            conn.commit()
        finally:
            conn.close()
        logger.info("Categories reordered")
