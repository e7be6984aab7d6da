"""
In-app notifications, device tokens and notification settings.

Other services create notifications through ``notify`` which works on
the caller's cursor so the notification is committed together with the
change it reports.  Push delivery is recorded against the user's active
device tokens; no external push provider is contacted.
"""

import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict, rows_to_dicts
from sharplook_api.app.core.errors import NotFoundError
from sharplook_api.app.core.helpers import now_iso
from sharplook_api.app.services.user_service import DEFAULT_PREFERENCES, require_user


logger = logging.getLogger(__name__)

NOTIFICATION_JSON_FIELDS = ("channels", "data")
NOTIFICATION_BOOL_FIELDS = ("is_read", "is_sent", "is_deleted")
SETTING_KEYS = ("notifications_enabled", "email_notifications", "push_notifications")
RELATED_FIELDS = ("related_booking", "related_payment", "related_dispute", "related_review", "related_message")


def _channels(channels: Optional[Dict[str, bool]]) -> Dict[str, bool]:
    channels = channels or {}
    return {
        "push": channels.get("push") is not False,
        "email": bool(channels.get("email")),
        "sms": bool(channels.get("sms")),
        "in_app": channels.get("in_app") is not False,
    }


def _deliver(cursor: sqlite3.Cursor, notification_id: int, user_id: int, channels: Dict[str, bool]) -> None:
    if channels["push"]:
        devices = cursor.execute(
            "SELECT COUNT(*) FROM device_tokens WHERE user_id = ? AND is_active = 1",
            (user_id,),
        ).fetchone()[0]
        if devices:
            logger.info("Push notification %s queued for %s device(s)", notification_id, devices)
        else:
            logger.debug("No active device tokens for user %s", user_id)
    cursor.execute(
        "UPDATE notifications SET is_sent = 1, sent_at = ? WHERE id = ?",
        (now_iso(), notification_id),
    )


def notify(
    cursor: sqlite3.Cursor,
    user_id: int,
    type: str,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    channels: Optional[Dict[str, bool]] = None,
    **related: Optional[int],
) -> Optional[int]:
    """Create a notification for ``user_id`` unless they disabled notifications.

    ``related`` accepts ``related_booking``, ``related_payment``,
    ``related_dispute``, ``related_review`` and ``related_message``.
    Returns the new notification id or ``None`` when skipped.
    """
    row = cursor.execute("SELECT preferences FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row:
        raise NotFoundError("User not found")
    preferences = row_to_dict(row, json_fields=("preferences",))["preferences"] or {}
    if not preferences.get("notifications_enabled", True):
        logger.info("Notifications disabled for user %s", user_id)
        return None
    resolved = _channels(channels)
    cursor.execute(
        """
        INSERT INTO notifications (user_id, type, title, message, related_booking, related_payment,
            related_dispute, related_review, related_message, action_url, channels, data, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_id,
            type,
            title,
            message,
            *(related.get(field) for field in RELATED_FIELDS),
            action_url,
            dump_json(resolved),
            dump_json(data),
            now_iso(),
        ),
    )
    notification_id = cursor.lastrowid
    _deliver(cursor, notification_id, user_id, resolved)
    return notification_id


class NotificationService:
    """Endpoints facing operations on a user's notifications."""

    @classmethod
    async def create_notification(cls, user_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            notification_id = notify(
                cursor,
                user_id,
                data["type"],
                data["title"],
                data["message"],
                action_url=data.get("action_url"),
                data=data.get("data"),
                channels=data.get("channels"),
            )
            conn.commit()
            if notification_id is None:
                return None
            row = cursor.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
            return row_to_dict(row, json_fields=NOTIFICATION_JSON_FIELDS, bool_fields=NOTIFICATION_BOOL_FIELDS)
        finally:
            conn.close()

    @classmethod
    async def register_device_token(
        cls, user_id: int, token: str, device_type: str, device_name: Optional[str] = None
    ) -> None:
        """Register a push token; an existing token is re-bound to ``user_id``."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            now = now_iso()
            existing = cursor.execute("SELECT * FROM device_tokens WHERE token = ?", (token,)).fetchone()
            if existing:
                cursor.execute(
                    """
                    UPDATE device_tokens SET user_id = ?, is_active = 1, last_used = ?,
                        device_name = COALESCE(?, device_name)
                    WHERE id = ?
                    """,
                    (user_id, now, device_name, existing["id"]),
                )
            else:
                cursor.execute(
                    """
                    INSERT INTO device_tokens (user_id, token, device_type, device_name, last_used, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, token, device_type, device_name, now, now),
                )
            conn.commit()
        finally:
            conn.close()
        logger.info("Device token registered for user %s", user_id)

    @classmethod
    async def unregister_device_token(cls, token: str) -> None:
        conn = get_connection()
        try:
            conn.execute("UPDATE device_tokens SET is_active = 0 WHERE token = ?", (token,))
            conn.commit()
        finally:
            conn.close()
        logger.info("Device token unregistered")

    @classmethod
    async def list_notifications(
        cls,
        user_id: int,
        type: Optional[str] = None,
        is_read: Optional[bool] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int, int]:
        """Return ``(notifications, total, unread_count)``, newest first."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = ["user_id = ?", "is_deleted = 0"]
            params: list = [user_id]
            if type:
                where.append("type = ?")
                params.append(type)
            if is_read is not None:
                where.append("is_read = ?")
                params.append(1 if is_read else 0)
            clause = " AND ".join(where)
            total = cursor.execute(f"SELECT COUNT(*) FROM notifications WHERE {clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM notifications WHERE {clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            unread = cls._unread(cursor, user_id)
            return (
                rows_to_dicts(rows, json_fields=NOTIFICATION_JSON_FIELDS, bool_fields=NOTIFICATION_BOOL_FIELDS),
                total,
                unread,
            )
        finally:
            conn.close()

    @staticmethod
    def _unread(cursor: sqlite3.Cursor, user_id: int) -> int:
        return cursor.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0 AND is_deleted = 0",
            (user_id,),
        ).fetchone()[0]

    @classmethod
    async def unread_count(cls, user_id: int) -> int:
        conn = get_connection()
        try:
            return cls._unread(conn.cursor(), user_id)
        finally:
            conn.close()

    @classmethod
    async def mark_as_read(cls, notification_id: int, user_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE notifications SET is_read = 1, read_at = ? WHERE id = ? AND user_id = ? AND is_deleted = 0",
                (now_iso(), notification_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Notification not found")
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def mark_all_as_read(cls, user_id: int) -> int:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE notifications SET is_read = 1, read_at = ? WHERE user_id = ? AND is_read = 0",
                (now_iso(), user_id),
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    @classmethod
    async def delete_notification(cls, notification_id: int, user_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE notifications SET is_deleted = 1, deleted_at = ? WHERE id = ? AND user_id = ? AND is_deleted = 0",
                (now_iso(), notification_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Notification not found")
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def clear_all(cls, user_id: int) -> None:
        conn = get_connection()
        try:
            conn.execute(
                "UPDATE notifications SET is_deleted = 1, deleted_at = ? WHERE user_id = ? AND is_deleted = 0",
                (now_iso(), user_id),
            )
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def get_settings(cls, user_id: int) -> Dict[str, bool]:
        conn = get_connection()
        try:
            user = require_user(conn.cursor(), user_id)
        finally:
            conn.close()
        preferences = dict(DEFAULT_PREFERENCES, **(user["preferences"] or {}))
        return {key: preferences[key] for key in SETTING_KEYS}

    @classmethod
    async def update_settings(cls, user_id: int, updates: Dict[str, Optional[bool]]) -> Dict[str, bool]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = require_user(cursor, user_id)
            preferences = dict(DEFAULT_PREFERENCES, **(user["preferences"] or {}))
            for key in SETTING_KEYS:
                if updates.get(key) is not None:
                    preferences[key] = updates[key]
            cursor.execute(
                "UPDATE users SET preferences = ?, updated_at = ? WHERE id = ?",
                (dump_json(preferences), now_iso(), user_id),
            )
            conn.commit()
        finally:
            conn.close()
        return {key: preferences[key] for key in SETTING_KEYS}

    @classmethod
    async def send_bulk(cls, user_ids: Iterable[int], data: Dict[str, Any]) -> int:
        """Notify several users at once; returns how many notifications were created."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            created = 0
            for user_id in user_ids:
                if not cursor.execute("SELECT 1 FROM users WHERE id = ? AND is_deleted = 0", (user_id,)).fetchone():
                    logger.warning("Bulk notification skipped unknown user %s", user_id)
                    continue
                if notify(
                    cursor,
                    user_id,
                    data["type"],
                    data["title"],
                    data["message"],
                    action_url=data.get("action_url"),
                    channels=data.get("channels"),
                ) is not None:
                    created += 1
            conn.commit()
        finally:
            conn.close()
        logger.info("Bulk notifications sent to %s users", created)
        return created
