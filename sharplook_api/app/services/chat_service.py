"""
One-to-one conversations between users.

A conversation has exactly two participants and may be tied to a
booking.  Unread counters are kept per participant in a JSON map keyed
by user id.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict, rows_to_dicts
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from sharplook_api.app.core.helpers import now_iso
from sharplook_api.app.services.notification_service import notify


logger = logging.getLogger(__name__)

MESSAGE_JSON_FIELDS = ("attachments",)
MESSAGE_BOOL_FIELDS = ("is_read", "is_deleted")


def _participant(cursor: sqlite3.Cursor, user_id: int) -> Optional[Dict[str, Any]]:
    row = cursor.execute(
        "SELECT id, first_name, last_name, avatar, is_online, last_seen FROM users WHERE id = ?", (user_id,)
    ).fetchone()
    return row_to_dict(row, bool_fields=("is_online",))


def serialize_conversation(cursor: sqlite3.Cursor, row: sqlite3.Row) -> Dict[str, Any]:
    conversation = row_to_dict(row, json_fields=("last_message", "unread_count"), bool_fields=("is_active",))
    conversation["participants"] = [
        _participant(cursor, row["participant_one"]),
        _participant(cursor, row["participant_two"]),
    ]
    return conversation


def _serialize_messages(rows: List[sqlite3.Row]) -> List[Dict[str, Any]]:
    return rows_to_dicts(rows, json_fields=MESSAGE_JSON_FIELDS, bool_fields=MESSAGE_BOOL_FIELDS)


def _participant_conversation(cursor: sqlite3.Cursor, conversation_id: int, user_id: int) -> sqlite3.Row:
    row = cursor.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
    if not row:
        raise NotFoundError("Conversation not found")
    if user_id not in (row["participant_one"], row["participant_two"]):
        raise ForbiddenError("You are not part of this conversation")
    return row


class ChatService:

    @classmethod
    async def create_or_get_conversation(
        cls, user_id: int, other_user_id: int, booking_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """Return the conversation between two users, creating it if needed."""
        if user_id == other_user_id:
            raise BadRequestError("You cannot start a conversation with yourself")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if not cursor.execute(
                "SELECT 1 FROM users WHERE id = ? AND is_deleted = 0", (other_user_id,)
            ).fetchone():
                raise NotFoundError("User not found")
            if booking_id is not None:
                booking = cursor.execute(
                    "SELECT client_id, vendor_id FROM bookings WHERE id = ?", (booking_id,)
                ).fetchone()
                if not booking:
                    raise NotFoundError("Booking not found")
                parties = {booking["client_id"], booking["vendor_id"]}
                if user_id not in parties or other_user_id not in parties:
                    raise ForbiddenError("Both users must be part of the booking")
            query = """
                SELECT * FROM conversations
                WHERE ((participant_one = ? AND participant_two = ?) OR (participant_one = ? AND participant_two = ?))
            """
            params: list = [user_id, other_user_id, other_user_id, user_id]
            if booking_id is not None:
                query += " AND booking_id = ?"
                params.append(booking_id)
            existing = cursor.execute(query + " ORDER BY id LIMIT 1", tuple(params)).fetchone()
            if existing:
                if not existing["is_active"]:
                    cursor.execute(
                        "UPDATE conversations SET is_active = 1, updated_at = ? WHERE id = ?",
                        (now_iso(), existing["id"]),
                    )
                    conn.commit()
                    existing = _participant_conversation(cursor, existing["id"], user_id)
                return serialize_conversation(cursor, existing)
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO conversations (participant_one, participant_two, booking_id, unread_count, is_active,
                    created_at, updated_at)
                VALUES (?, ?, ?, ?, 1, ?, ?)
                """,
                (user_id, other_user_id, booking_id, dump_json({str(user_id): 0, str(other_user_id): 0}), now, now),
            )
            conversation_id = cursor.lastrowid
            conn.commit()
            logger.info("Conversation created: %s", conversation_id)
            return serialize_conversation(cursor, _participant_conversation(cursor, conversation_id, user_id))
        finally:
            conn.close()

    @classmethod
    async def send_message(cls, conversation_id: int, sender_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        text = data.get("text")
        attachments = data.get("attachments") or []
        if not text and not attachments:
            raise BadRequestError("Message must have text or attachments")
        message_type = data.get("message_type") or "text"
        conn = get_connection()
        try:
            cursor = conn.cursor()
            conversation = _participant_conversation(cursor, conversation_id, sender_id)
            receiver_id = (
                conversation["participant_two"]
                if conversation["participant_one"] == sender_id
                else conversation["participant_one"]
            )
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO messages (conversation_id, sender_id, receiver_id, message_type, text, attachments,
                    created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (conversation_id, sender_id, receiver_id, message_type, text, dump_json(attachments), now),
            )
            message_id = cursor.lastrowid
            unread = json.loads(conversation["unread_count"])
            unread[str(receiver_id)] = unread.get(str(receiver_id), 0) + 1
            last_message = {"text": text or f"Sent {message_type}", "sender_id": sender_id, "sent_at": now}
            cursor.execute(
                "UPDATE conversations SET last_message = ?, unread_count = ?, is_active = 1, updated_at = ? WHERE id = ?",
                (dump_json(last_message), dump_json(unread), now, conversation_id),
            )
            notify(cursor, receiver_id, "message", "New message", last_message["text"][:100],
                   action_url=f"/chat/{conversation_id}", related_message=message_id)
            conn.commit()
            logger.info("Message sent: %s in conversation %s", message_id, conversation_id)
            message = _serialize_messages(
                cursor.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchall()
            )[0]
            message["sender"] = _participant(cursor, sender_id)
            return message
        finally:
            conn.close()

    @classmethod
    async def mark_as_read(cls, conversation_id: int, user_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            conversation = _participant_conversation(cursor, conversation_id, user_id)
            now = now_iso()
            cursor.execute(
                "UPDATE messages SET is_read = 1, read_at = ? WHERE conversation_id = ? AND receiver_id = ? AND is_read = 0",
                (now, conversation_id, user_id),
            )
            unread = json.loads(conversation["unread_count"])
            unread[str(user_id)] = 0
            cursor.execute(
                "UPDATE conversations SET unread_count = ? WHERE id = ?", (dump_json(unread), conversation_id)
            )
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def list_conversations(cls, user_id: int, limit: int = 20, offset: int = 0) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            clause = "(participant_one = ? OR participant_two = ?) AND is_active = 1"
            total = cursor.execute(
                f"SELECT COUNT(*) FROM conversations WHERE {clause}", (user_id, user_id)
            ).fetchone()[0]
            rows = cursor.execute(
                f"""
                SELECT * FROM conversations WHERE {clause}
                ORDER BY json_extract(last_message, '$.sent_at') IS NULL, json_extract(last_message, '$.sent_at') DESC,
                    updated_at DESC
                LIMIT ? OFFSET ?
                """,
                (user_id, user_id, limit, offset),
            ).fetchall()
            return [serialize_conversation(cursor, row) for row in rows], total
        finally:
            conn.close()

    @classmethod
    async def get_messages(
        cls, conversation_id: int, user_id: int, limit: int = 50, offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """A page of messages, newest page first, each page in chronological order."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            _participant_conversation(cursor, conversation_id, user_id)
            total = cursor.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ? AND is_deleted = 0", (conversation_id,)
            ).fetchone()[0]
            rows = cursor.execute(
                """
                SELECT * FROM messages WHERE conversation_id = ? AND is_deleted = 0
                ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?
                """,
                (conversation_id, limit, offset),
            ).fetchall()
            return list(reversed(_serialize_messages(rows))), total
        finally:
            conn.close()

    @classmethod
    async def delete_message(cls, message_id: int, user_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            message = cursor.execute(
                "SELECT sender_id FROM messages WHERE id = ? AND is_deleted = 0", (message_id,)
            ).fetchone()
            if not message:
                raise NotFoundError("Message not found")
            if message["sender_id"] != user_id:
                raise ForbiddenError("You can only delete your own messages")
            cursor.execute(
                "UPDATE messages SET is_deleted = 1, deleted_at = ? WHERE id = ?", (now_iso(), message_id)
            )
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def get_unread_count(cls, user_id: int) -> int:
        conn = get_connection()
        try:
            rows = conn.execute(
                """
                SELECT unread_count FROM conversations
                WHERE (participant_one = ? OR participant_two = ?) AND is_active = 1
                """,
                (user_id, user_id),
            ).fetchall()
        finally:
            conn.close()
        return sum(json.loads(row["unread_count"]).get(str(user_id), 0) for row in rows)

    @classmethod
    async def search_messages(
        cls, user_id: int, query: str, limit: int = 20, offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Case-insensitive text search over the user's conversations."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            clause = """
                m.is_deleted = 0 AND m.text LIKE ? AND (c.participant_one = ? OR c.participant_two = ?)
            """
            params = (f"%{query}%", user_id, user_id)
            total = cursor.execute(
                f"SELECT COUNT(*) FROM messages m JOIN conversations c ON c.id = m.conversation_id WHERE {clause}",
                params,
            ).fetchone()[0]
            rows = cursor.execute(
                f"""
                SELECT m.* FROM messages m JOIN conversations c ON c.id = m.conversation_id WHERE {clause}
                ORDER BY m.created_at DESC, m.id DESC LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
            messages = _serialize_messages(rows)
            for message in messages:
                message["sender"] = _participant(cursor, message["sender_id"])
            return messages, total
        finally:
            conn.close()

    @classmethod
    async def archive_conversation(cls, conversation_id: int, user_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            _participant_conversation(cursor, conversation_id, user_id)
            cursor.execute(
                "UPDATE conversations SET is_active = 0, updated_at = ? WHERE id = ?", (now_iso(), conversation_id)
            )
            conn.commit()
        finally:
            conn.close()
