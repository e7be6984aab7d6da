"""
Audit trail for administrative and money moving actions.

Rows go to the ``audit_logs`` table.  Services call ``AuditService.log``
after verifying vendors, approving services, releasing escrow,
processing withdrawals, resolving disputes and so on.  Only super
admins may read the log.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import dump_json, get_connection, rows_to_dicts
from sharplook_api.app.core.helpers import now_iso


logger = logging.getLogger(__name__)


class AuditService:
    """Write and query audit records."""

    @classmethod
    async def log(
        cls,
        user_id: Optional[int],
        action: str,
        object_type: str,
        object_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Record that ``user_id`` performed ``action`` on an object.

        ``user_id`` is ``None`` for webhook driven changes.  ``details``
        is stored as JSON, e.g. a rejection reason or the chosen
        dispute resolution.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO audit_logs (user_id, action, object_type, object_id, timestamp, details)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, action, object_type, object_id, now_iso(), dump_json(details) if details else None),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Audit: user=%s %s %s#%s", user_id, action, object_type, object_id)

    @classmethod
    async def list_logs(
        cls,
        user_id: Optional[int] = None,
        object_type: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Return one page of audit records, newest first, and the total count."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            filters = (
                ("user_id = ?", user_id),
                ("object_type = ?", object_type or None),
                ("action = ?", action or None),
                ("timestamp >= ?", start_date or None),
                ("timestamp <= ?", end_date or None),
            )
            active = [(clause, value) for clause, value in filters if value is not None]
            params: List[Any] = [value for _, value in active]
            where = (" WHERE " + " AND ".join(clause for clause, _ in active)) if active else ""
            total = cursor.execute(f"SELECT COUNT(*) FROM audit_logs{where}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM audit_logs{where} ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return rows_to_dicts(rows, json_fields=("details",)), total
        finally:
            conn.close()
