"""
Builders for the uniform response envelope.

Every endpoint returns ``{"success", "message", "data"?, "meta"?,
"timestamp"}``; failures use the same shape with ``success`` false and
an ``error`` object instead of ``data``.  The helpers return plain
dictionaries which FastAPI serialises as JSON.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success(data: Any = None, message: str = "Operation successful", meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a success envelope.  ``data`` and ``meta`` are omitted when ``None``."""
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    if meta:
        body["meta"] = meta
    body["timestamp"] = _timestamp()
    return body


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "pageSize": limit,
            "totalItems": total,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        }
    }


def paginated(
    items: List[Any],
    page: int,
    limit: int,
    total: int,
    message: str = "Data retrieved successfully",
) -> Dict[str, Any]:
    """Build a success envelope for one page of a list."""
    return success(items, message, pagination_meta(page, limit, total))


def error_body(message: str, error: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if error:
        body["error"] = error
    body["timestamp"] = _timestamp()
    return body
