"""
Pagination and sort parameters shared by list endpoints.

``pagination_params(default_limit)`` builds a FastAPI dependency that
reads ``page`` and ``limit`` from the query string, validates them and
returns a ``Pagination`` with the computed offset.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Query

from .errors import ValidationError


MAX_LIMIT = 100


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def validate_pagination(page: int, limit: int) -> Pagination:
    """Validate raw page/limit values.

    Raises
    ------
    ValidationError
        If ``page`` is below one or ``limit`` is outside ``1..100``.
    """
    errors = []
    if page < 1:
        errors.append({"field": "page", "message": "Page must be a positive integer", "value": page})
    if limit < 1 or limit > MAX_LIMIT:
        errors.append({"field": "limit", "message": "Limit must be between 1 and 100", "value": limit})
    if errors:
        raise ValidationError("Validation failed", errors)
    return Pagination(page=page, limit=limit)


def pagination_params(default_limit: int = 10) -> Callable[..., Pagination]:
    def _dependency(
        page: int = Query(1, description="Page number, starting at 1"),
        limit: int = Query(default_limit, description="Items per page (1-100)"),
    ) -> Pagination:
        return validate_pagination(page, limit)

    return _dependency


def validate_sort_order(sort_order: Optional[str]) -> str:
    """Return ``ASC``/``DESC`` for a user supplied order (default ``DESC``)."""
    if sort_order is None:
        return "DESC"
    if sort_order.lower() not in {"asc", "desc"}:
        raise ValidationError(
            "Validation failed",
            [{"field": "sort_order", "message": "Sort order must be asc or desc", "value": sort_order}],
        )
    return sort_order.upper()
