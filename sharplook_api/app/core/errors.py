"""
Application error hierarchy and global exception handlers.

Services raise subclasses of ``AppError``; each carries an HTTP status
code and a machine readable ``code``.  ``register_exception_handlers``
installs handlers that turn these (and framework errors such as
request validation failures, unknown routes and unexpected exceptions)
into the uniform error envelope::

    {"success": false, "message": "...", "error": {"code": "..."}, "timestamp": "..."}
"""

import logging
import re
import sqlite3
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .rate_limit import CODES_BY_MESSAGE
from .responses import error_body


logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that are safe to report to clients."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details or {}
        self.is_operational = True
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message, details={"errors": errors or []})
        self.errors = errors or []


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized access"


class PaymentError(AppError):
    status_code = 402
    code = "PAYMENT_ERROR"
    default_message = "Payment failed"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Access forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


class InternalServerError(AppError):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"
    default_message = "Internal server error"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"


_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: \w+\.(\w+)")


def _format_validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Flatten pydantic errors into ``{field, message, value}`` items."""
    formatted = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        value = err.get("input")
        if isinstance(value, (dict, list)):
            value = None
        formatted.append(
            {
                "field": ".".join(location) or "body",
                "message": err.get("msg", "Invalid value"),
                "value": value,
            }
        )
    return formatted


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the global exception handlers to ``app``."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, {"code": exc.code, **exc.details}),
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        message = str(exc.detail)
        return JSONResponse(
            status_code=429,
            content=error_body(message, {"code": CODES_BY_MESSAGE.get(message, "RATE_LIMIT_EXCEEDED")}),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=error_body(
                "Validation failed",
                {"code": "VALIDATION_ERROR", "errors": _format_validation_errors(exc)},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Cannot {request.method} {request.url.path}"
            code = "ROUTE_NOT_FOUND"
        elif exc.status_code == 405:
            message = f"Cannot {request.method} {request.url.path}"
            code = "METHOD_NOT_ALLOWED"
        else:
            message = str(exc.detail)
            code = "HTTP_ERROR"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message, {"code": code}),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(sqlite3.IntegrityError)
    async def integrity_error_handler(request: Request, exc: sqlite3.IntegrityError) -> JSONResponse:
        match = _UNIQUE_RE.search(str(exc))
        if match:
            field = match.group(1).replace("_", " ").capitalize()
            return JSONResponse(
                status_code=409,
                content=error_body(f"{field} already exists", {"code": "DUPLICATE_KEY"}),
            )
        logger.error("Integrity error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=400,
            content=error_body("Request violates a data constraint", {"code": "BAD_REQUEST"}),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        internal = InternalServerError("Something went wrong. Please try again later")
        error: Dict[str, Any] = {"code": internal.code}
        if settings.is_development:
            error["detail"] = str(exc)
            error["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return JSONResponse(
            status_code=internal.status_code,
            content=error_body(internal.message, error),
        )
