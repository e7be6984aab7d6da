"""
HTTP middleware: security headers and request body sanitisation.

``SanitizeBodyMiddleware`` is a plain ASGI middleware because it has to
rewrite the request body before FastAPI parses it.  Object keys that
start with ``$`` are removed recursively from JSON bodies so operator
style payloads never reach the services.
"""

import json
from typing import Any

from fastapi import FastAPI, Request


# Signed payloads must reach their handler byte for byte
UNSANITIZED_PATHS = ("/api/v1/payments/webhook",)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "X-XSS-Protection": "0",
    "Cross-Origin-Opener-Policy": "same-origin",
}


def sanitize_object(value: Any) -> Any:
    """Return a copy of ``value`` without dict keys starting with ``$``."""
    if isinstance(value, list):
        return [sanitize_object(item) for item in value]
    if isinstance(value, dict):
        return {key: sanitize_object(item) for key, item in value.items() if not str(key).startswith("$")}
    return value


class SanitizeBodyMiddleware:
    """ASGI middleware stripping ``$``-prefixed keys from JSON request bodies."""

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        if (
            scope["type"] != "http"
            or scope["method"] not in ("POST", "PUT", "PATCH", "DELETE")
            or scope["path"] in UNSANITIZED_PATHS
        ):
            await self.app(scope, receive, send)
            return
        headers = dict(scope.get("headers") or [])
        if b"application/json" not in headers.get(b"content-type", b""):
            await self.app(scope, receive, send)
            return

        chunks = []
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                await self.app(scope, receive, send)
                return
            chunks.append(message.get("body", b""))
            more_body = message.get("more_body", False)
        body = b"".join(chunks)

        if body:
            try:
                parsed = json.loads(body)
            except ValueError:
                # invalid JSON is left for FastAPI to reject
                pass
            else:
                body = json.dumps(sanitize_object(parsed)).encode("utf-8")

        replayed = False

        async def replay_receive():
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        scope = dict(scope)
        scope["headers"] = [
            (name, str(len(body)).encode("latin-1") if name == b"content-length" else value)
            for name, value in scope.get("headers", [])
        ]
        await self.app(scope, replay_receive, send)


def register_middleware(app: FastAPI) -> None:
    """Install the security header middleware and body sanitisation."""

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(SanitizeBodyMiddleware)
