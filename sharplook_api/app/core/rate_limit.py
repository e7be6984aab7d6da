"""
Per-route rate limits backed by slowapi.

One ``slowapi.Limiter`` keyed on the peer address owns the counters
(in-memory moving windows that expire on their own).  Each
``RouteLimit`` is a FastAPI dependency sharing that limiter::

    @router.post("/login", dependencies=[Depends(auth_limiter)])

A request over the limit raises ``slowapi.errors.RateLimitExceeded``;
the handler in ``core.errors`` answers 429 with the limit's own code
and message.  Limits built with ``failures_only=True`` only consume a
hit when the endpoint raises, so successful logins are free.

Forwarded-for headers are not trusted.  Behind a proxy, run uvicorn
with ``--proxy-headers`` and ``--forwarded-allow-ips`` so the peer
address is the client's.
"""

import logging
from typing import Dict, Iterator, List

from fastapi import Request
from limits import RateLimitItem, RateLimitItemPerHour, RateLimitItemPerMinute, RateLimitItemPerSecond
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import settings


logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, strategy="moving-window", headers_enabled=False)


class RouteLimit:
    """A named limit applied through ``Depends``.

    ``limit`` and ``error_message`` are the attributes slowapi reads when
    building ``RateLimitExceeded``.
    """

    def __init__(self, name: str, limit: RateLimitItem, code: str, error_message: str,
                 failures_only: bool = False) -> None:
        self.name = name
        self.limit = limit
        self.code = code
        self.error_message = error_message
        self.failures_only = failures_only

    def _reject(self, key: str) -> None:
        logger.warning("Rate limit '%s' (%s) exceeded for %s", self.name, self.limit, key)
        raise RateLimitExceeded(self)

    def __call__(self, request: Request) -> Iterator[None]:
        if not settings.rate_limit_enabled:
            yield
            return
        key = get_remote_address(request)
        strategy = limiter.limiter
        if not self.failures_only:
            if not strategy.hit(self.limit, self.name, key):
                self._reject(key)
            yield
            return

        if not strategy.test(self.limit, self.name, key):
            self._reject(key)
        try:
            yield
        except Exception:
            strategy.hit(self.limit, self.name, key)
            raise


api_limiter = RouteLimit(
    "api",
    RateLimitItemPerSecond(settings.rate_limit_max_requests, max(1, settings.rate_limit_window_ms // 1000)),
    "RATE_LIMIT_EXCEEDED",
    "Too many requests from this IP, please try again later",
)
auth_limiter = RouteLimit(
    "auth",
    RateLimitItemPerMinute(5, 15),
    "AUTH_RATE_LIMIT_EXCEEDED",
    "Too many authentication attempts, please try again later",
    failures_only=True,
)
password_reset_limiter = RouteLimit(
    "password_reset",
    RateLimitItemPerHour(3),
    "PASSWORD_RESET_RATE_LIMIT_EXCEEDED",
    "Too many password reset attempts, please try again later",
)
upload_limiter = RouteLimit(
    "upload",
    RateLimitItemPerMinute(10, 15),
    "UPLOAD_RATE_LIMIT_EXCEEDED",
    "Too many file uploads, please try again later",
)
search_limiter = RouteLimit(
    "search",
    RateLimitItemPerMinute(30),
    "SEARCH_RATE_LIMIT_EXCEEDED",
    "Too many search requests, please try again later",
)
payment_limiter = RouteLimit(
    "payment",
    RateLimitItemPerHour(20),
    "PAYMENT_RATE_LIMIT_EXCEEDED",
    "Too many payment requests, please try again later",
)

ROUTE_LIMITS: List[RouteLimit] = [
    api_limiter,
    auth_limiter,
    password_reset_limiter,
    upload_limiter,
    search_limiter,
    payment_limiter,
]

# RateLimitExceeded carries the message as its detail
CODES_BY_MESSAGE: Dict[str, str] = {route.error_message: route.code for route in ROUTE_LIMITS}


def reset_all_limiters() -> None:
    limiter.reset()
