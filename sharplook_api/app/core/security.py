"""
Security helpers: password hashing, JWT handling and access control.

Tokens are compact HS256 JSON Web Tokens built with the standard
library (base64url header, payload and HMAC-SHA256 signature).  Access
and refresh tokens use separate secrets.  Passwords and withdrawal
PINs are hashed with PBKDF2-HMAC-SHA256 and stored as
``salthex$hashhex``.

The FastAPI dependencies defined here resolve the bearer token to the
current user record and enforce roles:

* ``get_current_user``: token required.
* ``optional_user``: returns ``None`` when the token is missing or invalid.
* ``require_roles(*roles)``: current user must hold one of ``roles``.
* ``require_vendor``: current user must be a verified vendor.
"""

import base64
import hashlib
import hmac
import json
import os
import time
from typing import Any, Callable, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .db import get_connection
from .errors import ForbiddenError, UnauthorizedError
from .helpers import parse_iso, utcnow


ADMIN_ROLES = ("super_admin", "admin", "financial_admin", "analytics_admin", "support")
SUPER_ADMIN_ROLES = ("super_admin",)
FINANCIAL_ADMIN_ROLES = ("super_admin", "financial_admin")
ANALYTICS_ADMIN_ROLES = ("super_admin", "analytics_admin")

PASSWORD_ITERATIONS = 100_000


class TokenExpiredError(UnauthorizedError):
    code = "TOKEN_EXPIRED"
    default_message = "Your token has expired. Please log in again"


class InvalidTokenError(UnauthorizedError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token. Please log in again"


def _b64_url_encode(data: bytes) -> str:
    """Base64-url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    """Decode base64-url data, restoring the padding."""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_token(data: Dict[str, Any], secret: str, expires_in: int) -> str:
    """Create a signed JWT.

    Parameters
    ----------
    data : dict
        Claims to embed (``id``, ``email``, ``role``).
    secret : str
        HMAC secret used for the signature.
    expires_in : int
        Lifetime in seconds; stored as the ``exp`` claim.

    Returns
    -------
    str
        ``header.payload.signature``, each part base64url encoded.
    """
    now = int(time.time())
    to_encode = dict(data, iat=now, exp=now + expires_in, jti=_b64_url_encode(os.urandom(8)))
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    return f"{header_b64}.{payload_b64}.{_b64_url_encode(_sign(signing_input, secret))}"


def decode_token(token: str, secret: str) -> Dict[str, Any]:
    """Verify a JWT and return its payload.

    Raises
    ------
    InvalidTokenError
        If the token is malformed or the signature does not match.
    TokenExpiredError
        If the ``exp`` claim lies in the past.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise InvalidTokenError()
    header_b64, payload_b64, signature_b64 = parts
    try:
        actual_sig = _b64_url_decode(signature_b64)
        payload = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        raise InvalidTokenError()
    expected_sig = _sign(f"{header_b64}.{payload_b64}".encode("utf-8"), secret)
    if not hmac.compare_digest(expected_sig, actual_sig) or not isinstance(payload, dict):
        raise InvalidTokenError()
    if payload.get("exp") is None or int(payload["exp"]) < int(time.time()):
        raise TokenExpiredError()
    return payload


def create_access_token(data: Dict[str, Any]) -> str:
    return create_token(data, settings.secret_key, settings.access_token_expire_minutes * 60)


def create_refresh_token(data: Dict[str, Any]) -> str:
    return create_token(data, settings.refresh_secret_key, settings.refresh_token_expire_days * 86400)


def hash_password(password: str) -> str:
    """Hash a password (or PIN) with PBKDF2-HMAC-SHA256 and a random salt.

    Returns
    -------
    str
        ``salthex$hashhex``.
    """
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PASSWORD_ITERATIONS)
    return f"{salt.hex()}${dk.hex()}"


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check ``plain_password`` against a ``salthex$hashhex`` string."""
    if not hashed_password or "$" not in hashed_password:
        return False
    salt_hex, hash_hex = hashed_password.split("$", 1)
    try:
        salt = bytes.fromhex(salt_hex)
        stored_hash = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac("sha256", plain_password.encode("utf-8"), salt, PASSWORD_ITERATIONS)
    return hmac.compare_digest(dk, stored_hash)


security = HTTPBearer(auto_error=False)


def _resolve_user(token: str) -> Dict[str, Any]:
    from ..services.user_service import fetch_user

    payload = decode_token(token, settings.secret_key)
    conn = get_connection()
    try:
        user = fetch_user(conn.cursor(), payload.get("id"))
    finally:
        conn.close()
    if not user:
        raise UnauthorizedError("The user belonging to this token no longer exists")
    if user["status"] not in ("active", "pending_verification"):
        raise UnauthorizedError("Your account has been deactivated")
    lock_until = parse_iso(user.get("lock_until"))
    if lock_until and lock_until > utcnow():
        raise UnauthorizedError("Your account is temporarily locked")
    return user


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Dict[str, Any]:
    """Dependency returning the authenticated user record.

    Raises ``UnauthorizedError`` when no bearer token is supplied, the
    token is invalid or expired, the user no longer exists or the
    account is not active.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("No token provided. Please log in")
    return _resolve_user(credentials.credentials)


def optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[Dict[str, Any]]:
    """Like ``get_current_user`` but anonymous requests yield ``None``."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return _resolve_user(credentials.credentials)
    except UnauthorizedError:
        return None


def require_roles(*roles: str) -> Callable[..., Dict[str, Any]]:
    """Dependency factory restricting a route to users holding one of ``roles``.

    Use as ``Depends(require_roles("super_admin", "admin"))``.
    """

    def _role_dependency(current_user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if current_user["role"] not in roles:
            raise ForbiddenError("You do not have permission to perform this action")
        return current_user

    return _role_dependency


require_admin = require_roles(*ADMIN_ROLES)
require_super_admin = require_roles(*SUPER_ADMIN_ROLES)
require_financial_admin = require_roles(*FINANCIAL_ADMIN_ROLES)
require_analytics_admin = require_roles(*ANALYTICS_ADMIN_ROLES)


def require_vendor(current_user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """Dependency allowing only verified vendors."""
    if not current_user["is_vendor"]:
        raise ForbiddenError("This action requires a vendor account")
    profile = current_user.get("vendor_profile") or {}
    if not profile.get("is_verified"):
        raise ForbiddenError("Your vendor account is not verified")
    return current_user
