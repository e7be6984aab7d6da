"""
Authentication workflows: registration, login, token refresh, email
verification and password management.

Refresh tokens are stored hashed on the user row; only the most
recently issued refresh token is accepted, so rotating tokens (refresh,
logout, password change) invalidates the previous session.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.db import dump_json, get_connection
from sharplook_api.app.core.errors import AppError, BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from sharplook_api.app.core.helpers import (
    generate_referral_code,
    generate_reset_token,
    generate_verification_token,
    hash_string,
    mask_email,
    now_iso,
    parse_iso,
    to_iso,
    utcnow,
)
from sharplook_api.app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from sharplook_api.app.services.email_service import EmailService
from sharplook_api.app.services.referral_service import apply_referral_code
from sharplook_api.app.services.user_service import DEFAULT_PREFERENCES, fetch_user, insert_vendor_profile


logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)


def _issue_tokens(cursor, user: Dict[str, Any]) -> Dict[str, str]:
    payload = {"id": user["id"], "email": user["email"], "role": user["role"]}
    access_token = create_access_token(payload)
    refresh_token = create_refresh_token(payload)
    cursor.execute(
        "UPDATE users SET refresh_token = ? WHERE id = ?",
        (hash_string(refresh_token), user["id"]),
    )
    return {"access_token": access_token, "refresh_token": refresh_token}


def _unique_referral_code(cursor) -> str:
    while True:
        code = generate_referral_code()
        if not cursor.execute("SELECT 1 FROM users WHERE referral_code = ?", (code,)).fetchone():
            return code


class AuthService:
    """Account lifecycle operations used by the ``/auth`` routes."""

    @classmethod
    async def register(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new account and return it with a token pair.

        Parameters
        ----------
        data : dict
            Validated registration payload: ``first_name``, ``last_name``,
            ``email``, ``phone``, ``password`` and optionally
            ``referred_by`` (a referral code), ``is_vendor`` and
            ``vendor_profile``.

        Returns
        -------
        dict
            ``{"user": ..., "access_token": ..., "refresh_token": ...}``

        Raises
        ------
        ConflictError
            If the email or phone number is already registered.
        """
        email = data["email"].lower()
        is_vendor = bool(data.get("is_vendor"))
        if is_vendor and not data.get("vendor_profile"):
            raise BadRequestError("Vendor profile is required for vendor registration")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if cursor.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone():
                raise ConflictError("Email already registered")
            if cursor.execute("SELECT 1 FROM users WHERE phone = ?", (data["phone"],)).fetchone():
                raise ConflictError("Phone number already registered")

            verification_token = generate_verification_token()
            now = utcnow()
            cursor.execute(
                """
                INSERT INTO users (first_name, last_name, email, phone, password, role, status,
                    email_verification_token, email_verification_expires, preferences, referral_code,
                    is_vendor, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, 'pending_verification', ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data["first_name"],
                    data["last_name"],
                    email,
                    data["phone"],
                    hash_password(data["password"]),
                    "vendor" if is_vendor else "client",
                    hash_string(verification_token),
                    to_iso(now + timedelta(days=1)),
                    dump_json(DEFAULT_PREFERENCES),
                    _unique_referral_code(cursor),
                    1 if is_vendor else 0,
                    to_iso(now),
                    to_iso(now),
                ),
            )
            user_id = cursor.lastrowid
            if is_vendor:
                insert_vendor_profile(cursor, user_id, data["vendor_profile"])
            if data.get("referred_by"):
                try:
                    apply_referral_code(cursor, user_id, data["referred_by"])
                except (NotFoundError, BadRequestError) as exc:
                    logger.warning("Invalid referral code used: %s (%s)", data["referred_by"], exc.message)
            user = fetch_user(cursor, user_id)
            tokens = _issue_tokens(cursor, user)
            conn.commit()
        finally:
            conn.close()
        await EmailService.send_welcome_email(user, verification_token)
        logger.info("New user registered: %s", email)
        return {"user": user, **tokens}

    @classmethod
    async def login(cls, email: str, password: str, ip_address: Optional[str] = None) -> Dict[str, Any]:
        """Authenticate with email and password.

        Five consecutive failures lock the account for two hours.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT * FROM users WHERE email = ? AND is_deleted = 0",
                (email.lower(),),
            ).fetchone()
            if not row:
                raise UnauthorizedError("Invalid email or password")
            now = utcnow()
            lock_until = parse_iso(row["lock_until"])
            if lock_until and lock_until > now:
                raise UnauthorizedError(
                    "Account is locked due to multiple failed login attempts. Please try again later."
                )
            if not verify_password(password, row["password"]):
                attempts = 1 if lock_until else row["login_attempts"] + 1
                new_lock = to_iso(now + LOCK_DURATION) if attempts >= MAX_LOGIN_ATTEMPTS else None
                cursor.execute(
                    "UPDATE users SET login_attempts = ?, lock_until = ? WHERE id = ?",
                    (attempts, new_lock, row["id"]),
                )
                conn.commit()
                if new_lock:
                    logger.warning("Account locked after %s failed logins: %s", attempts, row["email"])
                raise UnauthorizedError("Invalid email or password")
            cursor.execute(
                "UPDATE users SET login_attempts = 0, lock_until = NULL WHERE id = ?",
                (row["id"],),
            )
            conn.commit()
            if row["status"] == "suspended":
                raise UnauthorizedError("Your account has been suspended")
            if row["status"] == "inactive":
                raise UnauthorizedError("Your account is inactive. Please contact support.")
            cursor.execute(
                "UPDATE users SET last_login = ?, updated_at = ? WHERE id = ?",
                (to_iso(now), to_iso(now), row["id"]),
            )
            user = fetch_user(cursor, row["id"])
            tokens = _issue_tokens(cursor, user)
            conn.commit()
        finally:
            conn.close()
        if settings.environment == "production" and ip_address:
            await EmailService.send_login_notification(user, ip_address)
        logger.info("User logged in: %s", user["email"])
        return {"user": user, **tokens}

    @classmethod
    async def refresh_token(cls, refresh_token: str) -> Dict[str, str]:
        """Exchange a refresh token for a new token pair."""
        try:
            payload = decode_token(refresh_token, settings.refresh_secret_key)
        except AppError:
            raise UnauthorizedError("Invalid or expired refresh token")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT refresh_token FROM users WHERE id = ? AND is_deleted = 0",
                (payload.get("id"),),
            ).fetchone()
            if not row or row["refresh_token"] != hash_string(refresh_token):
                raise UnauthorizedError("Invalid or expired refresh token")
            tokens = _issue_tokens(cursor, fetch_user(cursor, payload["id"]))
            conn.commit()
            return tokens
        finally:
            conn.close()

    @classmethod
    async def logout(cls, user_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("UPDATE users SET refresh_token = NULL WHERE id = ?", (user_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("User not found")
            conn.commit()
        finally:
            conn.close()
        logger.info("User logged out: %s", user_id)

    @classmethod
    async def verify_email(cls, token: str) -> Dict[str, Any]:
        """Mark the email verified; pending accounts become active."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                """
                SELECT id FROM users
                WHERE email_verification_token = ? AND email_verification_expires > ? AND is_deleted = 0
                """,
                (hash_string(token), now_iso()),
            ).fetchone()
            if not row:
                raise BadRequestError("Invalid or expired verification token")
            cursor.execute(
                """
                UPDATE users SET is_email_verified = 1, email_verification_token = NULL,
                    email_verification_expires = NULL,
                    status = CASE WHEN status = 'pending_verification' THEN 'active' ELSE status END,
                    updated_at = ?
                WHERE id = ?
                """,
                (now_iso(), row["id"]),
            )
            conn.commit()
            user = fetch_user(cursor, row["id"])
        finally:
            conn.close()
        await EmailService.send_verification_success_email(user)
        logger.info("Email verified: %s", user["email"])
        return user

    @classmethod
    async def resend_verification(cls, email: str) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT * FROM users WHERE email = ? AND is_deleted = 0",
                (email.lower(),),
            ).fetchone()
            if not row:
                raise NotFoundError("User not found")
            if row["is_email_verified"]:
                raise BadRequestError("Email is already verified")
            token = generate_verification_token()
            cursor.execute(
                "UPDATE users SET email_verification_token = ?, email_verification_expires = ? WHERE id = ?",
                (hash_string(token), to_iso(utcnow() + timedelta(days=1)), row["id"]),
            )
            conn.commit()
            user = fetch_user(cursor, row["id"])
        finally:
            conn.close()
        await EmailService.send_welcome_email(user, token)
        logger.info("Verification email resent: %s", user["email"])

    @classmethod
    async def forgot_password(cls, email: str) -> None:
        """Email a reset link.  Unknown addresses are ignored silently."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT id FROM users WHERE email = ? AND is_deleted = 0",
                (email.lower(),),
            ).fetchone()
            if not row:
                logger.warning("Password reset requested for unknown email")
                return
            token = generate_reset_token()
            cursor.execute(
                "UPDATE users SET password_reset_token = ?, password_reset_expires = ? WHERE id = ?",
                (hash_string(token), to_iso(utcnow() + timedelta(hours=1)), row["id"]),
            )
            conn.commit()
            user = fetch_user(cursor, row["id"])
        finally:
            conn.close()
        await EmailService.send_password_reset_email(user, token)
        logger.info("Password reset requested: %s", mask_email(user["email"]))

    @classmethod
    async def reset_password(cls, token: str, new_password: str) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT id, email FROM users WHERE password_reset_token = ? AND password_reset_expires > ?",
                (hash_string(token), now_iso()),
            ).fetchone()
            if not row:
                raise BadRequestError("Invalid or expired reset token")
            cursor.execute(
                """
                UPDATE users SET password = ?, password_reset_token = NULL, password_reset_expires = NULL,
                    refresh_token = NULL, login_attempts = 0, lock_until = NULL, updated_at = ?
                WHERE id = ?
                """,
                (hash_password(new_password), now_iso(), row["id"]),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Password reset successful: %s", row["email"])

    @classmethod
    async def change_password(cls, user_id: int, current_password: str, new_password: str) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT password FROM users WHERE id = ?", (user_id,)).fetchone()
            if not row:
                raise NotFoundError("User not found")
            if not verify_password(current_password, row["password"]):
                raise UnauthorizedError("Current password is incorrect")
            cursor.execute(
                "UPDATE users SET password = ?, refresh_token = NULL, updated_at = ? WHERE id = ?",
                (hash_password(new_password), now_iso(), user_id),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("Password changed for user %s", user_id)

