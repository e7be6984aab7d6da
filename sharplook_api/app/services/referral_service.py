"""
Referral programme.

A new user may supply another user's referral code.  The referral stays
``pending`` until the referee's first booking completes; both parties
then receive their reward as a ``referral_bonus`` wallet transaction.
"""

import logging
import sqlite3
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.db import get_connection, row_to_dict
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from sharplook_api.app.core.helpers import now_iso, to_iso, utcnow
from sharplook_api.app.services.notification_service import notify
from sharplook_api.app.services.wallet_service import credit_wallet


logger = logging.getLogger(__name__)

REFERRAL_BOOL_FIELDS = ("referrer_paid", "referee_paid", "requires_first_booking")


def _serialize(row: sqlite3.Row) -> Dict[str, Any]:
    return row_to_dict(row, bool_fields=REFERRAL_BOOL_FIELDS)


def _person(cursor: sqlite3.Cursor, user_id: int) -> Optional[Dict[str, Any]]:
    row = cursor.execute(
        "SELECT id, first_name, last_name, email, avatar, created_at FROM users WHERE id = ?",
        (user_id,),
    ).fetchone()
    return dict(row) if row else None


def apply_referral_code(cursor: sqlite3.Cursor, user_id: int, referral_code: str) -> Dict[str, Any]:
    """Link ``user_id`` to the owner of ``referral_code`` with a pending referral."""
    referrer = cursor.execute(
        "SELECT id FROM users WHERE referral_code = ? AND is_deleted = 0",
        (referral_code.upper(),),
    ).fetchone()
    if not referrer:
        raise NotFoundError("Invalid referral code")
    if referrer["id"] == user_id:
        raise BadRequestError("You cannot refer yourself")
    if cursor.execute("SELECT 1 FROM referrals WHERE referee_id = ?", (user_id,)).fetchone():
        raise BadRequestError("You have already used a referral code")
    now = utcnow()
    cursor.execute(
        """
        INSERT INTO referrals (referrer_id, referee_id, referral_code, status, referrer_reward, referee_reward,
            expires_at, created_at, updated_at)
        VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?)
        """,
        (
            referrer["id"],
            user_id,
            referral_code.upper(),
            settings.referrer_reward,
            settings.referee_reward,
            to_iso(now + timedelta(days=settings.referral_expiry_days)),
            to_iso(now),
            to_iso(now),
        ),
    )
    referral_id = cursor.lastrowid
    cursor.execute("UPDATE users SET referred_by = ? WHERE id = ?", (referrer["id"], user_id))
    logger.info("Referral applied: %s referred by %s", user_id, referrer["id"])
    return _serialize(cursor.execute("SELECT * FROM referrals WHERE id = ?", (referral_id,)).fetchone())


def process_referral_booking(cursor: sqlite3.Cursor, client_id: int, booking_id: int) -> bool:
    """Complete the client's pending referral after their first completed booking."""
    now = now_iso()
    referral = cursor.execute(
        """
        SELECT * FROM referrals
        WHERE referee_id = ? AND status = 'pending' AND requires_first_booking = 1 AND first_booking_id IS NULL
            AND expires_at > ?
        """,
        (client_id, now),
    ).fetchone()
    if not referral:
        return False
    cursor.execute(
        """
        UPDATE referrals SET status = 'completed', first_booking_id = ?, completed_at = ?, updated_at = ?
        WHERE id = ?
        """,
        (booking_id, now, now, referral["id"]),
    )
    pay_rewards(cursor, referral["id"])
    logger.info("Referral completed: %s from booking %s", referral["id"], booking_id)
    return True


def pay_rewards(cursor: sqlite3.Cursor, referral_id: int) -> None:
    referral = cursor.execute("SELECT * FROM referrals WHERE id = ?", (referral_id,)).fetchone()
    if not referral:
        return
    if not referral["referrer_paid"]:
        credit_wallet(cursor, referral["referrer_id"], referral["referrer_reward"], "referral_bonus",
                      "Referral bonus for inviting a friend")
        notify(cursor, referral["referrer_id"], "payment", "Referral bonus earned",
               f"You earned {referral['referrer_reward']:,.0f} for referring a friend.")
    if not referral["referee_paid"]:
        credit_wallet(cursor, referral["referee_id"], referral["referee_reward"], "referral_bonus",
                      "Welcome bonus for joining with referral code")
    cursor.execute(
        "UPDATE referrals SET referrer_paid = 1, referee_paid = 1, updated_at = ? WHERE id = ?",
        (now_iso(), referral_id),
    )
    logger.info("Referral rewards paid: %s", referral_id)


class ReferralService:
    """Read side of the referral programme plus admin reports."""

    @classmethod
    async def apply_code(cls, user_id: int, referral_code: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            referral = apply_referral_code(conn.cursor(), user_id, referral_code)
            conn.commit()
            return referral
        finally:
            conn.close()

    @classmethod
    async def get_stats(cls, user_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                """
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(status = 'completed'), 0) AS completed,
                       COALESCE(SUM(status = 'pending'), 0) AS pending,
                       COALESCE(SUM(CASE WHEN referrer_paid = 1 THEN referrer_reward ELSE 0 END), 0) AS earnings
                FROM referrals WHERE referrer_id = ?
                """,
                (user_id,),
            ).fetchone()
            code = cursor.execute("SELECT referral_code FROM users WHERE id = ?", (user_id,)).fetchone()
            return {
                "referral_code": code["referral_code"] if code else None,
                "total_referrals": row["total"],
                "completed_referrals": row["completed"],
                "pending_referrals": row["pending"],
                "total_earnings": row["earnings"],
            }
        finally:
            conn.close()

    @classmethod
    async def list_referrals(
        cls,
        referrer_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """List referrals made by ``referrer_id``, or all of them for admins."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where: List[str] = []
            params: list = []
            if referrer_id is not None:
                where.append("referrer_id = ?")
                params.append(referrer_id)
            if status:
                where.append("status = ?")
                params.append(status)
            if start_date:
                where.append("created_at >= ?")
                params.append(start_date)
            if end_date:
                where.append("created_at <= ?")
                params.append(end_date)
            clause = " WHERE " + " AND ".join(where) if where else ""
            total = cursor.execute(f"SELECT COUNT(*) FROM referrals{clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM referrals{clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            referrals = []
            for row in rows:
                referral = _serialize(row)
                referral["referrer"] = _person(cursor, row["referrer_id"])
                referral["referee"] = _person(cursor, row["referee_id"])
                referrals.append(referral)
            return referrals, total
        finally:
            conn.close()

    @classmethod
    async def get_referral(cls, referral_id: int, user_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT * FROM referrals WHERE id = ?", (referral_id,)).fetchone()
            if not row:
                raise NotFoundError("Referral not found")
            if user_id not in (row["referrer_id"], row["referee_id"]):
                raise ForbiddenError("Not authorized to view this referral")
            referral = _serialize(row)
            referral["referrer"] = _person(cursor, row["referrer_id"])
            referral["referee"] = _person(cursor, row["referee_id"])
            return referral
        finally:
            conn.close()

    @classmethod
    async def get_leaderboard(cls, limit: int = 10) -> List[Dict[str, Any]]:
        conn = get_connection()
        try:
            rows = conn.execute(
                """
                SELECT u.id, u.first_name, u.last_name, u.avatar,
                       COUNT(r.id) AS referral_count, SUM(r.referrer_reward) AS total_earnings
                FROM referrals r JOIN users u ON u.id = r.referrer_id
                WHERE r.status = 'completed' AND r.referrer_paid = 1
                GROUP BY u.id
                ORDER BY referral_count DESC, total_earnings DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [
                {
                    "user": {
                        "id": row["id"],
                        "first_name": row["first_name"],
                        "last_name": row["last_name"],
                        "avatar": row["avatar"],
                    },
                    "referral_count": row["referral_count"],
                    "total_earnings": row["total_earnings"],
                }
                for row in rows
            ]
        finally:
            conn.close()

    @classmethod
    async def expire_old_referrals(cls) -> int:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            now = now_iso()
            cursor.execute(
                "UPDATE referrals SET status = 'expired', updated_at = ? WHERE status = 'pending' AND expires_at < ?",
                (now, now),
            )
            conn.commit()
            expired = cursor.rowcount
        finally:
            conn.close()
        if expired:
            logger.info("Expired %s old referrals", expired)
        return expired

    @classmethod
    async def get_admin_stats(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(status = 'completed'), 0) AS completed,
                       COALESCE(SUM(status = 'pending'), 0) AS pending,
                       COALESCE(SUM(status = 'expired'), 0) AS expired,
                       COALESCE(SUM(CASE WHEN status = 'completed'
                                         THEN referrer_reward + referee_reward ELSE 0 END), 0) AS rewards,
                       AVG(CASE WHEN status = 'completed' THEN referrer_reward + referee_reward END) AS avg_reward
                FROM referrals
                """
            ).fetchone()
        finally:
            conn.close()
        total = row["total"]
        return {
            "total_referrals": total,
            "completed_referrals": row["completed"],
            "pending_referrals": row["pending"],
            "expired_referrals": row["expired"],
            "total_rewards_paid": row["rewards"],
            "avg_reward_per_referral": round(row["avg_reward"] or 0, 2),
            "conversion_rate": round(row["completed"] / total * 100, 2) if total else 0,
        }
