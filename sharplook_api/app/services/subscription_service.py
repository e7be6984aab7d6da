"""
Vendor subscription plans.

The plan decides the monthly fee and the commission the platform keeps
on each booking payment:

============  ===========  ==========
plan          monthly fee  commission
============  ===========  ==========
in_shop       5000         0%
home_service  0            10%
both          5000         12%
============  ===========  ==========

Paid plans start ``pending`` and become ``active`` once paid from the
vendor's wallet.  Vendors without an active plan pay the default
commission.
"""

import logging
import sqlite3
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.db import get_connection, row_to_dict, rows_to_dicts
from sharplook_api.app.core.errors import BadRequestError, NotFoundError
from sharplook_api.app.core.helpers import add_months, now_iso, parse_iso, to_iso, utcnow
from sharplook_api.app.services.wallet_service import debit_wallet


logger = logging.getLogger(__name__)

PLANS = {
    "in_shop": {"monthly_fee": 5000, "commission_rate": 0},
    "home_service": {"monthly_fee": 0, "commission_rate": 10},
    "both": {"monthly_fee": 5000, "commission_rate": 12},
}


def _serialize(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
    return row_to_dict(row, bool_fields=("auto_renew",))


def current_subscription(cursor: sqlite3.Cursor, vendor_id: int) -> Optional[sqlite3.Row]:
    return cursor.execute(
        """
        SELECT * FROM subscriptions WHERE vendor_id = ? AND status IN ('active', 'pending')
        ORDER BY created_at DESC, id DESC LIMIT 1
        """,
        (vendor_id,),
    ).fetchone()


def commission_rate(cursor: sqlite3.Cursor, vendor_id: int) -> float:
    """Commission percentage for ``vendor_id``; the default unless a plan is active."""
    subscription = current_subscription(cursor, vendor_id)
    if not subscription or subscription["status"] != "active":
        return settings.default_commission_rate
    return subscription["commission_rate"]


class SubscriptionService:

    @classmethod
    async def create_subscription(cls, vendor_id: int, plan: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            vendor = cursor.execute("SELECT is_vendor FROM users WHERE id = ? AND is_deleted = 0", (vendor_id,)).fetchone()
            if not vendor or not vendor["is_vendor"]:
                raise BadRequestError("User must be a vendor")
            if current_subscription(cursor, vendor_id):
                raise BadRequestError("Vendor already has an active subscription")
            pricing = PLANS[plan]
            now = utcnow()
            end_date = add_months(now, 1)
            free = pricing["monthly_fee"] == 0
            cursor.execute(
                """
                INSERT INTO subscriptions (vendor_id, type, monthly_fee, commission_rate, status, start_date,
                    end_date, next_payment_due, last_payment_date, auto_renew, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (
                    vendor_id,
                    plan,
                    pricing["monthly_fee"],
                    pricing["commission_rate"],
                    "active" if free else "pending",
                    to_iso(now),
                    to_iso(end_date),
                    to_iso(end_date - timedelta(days=7)),
                    to_iso(now) if free else None,
                    to_iso(now),
                    to_iso(now),
                ),
            )
            subscription_id = cursor.lastrowid
            conn.commit()
            logger.info("Subscription created: %s (%s) for vendor %s", subscription_id, plan, vendor_id)
            return _serialize(cursor.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,)).fetchone())
        finally:
            conn.close()

    @classmethod
    async def pay_subscription(cls, subscription_id: int, vendor_id: int) -> Dict[str, Any]:
        """Pay one month of a plan from the vendor's wallet and extend it."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            subscription = cursor.execute(
                "SELECT * FROM subscriptions WHERE id = ? AND vendor_id = ?",
                (subscription_id, vendor_id),
            ).fetchone()
            if not subscription:
                raise NotFoundError("Subscription not found")
            if subscription["monthly_fee"] == 0:
                raise BadRequestError("This subscription has no monthly fee")
            if subscription["status"] in ("cancelled", "expired"):
                raise BadRequestError("Cannot pay for a cancelled or expired subscription")
            debit_wallet(
                cursor,
                vendor_id,
                subscription["monthly_fee"],
                "subscription_payment",
                f"Subscription payment for {subscription['type']}",
            )
            end_date = parse_iso(subscription["end_date"])
            if subscription["last_payment_date"]:
                end_date = add_months(end_date, 1)
            now = now_iso()
            cursor.execute(
                """
                UPDATE subscriptions SET status = 'active', last_payment_date = ?, end_date = ?,
                    next_payment_due = ?, updated_at = ?
                WHERE id = ?
                """,
                (now, to_iso(end_date), to_iso(end_date - timedelta(days=7)), now, subscription_id),
            )
            conn.commit()
            logger.info("Subscription paid: %s", subscription_id)
            return _serialize(cursor.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,)).fetchone())
        finally:
            conn.close()

    @classmethod
    async def get_current(cls, vendor_id: int) -> Optional[Dict[str, Any]]:
        conn = get_connection()
        try:
            return _serialize(current_subscription(conn.cursor(), vendor_id))
        finally:
            conn.close()

    @classmethod
    async def get_commission_rate(cls, vendor_id: int) -> float:
        conn = get_connection()
        try:
            return commission_rate(conn.cursor(), vendor_id)
        finally:
            conn.close()

    @classmethod
    async def change_plan(cls, vendor_id: int, plan: str) -> Dict[str, Any]:
        """Switch the current plan; an unpaid switch to a paid plan goes back to ``pending``."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            subscription = current_subscription(cursor, vendor_id)
            if not subscription:
                raise NotFoundError("No active subscription found")
            pricing = PLANS[plan]
            status = subscription["status"]
            if pricing["monthly_fee"] > 0 and status == "active" and subscription["monthly_fee"] == 0:
                status = "pending"
            elif pricing["monthly_fee"] == 0:
                status = "active"
            cursor.execute(
                """
                UPDATE subscriptions SET type = ?, monthly_fee = ?, commission_rate = ?, status = ?, updated_at = ?
                WHERE id = ?
                """,
                (plan, pricing["monthly_fee"], pricing["commission_rate"], status, now_iso(), subscription["id"]),
            )
            conn.commit()
            logger.info("Subscription plan changed: %s -> %s", subscription["id"], plan)
            return _serialize(cursor.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription["id"],)).fetchone())
        finally:
            conn.close()

    @classmethod
    async def cancel_subscription(cls, vendor_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            subscription = current_subscription(cursor, vendor_id)
            if not subscription:
                raise NotFoundError("No active subscription found")
            now = now_iso()
            cursor.execute(
                """
                UPDATE subscriptions SET status = 'cancelled', cancelled_at = ?, cancellation_reason = ?,
                    auto_renew = 0, updated_at = ?
                WHERE id = ?
                """,
                (now, reason, now, subscription["id"]),
            )
            conn.commit()
            logger.info("Subscription cancelled: %s", subscription["id"])
            return _serialize(cursor.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription["id"],)).fetchone())
        finally:
            conn.close()

    @classmethod
    async def list_subscriptions(
        cls, status: Optional[str] = None, plan: Optional[str] = None, limit: int = 10, offset: int = 0
    ) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where: List[str] = []
            params: list = []
            if status:
                where.append("s.status = ?")
                params.append(status)
            if plan:
                where.append("s.type = ?")
                params.append(plan)
            clause = " WHERE " + " AND ".join(where) if where else ""
            total = cursor.execute(f"SELECT COUNT(*) FROM subscriptions s{clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"""
                SELECT s.*, u.first_name, u.last_name, u.email, vp.business_name
                FROM subscriptions s
                JOIN users u ON u.id = s.vendor_id
                LEFT JOIN vendor_profiles vp ON vp.user_id = s.vendor_id
                {clause}
                ORDER BY s.created_at DESC, s.id DESC LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
            return rows_to_dicts(rows, bool_fields=("auto_renew",)), total
        finally:
            conn.close()

    @classmethod
    async def get_stats(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            counts = cursor.execute(
                """
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(status = 'active'), 0) AS active,
                       COALESCE(SUM(status = 'pending'), 0) AS pending,
                       COALESCE(SUM(status = 'cancelled'), 0) AS cancelled,
                       COALESCE(SUM(status = 'expired'), 0) AS expired
                FROM subscriptions
                """
            ).fetchone()
            by_type = cursor.execute(
                """
                SELECT type, COUNT(*) AS count, SUM(monthly_fee) AS revenue
                FROM subscriptions WHERE status = 'active' GROUP BY type ORDER BY type
                """
            ).fetchall()
            recent = cursor.execute("SELECT * FROM subscriptions ORDER BY created_at DESC, id DESC LIMIT 10").fetchall()
        finally:
            conn.close()
        revenue_by_type = [dict(row) for row in by_type]
        return {
            "total_subscriptions": counts["total"],
            "active_subscriptions": counts["active"],
            "pending_subscriptions": counts["pending"],
            "cancelled_subscriptions": counts["cancelled"],
            "expired_subscriptions": counts["expired"],
            "total_revenue": sum(item["revenue"] for item in revenue_by_type),
            "revenue_by_type": revenue_by_type,
            "recent_subscriptions": rows_to_dicts(recent, bool_fields=("auto_renew",)),
        }

