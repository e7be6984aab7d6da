"""
Read-only platform analytics for administrators.

Every report is a handful of aggregate queries over the live tables.
Monthly breakdowns group on the ``YYYY-MM`` prefix of ``created_at``.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.db import get_connection
from sharplook_api.app.core.errors import NotFoundError
from sharplook_api.app.core.helpers import now_iso, parse_iso, utcnow


logger = logging.getLogger(__name__)


def _date_filter(start_date: Optional[str], end_date: Optional[str], column: str = "created_at") -> Tuple[str, list]:
    clauses: List[str] = []
    params: list = []
    if start_date:
        clauses.append(f"{column} >= ?")
        params.append(start_date)
    if end_date:
        clauses.append(f"{column} <= ?")
        params.append(end_date)
    return " AND ".join(clauses) or "1 = 1", params


def _scalar(cursor: sqlite3.Cursor, sql: str, params: tuple = ()) -> Any:
    return cursor.execute(sql, params).fetchone()[0]


def _grouped(cursor: sqlite3.Cursor, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
    return [dict(row) for row in cursor.execute(sql, params).fetchall()]


def _percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0


class AnalyticsService:
    """Aggregated reports; see ``export`` for the report names."""

    @classmethod
    async def get_dashboard(cls) -> Dict[str, Any]:
        now = utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0).isoformat()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total_users = _scalar(cursor, "SELECT COUNT(*) FROM users WHERE is_deleted = 0")
            vendors = _scalar(cursor, "SELECT COUNT(*) FROM users WHERE is_deleted = 0 AND is_vendor = 1")
            active_vendors = _scalar(
                cursor,
                """
                SELECT COUNT(*) FROM users u JOIN vendor_profiles v ON v.user_id = u.id
                WHERE u.is_deleted = 0 AND u.is_vendor = 1 AND v.is_verified = 1
                """,
            )
            total_bookings = _scalar(cursor, "SELECT COUNT(*) FROM bookings")
            completed = _scalar(cursor, "SELECT COUNT(*) FROM bookings WHERE status = 'completed'")
            active = _scalar(
                cursor, "SELECT COUNT(*) FROM bookings WHERE status IN ('pending', 'accepted', 'in_progress')"
            )
            revenue = _scalar(cursor, "SELECT COALESCE(SUM(amount), 0) FROM payments WHERE status = 'released'")
            month_revenue = _scalar(
                cursor,
                "SELECT COALESCE(SUM(amount), 0) FROM payments WHERE status = 'released' AND created_at >= ?",
                (month_start,),
            )
            services = _scalar(cursor, "SELECT COUNT(*) FROM services WHERE is_active = 1 AND is_deleted = 0")
            avg_rating = _scalar(
                cursor, "SELECT AVG(rating) FROM reviews WHERE is_approved = 1 AND is_hidden = 0"
            )
        finally:
            conn.close()
        return {
            "users": {
                "total": total_users,
                "vendors": vendors,
                "clients": total_users - vendors,
                "active_vendors": active_vendors,
            },
            "bookings": {
                "total": total_bookings,
                "completed": completed,
                "active": active,
                "completion_rate": _percentage(completed, total_bookings),
            },
            "revenue": {"total": revenue, "this_month": month_revenue},
            "services": {"total": services, "avg_rating": round(avg_rating, 2) if avg_rating else 0},
        }

    @classmethod
    async def get_user_analytics(cls, start_date: Optional[str] = None, end_date: Optional[str] = None) -> Dict[str, Any]:
        where, params = _date_filter(start_date, end_date)
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0).isoformat()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            return {
                "total": _scalar(cursor, f"SELECT COUNT(*) FROM users WHERE {where}", tuple(params)),
                "by_role": _grouped(
                    cursor,
                    f"""
                    SELECT CASE WHEN is_vendor = 1 THEN 'vendor' ELSE 'client' END AS role, COUNT(*) AS count
                    FROM users WHERE {where} GROUP BY role
                    """,
                    tuple(params),
                ),
                "by_month": _grouped(
                    cursor,
                    f"""
                    SELECT substr(created_at, 1, 7) AS month, COUNT(*) AS count
                    FROM users WHERE {where} GROUP BY month ORDER BY month
                    """,
                    tuple(params),
                ),
                "new_today": _scalar(cursor, "SELECT COUNT(*) FROM users WHERE created_at >= ?", (today,)),
            }
        finally:
            conn.close()

    @classmethod
    async def get_booking_analytics(
        cls, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> Dict[str, Any]:
        where, params = _date_filter(start_date, end_date, "b.created_at")
        args = tuple(params)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            avg_value = _scalar(cursor, f"SELECT AVG(total_amount) FROM bookings b WHERE {where}", args)
            return {
                "total": _scalar(cursor, f"SELECT COUNT(*) FROM bookings b WHERE {where}", args),
                "by_status": _grouped(
                    cursor, f"SELECT status, COUNT(*) AS count FROM bookings b WHERE {where} GROUP BY status", args
                ),
                "by_type": _grouped(
                    cursor,
                    f"SELECT booking_type, COUNT(*) AS count FROM bookings b WHERE {where} GROUP BY booking_type",
                    args,
                ),
                "by_month": _grouped(
                    cursor,
                    f"""
                    SELECT substr(b.created_at, 1, 7) AS month, COUNT(*) AS count, SUM(total_amount) AS revenue
                    FROM bookings b WHERE {where} GROUP BY month ORDER BY month
                    """,
                    args,
                ),
                "avg_value": round(avg_value, 2) if avg_value else 0,
                "top_services": _grouped(
                    cursor,
                    f"""
                    SELECT s.id AS service_id, s.name AS service_name, COUNT(*) AS bookings
                    FROM bookings b JOIN services s ON s.id = b.service_id
                    WHERE {where} AND b.status = 'completed'
                    GROUP BY s.id ORDER BY bookings DESC LIMIT 10
                    """,
                    args,
                ),
            }
        finally:
            conn.close()

    @classmethod
    async def get_revenue_analytics(
        cls, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> Dict[str, Any]:
        where, params = _date_filter(start_date, end_date)
        args = tuple(params)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            released = f"FROM payments WHERE {where} AND status = 'released'"
            paid = f"FROM payments WHERE {where} AND status IN ('completed', 'released')"
            total = _scalar(cursor, f"SELECT COALESCE(SUM(amount), 0) {released}", args)
            fees = _scalar(cursor, f"SELECT COALESCE(SUM(platform_fee), 0) {released}", args)
            avg_value = _scalar(cursor, f"SELECT AVG(amount) {paid}", args)
            return {
                "total_revenue": total,
                "platform_fees": fees,
                "vendor_payouts": total - fees,
                "avg_transaction_value": round(avg_value, 2) if avg_value else 0,
                "by_month": _grouped(
                    cursor,
                    f"""
                    SELECT substr(created_at, 1, 7) AS month, SUM(amount) AS revenue,
                        SUM(platform_fee) AS platform_fee, SUM(vendor_amount) AS vendor_amount
                    {released} GROUP BY month ORDER BY month
                    """,
                    args,
                ),
                "payment_methods": _grouped(
                    cursor, f"SELECT payment_method, COUNT(*) AS count {paid} GROUP BY payment_method", args
                ),
            }
        finally:
            conn.close()

    @classmethod
    async def get_vendor_performance(cls, vendor_id: Optional[int] = None) -> Dict[str, Any]:
        vendor_clause = "AND b.vendor_id = ?" if vendor_id is not None else ""
        args = (vendor_id,) if vendor_id is not None else ()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            top_vendors = _grouped(
                cursor,
                f"""
                SELECT b.vendor_id, u.first_name || ' ' || u.last_name AS vendor_name,
                    COUNT(*) AS total_bookings, SUM(b.total_amount) AS total_revenue, v.rating
                FROM bookings b
                JOIN users u ON u.id = b.vendor_id
                LEFT JOIN vendor_profiles v ON v.user_id = b.vendor_id
                WHERE b.status = 'completed' {vendor_clause}
                GROUP BY b.vendor_id ORDER BY total_revenue DESC LIMIT 10
                """,
                args,
            )
            top_rated = _grouped(
                cursor,
                """
                SELECT reviewee_id AS vendor_id, ROUND(AVG(rating), 2) AS avg_rating, COUNT(*) AS total_reviews
                FROM reviews WHERE reviewer_type = 'client' AND is_approved = 1 AND is_hidden = 0
                GROUP BY reviewee_id ORDER BY avg_rating DESC, total_reviews DESC LIMIT 10
                """,
            )
        finally:
            conn.close()
        return {"top_vendors": top_vendors, "top_rated": top_rated}

    @classmethod
    async def get_service_analytics(cls) -> Dict[str, Any]:
        active = "is_active = 1 AND is_deleted = 0"
        conn = get_connection()
        try:
            cursor = conn.cursor()
            return {
                "total_services": _scalar(cursor, f"SELECT COUNT(*) FROM services WHERE {active}"),
                "by_category": _grouped(
                    cursor,
                    f"""
                    SELECT c.id AS category_id, c.name AS category_name, COUNT(*) AS count
                    FROM services s JOIN categories c ON c.id = s.category_id
                    WHERE s.is_active = 1 AND s.is_deleted = 0 GROUP BY c.id ORDER BY count DESC
                    """,
                ),
                "top_rated": _grouped(
                    cursor,
                    f"""
                    SELECT id, name, average_rating AS rating, total_reviews AS reviews FROM services
                    WHERE {active} AND total_reviews > 0 ORDER BY average_rating DESC LIMIT 10
                    """,
                ),
                "most_booked": _grouped(
                    cursor,
                    f"""
                    SELECT id, name, bookings, completed_bookings FROM services
                    WHERE {active} ORDER BY bookings DESC LIMIT 10
                    """,
                ),
            }
        finally:
            conn.close()

    @classmethod
    async def get_dispute_analytics(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = _scalar(cursor, "SELECT COUNT(*) FROM disputes")
            by_status = _grouped(cursor, "SELECT status, COUNT(*) AS count FROM disputes GROUP BY status")
            by_category = _grouped(cursor, "SELECT category, COUNT(*) AS count FROM disputes GROUP BY category")
            resolved = cursor.execute(
                "SELECT created_at, resolved_at FROM disputes WHERE status = 'resolved' AND resolved_at IS NOT NULL"
            ).fetchall()
        finally:
            conn.close()
        hours = [
            (parse_iso(row["resolved_at"]) - parse_iso(row["created_at"])).total_seconds() / 3600
            for row in resolved
        ]
        return {
            "total": total,
            "by_status": by_status,
            "by_category": by_category,
            "avg_resolution_time_hours": round(sum(hours) / len(hours), 2) if hours else 0,
        }

    @classmethod
    async def get_referral_analytics(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = _scalar(cursor, "SELECT COUNT(*) FROM referrals")
            completed = _scalar(cursor, "SELECT COUNT(*) FROM referrals WHERE status = 'completed'")
            rewards = _scalar(
                cursor,
                "SELECT COALESCE(SUM(referrer_reward + referee_reward), 0) FROM referrals WHERE status = 'completed'",
            )
        finally:
            conn.close()
        return {
            "total_referrals": total,
            "completed_referrals": completed,
            "total_rewards_paid": rewards,
            "conversion_rate": _percentage(completed, total),
        }

    @classmethod
    async def export(
        cls, report: str, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> Dict[str, Any]:
        """Return one named report wrapped with its name and generation time.

        Raises
        ------
        NotFoundError
            For an unknown report name.
        """
        dated = {
            "users": cls.get_user_analytics,
            "bookings": cls.get_booking_analytics,
            "revenue": cls.get_revenue_analytics,
        }
        undated = {
            "vendors": cls.get_vendor_performance,
            "services": cls.get_service_analytics,
            "disputes": cls.get_dispute_analytics,
            "referrals": cls.get_referral_analytics,
        }
        if report in dated:
            data = await dated[report](start_date, end_date)
        elif report in undated:
            data = await undated[report]()
        else:
            raise NotFoundError("Invalid analytics type")
        logger.info("Analytics exported: %s", report)
        return {"type": report, "generated_at": now_iso(), "data": data}
