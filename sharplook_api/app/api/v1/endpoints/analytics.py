"""
Administrative reporting endpoints.

All reports are read-only aggregations; the audit trail is restricted to
super administrators.  Dated reports accept either explicit
``start_date``/``end_date`` bounds or a ``period`` (day, week, month,
year) ending now.
"""

from typing import Any, Dict, Literal, Optional, Tuple

from fastapi import APIRouter, Depends

from sharplook_api.app.core.helpers import get_date_range, to_iso
from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import require_analytics_admin, require_super_admin
from sharplook_api.app.services.analytics_service import AnalyticsService
from sharplook_api.app.services.audit_service import AuditService


router = APIRouter()

Period = Literal["day", "week", "month", "year"]


def _bounds(period: Optional[str], start_date: Optional[str], end_date: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    if period is None:
        return start_date, end_date
    start, end = get_date_range(period)
    return to_iso(start), to_iso(end)


@router.get("/dashboard")
async def dashboard(current_user: dict = Depends(require_analytics_admin)) -> Dict[str, Any]:
    data = await AnalyticsService.get_dashboard()
    return success(data, "Dashboard overview retrieved successfully")


@router.get("/users")
async def user_analytics(
    period: Optional[Period] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: dict = Depends(require_analytics_admin),
) -> Dict[str, Any]:
    data = await AnalyticsService.get_user_analytics(*_bounds(period, start_date, end_date))
    return success(data, "User analytics retrieved successfully")


@router.get("/bookings")
async def booking_analytics(
    period: Optional[Period] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: dict = Depends(require_analytics_admin),
) -> Dict[str, Any]:
    data = await AnalyticsService.get_booking_analytics(*_bounds(period, start_date, end_date))
    return success(data, "Booking analytics retrieved successfully")


@router.get("/revenue")
async def revenue_analytics(
    period: Optional[Period] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: dict = Depends(require_analytics_admin),
) -> Dict[str, Any]:
    data = await AnalyticsService.get_revenue_analytics(*_bounds(period, start_date, end_date))
    return success(data, "Revenue analytics retrieved successfully")


@router.get("/vendors")
async def vendor_performance(
    vendor_id: Optional[int] = None,
    current_user: dict = Depends(require_analytics_admin),
) -> Dict[str, Any]:
    data = await AnalyticsService.get_vendor_performance(vendor_id)
    return success(data, "Vendor performance retrieved successfully")


@router.get("/services")
async def service_analytics(current_user: dict = Depends(require_analytics_admin)) -> Dict[str, Any]:
    data = await AnalyticsService.get_service_analytics()
    return success(data, "Service analytics retrieved successfully")


@router.get("/disputes")
async def dispute_analytics(current_user: dict = Depends(require_analytics_admin)) -> Dict[str, Any]:
    data = await AnalyticsService.get_dispute_analytics()
    return success(data, "Dispute analytics retrieved successfully")


@router.get("/referrals")
async def referral_analytics(current_user: dict = Depends(require_analytics_admin)) -> Dict[str, Any]:
    data = await AnalyticsService.get_referral_analytics()
    return success(data, "Referral analytics retrieved successfully")


@router.get("/export/{report}")
async def export_report(
    report: str,
    period: Optional[Period] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: dict = Depends(require_analytics_admin),
) -> Dict[str, Any]:
    data = await AnalyticsService.export(report, *_bounds(period, start_date, end_date))
    return success(data, "Analytics exported successfully")


@router.get("/audit-logs")
async def audit_logs(
    user_id: Optional[int] = None,
    object_type: Optional[str] = None,
    action: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(50)),
    current_user: dict = Depends(require_super_admin),
) -> Dict[str, Any]:
    logs, total = await AuditService.list_logs(
        user_id=user_id,
        object_type=object_type,
        action=action,
        start_date=start_date,
        end_date=end_date,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(logs, pagination.page, pagination.limit, total, "Audit logs retrieved successfully")
