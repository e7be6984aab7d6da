"""
Referral programme endpoints.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user, require_admin
from sharplook_api.app.schemas.referral import ApplyCodeRequest
from sharplook_api.app.services.referral_service import ReferralService


router = APIRouter()


@router.post("/apply")
async def apply_code(data: ApplyCodeRequest, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    referral = await ReferralService.apply_code(current_user["id"], data.referral_code)
    return success({"referral": referral}, "Referral code applied successfully")


@router.get("/stats")
async def referral_stats(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    stats = await ReferralService.get_stats(current_user["id"])
    return success({"stats": stats}, "Referral stats retrieved successfully")


@router.get("/my-referrals")
async def my_referrals(
    status: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    referrals, total = await ReferralService.list_referrals(
        referrer_id=current_user["id"], status=status, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(referrals, pagination.page, pagination.limit, total, "Referrals retrieved successfully")


@router.get("/leaderboard")
async def leaderboard(limit: int = Query(10, ge=1, le=100)) -> Dict[str, Any]:
    leaders = await ReferralService.get_leaderboard(limit)
    return success({"leaderboard": leaders}, "Leaderboard retrieved successfully")


@router.get("/admin/stats")
async def admin_stats(current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    stats = await ReferralService.get_admin_stats()
    return success({"stats": stats}, "Referral stats retrieved successfully")


@router.post("/admin/expire")
async def expire_referrals(current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    expired = await ReferralService.expire_old_referrals()
    return success({"expired": expired}, f"{expired} referrals expired")


@router.get("")
async def list_referrals(
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    referrals, total = await ReferralService.list_referrals(
        status=status, start_date=start_date, end_date=end_date, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(referrals, pagination.page, pagination.limit, total, "Referrals retrieved successfully")


@router.get("/{referral_id}")
async def get_referral(referral_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    referral = await ReferralService.get_referral(referral_id, current_user["id"])
    return success({"referral": referral}, "Referral retrieved successfully")
