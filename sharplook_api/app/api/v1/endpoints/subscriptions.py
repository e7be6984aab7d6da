"""
Vendor subscription endpoints.

Plans set the commission rate charged when escrowed payments are
released to the vendor.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user, require_admin
from sharplook_api.app.schemas.subscription import CancelRequest, SubscriptionCreate
from sharplook_api.app.services.subscription_service import SubscriptionService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_subscription(
    data: SubscriptionCreate,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    subscription = await SubscriptionService.create_subscription(current_user["id"], data.plan)
    return success({"subscription": subscription}, "Subscription created successfully")


@router.get("/my-subscription")
async def my_subscription(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    subscription = await SubscriptionService.get_current(current_user["id"])
    return success({"subscription": subscription}, "Subscription retrieved successfully")


@router.get("/commission-rate")
async def commission_rate(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    rate = await SubscriptionService.get_commission_rate(current_user["id"])
    return success({"commission_rate": rate}, "Commission rate retrieved successfully")


@router.put("/cancel")
async def cancel_subscription(
    data: Optional[CancelRequest] = None,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    subscription = await SubscriptionService.cancel_subscription(current_user["id"], data.reason if data else None)
    return success({"subscription": subscription}, "Subscription cancelled successfully")


@router.put("/change-plan")
async def change_plan(data: SubscriptionCreate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    subscription = await SubscriptionService.change_plan(current_user["id"], data.plan)
    return success({"subscription": subscription}, "Subscription plan changed successfully")


@router.get("/stats")
async def subscription_stats(current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    stats = await SubscriptionService.get_stats()
    return success({"stats": stats}, "Subscription stats retrieved successfully")


@router.get("")
async def list_subscriptions(
    status: Optional[str] = None,
    plan: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    subscriptions, total = await SubscriptionService.list_subscriptions(
        status=status, plan=plan, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(subscriptions, pagination.page, pagination.limit, total, "Subscriptions retrieved successfully")


@router.post("/{subscription_id}/pay")
async def pay_subscription(subscription_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    subscription = await SubscriptionService.pay_subscription(subscription_id, current_user["id"])
    return success({"subscription": subscription}, "Subscription paid successfully")
