"""
User endpoints: own profile, vendor onboarding, vendor discovery and
user administration.

Static paths are declared before ``/{user_id}`` so they are matched
first.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from sharplook_api.app.core.errors import BadRequestError
from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user, require_admin, require_super_admin
from sharplook_api.app.schemas.user import (
    PinRequest,
    PreferencesUpdate,
    ProfileUpdate,
    StatusUpdate,
    VendorProfileCreate,
    VendorProfileUpdate,
)
from sharplook_api.app.services.user_service import UserService


router = APIRouter()


@router.get("/profile")
async def get_profile(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    user = await UserService.get_user_by_id(current_user["id"])
    return success({"user": user}, "Profile retrieved successfully")


@router.put("/profile")
async def update_profile(data: ProfileUpdate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    user = await UserService.update_profile(current_user["id"], data.model_dump(exclude_unset=True))
    return success({"user": user}, "Profile updated successfully")


@router.put("/preferences")
async def update_preferences(
    data: PreferencesUpdate,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    preferences = await UserService.update_preferences(current_user["id"], data.model_dump(exclude_unset=True))
    return success({"preferences": preferences}, "Preferences updated successfully")


@router.post("/withdrawal-pin")
async def set_withdrawal_pin(data: PinRequest, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await UserService.set_withdrawal_pin(current_user["id"], data.pin)
    return success(message="Withdrawal PIN set successfully")


@router.post("/verify-withdrawal-pin")
async def verify_withdrawal_pin(data: PinRequest, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    if not await UserService.verify_withdrawal_pin(current_user["id"], data.pin):
        raise BadRequestError("Invalid withdrawal PIN")
    return success({"valid": True}, "PIN verified successfully")


@router.post("/become-vendor")
async def become_vendor(data: VendorProfileCreate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    user = await UserService.become_vendor(current_user["id"], data.model_dump(exclude_none=True))
    return success({"user": user}, "Vendor account created. Awaiting verification.")


@router.put("/vendor-profile")
async def update_vendor_profile(
    data: VendorProfileUpdate,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    user = await UserService.update_vendor_profile(current_user["id"], data.model_dump(exclude_unset=True))
    return success({"user": user}, "Vendor profile updated successfully")


@router.get("/stats")
async def get_stats(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    stats = await UserService.get_user_stats(current_user["id"])
    return success({"stats": stats}, "Stats retrieved successfully")


@router.get("/top-vendors")
async def top_vendors(limit: int = Query(10, ge=1, le=50)) -> Dict[str, Any]:
    vendors = await UserService.get_top_vendors(limit)
    return success({"vendors": vendors}, "Top vendors retrieved successfully")


@router.get("/vendors")
async def list_vendors(
    vendor_type: Optional[str] = None,
    category_id: Optional[int] = None,
    search: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    max_distance: float = Query(10, gt=0),
    pagination: Pagination = Depends(pagination_params(10)),
) -> Dict[str, Any]:
    vendors, total = await UserService.get_vendors(
        vendor_type=vendor_type,
        category_id=category_id,
        search=search,
        latitude=latitude,
        longitude=longitude,
        max_distance=max_distance,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(vendors, pagination.page, pagination.limit, total, "Vendors retrieved successfully")


@router.get("/vendors/{vendor_id}")
async def get_vendor(vendor_id: int) -> Dict[str, Any]:
    vendor = await UserService.get_vendor_details(vendor_id)
    return success({"vendor": vendor}, "Vendor details retrieved successfully")


@router.get("")
async def list_users(
    role: Optional[str] = None,
    status: Optional[str] = None,
    is_vendor: Optional[bool] = None,
    search: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    users, total = await UserService.get_all_users(
        role=role,
        status=status,
        is_vendor=is_vendor,
        search=search,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(users, pagination.page, pagination.limit, total, "Users retrieved successfully")


@router.get("/{user_id}")
async def get_user(user_id: int, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    user = await UserService.get_user_by_id(user_id)
    return success({"user": user}, "User retrieved successfully")


@router.put("/{user_id}/status")
async def update_status(
    user_id: int,
    data: StatusUpdate,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    user = await UserService.update_user_status(user_id, data.status, current_user)
    return success({"user": user}, "User status updated successfully")


@router.post("/{user_id}/verify-vendor")
async def verify_vendor(user_id: int, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    user = await UserService.verify_vendor(user_id, current_user)
    return success({"user": user}, "Vendor verified successfully")


@router.delete("/{user_id}")
async def delete_user(user_id: int, current_user: dict = Depends(require_super_admin)) -> Dict[str, Any]:
    """Soft delete; the account can be brought back with ``restore``."""
    await UserService.soft_delete_user(user_id, current_user["id"])
    return success(message="User deleted successfully")


@router.post("/{user_id}/restore")
async def restore_user(user_id: int, current_user: dict = Depends(require_super_admin)) -> Dict[str, Any]:
    user = await UserService.restore_user(user_id, current_user["id"])
    return success({"user": user}, "User restored successfully")
