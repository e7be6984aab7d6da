"""
Notification endpoints: the in-app inbox, device tokens and settings.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import pagination_meta, success
from sharplook_api.app.core.security import get_current_user, require_admin
from sharplook_api.app.schemas.notification import (
    BulkNotification,
    DeviceTokenRemove,
    DeviceTokenRequest,
    NotificationCreate,
    SettingsUpdate,
)
from sharplook_api.app.services.notification_service import NotificationService


router = APIRouter()


@router.post("/register-device")
async def register_device(data: DeviceTokenRequest, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await NotificationService.register_device_token(
        current_user["id"], data.token, data.device_type, data.device_name
    )
    return success(message="Device registered successfully")


@router.post("/unregister-device")
async def unregister_device(data: DeviceTokenRemove, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await NotificationService.unregister_device_token(data.token)
    return success(message="Device unregistered successfully")


@router.get("")
async def list_notifications(
    type: Optional[str] = None,
    is_read: Optional[bool] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    notifications, total, unread = await NotificationService.list_notifications(
        current_user["id"], type=type, is_read=is_read, limit=pagination.limit, offset=pagination.offset
    )
    meta = pagination_meta(pagination.page, pagination.limit, total)
    meta["unread_count"] = unread
    return success(notifications, "Notifications retrieved successfully", meta)


@router.get("/unread-count")
async def unread_count(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    count = await NotificationService.unread_count(current_user["id"])
    return success({"unread_count": count}, "Unread count retrieved successfully")


@router.get("/settings")
async def get_settings(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    settings = await NotificationService.get_settings(current_user["id"])
    return success({"settings": settings}, "Notification settings retrieved successfully")


@router.put("/settings")
async def update_settings(data: SettingsUpdate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    settings = await NotificationService.update_settings(current_user["id"], data.model_dump(exclude_unset=True))
    return success({"settings": settings}, "Notification settings updated successfully")


@router.put("/read-all")
async def mark_all_as_read(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    updated = await NotificationService.mark_all_as_read(current_user["id"])
    return success({"updated": updated}, "All notifications marked as read")


@router.put("/{notification_id}/read")
async def mark_as_read(notification_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await NotificationService.mark_as_read(notification_id, current_user["id"])
    return success(message="Notification marked as read")


@router.delete("/{notification_id}")
async def delete_notification(notification_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await NotificationService.delete_notification(notification_id, current_user["id"])
    return success(message="Notification deleted successfully")


@router.delete("")
async def clear_all(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await NotificationService.clear_all(current_user["id"])
    return success(message="All notifications cleared")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(data: NotificationCreate, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    payload = data.model_dump(exclude={"user_id"})
    notification = await NotificationService.create_notification(data.user_id, payload)
    return success({"notification": notification}, "Notification sent successfully")


@router.post("/bulk")
async def send_bulk(data: BulkNotification, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    payload = data.model_dump(exclude={"user_ids"})
    sent = await NotificationService.send_bulk(data.user_ids, payload)
    return success({"sent": sent}, f"Notification sent to {sent} users")
