"""
Schemas for notifications, device tokens and notification settings.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


NotificationType = Literal["booking", "payment", "message", "system", "promotion"]


class Channels(BaseModel):
    push: bool = True
    email: bool = False
    sms: bool = False
    in_app: bool = True


class NotificationCreate(BaseModel):
    user_id: int
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    action_url: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    channels: Optional[Channels] = None


class BulkNotification(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    action_url: Optional[str] = None
    channels: Optional[Channels] = None


class DeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)
    device_type: Literal["ios", "android", "web"]
    device_name: Optional[str] = None


class DeviceTokenRemove(BaseModel):
    token: str = Field(..., min_length=1)


class SettingsUpdate(BaseModel):
    notifications_enabled: Optional[bool] = None
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
