"""
Schemas for profiles, vendor onboarding and user administration.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .common import Location


VendorType = Literal["home_service", "in_shop", "both"]
UserStatus = Literal["active", "inactive", "suspended", "pending_verification"]


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9]{10,15}$")
    avatar: Optional[str] = None


class PreferencesUpdate(BaseModel):
    dark_mode: Optional[bool] = None
    fingerprint_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None


class PinRequest(BaseModel):
    pin: str = Field(..., description="4 to 6 digits")


class VendorProfileCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=100)
    business_description: Optional[str] = Field(None, max_length=1000)
    vendor_type: VendorType
    categories: List[int] = Field(default_factory=list)
    location: Optional[Location] = None
    service_radius: Optional[float] = Field(None, ge=0)
    documents: Optional[Dict[str, Any]] = None


class VendorProfileUpdate(BaseModel):
    business_name: Optional[str] = Field(None, min_length=1, max_length=100)
    business_description: Optional[str] = Field(None, max_length=1000)
    vendor_type: Optional[VendorType] = None
    categories: Optional[List[int]] = None
    location: Optional[Location] = None
    service_radius: Optional[float] = Field(None, ge=0)
    availability_schedule: Optional[Dict[str, Any]] = None
    documents: Optional[Dict[str, Any]] = None


class StatusUpdate(BaseModel):
    status: UserStatus
