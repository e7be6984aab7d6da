"""
Schemas for registration, login and password management.
"""

import re
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .user import VendorProfileCreate


PHONE_RE = re.compile(r"^\+?[0-9]{10,15}$")


def _check_password(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Za-z]", value) or not re.search(r"[0-9]", value):
        raise ValueError("Password must contain letters and numbers")
    return value


class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: str
    password: str
    referred_by: Optional[str] = Field(None, description="Referral code of an existing user")
    is_vendor: bool = False
    vendor_profile: Optional[VendorProfileCreate] = None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, value: str) -> str:
        value = value.strip()
        if not PHONE_RE.match(value):
            raise ValueError("Please provide a valid phone number")
        return value

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password(value)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password(value)
