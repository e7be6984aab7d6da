"""
Authentication endpoints.

Registration, login and the email verification endpoints share the
``auth`` rate limiter, which only counts failed attempts; password
reset requests have their own, stricter limiter.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status

from sharplook_api.app.core.rate_limit import auth_limiter, password_reset_limiter
from sharplook_api.app.core.responses import success
from sharplook_api.app.core.security import get_current_user
from sharplook_api.app.schemas.auth import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenRequest,
)
from sharplook_api.app.services.auth_service import AuthService


router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(auth_limiter)])
async def register(data: RegisterRequest) -> Dict[str, Any]:
    """Create a client or vendor account and return it with a token pair."""
    result = await AuthService.register(data.model_dump(exclude_none=True))
    return success(result, "Registration successful. Please verify your email.")


@router.post("/login", dependencies=[Depends(auth_limiter)])
async def login(data: LoginRequest, request: Request) -> Dict[str, Any]:
    ip_address = request.client.host if request.client else None
    result = await AuthService.login(data.email, data.password, ip_address)
    return success(result, "Login successful")


@router.post("/refresh-token")
async def refresh_token(data: RefreshRequest) -> Dict[str, Any]:
    tokens = await AuthService.refresh_token(data.refresh_token)
    return success(tokens, "Token refreshed successfully")


@router.post("/logout")
async def logout(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    await AuthService.logout(current_user["id"])
    return success(message="Logout successful")


@router.post("/verify-email", dependencies=[Depends(auth_limiter)])
async def verify_email(data: TokenRequest) -> Dict[str, Any]:
    user = await AuthService.verify_email(data.token)
    return success({"user": user}, "Email verified successfully")


@router.post("/resend-verification", dependencies=[Depends(auth_limiter)])
async def resend_verification(data: EmailRequest) -> Dict[str, Any]:
    await AuthService.resend_verification(data.email)
    return success(message="Verification email sent")


@router.post("/forgot-password", dependencies=[Depends(password_reset_limiter)])
async def forgot_password(data: EmailRequest) -> Dict[str, Any]:
    """Always answers the same way so account existence is not revealed."""
    await AuthService.forgot_password(data.email)
    return success(message="If an account exists with this email, a password reset link has been sent")


@router.post("/reset-password", dependencies=[Depends(password_reset_limiter)])
async def reset_password(data: ResetPasswordRequest) -> Dict[str, Any]:
    await AuthService.reset_password(data.token, data.new_password)
    return success(message="Password reset successful. Please log in with your new password")


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    await AuthService.change_password(current_user["id"], data.current_password, data.new_password)
    return success(message="Password changed successfully")


@router.get("/me")
async def me(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    return success({"user": current_user}, "User retrieved successfully")
