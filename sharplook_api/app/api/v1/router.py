"""
Top-level router for version 1 of the API.

Every route under ``/api/v1`` passes through the general API rate
limiter.  Offer routes live under ``/bookings/offers`` and are included
before the booking routes so that ``/bookings/{booking_id}`` does not
capture them.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.rate_limit import api_limiter
from sharplook_api.app.core.responses import success

from .endpoints import (
    analytics,
    auth,
    bookings,
    categories,
    chat,
    disputes,
    notifications,
    offers,
    payments,
    referrals,
    reviews,
    services,
    subscriptions,
    users,
)


router = APIRouter(dependencies=[Depends(api_limiter)])


@router.get("", tags=["root"])
async def api_root() -> Dict[str, Any]:
    return success(
        {
            "version": settings.api_version,
            "description": "Multi-sided service marketplace API",
            "documentation": "/docs",
        },
        "Welcome to SharpLook API",
    )


router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(categories.router, prefix="/categories", tags=["categories"])
router.include_router(services.router, prefix="/services", tags=["services"])
router.include_router(offers.router, prefix="/bookings/offers", tags=["offers"])
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
router.include_router(payments.router, prefix="/payments", tags=["payments"])
router.include_router(disputes.router, prefix="/disputes", tags=["disputes"])
router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
router.include_router(chat.router, prefix="/chat", tags=["chat"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(referrals.router, prefix="/referrals", tags=["referrals"])
router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
