"""
Booking endpoints.

Clients create bookings for a service; the vendor accepts, rejects and
starts them; either party marks completion or cancels.
"""

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import ADMIN_ROLES, get_current_user
from sharplook_api.app.schemas.booking import BookingCreate, BookingUpdate
from sharplook_api.app.schemas.common import ReasonBody
from sharplook_api.app.services.booking_service import BookingService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(data: BookingCreate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    booking = await BookingService.create_booking(current_user["id"], data.model_dump(exclude_none=True))
    return success({"booking": booking}, "Booking created successfully")


@router.get("/my-bookings")
async def my_bookings(
    role: Literal["client", "vendor"] = "client",
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    bookings, total = await BookingService.list_bookings(
        current_user["id"],
        role=role,
        status=status,
        start_date=start_date,
        end_date=end_date,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(bookings, pagination.page, pagination.limit, total, "Bookings retrieved successfully")


@router.get("/stats")
async def booking_stats(
    role: Literal["client", "vendor"] = "client",
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    stats = await BookingService.get_stats(current_user["id"], role)
    return success({"stats": stats}, "Booking stats retrieved successfully")


@router.get("/{booking_id}")
async def get_booking(booking_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    booking = await BookingService.get_booking(
        booking_id, current_user["id"], is_admin=current_user["role"] in ADMIN_ROLES
    )
    return success({"booking": booking}, "Booking retrieved successfully")


@router.put("/{booking_id}")
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    booking = await BookingService.update_booking(booking_id, current_user["id"], data.model_dump(exclude_unset=True))
    return success({"booking": booking}, "Booking updated successfully")


@router.post("/{booking_id}/accept")
async def accept_booking(booking_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    booking = await BookingService.accept_booking(booking_id, current_user["id"])
    return success({"booking": booking}, "Booking accepted successfully")


@router.post("/{booking_id}/reject")
async def reject_booking(
    booking_id: int,
    data: Optional[ReasonBody] = None,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    booking = await BookingService.reject_booking(booking_id, current_user["id"], data.reason if data else None)
    return success({"booking": booking}, "Booking rejected successfully")


@router.post("/{booking_id}/start")
async def start_booking(booking_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    booking = await BookingService.start_booking(booking_id, current_user["id"])
    return success({"booking": booking}, "Booking started successfully")


@router.post("/{booking_id}/complete")
async def complete_booking(booking_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    booking = await BookingService.complete_booking(booking_id, current_user["id"])
    message = "Booking completed successfully" if booking["status"] == "completed" else "Booking marked as complete"
    return success({"booking": booking}, message)


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: int,
    data: Optional[ReasonBody] = None,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    booking = await BookingService.cancel_booking(booking_id, current_user["id"], data.reason if data else None)
    return success({"booking": booking}, "Booking cancelled successfully")
