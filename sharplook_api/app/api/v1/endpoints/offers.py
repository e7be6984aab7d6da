"""
Offer endpoints, mounted under ``/bookings/offers``.

A client posts an offer, verified vendors respond with a price, the
client may counter and finally accepts one response, which creates an
offer based booking.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user, require_vendor
from sharplook_api.app.schemas.offer import CounterOfferRequest, OfferCreate, OfferResponseCreate
from sharplook_api.app.services.offer_service import DEFAULT_RADIUS_KM, OfferService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_offer(data: OfferCreate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    offer = await OfferService.create_offer(current_user["id"], data.model_dump(exclude_none=True))
    return success({"offer": offer}, "Offer created successfully")


@router.get("/available")
async def available_offers(
    category_id: Optional[int] = None,
    price_min: Optional[float] = Query(None, ge=0),
    price_max: Optional[float] = Query(None, ge=0),
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    max_distance: float = Query(DEFAULT_RADIUS_KM, gt=0),
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(require_vendor),
) -> Dict[str, Any]:
    offers, total = await OfferService.get_available_offers(
        current_user["id"],
        category_id=category_id,
        price_min=price_min,
        price_max=price_max,
        latitude=latitude,
        longitude=longitude,
        max_distance=max_distance,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(offers, pagination.page, pagination.limit, total, "Available offers retrieved successfully")


@router.get("/my-offers")
async def my_offers(
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    offers, total = await OfferService.get_client_offers(current_user["id"], pagination.limit, pagination.offset)
    return paginated(offers, pagination.page, pagination.limit, total, "Offers retrieved successfully")


@router.get("/my-responses")
async def my_responses(
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(require_vendor),
) -> Dict[str, Any]:
    offers, total = await OfferService.get_vendor_responses(current_user["id"], pagination.limit, pagination.offset)
    return paginated(offers, pagination.page, pagination.limit, total, "Responses retrieved successfully")


@router.get("/{offer_id}")
async def get_offer(offer_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    offer = await OfferService.get_offer(offer_id, current_user["id"])
    return success({"offer": offer}, "Offer retrieved successfully")


@router.post("/{offer_id}/respond")
async def respond_to_offer(
    offer_id: int,
    data: OfferResponseCreate,
    current_user: dict = Depends(require_vendor),
) -> Dict[str, Any]:
    offer = await OfferService.respond_to_offer(offer_id, current_user["id"], data.model_dump())
    return success({"offer": offer}, "Response submitted successfully")


@router.post("/{offer_id}/responses/{response_id}/counter")
async def counter_offer(
    offer_id: int,
    response_id: int,
    data: CounterOfferRequest,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    offer = await OfferService.counter_offer(offer_id, current_user["id"], response_id, data.counter_price)
    return success({"offer": offer}, "Counter offer sent successfully")


@router.post("/{offer_id}/responses/{response_id}/accept")
async def accept_response(
    offer_id: int,
    response_id: int,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    result = await OfferService.accept_response(offer_id, current_user["id"], response_id)
    return success(result, "Offer accepted and booking created")


@router.post("/{offer_id}/close")
async def close_offer(offer_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    offer = await OfferService.close_offer(offer_id, current_user["id"])
    return success({"offer": offer}, "Offer closed successfully")
