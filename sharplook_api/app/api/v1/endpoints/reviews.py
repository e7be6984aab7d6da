"""
Review endpoints: writing, answering, voting on and moderating reviews.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user, require_admin
from sharplook_api.app.schemas.common import ReasonBody
from sharplook_api.app.schemas.review import FlagRequest, ReviewCreate, ReviewResponse, VoteRequest
from sharplook_api.app.services.review_service import ReviewService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(data: ReviewCreate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    review = await ReviewService.create_review(current_user["id"], data.model_dump())
    return success({"review": review}, "Review created successfully")


@router.post("/{review_id}/respond")
async def respond_to_review(
    review_id: int,
    data: ReviewResponse,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    review = await ReviewService.respond_to_review(review_id, current_user["id"], data.comment)
    return success({"review": review}, "Response added successfully")


@router.post("/{review_id}/vote")
async def vote_review(
    review_id: int,
    data: VoteRequest,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    review = await ReviewService.vote(review_id, current_user["id"], data.is_helpful)
    return success({"review": review}, "Vote recorded successfully")


@router.post("/{review_id}/flag")
async def flag_review(
    review_id: int,
    data: FlagRequest,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    review = await ReviewService.flag_review(review_id, current_user["id"], data.reason)
    return success({"review": review}, "Review flagged for moderation")


@router.get("/my-reviews")
async def my_reviews(
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    reviews, total = await ReviewService.get_user_reviews(current_user["id"], pagination.limit, pagination.offset)
    return paginated(reviews, pagination.page, pagination.limit, total, "Reviews retrieved successfully")


@router.get("/user/{user_id}/stats")
async def user_review_stats(user_id: int) -> Dict[str, Any]:
    stats = await ReviewService.get_stats(user_id)
    return success({"stats": stats}, "Review stats retrieved successfully")


@router.get("/user/{user_id}")
async def reviews_for_user(
    user_id: int,
    rating: Optional[int] = Query(None, ge=1, le=5),
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    pagination: Pagination = Depends(pagination_params(10)),
) -> Dict[str, Any]:
    reviews, total = await ReviewService.get_reviews_for_user(
        user_id, rating=rating, min_rating=min_rating, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(reviews, pagination.page, pagination.limit, total, "Reviews retrieved successfully")


@router.get("/service/{service_id}")
async def reviews_for_service(
    service_id: int,
    rating: Optional[int] = Query(None, ge=1, le=5),
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    pagination: Pagination = Depends(pagination_params(10)),
) -> Dict[str, Any]:
    reviews, total = await ReviewService.get_service_reviews(
        service_id, rating=rating, min_rating=min_rating, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(reviews, pagination.page, pagination.limit, total, "Reviews retrieved successfully")


@router.get("/{review_id}")
async def get_review(review_id: int) -> Dict[str, Any]:
    review = await ReviewService.get_review(review_id)
    return success({"review": review}, "Review retrieved successfully")


@router.get("")
async def list_reviews(
    is_flagged: Optional[bool] = None,
    is_approved: Optional[bool] = None,
    rating: Optional[int] = Query(None, ge=1, le=5),
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    reviews, total = await ReviewService.get_all_reviews(
        is_flagged=is_flagged,
        is_approved=is_approved,
        rating=rating,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(reviews, pagination.page, pagination.limit, total, "Reviews retrieved successfully")


@router.post("/{review_id}/approve")
async def approve_review(review_id: int, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    review = await ReviewService.approve_review(review_id, current_user)
    return success({"review": review}, "Review approved successfully")


@router.post("/{review_id}/hide")
async def hide_review(
    review_id: int,
    data: Optional[ReasonBody] = None,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    review = await ReviewService.hide_review(review_id, current_user, data.reason if data else None)
    return success({"review": review}, "Review hidden successfully")


@router.post("/{review_id}/unhide")
async def unhide_review(review_id: int, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    review = await ReviewService.unhide_review(review_id, current_user)
    return success({"review": review}, "Review unhidden successfully")
