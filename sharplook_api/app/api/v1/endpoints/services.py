"""
Service catalogue endpoints.

Public listing and detail routes only expose active, approved services.
Vendors manage their own catalogue; administrators approve or reject
new and changed services.  Reviews of a service are created and listed
here as well and handled by the review service.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from sharplook_api.app.core.pagination import Pagination, pagination_params, validate_sort_order
from sharplook_api.app.core.rate_limit import search_limiter
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user, optional_user, require_admin, require_vendor
from sharplook_api.app.schemas.common import RequiredReasonBody
from sharplook_api.app.schemas.review import ReviewCreate, ReviewResponse
from sharplook_api.app.schemas.service import ApproveRequest, ServiceCreate, ServiceUpdate
from sharplook_api.app.services.catalog_service import CatalogService
from sharplook_api.app.services.review_service import ReviewService


router = APIRouter()


@router.get("/trending")
async def trending(limit: int = Query(10, ge=1, le=50)) -> Dict[str, Any]:
    services = await CatalogService.get_trending(limit)
    return success({"services": services}, "Trending services retrieved successfully")


@router.get("/popular/{category_id}")
async def popular_by_category(category_id: int, limit: int = Query(5, ge=1, le=50)) -> Dict[str, Any]:
    services = await CatalogService.get_popular_by_category(category_id, limit)
    return success({"services": services}, "Popular services retrieved successfully")


@router.get("/vendor/my-services")
async def my_services(
    approval_status: Optional[str] = None,
    is_active: Optional[bool] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    services, total = await CatalogService.list_services(
        vendor_id=current_user["id"],
        approval_status=approval_status,
        is_active=is_active,
        include_unpublished=True,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(services, pagination.page, pagination.limit, total, "Services retrieved successfully")


@router.get("/admin/pending")
async def pending_services(
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    services, total = await CatalogService.get_pending_services(pagination.limit, pagination.offset)
    return paginated(services, pagination.page, pagination.limit, total, "Pending services retrieved successfully")


@router.get("/admin/stats")
async def approval_stats(current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    stats = await CatalogService.get_approval_stats()
    return success({"stats": stats}, "Service approval stats retrieved successfully")


@router.get("/slug/{slug}")
async def get_service_by_slug(slug: str, current_user: Optional[dict] = Depends(optional_user)) -> Dict[str, Any]:
    viewer_id = current_user["id"] if current_user else None
    service = await CatalogService.get_service_by_slug(slug, increment_view=True, viewer_id=viewer_id)
    return success({"service": service}, "Service retrieved successfully")


@router.post("/reviews/{review_id}/respond")
async def respond_to_review(
    review_id: int,
    data: ReviewResponse,
    current_user: dict = Depends(require_vendor),
) -> Dict[str, Any]:
    review = await ReviewService.respond_to_review(review_id, current_user["id"], data.comment)
    return success({"review": review}, "Response added successfully")


@router.get("/{service_id}/reviews")
async def service_reviews(
    service_id: int,
    rating: Optional[int] = Query(None, ge=1, le=5),
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    pagination: Pagination = Depends(pagination_params(10)),
) -> Dict[str, Any]:
    reviews, total = await ReviewService.get_service_reviews(
        service_id, rating=rating, min_rating=min_rating, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(reviews, pagination.page, pagination.limit, total, "Reviews retrieved successfully")


@router.post("/{service_id}/reviews", status_code=status.HTTP_201_CREATED)
async def review_service(
    service_id: int,
    data: ReviewCreate,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    review = await ReviewService.create_review(current_user["id"], data.model_dump(), service_id=service_id)
    return success({"review": review}, "Review created successfully")


@router.get("/{service_id}")
async def get_service(service_id: int, current_user: Optional[dict] = Depends(optional_user)) -> Dict[str, Any]:
    viewer_id = current_user["id"] if current_user else None
    service = await CatalogService.get_service(service_id, increment_view=True, viewer_id=viewer_id)
    return success({"service": service}, "Service retrieved successfully")


@router.get("", dependencies=[Depends(search_limiter)])
async def list_services(
    vendor_id: Optional[int] = None,
    category_id: Optional[int] = None,
    subcategory_id: Optional[int] = None,
    price_min: Optional[float] = Query(None, ge=0),
    price_max: Optional[float] = Query(None, ge=0),
    rating: Optional[float] = Query(None, ge=0, le=5),
    search: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    max_distance: float = Query(10, gt=0),
    sort_by: str = "created_at",
    sort_order: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(20)),
) -> Dict[str, Any]:
    services, total = await CatalogService.list_services(
        vendor_id=vendor_id,
        category_id=category_id,
        subcategory_id=subcategory_id,
        price_min=price_min,
        price_max=price_max,
        rating=rating,
        search=search,
        latitude=latitude,
        longitude=longitude,
        max_distance=max_distance,
        sort_by=sort_by,
        sort_order=validate_sort_order(sort_order),
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(services, pagination.page, pagination.limit, total, "Services retrieved successfully")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_service(data: ServiceCreate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    service = await CatalogService.create_service(current_user["id"], data.model_dump())
    return success({"service": service}, "Service created successfully and is pending approval")


@router.put("/{service_id}")
async def update_service(
    service_id: int,
    data: ServiceUpdate,
    current_user: dict = Depends(require_vendor),
) -> Dict[str, Any]:
    service = await CatalogService.update_service(service_id, current_user["id"], data.model_dump(exclude_unset=True))
    return success({"service": service}, "Service updated successfully")


@router.patch("/{service_id}/toggle")
async def toggle_service(service_id: int, current_user: dict = Depends(require_vendor)) -> Dict[str, Any]:
    service = await CatalogService.toggle_status(service_id, current_user["id"])
    state = "activated" if service["is_active"] else "deactivated"
    return success({"service": service}, f"Service {state} successfully")


@router.delete("/{service_id}")
async def delete_service(service_id: int, current_user: dict = Depends(require_vendor)) -> Dict[str, Any]:
    await CatalogService.delete_service(service_id, current_user["id"])
    return success(message="Service deleted successfully")


@router.post("/{service_id}/approve")
async def approve_service(
    service_id: int,
    data: Optional[ApproveRequest] = None,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    service = await CatalogService.approve_service(service_id, current_user, data.notes if data else None)
    return success({"service": service}, "Service approved successfully")


@router.post("/{service_id}/reject")
async def reject_service(
    service_id: int,
    data: RequiredReasonBody,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    service = await CatalogService.reject_service(service_id, current_user, data.reason)
    return success({"service": service}, "Service rejected")
