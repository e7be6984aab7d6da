"""
Dispute endpoints.

Booking parties raise disputes and add evidence; administrators assign,
prioritise, resolve and close them.  Resolution settles the escrowed
payment of the booking.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.rate_limit import upload_limiter
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import get_current_user, require_admin
from sharplook_api.app.schemas.dispute import (
    AssignRequest,
    DisputeCreate,
    DisputeMessage,
    EvidenceAdd,
    PriorityUpdate,
    ResolveRequest,
)
from sharplook_api.app.services.dispute_service import DisputeService


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_dispute(data: DisputeCreate, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    dispute = await DisputeService.create_dispute(current_user["id"], data.model_dump())
    return success({"dispute": dispute}, "Dispute created successfully")


@router.get("/my-disputes")
async def my_disputes(
    status: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    disputes, total = await DisputeService.list_disputes(
        user_id=current_user["id"], status=status, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(disputes, pagination.page, pagination.limit, total, "Disputes retrieved successfully")


@router.get("/stats")
async def dispute_stats(current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    stats = await DisputeService.get_stats()
    return success({"stats": stats}, "Dispute stats retrieved successfully")


@router.get("")
async def list_disputes(
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    assigned_to: Optional[int] = None,
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    disputes, total = await DisputeService.list_disputes(
        status=status,
        category=category,
        priority=priority,
        assigned_to=assigned_to,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(disputes, pagination.page, pagination.limit, total, "Disputes retrieved successfully")


@router.get("/{dispute_id}")
async def get_dispute(dispute_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    dispute = await DisputeService.get_dispute(dispute_id, current_user)
    return success({"dispute": dispute}, "Dispute retrieved successfully")


@router.post("/{dispute_id}/evidence", dependencies=[Depends(upload_limiter)])
async def add_evidence(
    dispute_id: int,
    data: EvidenceAdd,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    evidence = [item.model_dump() for item in data.evidence]
    dispute = await DisputeService.add_evidence(dispute_id, current_user["id"], evidence)
    return success({"dispute": dispute}, "Evidence added successfully")


@router.post("/{dispute_id}/messages")
async def add_message(
    dispute_id: int,
    data: DisputeMessage,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    dispute = await DisputeService.add_message(dispute_id, current_user, data.message, data.attachments)
    return success({"dispute": dispute}, "Message added successfully")


@router.post("/{dispute_id}/assign")
async def assign_dispute(
    dispute_id: int,
    data: AssignRequest,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    dispute = await DisputeService.assign_dispute(dispute_id, current_user, data.assign_to)
    return success({"dispute": dispute}, "Dispute assigned successfully")


@router.put("/{dispute_id}/priority")
async def update_priority(
    dispute_id: int,
    data: PriorityUpdate,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    dispute = await DisputeService.update_priority(dispute_id, data.priority)
    return success({"dispute": dispute}, "Priority updated successfully")


@router.post("/{dispute_id}/resolve")
async def resolve_dispute(
    dispute_id: int,
    data: ResolveRequest,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    dispute = await DisputeService.resolve_dispute(dispute_id, current_user, data.model_dump())
    return success({"dispute": dispute}, "Dispute resolved successfully")


@router.post("/{dispute_id}/close")
async def close_dispute(dispute_id: int, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    dispute = await DisputeService.close_dispute(dispute_id, current_user)
    return success({"dispute": dispute}, "Dispute closed successfully")
