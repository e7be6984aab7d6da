"""
Category endpoints.  Reads are public; changes require an admin.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import require_admin
from sharplook_api.app.schemas.category import CategoryCreate, CategoryUpdate, ReorderRequest
from sharplook_api.app.services.category_service import CategoryService


router = APIRouter()


@router.get("/tree")
async def category_tree() -> Dict[str, Any]:
    tree = await CategoryService.get_tree()
    return success({"categories": tree}, "Category tree retrieved successfully")


@router.get("")
async def list_categories(
    parent_id: Optional[int] = None,
    root_only: bool = False,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(50)),
) -> Dict[str, Any]:
    categories, total = await CategoryService.list_categories(
        parent_id=parent_id,
        root_only=root_only,
        is_active=is_active,
        search=search,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(categories, pagination.page, pagination.limit, total, "Categories retrieved successfully")


@router.get("/slug/{slug}")
async def get_category_by_slug(slug: str) -> Dict[str, Any]:
    category = await CategoryService.get_category_by_slug(slug)
    return success({"category": category}, "Category retrieved successfully")


@router.get("/{category_id}")
async def get_category(category_id: int) -> Dict[str, Any]:
    category = await CategoryService.get_category(category_id)
    return success({"category": category}, "Category retrieved successfully")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(data: CategoryCreate, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    category = await CategoryService.create_category(data.model_dump())
    return success({"category": category}, "Category created successfully")


@router.put("/reorder")
async def reorder_categories(data: ReorderRequest, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    await CategoryService.reorder_categories([item.model_dump() for item in data.orders])
    return success(message="Categories reordered successfully")


@router.put("/{category_id}")
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    current_user: dict = Depends(require_admin),
) -> Dict[str, Any]:
    category = await CategoryService.update_category(category_id, data.model_dump(exclude_unset=True))
    return success({"category": category}, "Category updated successfully")


@router.delete("/{category_id}")
async def delete_category(category_id: int, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    await CategoryService.delete_category(category_id)
    return success(message="Category deleted successfully")


@router.post("/{category_id}/restore")
async def restore_category(category_id: int, current_user: dict = Depends(require_admin)) -> Dict[str, Any]:
    category = await CategoryService.restore_category(category_id)
    return success({"category": category}, "Category restored successfully")
