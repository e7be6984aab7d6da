"""
Schemas for service categories.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = None
    image: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: Optional[bool] = True
    order: Optional[int] = Field(0, ge=0)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = None
    image: Optional[str] = None
    parent_id: Optional[int] = None
    is_active: Optional[bool] = None
    order: Optional[int] = Field(None, ge=0)


class CategoryOrder(BaseModel):
    category_id: int
    order: int = Field(..., ge=0)


class ReorderRequest(BaseModel):
    orders: List[CategoryOrder] = Field(..., min_length=1)
