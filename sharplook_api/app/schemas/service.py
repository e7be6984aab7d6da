"""
Schemas for the vendor service catalogue.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


PriceType = Literal["fixed", "hourly", "negotiable"]


class Faq(BaseModel):
    question: str
    answer: str


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    category_id: int
    subcategory_id: Optional[int] = None
    base_price: float = Field(..., ge=0)
    price_type: PriceType = "fixed"
    duration: Optional[int] = Field(None, ge=0, description="Minutes")
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    what_is_included: List[str] = Field(default_factory=list)
    faqs: List[Faq] = Field(default_factory=list)
    availability: Optional[Dict[str, Any]] = None


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    base_price: Optional[float] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    duration: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    what_is_included: Optional[List[str]] = None
    faqs: Optional[List[Faq]] = None
    availability: Optional[Dict[str, Any]] = None


class ApproveRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)
