"""
Schemas for client offers and vendor responses.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .common import Location


class OfferCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    category_id: int
    service_id: Optional[int] = None
    proposed_price: float = Field(..., ge=0)
    location: Optional[Location] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None
    flexibility: Literal["flexible", "specific", "urgent"] = "flexible"
    images: List[str] = Field(default_factory=list)
    expires_in_days: Optional[int] = Field(None, ge=1, le=30)


class OfferResponseCreate(BaseModel):
    proposed_price: float = Field(..., ge=0)
    message: Optional[str] = Field(None, max_length=500)
    estimated_duration: Optional[int] = Field(None, ge=0)


class CounterOfferRequest(BaseModel):
    counter_price: float = Field(..., ge=0)
