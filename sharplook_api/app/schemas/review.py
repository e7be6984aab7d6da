"""
Schemas for reviews and review moderation.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ReviewCreate(BaseModel):
    booking_id: int
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: str = Field(..., min_length=1, max_length=1000)
    detailed_ratings: Optional[Dict[str, int]] = None
    images: List[str] = Field(default_factory=list)

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Comment is required")
        return value

    @field_validator("detailed_ratings")
    @classmethod
    def check_detailed_ratings(cls, value: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        if value and any(not 1 <= rating <= 5 for rating in value.values()):
            raise ValueError("Detailed ratings must be between 1 and 5")
        return value


class ReviewResponse(BaseModel):
    comment: str = Field(..., min_length=1, max_length=1000)


class VoteRequest(BaseModel):
    is_helpful: bool


class FlagRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
