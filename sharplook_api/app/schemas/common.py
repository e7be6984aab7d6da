"""
Building blocks shared by several resource schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Location(BaseModel):
    """A GeoJSON style point with a human readable address."""

    type: str = Field("Point", description="Always 'Point'")
    coordinates: List[float] = Field(..., description="[longitude, latitude]")
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

    @field_validator("coordinates")
    @classmethod
    def check_coordinates(cls, value: List[float]) -> List[float]:
        if len(value) != 2:
            raise ValueError("Coordinates must be [longitude, latitude]")
        longitude, latitude = value
        if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
            raise ValueError("Coordinates are out of range")
        return value


class ReasonBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RequiredReasonBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
