"""
Schemas for standard bookings.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .common import Location


class BookingCreate(BaseModel):
    service_id: int
    scheduled_date: str = Field(..., description="ISO date or datetime")
    scheduled_time: Optional[str] = Field(None, pattern=r"^([01][0-9]|2[0-3]):[0-5][0-9]$")
    location: Optional[Location] = None
    client_notes: Optional[str] = Field(None, max_length=1000)


class BookingUpdate(BaseModel):
    client_notes: Optional[str] = Field(None, max_length=1000)
    vendor_notes: Optional[str] = Field(None, max_length=1000)
