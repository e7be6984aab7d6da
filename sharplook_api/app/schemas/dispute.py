"""
Schemas for disputes.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


DisputeCategory = Literal["service_quality", "payment", "cancellation", "communication", "other"]
Priority = Literal["low", "medium", "high", "urgent"]


class Evidence(BaseModel):
    type: Literal["text", "image", "document"]
    content: str = Field(..., min_length=1)


class DisputeCreate(BaseModel):
    booking_id: int
    reason: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    category: DisputeCategory
    evidence: List[Evidence] = Field(default_factory=list)


class EvidenceAdd(BaseModel):
    evidence: List[Evidence] = Field(..., min_length=1)


class DisputeMessage(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    attachments: List[str] = Field(default_factory=list)


class AssignRequest(BaseModel):
    assign_to: int


class PriorityUpdate(BaseModel):
    priority: Priority


class ResolveRequest(BaseModel):
    resolution: Literal["refund_client", "pay_vendor", "partial_refund"]
    resolution_details: Optional[str] = Field(None, max_length=2000)
    refund_amount: Optional[float] = Field(None, ge=0)
    vendor_payment_amount: Optional[float] = Field(None, ge=0)
