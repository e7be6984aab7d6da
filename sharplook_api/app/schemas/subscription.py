"""
Schemas for vendor subscriptions.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


Plan = Literal["in_shop", "home_service", "both"]


class SubscriptionCreate(BaseModel):
    plan: Plan


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
