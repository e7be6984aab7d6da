"""
Schemas for the referral programme.
"""

from pydantic import BaseModel, Field


class ApplyCodeRequest(BaseModel):
    referral_code: str = Field(..., min_length=1, max_length=20)
