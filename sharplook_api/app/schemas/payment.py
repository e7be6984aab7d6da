"""
Schemas for payments, escrow actions and withdrawals.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PaymentInitialize(BaseModel):
    booking_id: int
    metadata: Optional[Dict[str, Any]] = None


class WithdrawalRequest(BaseModel):
    amount: float = Field(..., gt=0)
    bank_name: str = Field(..., min_length=1)
    account_number: str = Field(..., pattern=r"^[0-9]{10}$")
    account_name: str = Field(..., min_length=1)
    pin: str
