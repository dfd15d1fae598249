from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class BookingStatusUpdateIn(BaseModel):
    """Status change request; `expectedStatus` is what the caller last saw."""

    expectedStatus: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)


class RoomNumberIn(BaseModel):
    roomNumber: str = Field(..., min_length=1, max_length=20)


class RefundRequestIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    contactPhone: str = Field(..., min_length=3, max_length=50)
    preferredRefundMethod: Optional[str] = "original_payment_method"
    description: Optional[str] = Field(default="", max_length=4000)
    totalAmount: Optional[float] = Field(default=None, gt=0)
