from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RefundResolveIn(BaseModel):
    decision: str = Field(..., min_length=1)
    adminNotes: Optional[str] = Field(default="", max_length=2000)


class RefundProcessIn(BaseModel):
    refundAmount: float = Field(..., gt=0)
    refundReason: str = Field(..., min_length=1, max_length=2000)
