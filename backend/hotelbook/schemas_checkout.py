from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class GuestInfoIn(BaseModel):
    firstName: str = Field(..., min_length=1, max_length=100)
    lastName: str = Field("", max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=50)


class CardIn(BaseModel):
    # Shape checks (length, expiry, CVV) happen in the payment stub so the
    # caller gets its specific error codes.
    cardNumber: str
    expiryDate: str
    cvv: str
    cardholderName: str
    billingAddress: str


class CheckoutIn(BaseModel):
    hotelId: str = Field(..., min_length=1)
    roomId: str = Field(..., min_length=1)
    checkIn: date
    checkOut: date
    guests: int = Field(..., ge=1, le=20)
    nights: Optional[int] = Field(default=None, ge=1)
    unitPrice: Optional[float] = Field(default=None, ge=0)
    totalPrice: float = Field(..., ge=0)
    taxesAndFees: float = Field(0.0, ge=0)
    totalAmount: Optional[float] = Field(default=None, ge=0)
    guestInfo: List[GuestInfoIn] = Field(..., min_length=1)
    hotelDetails: Dict[str, Any] = Field(default_factory=dict)
    roomDetails: Dict[str, Any] = Field(default_factory=dict)
    payment: CardIn
