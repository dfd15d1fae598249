"""Guest checkout: POST /api/checkout captures payment and creates a confirmed booking."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from hotelbook.auth import Actor, get_optional_actor
from hotelbook.db import get_db
from hotelbook.routers.bookings import booking_out
from hotelbook.schemas_checkout import CheckoutIn
from hotelbook.services.checkout import CheckoutService
from hotelbook.services.payment_capture import CardInput

router = APIRouter(prefix="/api", tags=["checkout"])


@router.post("/checkout", status_code=201)
async def checkout(
    payload: CheckoutIn,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    card = CardInput(
        number=payload.payment.cardNumber,
        expiry=payload.payment.expiryDate,
        cvv=payload.payment.cvv,
        cardholder_name=payload.payment.cardholderName,
        billing_address=payload.payment.billingAddress,
    )
    data = payload.model_dump(mode="json", exclude={"payment"})
    doc = await CheckoutService(db).create_booking(data, card, actor)
    return booking_out(doc)
