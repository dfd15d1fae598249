"""Payment capture stub used by checkout.

There is no card-network integration here: a "capture" validates the shape
of the cardholder input and fabricates payment/order references. Only the
last four digits ever leave this module. A production deployment replaces
this class with a hosted payment-gateway integration so that raw card
numbers never pass through application code at all.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from hotelbook.errors import ValidationError
from hotelbook.utils import generate_token_id, now_utc

logger = logging.getLogger(__name__)

_EXPIRY_RE = re.compile(r"^(\d{2})\s*/\s*(\d{2}|\d{4})$")


@dataclass
class CardInput:
    number: str
    expiry: str
    cvv: str
    cardholder_name: str
    billing_address: str

    def __repr__(self) -> str:
        return f"CardInput(cardholder_name={self.cardholder_name!r}, number={mask_card_number(self.number)!r})"


def mask_card_number(number: str) -> str:
    digits = re.sub(r"\D", "", number or "")
    if len(digits) < 4:
        return "****"
    return "**** " + digits[-4:]


def generate_booking_reference(now: Optional[datetime] = None) -> str:
    """BK + last 6 digits of epoch millis. Best-effort unique only."""

    now = now or now_utc()
    millis = str(int(now.timestamp() * 1000))
    return "BK" + millis[-6:]


class PaymentCaptureStub:
    """Deterministic stand-in for card authorization + capture."""

    method = "card"

    def _card_digits(self, card: CardInput) -> str:
        digits = re.sub(r"[\s-]", "", card.number or "")
        if not digits.isdigit() or not 13 <= len(digits) <= 19:
            raise ValidationError("Card number is invalid", code="invalid_card_number")
        return digits

    def _check_expiry(self, card: CardInput, now: datetime) -> None:
        m = _EXPIRY_RE.match((card.expiry or "").strip())
        if not m:
            raise ValidationError("Card expiry must be MM/YY", code="invalid_card_expiry")
        month = int(m.group(1))
        year = int(m.group(2))
        if year < 100:
            year += 2000
        if not 1 <= month <= 12:
            raise ValidationError("Card expiry must be MM/YY", code="invalid_card_expiry")
        if (year, month) < (now.year, now.month):
            raise ValidationError("Card has expired", code="card_expired")

    def capture(self, card: CardInput, amount: float, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Validate the card input and return the paymentInfo snapshot."""

        now = now or now_utc()
        digits = self._card_digits(card)
        self._check_expiry(card, now)
        if not re.fullmatch(r"\d{3,4}", (card.cvv or "").strip()):
            raise ValidationError("CVV is invalid", code="invalid_card_cvv")
        if not (card.cardholder_name or "").strip():
            raise ValidationError("Cardholder name is required", code="cardholder_name_required")
        if not (card.billing_address or "").strip():
            raise ValidationError("Billing address is required", code="billing_address_required")
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", code="invalid_amount")

        payment_info = {
            "paymentId": generate_token_id("pay"),
            "orderId": generate_token_id("order"),
            "method": self.method,
            "status": "completed",
            "cardholderName": card.cardholder_name.strip(),
            "lastFourDigits": digits[-4:],
            "amount": round(float(amount), 2),
            "capturedAt": now,
        }
        logger.info(
            "Payment captured payment_id=%s amount=%.2f card=%s",
            payment_info["paymentId"],
            payment_info["amount"],
            mask_card_number(digits),
        )
        return payment_info
