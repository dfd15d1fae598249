from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError

from hotelbook.auth import Actor
from hotelbook.config import REFERENCE_MAX_ATTEMPTS
from hotelbook.domain.booking_state_machine import CONFIRMED
from hotelbook.errors import NotFound, StoreUnavailable, ValidationError
from hotelbook.repositories.booking_repository import BookingRepository
from hotelbook.services.audit import record_audit
from hotelbook.services.payment_capture import CardInput, PaymentCaptureStub, generate_booking_reference
from hotelbook.utils import generate_code, nights_between, now_utc, parse_iso_date, safe_float

logger = logging.getLogger(__name__)


class CheckoutService:
    """Guest checkout: capture payment, then create the booking as confirmed."""

    def __init__(self, db, payments: Optional[PaymentCaptureStub] = None):
        self.db = db
        self.repo = BookingRepository(db)
        self.payments = payments or PaymentCaptureStub()

    def _validate_stay(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        check_in = parse_iso_date(payload.get("checkIn"))
        check_out = parse_iso_date(payload.get("checkOut"))
        if check_in is None or check_out is None:
            raise ValidationError("checkIn and checkOut must be ISO dates", code="invalid_stay_dates")
        if check_out <= check_in:
            raise ValidationError("checkOut must be after checkIn", code="invalid_stay_dates")

        try:
            guests = int(payload.get("guests") or 0)
        except (TypeError, ValueError):
            guests = 0
        if guests < 1:
            raise ValidationError("guests must be a positive integer", code="invalid_guests")

        guest_info = list(payload.get("guestInfo") or [])
        if not guest_info:
            raise ValidationError("At least one guest is required", code="guest_info_required")
        primary = guest_info[0] or {}
        if not str(primary.get("firstName") or "").strip() or not str(primary.get("email") or "").strip():
            raise ValidationError("Primary guest needs a first name and email", code="primary_guest_incomplete")

        nights = payload.get("nights") or nights_between(check_in, check_out)
        return {
            "checkIn": check_in.isoformat(),
            "checkOut": check_out.isoformat(),
            "guests": guests,
            "nights": int(nights),
            "guestInfo": guest_info,
        }

    def _price(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        total_price = safe_float(payload.get("totalPrice"), -1.0)
        taxes = safe_float(payload.get("taxesAndFees"), 0.0)
        if total_price < 0 or taxes < 0:
            raise ValidationError("totalPrice and taxesAndFees must be non-negative", code="invalid_amount")

        total_amount = round(total_price + taxes, 2)
        claimed = payload.get("totalAmount")
        if claimed is not None and abs(safe_float(claimed) - total_amount) > 0.01:
            raise ValidationError(
                "totalAmount must equal totalPrice + taxesAndFees",
                code="total_amount_mismatch",
                details={"expected": total_amount, "given": claimed},
            )

        room_details = dict(payload.get("roomDetails") or {})
        unit_price = payload.get("unitPrice")
        if unit_price is None:
            unit_price = room_details.get("price")
        return {
            "totalPrice": total_price,
            "taxesAndFees": taxes,
            "totalAmount": total_amount,
            "unitPrice": unit_price,
        }

    async def create_booking(
        self,
        payload: Dict[str, Any],
        card: CardInput,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        """Create a confirmed booking for `payload` after capturing payment.

        `hotelAdmin` comes from the hotel record and `userId` from the actor;
        neither is ever taken from the payload.
        """

        hotel_id = payload.get("hotelId")
        hotel = await self.repo.get_hotel(hotel_id)
        if not hotel:
            raise NotFound("Hotel not found", code="hotel_not_found", details={"hotel_id": hotel_id})
        hotel_admin = hotel.get("hotelAdmin")
        if not hotel_admin:
            raise ValidationError("Hotel has no managing admin", code="hotel_admin_missing")

        stay = self._validate_stay(payload)
        money = self._price(payload)

        now = now_utc()
        payment_info = self.payments.capture(card, money["totalAmount"], now=now)

        guest_info = stay["guestInfo"]
        room_details = dict(payload.get("roomDetails") or {})
        room_details.setdefault("roomId", payload.get("roomId"))
        room_details["roomNumber"] = None
        hotel_details = dict(payload.get("hotelDetails") or {})
        hotel_details.setdefault("hotelId", hotel_id)

        doc: Dict[str, Any] = {
            "hotelId": hotel_id,
            "roomId": payload.get("roomId"),
            "userId": actor.id if actor else None,
            "userEmail": guest_info[0].get("email", ""),
            "hotelAdmin": hotel_admin,
            **stay,
            **money,
            "paymentInfo": payment_info,
            "status": CONFIRMED,
            "hotelDetails": hotel_details,
            "roomDetails": room_details,
            "createdAt": now,
            "updatedAt": now,
        }

        reference = generate_booking_reference(now)
        for attempt in range(1, REFERENCE_MAX_ATTEMPTS + 1):
            doc["reference"] = reference
            try:
                doc["_id"] = await self.repo.insert(doc)
                break
            except DuplicateKeyError:
                logger.info("Booking reference %s taken (attempt %s)", reference, attempt)
                doc.pop("_id", None)
                reference = generate_code("BK", 6)
        else:
            logger.error("No free booking reference after %s attempts; payment %s captured", REFERENCE_MAX_ATTEMPTS, payment_info["paymentId"])
            raise StoreUnavailable(
                "Could not allocate a booking reference",
                code="booking_reference_unavailable",
                details={"payment_id": payment_info["paymentId"]},
            )

        logger.info("Booking %s created reference=%s hotel=%s", doc["_id"], doc["reference"], hotel_id)
        await record_audit(
            self.db,
            actor=actor,
            action="BOOKING_CREATED",
            target_type="booking",
            target_id=str(doc["_id"]),
            after={"status": CONFIRMED, "reference": doc["reference"]},
            meta={"payment_id": payment_info["paymentId"]},
        )
        return doc
