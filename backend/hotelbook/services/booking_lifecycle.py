from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from hotelbook.auth import Actor
from hotelbook.domain.booking_state_machine import (
    BOOKING_STATUSES,
    CANCELLED,
    CONFIRMED,
    UNKNOWN,
    allowed_parties,
    display_status,
    is_idempotent_noop,
    normalize_status,
    stored_variants,
    validate_transition,
)
from hotelbook.errors import Forbidden, InvalidStateTransition, NotFound, ValidationError
from hotelbook.repositories.booking_repository import BookingRepository
from hotelbook.services.audit import record_audit
from hotelbook.utils import nights_between, now_utc, safe_float

logger = logging.getLogger(__name__)

_CANCEL_PARTIES = frozenset({"hotel", "guest"})


def nights_for(booking: Dict[str, Any]) -> int:
    try:
        nights = int(booking.get("nights") or 0)
    except (TypeError, ValueError):
        nights = 0
    return nights or nights_between(booking.get("checkIn"), booking.get("checkOut"))


def unit_price_for(booking: Dict[str, Any]) -> float:
    unit_price = booking.get("unitPrice")
    if unit_price is None:
        unit_price = (booking.get("roomDetails") or {}).get("price")
    return safe_float(unit_price)


def _owner_clauses(actor: Actor, parties: frozenset[str]) -> List[Dict[str, Any]]:
    clauses: List[Dict[str, Any]] = []
    if "hotel" in parties and actor.is_hotel_admin:
        clauses.append({"hotelAdmin": actor.id})
    if "guest" in parties and actor.id:
        clauses.append({"userId": actor.id})
    return clauses


def _matches(doc: Dict[str, Any], clauses: List[Dict[str, Any]]) -> bool:
    for clause in clauses:
        if all(doc.get(k) is not None and doc.get(k) == v for k, v in clause.items()):
            return True
    return False


class BookingLifecycleService:
    """Status transitions, ownership-scoped reads and room assignment for bookings.

    Each mutation is a single compare-and-set whose filter carries the
    expected prior status and the actor's ownership clause, so an
    unauthorized or stale request never writes.
    """

    def __init__(self, db):
        self.db = db
        self.repo = BookingRepository(db)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def can_view(self, booking: Dict[str, Any], actor: Actor) -> bool:
        if actor.is_super_admin:
            return True
        return _matches(booking, _owner_clauses(actor, _CANCEL_PARTIES))

    async def _load(self, booking_id: str) -> Dict[str, Any]:
        doc = await self.repo.get_by_id(booking_id)
        if not doc:
            raise NotFound("Booking not found", code="booking_not_found", details={"booking_id": booking_id})
        return doc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: str, actor: Actor) -> Dict[str, Any]:
        doc = await self._load(booking_id)
        if not self.can_view(doc, actor):
            raise Forbidden("Booking belongs to another principal", code="booking_forbidden")
        return doc

    def _scoped_filter(
        self,
        actor: Actor,
        *,
        hotel_admin: Optional[str],
        user_id: Optional[str],
        status: Optional[str],
    ) -> Dict[str, Any]:
        flt: Dict[str, Any] = {}
        if actor.is_super_admin:
            if hotel_admin:
                flt["hotelAdmin"] = hotel_admin
            if user_id:
                flt["userId"] = user_id
        elif actor.is_hotel_admin:
            if hotel_admin and hotel_admin != actor.id:
                raise Forbidden("Cannot list another hotel's bookings", code="booking_forbidden")
            flt["hotelAdmin"] = actor.id
            if user_id:
                flt["userId"] = user_id
        else:
            if user_id and user_id != actor.id:
                raise Forbidden("Cannot list another guest's bookings", code="booking_forbidden")
            flt["userId"] = actor.id
            if hotel_admin:
                flt["hotelAdmin"] = hotel_admin

        if status:
            normalized = normalize_status(status)
            if normalized is None:
                raise ValidationError(f"Unknown booking status {status}", code="invalid_status_filter")
            flt["status"] = {"$in": stored_variants(normalized)}
        return flt

    async def list_bookings(
        self,
        actor: Actor,
        *,
        hotel_admin: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        order: str = "desc",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Bookings visible to `actor`, newest first unless order="asc"."""

        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive", code="invalid_limit")
        flt = self._scoped_filter(actor, hotel_admin=hotel_admin, user_id=user_id, status=status)
        return await self.repo.list_bookings(flt, order=order, limit=limit)

    async def booking_stats(self, actor: Actor) -> Dict[str, Any]:
        flt = self._scoped_filter(actor, hotel_admin=None, user_id=None, status=None)
        docs = await self.repo.list_bookings(
            flt,
            projection={"status": 1, "totalAmount": 1, "refundInfo": 1},
        )
        counts: Dict[str, int] = {s: 0 for s in (*BOOKING_STATUSES, UNKNOWN)}
        revenue = 0.0
        refunded = 0.0
        for doc in docs:
            status = display_status(doc.get("status"))
            counts[status] += 1
            if status not in (CANCELLED, UNKNOWN):
                revenue += safe_float(doc.get("totalAmount"))
            info = doc.get("refundInfo") or {}
            if info.get("refundStatus") == "processed":
                refunded += safe_float(info.get("refundAmount"))
        return {
            "total": len(docs),
            "counts": counts,
            "revenue": round(revenue, 2),
            "refunded": round(refunded, 2),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _classify_miss(
        self,
        booking_id: str,
        clauses: List[Dict[str, Any]],
        expected: str,
        target: str,
    ) -> Dict[str, Any]:
        """Explain a compare-and-set that matched nothing.

        Returns the document only for the idempotent cancel case.
        """

        doc = await self._load(booking_id)
        if not _matches(doc, clauses):
            raise Forbidden("Actor does not own this booking", code="booking_forbidden")
        current = normalize_status(doc.get("status"))
        if is_idempotent_noop(current, target):
            return doc
        raise InvalidStateTransition(
            current=current or str(doc.get("status")),
            target=target,
            message=f"Booking is {display_status(doc.get('status'))}, expected {expected}",
            code="stale_booking_status",
            details={"expected": expected},
        )

    async def update_booking_status(
        self,
        booking_id: str,
        expected_status: str,
        new_status: str,
        actor: Actor,
    ) -> Dict[str, Any]:
        """Move a booking from `expected_status` to `new_status` on behalf of `actor`."""

        try:
            current, target = validate_transition(expected_status, new_status)
        except InvalidStateTransition:
            doc = await self._load(booking_id)
            if not self.can_view(doc, actor):
                raise Forbidden("Actor does not own this booking", code="booking_forbidden")
            raise
        parties = _CANCEL_PARTIES if is_idempotent_noop(current, target) else allowed_parties(current, target)
        clauses = _owner_clauses(actor, parties)
        if not clauses:
            await self._load(booking_id)
            raise Forbidden(f"Role {actor.role} cannot move a booking to {target}", code="booking_forbidden")

        if is_idempotent_noop(current, target):
            return await self._classify_miss(booking_id, clauses, current, target)

        owner_clause = clauses[0] if len(clauses) == 1 else {"$or": clauses}
        after = await self.repo.compare_and_set_status(
            booking_id,
            expected_status=current,
            new_status=target,
            owner_clause=owner_clause,
            now=now_utc(),
        )
        if after is None:
            return await self._classify_miss(booking_id, clauses, current, target)

        logger.info("Booking %s status %s -> %s by %s", booking_id, current, target, actor.id)
        if current == CANCELLED and target == CONFIRMED and after.get("refundInfo"):
            logger.warning(
                "Booking %s reactivated while carrying processed refund %s",
                booking_id,
                (after.get("refundInfo") or {}).get("refundId"),
            )

        await record_audit(
            self.db,
            actor=actor,
            action="BOOKING_STATUS_CHANGED",
            target_type="booking",
            target_id=str(booking_id),
            before={"status": current},
            after={"status": target},
            meta={"from": current, "to": target},
        )
        return after

    async def cancel_booking(self, booking_id: str, actor: Actor) -> Dict[str, Any]:
        """Self-service cancel: cancel from whatever status the booking is in now."""

        doc = await self._load(booking_id)
        current = normalize_status(doc.get("status"))
        if current is None:
            raise InvalidStateTransition(
                current=str(doc.get("status")),
                target=CANCELLED,
                code="unknown_booking_status",
            )
        return await self.update_booking_status(booking_id, current, CANCELLED, actor)

    async def assign_room_number(self, booking_id: str, room_number: str, actor: Actor) -> Dict[str, Any]:
        room_number = str(room_number or "").strip()
        if not room_number:
            raise ValidationError("roomNumber is required", code="room_number_required")
        if not actor.is_hotel_admin:
            await self._load(booking_id)
            raise Forbidden("Only the hotel admin can assign rooms", code="booking_forbidden")

        after = await self.repo.set_room_number(
            booking_id,
            hotel_admin=actor.id,
            room_number=room_number,
            now=now_utc(),
        )
        if after is None:
            await self._load(booking_id)
            raise Forbidden("Actor does not own this booking", code="booking_forbidden")

        await record_audit(
            self.db,
            actor=actor,
            action="BOOKING_ROOM_ASSIGNED",
            target_type="booking",
            target_id=str(booking_id),
            after={"roomNumber": room_number},
        )
        return after
