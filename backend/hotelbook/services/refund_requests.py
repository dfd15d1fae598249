from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from hotelbook.auth import Actor
from hotelbook.config import STORE_RETRY_ATTEMPTS
from hotelbook.domain import booking_state_machine as booking_sm
from hotelbook.domain.refund_state_machine import (
    APPROVED,
    DECISIONS,
    PENDING,
    PROCESSED,
    RECON_CLAIMED,
    RECON_CONFIRMED,
    RECON_UNCONFIRMED,
    REFUND_METHODS,
    REFUND_REQUEST_STATUSES,
    validate_transition,
)
from hotelbook.errors import (
    Forbidden,
    InvalidStateTransition,
    NotFound,
    RefundReconciliationPending,
    StoreUnavailable,
    ValidationError,
)
from hotelbook.repositories.booking_repository import BookingRepository
from hotelbook.repositories.refund_request_repository import RefundRequestRepository
from hotelbook.services.audit import record_audit
from hotelbook.utils import generate_token_id, now_utc, safe_float

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = 0.01

BookingAndRequest = Tuple[Dict[str, Any], Dict[str, Any]]


def _require_super_admin(actor: Actor) -> None:
    if not actor.is_super_admin:
        raise Forbidden("Only a super-admin can manage refunds", code="refund_forbidden")


def _payment_id(booking: Dict[str, Any]) -> str:
    return str((booking.get("paymentInfo") or {}).get("paymentId") or "").strip()


def _check_amount(amount: Any, booking: Dict[str, Any], *, field: str) -> float:
    value = safe_float(amount, -1.0)
    ceiling = safe_float(booking.get("totalAmount"))
    if value <= 0 or value > ceiling + AMOUNT_TOLERANCE:
        raise ValidationError(
            f"{field} must be greater than 0 and at most the booking total",
            code="refund_amount_invalid",
            details={"field": field, "given": amount, "max": ceiling},
        )
    return round(value, 2)


class RefundWorkflowService:
    """Refund requests: guest submission, super-admin decision and processing.

    Processing touches two documents (the request and its booking). The
    request is claimed first, then the booking gets its refundInfo, then the
    request is confirmed as processed. A crash or store outage between the
    steps leaves a reconciliation marker that `reconcile_refund` resumes.
    """

    def __init__(self, db):
        self.db = db
        self.bookings = BookingRepository(db)
        self.requests = RefundRequestRepository(db)

    async def _load_request(self, request_id: str) -> Dict[str, Any]:
        doc = await self.requests.get_by_id(request_id)
        if not doc:
            raise NotFound("Refund request not found", code="refund_request_not_found", details={"request_id": request_id})
        return doc

    async def _load_booking(self, booking_id: Any) -> Dict[str, Any]:
        doc = await self.bookings.get_by_id(booking_id)
        if not doc:
            raise NotFound("Booking not found", code="booking_not_found", details={"booking_id": str(booking_id)})
        return doc

    # ------------------------------------------------------------------
    # Guest side
    # ------------------------------------------------------------------

    async def create_refund_request(self, booking_id: str, payload: Dict[str, Any], actor: Actor) -> Dict[str, Any]:
        booking = await self._load_booking(booking_id)
        if not actor.is_super_admin and not (booking.get("userId") and booking.get("userId") == actor.id):
            raise Forbidden("Only the booking's guest can request a refund", code="refund_forbidden")

        if booking_sm.normalize_status(booking.get("status")) != booking_sm.CANCELLED:
            raise ValidationError(
                "Refunds can only be requested for cancelled bookings",
                code="booking_not_cancelled",
                details={"status": booking.get("status")},
            )
        if not _payment_id(booking):
            raise ValidationError("Booking has no captured payment", code="payment_not_captured")
        if booking.get("refundInfo"):
            raise ValidationError("Booking has already been refunded", code="booking_already_refunded", status_code=409)

        reason = str(payload.get("reason") or "").strip()
        if not reason:
            raise ValidationError("reason is required", code="reason_required")
        contact_phone = str(payload.get("contactPhone") or "").strip()
        if not contact_phone:
            raise ValidationError("contactPhone is required", code="contact_phone_required")
        method = payload.get("preferredRefundMethod") or "original_payment_method"
        if method not in REFUND_METHODS:
            raise ValidationError(
                f"Unsupported refund method {method}",
                code="invalid_refund_method",
                details={"allowed": list(REFUND_METHODS)},
            )
        requested = payload.get("totalAmount")
        amount = _check_amount(
            booking.get("totalAmount") if requested is None else requested,
            booking,
            field="totalAmount",
        )

        booking_key = str(booking["_id"])
        existing = await self.requests.find_open_for_booking(booking_key)
        if existing:
            raise ValidationError(
                "An open refund request already exists for this booking",
                code="refund_request_already_open",
                status_code=409,
                details={"refund_request_id": str(existing["_id"])},
            )

        now = now_utc()
        doc: Dict[str, Any] = {
            "bookingId": booking_key,
            "bookingReference": booking.get("reference"),
            "hotelName": (booking.get("hotelDetails") or {}).get("name"),
            "roomType": (booking.get("roomDetails") or {}).get("type"),
            "checkIn": booking.get("checkIn"),
            "checkOut": booking.get("checkOut"),
            "totalAmount": amount,
            "paymentId": _payment_id(booking),
            "reason": reason,
            "contactPhone": contact_phone,
            "preferredRefundMethod": method,
            "description": str(payload.get("description") or ""),
            "requestedBy": actor.id,
            "requestedByEmail": booking.get("userEmail"),
            "status": PENDING,
            "requestedAt": now,
            "processedAt": None,
            "processedBy": None,
            "adminNotes": "",
            "updatedAt": now,
        }
        try:
            doc["_id"] = await self.requests.insert(doc)
        except DuplicateKeyError:
            raise ValidationError(
                "An open refund request already exists for this booking",
                code="refund_request_already_open",
                status_code=409,
            )

        logger.info("Refund request %s opened for booking %s amount=%.2f", doc["_id"], booking_key, amount)
        await record_audit(
            self.db,
            actor=actor,
            action="REFUND_REQUESTED",
            target_type="refund_request",
            target_id=str(doc["_id"]),
            after={"status": PENDING, "totalAmount": amount},
            meta={"booking_id": booking_key},
        )
        return doc

    async def get_refund_request(self, request_id: str, actor: Actor) -> Dict[str, Any]:
        doc = await self._load_request(request_id)
        if not actor.is_super_admin and doc.get("requestedBy") != actor.id:
            raise Forbidden("Refund request belongs to another principal", code="refund_forbidden")
        return doc

    async def list_refund_requests(
        self,
        actor: Actor,
        *,
        booking_id: Optional[str] = None,
        status: Optional[str] = None,
        order: str = "desc",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Super-admins see every request; anyone else only their own."""

        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive", code="invalid_limit")
        flt: Dict[str, Any] = {}
        if not actor.is_super_admin:
            flt["requestedBy"] = actor.id
        if booking_id:
            flt["bookingId"] = str(booking_id)
        if status:
            if status not in REFUND_REQUEST_STATUSES:
                raise ValidationError(f"Unknown refund request status {status}", code="invalid_status_filter")
            flt["status"] = status
        return await self.requests.list_requests(flt, order=order, limit=limit)

    async def refund_request_counts(self, actor: Actor) -> Dict[str, int]:
        _require_super_admin(actor)
        counts = {s: await self.requests.count({"status": s}) for s in REFUND_REQUEST_STATUSES}
        counts["all"] = sum(counts.values())
        return counts

    # ------------------------------------------------------------------
    # Super-admin side
    # ------------------------------------------------------------------

    async def resolve_refund_request(
        self,
        request_id: str,
        decision: str,
        admin_notes: Optional[str],
        actor: Actor,
    ) -> Dict[str, Any]:
        _require_super_admin(actor)
        decision = str(decision or "").strip().lower()
        if decision not in DECISIONS:
            raise ValidationError(
                "decision must be approved or rejected",
                code="invalid_decision",
                details={"allowed": list(DECISIONS)},
            )

        now = now_utc()
        after = await self.requests.compare_and_set(
            request_id,
            {"status": PENDING},
            {
                "$set": {
                    "status": decision,
                    "processedAt": now,
                    "processedBy": actor.id,
                    "adminNotes": str(admin_notes or ""),
                    "updatedAt": now,
                }
            },
        )
        if after is None:
            current = await self._load_request(request_id)
            raise InvalidStateTransition(
                current=current.get("status"),
                target=decision,
                code="invalid_refund_state",
            )

        logger.info("Refund request %s %s by %s", request_id, decision, actor.id)
        await record_audit(
            self.db,
            actor=actor,
            action="REFUND_REQUEST_RESOLVED",
            target_type="refund_request",
            target_id=str(request_id),
            before={"status": PENDING},
            after={"status": decision},
            meta={"admin_notes": after.get("adminNotes")},
        )
        return after

    async def _release_claim(self, request_id: str, refund_id: str) -> None:
        await self.requests.compare_and_set(
            request_id,
            {"status": APPROVED, "reconciliation.refundId": refund_id},
            {"$unset": {"reconciliation": ""}, "$set": {"updatedAt": now_utc()}},
        )

    async def _confirm(self, request_id: str, refund_id: str, actor: Actor) -> Dict[str, Any]:
        """Advance the claimed request to processed, retrying transient store failures."""

        last_exc: Optional[StoreUnavailable] = None
        for attempt in range(1, STORE_RETRY_ATTEMPTS + 1):
            now = now_utc()
            try:
                after = await self.requests.compare_and_set(
                    request_id,
                    {"status": APPROVED, "reconciliation.refundId": refund_id},
                    {
                        "$set": {
                            "status": PROCESSED,
                            "processedAt": now,
                            "processedBy": actor.id,
                            "reconciliation.state": RECON_CONFIRMED,
                            "reconciliation.confirmedAt": now,
                            "updatedAt": now,
                        }
                    },
                )
            except StoreUnavailable as exc:
                last_exc = exc
                logger.warning("Confirming refund %s failed (attempt %s/%s): %s", refund_id, attempt, STORE_RETRY_ATTEMPTS, exc)
                continue

            if after is not None:
                return after
            current = await self._load_request(request_id)
            if current.get("status") == PROCESSED and (current.get("reconciliation") or {}).get("refundId") == refund_id:
                return current
            raise InvalidStateTransition(
                current=current.get("status"),
                target=PROCESSED,
                code="invalid_refund_state",
            )

        try:
            await self.requests.compare_and_set(
                request_id,
                {"status": APPROVED, "reconciliation.refundId": refund_id},
                {"$set": {"reconciliation.state": RECON_UNCONFIRMED, "updatedAt": now_utc()}},
            )
        except StoreUnavailable:
            logger.warning("Could not mark refund %s as unconfirmed", refund_id)
        logger.error("Refund %s written to booking but request %s is unconfirmed: %s", refund_id, request_id, last_exc)
        raise RefundReconciliationPending(str(request_id), refund_id)

    async def _write_booking_refund(
        self,
        request_id: str,
        booking_id: Any,
        refund_info: Dict[str, Any],
    ) -> Dict[str, Any]:
        written = await self.bookings.write_refund_info(booking_id, refund_info)
        if written is None:
            await self._release_claim(request_id, refund_info["refundId"])
            booking = await self._load_booking(booking_id)
            raise InvalidStateTransition(
                current=booking_sm.display_status(booking.get("status")),
                target="refunded",
                message="Booking is no longer eligible for a refund",
                code="booking_refund_conflict",
            )
        return written

    async def process_refund(
        self,
        request_id: str,
        refund_amount: Any,
        refund_reason: str,
        actor: Actor,
    ) -> BookingAndRequest:
        """Refund an approved request: booking gets refundInfo, request becomes processed.

        Returns (booking, refund_request) after both writes.
        """

        _require_super_admin(actor)
        request = await self._load_request(request_id)
        validate_transition(request.get("status"), PROCESSED)
        if request.get("reconciliation"):
            raise InvalidStateTransition(
                current=request.get("status"),
                target=PROCESSED,
                message="Refund processing already started; reconcile it instead",
                code="refund_already_processing",
            )

        reason = str(refund_reason or "").strip()
        if not reason:
            raise ValidationError("refundReason is required", code="refund_reason_required")

        booking = await self._load_booking(request.get("bookingId"))
        if not _payment_id(booking):
            raise ValidationError("Booking has no captured payment", code="payment_not_captured")
        amount = _check_amount(refund_amount, booking, field="refundAmount")
        if booking_sm.normalize_status(booking.get("status")) != booking_sm.CANCELLED:
            raise InvalidStateTransition(
                current=booking_sm.display_status(booking.get("status")),
                target="refunded",
                message="Booking must be cancelled to be refunded",
                code="booking_not_cancelled",
            )
        if booking.get("refundInfo"):
            raise InvalidStateTransition(
                current=booking_sm.CANCELLED,
                target="refunded",
                message="Booking has already been refunded",
                code="booking_already_refunded",
            )

        now = now_utc()
        refund_id = generate_token_id("rfnd")
        claimed = await self.requests.compare_and_set(
            request_id,
            {"status": APPROVED, "reconciliation": {"$exists": False}},
            {
                "$set": {
                    "reconciliation": {
                        "state": RECON_CLAIMED,
                        "refundId": refund_id,
                        "refundAmount": amount,
                        "refundReason": reason,
                        "claimedAt": now,
                        "claimedBy": actor.id,
                    },
                    "updatedAt": now,
                }
            },
        )
        if claimed is None:
            current = await self._load_request(request_id)
            raise InvalidStateTransition(
                current=current.get("status"),
                target=PROCESSED,
                message="Refund request changed while processing",
                code="refund_already_processing",
            )

        refund_info = {
            "refundId": refund_id,
            "refundAmount": amount,
            "refundReason": reason,
            "refundStatus": "processed",
            "refundedAt": now,
            "refundedBy": actor.id,
            "refundRequestId": str(request["_id"]),
            "paymentId": _payment_id(booking),
        }
        booking_after = await self._write_booking_refund(request_id, booking["_id"], refund_info)
        request_after = await self._confirm(request_id, refund_id, actor)

        logger.info("Refund %s processed for booking %s amount=%.2f", refund_id, booking["_id"], amount)
        await record_audit(
            self.db,
            actor=actor,
            action="REFUND_PROCESSED",
            target_type="refund_request",
            target_id=str(request_id),
            before={"status": APPROVED},
            after={"status": PROCESSED},
            meta={"booking_id": str(booking["_id"]), "refund_id": refund_id, "amount": amount},
        )
        return booking_after, request_after

    async def reconcile_refund(self, request_id: str, actor: Actor) -> BookingAndRequest:
        """Finish a refund left claimed or processed-but-unconfirmed."""

        _require_super_admin(actor)
        request = await self._load_request(request_id)
        recon = request.get("reconciliation") or {}
        booking = await self._load_booking(request.get("bookingId"))

        if request.get("status") == PROCESSED:
            return booking, request
        if request.get("status") != APPROVED or not recon.get("refundId"):
            raise InvalidStateTransition(
                current=request.get("status"),
                target=PROCESSED,
                message="Nothing to reconcile for this refund request",
                code="nothing_to_reconcile",
            )

        refund_id = recon["refundId"]
        info = booking.get("refundInfo") or {}
        if info.get("refundId") == refund_id:
            booking_after = booking
        elif info:
            await self._release_claim(request_id, refund_id)
            raise InvalidStateTransition(
                current=booking_sm.CANCELLED,
                target="refunded",
                message="Booking carries a different refund",
                code="booking_refund_conflict",
            )
        else:
            refund_info = {
                "refundId": refund_id,
                "refundAmount": recon.get("refundAmount"),
                "refundReason": recon.get("refundReason"),
                "refundStatus": "processed",
                "refundedAt": now_utc(),
                "refundedBy": recon.get("claimedBy") or actor.id,
                "refundRequestId": str(request["_id"]),
                "paymentId": _payment_id(booking),
            }
            booking_after = await self._write_booking_refund(request_id, booking["_id"], refund_info)

        request_after = await self._confirm(request_id, refund_id, actor)
        logger.info("Refund %s reconciled for request %s", refund_id, request_id)
        await record_audit(
            self.db,
            actor=actor,
            action="REFUND_RECONCILED",
            target_type="refund_request",
            target_id=str(request_id),
            before={"reconciliation": recon.get("state")},
            after={"reconciliation": RECON_CONFIRMED},
            meta={"refund_id": refund_id},
        )
        return booking_after, request_after

    async def list_unconfirmed_refunds(self, actor: Actor) -> List[Dict[str, Any]]:
        _require_super_admin(actor)
        return await self.requests.list_requests(
            {"status": APPROVED, "reconciliation.state": {"$in": [RECON_CLAIMED, RECON_UNCONFIRMED]}},
            order="asc",
        )
