from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from hotelbook.auth import Actor, get_current_actor
from hotelbook.db import get_db
from hotelbook.domain.booking_state_machine import status_label
from hotelbook.schemas_bookings import BookingStatusUpdateIn, RefundRequestIn, RoomNumberIn
from hotelbook.services.booking_lifecycle import BookingLifecycleService, nights_for, unit_price_for
from hotelbook.services.refund_requests import RefundWorkflowService
from hotelbook.utils import serialize_doc

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


def booking_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize_doc(doc)
    out["statusLabel"] = status_label(doc.get("status"))
    out["nights"] = nights_for(doc)
    out["unitPrice"] = unit_price_for(doc)
    return out


@router.get("")
async def list_bookings(
    hotelAdmin: Optional[str] = Query(default=None),
    userId: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    docs = await BookingLifecycleService(db).list_bookings(
        actor,
        hotel_admin=hotelAdmin,
        user_id=userId,
        status=status,
        order=order,
        limit=limit,
    )
    return {"items": [booking_out(d) for d in docs], "count": len(docs)}


@router.get("/stats")
async def booking_stats(actor: Actor = Depends(get_current_actor), db=Depends(get_db)) -> Dict[str, Any]:
    return await BookingLifecycleService(db).booking_stats(actor)


@router.get("/{booking_id}")
async def get_booking(booking_id: str, actor: Actor = Depends(get_current_actor), db=Depends(get_db)) -> Dict[str, Any]:
    doc = await BookingLifecycleService(db).get_booking(booking_id, actor)
    return booking_out(doc)


@router.post("/{booking_id}/status")
async def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdateIn,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    doc = await BookingLifecycleService(db).update_booking_status(
        booking_id,
        payload.expectedStatus,
        payload.status,
        actor,
    )
    return booking_out(doc)


@router.post("/{booking_id}/cancel")
async def cancel_booking(booking_id: str, actor: Actor = Depends(get_current_actor), db=Depends(get_db)) -> Dict[str, Any]:
    doc = await BookingLifecycleService(db).cancel_booking(booking_id, actor)
    return booking_out(doc)


@router.post("/{booking_id}/room-number")
async def assign_room_number(
    booking_id: str,
    payload: RoomNumberIn,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    doc = await BookingLifecycleService(db).assign_room_number(booking_id, payload.roomNumber, actor)
    return booking_out(doc)


@router.post("/{booking_id}/refund-requests", status_code=201)
async def create_refund_request(
    booking_id: str,
    payload: RefundRequestIn,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    doc = await RefundWorkflowService(db).create_refund_request(booking_id, payload.model_dump(), actor)
    return serialize_doc(doc)
