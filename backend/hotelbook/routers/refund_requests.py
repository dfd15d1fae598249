from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from hotelbook.auth import Actor, get_current_actor
from hotelbook.db import get_db
from hotelbook.routers.bookings import booking_out
from hotelbook.schemas_refunds import RefundProcessIn, RefundResolveIn
from hotelbook.services.refund_requests import RefundWorkflowService
from hotelbook.utils import serialize_doc

router = APIRouter(prefix="/api/refund-requests", tags=["refund-requests"])


@router.get("")
async def list_refund_requests(
    bookingId: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    docs = await RefundWorkflowService(db).list_refund_requests(
        actor,
        booking_id=bookingId,
        status=status,
        order=order,
        limit=limit,
    )
    return {"items": serialize_doc(docs), "count": len(docs)}


@router.get("/counts")
async def refund_request_counts(actor: Actor = Depends(get_current_actor), db=Depends(get_db)) -> Dict[str, int]:
    return await RefundWorkflowService(db).refund_request_counts(actor)


@router.get("/unconfirmed")
async def list_unconfirmed_refunds(actor: Actor = Depends(get_current_actor), db=Depends(get_db)) -> Dict[str, Any]:
    docs = await RefundWorkflowService(db).list_unconfirmed_refunds(actor)
    return {"items": serialize_doc(docs), "count": len(docs)}


@router.get("/{request_id}")
async def get_refund_request(request_id: str, actor: Actor = Depends(get_current_actor), db=Depends(get_db)) -> Dict[str, Any]:
    doc = await RefundWorkflowService(db).get_refund_request(request_id, actor)
    return serialize_doc(doc)


@router.post("/{request_id}/resolve")
async def resolve_refund_request(
    request_id: str,
    payload: RefundResolveIn,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    doc = await RefundWorkflowService(db).resolve_refund_request(
        request_id,
        payload.decision,
        payload.adminNotes,
        actor,
    )
    return serialize_doc(doc)


@router.post("/{request_id}/process")
async def process_refund(
    request_id: str,
    payload: RefundProcessIn,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
) -> Dict[str, Any]:
    booking, request = await RefundWorkflowService(db).process_refund(
        request_id,
        payload.refundAmount,
        payload.refundReason,
        actor,
    )
    return {"booking": booking_out(booking), "refund_request": serialize_doc(request)}


@router.post("/{request_id}/reconcile")
async def reconcile_refund(request_id: str, actor: Actor = Depends(get_current_actor), db=Depends(get_db)) -> Dict[str, Any]:
    booking, request = await RefundWorkflowService(db).reconcile_refund(request_id, actor)
    return {"booking": booking_out(booking), "refund_request": serialize_doc(request)}
