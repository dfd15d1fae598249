"""
Indexes for bookings and refund requests.
Ensures reference uniqueness, one open refund request per booking, and
covers the ownership-scoped list queries.
"""
from __future__ import annotations

import logging

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from hotelbook.config import BOOKINGS_COLLECTION, REFUND_REQUESTS_COLLECTION
from hotelbook.domain.refund_state_machine import OPEN_STATUSES

logger = logging.getLogger(__name__)


async def _safe_create(collection, *args, **kwargs) -> None:
    """create_index that keeps a legacy index with conflicting options."""
    try:
        await collection.create_index(*args, **kwargs)
    except OperationFailure as e:
        msg = str(e).lower()
        if (
            "indexoptionsconflict" in msg
            or "indexkeyspecsconflict" in msg
            or "already exists" in msg
        ):
            logger.warning(
                "[booking_indexes] Keeping legacy index for %s (name=%s): %s",
                collection.name,
                kwargs.get("name"),
                msg,
            )
            return
        raise


async def ensure_booking_indexes(db) -> None:
    bookings = db[BOOKINGS_COLLECTION]
    refund_requests = db[REFUND_REQUESTS_COLLECTION]

    # ========================================================================
    # 1) bookings
    # ========================================================================
    await _safe_create(
        bookings,
        [("reference", ASCENDING)],
        unique=True,
        name="uniq_booking_reference",
    )
    await _safe_create(
        bookings,
        [("hotelAdmin", ASCENDING), ("createdAt", DESCENDING)],
        name="bookings_by_hotel_admin",
    )
    await _safe_create(
        bookings,
        [("userId", ASCENDING), ("createdAt", DESCENDING)],
        name="bookings_by_user",
    )
    await _safe_create(
        bookings,
        [("status", ASCENDING), ("createdAt", DESCENDING)],
        name="bookings_by_status",
    )

    # ========================================================================
    # 2) refundRequests
    # ========================================================================
    await _safe_create(
        refund_requests,
        [("bookingId", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": {"$in": list(OPEN_STATUSES)}},
        name="uniq_open_refund_request_per_booking",
    )
    await _safe_create(
        refund_requests,
        [("status", ASCENDING), ("requestedAt", DESCENDING)],
        name="refund_requests_by_status",
    )
    await _safe_create(
        refund_requests,
        [("requestedBy", ASCENDING), ("requestedAt", DESCENDING)],
        name="refund_requests_by_requester",
    )
    await _safe_create(
        refund_requests,
        [("reconciliation.state", ASCENDING)],
        sparse=True,
        name="refund_requests_reconciliation",
    )

    logger.info("Booking and refund request indexes ensured")
