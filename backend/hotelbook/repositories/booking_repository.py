from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from hotelbook.config import BOOKINGS_COLLECTION, HOTELS_COLLECTION
from hotelbook.domain.booking_state_machine import CANCELLED, stored_variants
from hotelbook.repositories.base_repository import get_collection, sort_direction, store_call
from hotelbook.utils import id_variants, to_object_id


class BookingRepository:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        self._col = get_collection(db, BOOKINGS_COLLECTION)
        self._hotels = get_collection(db, HOTELS_COLLECTION)

    async def insert(self, doc: Dict[str, Any]) -> Any:
        """Insert a booking document; DuplicateKeyError propagates to the caller."""

        res = await store_call(self._col.insert_one(doc), op="bookings.insert")
        return res.inserted_id

    async def get_by_id(self, booking_id: Any) -> Optional[Dict[str, Any]]:
        oid = to_object_id(booking_id)
        if oid is None:
            return None
        return await store_call(self._col.find_one({"_id": oid}), op="bookings.get")

    async def get_hotel(self, hotel_id: Any) -> Optional[Dict[str, Any]]:
        if not hotel_id:
            return None
        return await store_call(
            self._hotels.find_one({"_id": {"$in": id_variants(hotel_id)}}),
            op="hotels.get",
        )

    async def compare_and_set_status(
        self,
        booking_id: Any,
        *,
        expected_status: str,
        new_status: str,
        owner_clause: Dict[str, Any],
        now: datetime,
    ) -> Optional[Dict[str, Any]]:
        """Atomically move status expected -> new for an owned booking.

        Returns the updated document, or None when the booking is missing,
        not owned by the actor, or no longer in `expected_status`.
        """

        oid = to_object_id(booking_id)
        if oid is None:
            return None

        flt: Dict[str, Any] = {
            "_id": oid,
            "status": {"$in": stored_variants(expected_status)},
        }
        flt.update(owner_clause)

        return await store_call(
            self._col.find_one_and_update(
                flt,
                {"$set": {"status": new_status, "statusUpdatedAt": now, "updatedAt": now}},
                return_document=ReturnDocument.AFTER,
            ),
            op="bookings.cas_status",
        )

    async def set_room_number(
        self,
        booking_id: Any,
        *,
        hotel_admin: str,
        room_number: str,
        now: datetime,
    ) -> Optional[Dict[str, Any]]:
        oid = to_object_id(booking_id)
        if oid is None:
            return None
        return await store_call(
            self._col.find_one_and_update(
                {"_id": oid, "hotelAdmin": hotel_admin},
                {"$set": {"roomDetails.roomNumber": room_number, "updatedAt": now}},
                return_document=ReturnDocument.AFTER,
            ),
            op="bookings.set_room_number",
        )

    async def write_refund_info(self, booking_id: Any, refund_info: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Attach refundInfo to a cancelled booking that has none yet."""

        oid = to_object_id(booking_id)
        if oid is None:
            return None
        return await store_call(
            self._col.find_one_and_update(
                {
                    "_id": oid,
                    "status": {"$in": stored_variants(CANCELLED)},
                    "$or": [{"refundInfo": {"$exists": False}}, {"refundInfo": None}],
                },
                {"$set": {"refundInfo": refund_info, "updatedAt": refund_info.get("refundedAt")}},
                return_document=ReturnDocument.AFTER,
            ),
            op="bookings.write_refund_info",
        )

    async def list_bookings(
        self,
        flt: Dict[str, Any],
        *,
        order: str = "desc",
        limit: Optional[int] = None,
        projection: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self._col.find(flt, projection).sort("createdAt", sort_direction(order))
        if limit:
            cursor = cursor.limit(limit)
        return await store_call(cursor.to_list(length=limit), op="bookings.list")
