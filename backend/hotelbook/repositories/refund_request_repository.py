from __future__ import annotations

from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from hotelbook.config import REFUND_REQUESTS_COLLECTION
from hotelbook.domain.refund_state_machine import OPEN_STATUSES
from hotelbook.repositories.base_repository import get_collection, sort_direction, store_call
from hotelbook.utils import to_object_id


class RefundRequestRepository:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db
        self._col = get_collection(db, REFUND_REQUESTS_COLLECTION)

    async def insert(self, doc: Dict[str, Any]) -> Any:
        res = await store_call(self._col.insert_one(doc), op="refund_requests.insert")
        return res.inserted_id

    async def get_by_id(self, request_id: Any) -> Optional[Dict[str, Any]]:
        oid = to_object_id(request_id)
        if oid is None:
            return None
        return await store_call(self._col.find_one({"_id": oid}), op="refund_requests.get")

    async def find_open_for_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        return await store_call(
            self._col.find_one({"bookingId": booking_id, "status": {"$in": list(OPEN_STATUSES)}}),
            op="refund_requests.find_open",
        )

    async def compare_and_set(
        self,
        request_id: Any,
        expected: Dict[str, Any],
        update: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Apply `update` only while the document still matches `expected`.

        Returns the updated document or None when nothing matched.
        """

        oid = to_object_id(request_id)
        if oid is None:
            return None
        flt: Dict[str, Any] = {"_id": oid}
        flt.update(expected)
        return await store_call(
            self._col.find_one_and_update(flt, update, return_document=ReturnDocument.AFTER),
            op="refund_requests.cas",
        )

    async def list_requests(
        self,
        flt: Dict[str, Any],
        *,
        order: str = "desc",
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self._col.find(flt).sort("requestedAt", sort_direction(order))
        if limit:
            cursor = cursor.limit(limit)
        return await store_call(cursor.to_list(length=limit), op="refund_requests.list")

    async def count(self, flt: Dict[str, Any]) -> int:
        return await store_call(self._col.count_documents(flt), op="refund_requests.count")
