from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ExecutionTimeout, WTimeoutError

from hotelbook.config import STORE_TIMEOUT_SECONDS
from hotelbook.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRORS = (asyncio.TimeoutError, ConnectionFailure, ExecutionTimeout, WTimeoutError)


def get_collection(db: AsyncIOMotorDatabase, name: str) -> AsyncIOMotorCollection:
    """Return a Motor collection from the given database.

    This is the only place where repositories should obtain collections.
    """

    return db[name]


async def store_call(awaitable: Awaitable[T], *, op: str, timeout: Optional[float] = None) -> T:
    """Await a document-store call with a bounded timeout.

    Timeouts and connection-level pymongo errors become StoreUnavailable;
    everything else (DuplicateKeyError, programming errors) propagates as is.
    """

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout or STORE_TIMEOUT_SECONDS)
    except _TRANSIENT_ERRORS as exc:
        logger.warning("Store call %s failed: %s", op, exc.__class__.__name__)
        raise StoreUnavailable(details={"op": op}) from exc


def sort_direction(order: Any) -> int:
    """1 for "asc", -1 otherwise (newest first)."""

    return 1 if str(order or "").lower() == "asc" else -1
