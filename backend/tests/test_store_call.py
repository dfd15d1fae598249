from __future__ import annotations

import asyncio

import pytest
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from hotelbook.errors import StoreUnavailable
from hotelbook.repositories.base_repository import sort_direction, store_call


@pytest.mark.anyio
async def test_store_call_timeout_becomes_store_unavailable() -> None:
    async def _slow() -> None:
        await asyncio.sleep(5)

    with pytest.raises(StoreUnavailable) as exc:
        await store_call(_slow(), op="bookings.get", timeout=0.01)

    assert exc.value.status_code == 503
    assert exc.value.retryable is True
    assert exc.value.details == {"op": "bookings.get"}


@pytest.mark.anyio
async def test_store_call_connection_failure_becomes_store_unavailable() -> None:
    async def _down() -> None:
        raise ConnectionFailure("connection refused")

    with pytest.raises(StoreUnavailable):
        await store_call(_down(), op="bookings.cas_status")


@pytest.mark.anyio
async def test_store_call_passes_through_duplicate_key() -> None:
    async def _dup() -> None:
        raise DuplicateKeyError("E11000 duplicate key")

    with pytest.raises(DuplicateKeyError):
        await store_call(_dup(), op="bookings.insert")


@pytest.mark.anyio
async def test_store_call_returns_result() -> None:
    async def _ok() -> int:
        return 7

    assert await store_call(_ok(), op="noop") == 7


def test_sort_direction() -> None:
    assert sort_direction("asc") == 1
    assert sort_direction("ASC") == 1
    assert sort_direction("desc") == -1
    assert sort_direction(None) == -1
