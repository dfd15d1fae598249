from __future__ import annotations

import pytest

from hotelbook.auth import Actor
from hotelbook.services.audit import record_audit, shallow_diff


def test_shallow_diff_only_reports_changes() -> None:
    diff = shallow_diff(
        {"_id": "x", "status": "pending", "totalAmount": 230.0},
        {"_id": "y", "status": "confirmed", "totalAmount": 230.0},
    )
    assert diff == {"status": {"before": "pending", "after": "confirmed"}}


@pytest.mark.anyio
async def test_record_audit_redacts_card_fields(test_db) -> None:
    await record_audit(
        test_db,
        actor=None,
        action="BOOKING_CREATED",
        target_type="booking",
        target_id="b1",
        meta={"payment": {"cardNumber": "4111111111111111", "cvv": "123", "last4": "1111"}},
    )
    doc = await test_db.audit_logs.find_one({"action": "BOOKING_CREATED"})
    assert doc["actor"]["actor_type"] == "guest"
    assert doc["meta"]["payment"] == {"last4": "1111"}


@pytest.mark.anyio
async def test_record_audit_swallows_store_failure(test_db, monkeypatch) -> None:
    from hotelbook.errors import StoreUnavailable
    from hotelbook.services import audit

    async def _down(*args, **kwargs):
        raise StoreUnavailable()

    monkeypatch.setattr(audit, "write_audit_log", _down)
    await record_audit(
        test_db,
        actor=Actor(id="root_1", role="super-admin"),
        action="REFUND_PROCESSED",
        target_type="refund_request",
        target_id="r1",
    )
    assert await test_db.audit_logs.count_documents({}) == 0
