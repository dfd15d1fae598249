from __future__ import annotations

from typing import Any, Dict

import pytest


def _checkout_body(**overrides: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "hotelId": "hotel_sunrise",
        "roomId": "room_deluxe",
        "checkIn": "2026-03-01",
        "checkOut": "2026-03-03",
        "guests": 2,
        "totalPrice": 200.0,
        "taxesAndFees": 30.0,
        "totalAmount": 230.0,
        "guestInfo": [{"firstName": "Asha", "lastName": "Rao", "email": "asha@example.com"}],
        "hotelDetails": {"name": "Sunrise Residency"},
        "roomDetails": {"type": "Deluxe", "price": 100.0},
        "payment": {
            "cardNumber": "4242424242424242",
            "expiryDate": "12/39",
            "cvv": "321",
            "cardholderName": "Asha Rao",
            "billingAddress": "12 MG Road, Bengaluru",
        },
    }
    body.update(overrides)
    return body


@pytest.mark.anyio
async def test_health(async_client) -> None:
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


@pytest.mark.anyio
async def test_checkout_then_refund_over_http(async_client, headers_for, hotel, guest, hotel_admin, super_admin) -> None:
    resp = await async_client.post("/api/checkout", json=_checkout_body(), headers=headers_for(guest))
    assert resp.status_code == 201, resp.text
    booking = resp.json()
    booking_id = booking["id"]
    assert booking["status"] == "confirmed"
    assert booking["statusLabel"] == "Confirmed"
    assert booking["userId"] == guest.id
    assert booking["hotelAdmin"] == hotel_admin.id
    assert booking["nights"] == 2
    assert booking["paymentInfo"]["lastFourDigits"] == "4242"
    assert "4242424242424242" not in resp.text
    assert resp.headers.get("X-Correlation-Id")

    resp = await async_client.post(
        f"/api/bookings/{booking_id}/room-number",
        json={"roomNumber": "101"},
        headers=headers_for(hotel_admin),
    )
    assert resp.status_code == 200
    assert resp.json()["roomDetails"]["roomNumber"] == "101"

    resp = await async_client.post(f"/api/bookings/{booking_id}/cancel", headers=headers_for(guest))
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = await async_client.post(
        f"/api/bookings/{booking_id}/refund-requests",
        json={"reason": "Plans changed", "contactPhone": "+91 98450 00000", "preferredRefundMethod": "upi"},
        headers=headers_for(guest),
    )
    assert resp.status_code == 201, resp.text
    request_id = resp.json()["id"]
    assert resp.json()["status"] == "pending"

    resp = await async_client.post(
        f"/api/refund-requests/{request_id}/resolve",
        json={"decision": "approved", "adminNotes": "ok"},
        headers=headers_for(hotel_admin),
    )
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "refund_forbidden"

    resp = await async_client.post(
        f"/api/refund-requests/{request_id}/resolve",
        json={"decision": "approved", "adminNotes": "ok"},
        headers=headers_for(super_admin),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "approved"

    resp = await async_client.post(
        f"/api/refund-requests/{request_id}/process",
        json={"refundAmount": 230.0, "refundReason": "Customer cancellation"},
        headers=headers_for(super_admin),
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["refund_request"]["status"] == "processed"
    assert body["booking"]["refundInfo"]["refundAmount"] == 230.0

    resp = await async_client.get("/api/refund-requests/counts", headers=headers_for(super_admin))
    assert resp.status_code == 200
    assert resp.json()["processed"] == 1

    resp = await async_client.get("/api/refund-requests", headers=headers_for(guest))
    assert resp.status_code == 200
    assert resp.json()["count"] == 1

    resp = await async_client.get("/api/bookings/stats", headers=headers_for(hotel_admin))
    assert resp.status_code == 200
    assert resp.json()["counts"]["cancelled"] == 1
    assert resp.json()["refunded"] == 230.0


@pytest.mark.anyio
async def test_status_endpoint_errors(async_client, headers_for, make_booking, hotel_admin, other_hotel_admin) -> None:
    booking_id = await make_booking("pending")

    resp = await async_client.post(
        f"/api/bookings/{booking_id}/status",
        json={"expectedStatus": "pending", "status": "confirmed"},
        headers={**headers_for(other_hotel_admin), "X-Correlation-Id": "cid-123"},
    )
    assert resp.status_code == 403
    err = resp.json()["error"]
    assert err["code"] == "booking_forbidden"
    assert err["details"]["correlation_id"] == "cid-123"
    assert err["retryable"] is False
    assert resp.headers["X-Correlation-Id"] == "cid-123"

    resp = await async_client.post(
        f"/api/bookings/{booking_id}/status",
        json={"expectedStatus": "pending", "status": "confirmed"},
        headers=headers_for(hotel_admin),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"

    resp = await async_client.post(
        f"/api/bookings/{booking_id}/status",
        json={"expectedStatus": "pending", "status": "confirmed"},
        headers=headers_for(hotel_admin),
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "stale_booking_status"
    assert resp.json()["error"]["details"]["current"] == "confirmed"

    resp = await async_client.post(
        "/api/bookings/000000000000000000000000/status",
        json={"expectedStatus": "pending", "status": "confirmed"},
        headers=headers_for(hotel_admin),
    )
    assert resp.status_code == 404


@pytest.mark.anyio
async def test_auth_and_validation_errors(async_client, headers_for, make_booking, hotel, guest) -> None:
    booking_id = await make_booking("confirmed")

    resp = await async_client.get(f"/api/bookings/{booking_id}")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"

    resp = await async_client.get(f"/api/bookings/{booking_id}", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401

    resp = await async_client.get(f"/api/bookings/{booking_id}", headers=headers_for(guest))
    assert resp.status_code == 200
    assert resp.json()["id"] == booking_id

    body = _checkout_body(guestInfo=[])
    resp = await async_client.post("/api/checkout", json=body)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"

    expired = _checkout_body()
    expired["payment"]["expiryDate"] = "01/20"
    resp = await async_client.post("/api/checkout", json=expired)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "card_expired"

    resp = await async_client.get("/api/bookings?order=sideways", headers=headers_for(guest))
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_refund_request_description_round_trips_over_http(async_client, headers_for, make_booking, guest) -> None:
    booking_id = await make_booking("cancelled")

    resp = await async_client.post(
        f"/api/bookings/{booking_id}/refund-requests",
        json={"reason": "Plans changed", "contactPhone": "+91 98450 00000", "description": "flight cancelled"},
        headers=headers_for(guest),
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["description"] == "flight cancelled"

    resp = await async_client.get(f"/api/refund-requests/{resp.json()['id']}", headers=headers_for(guest))
    assert resp.status_code == 200
    assert resp.json()["description"] == "flight cancelled"
