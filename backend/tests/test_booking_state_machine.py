from __future__ import annotations

import pytest

from hotelbook.domain import booking_state_machine as sm
from hotelbook.domain import refund_state_machine as rsm
from hotelbook.errors import InvalidStateTransition


@pytest.mark.parametrize(
    "current,target",
    [
        ("pending", "confirmed"),
        ("confirmed", "completed"),
        ("pending", "cancelled"),
        ("confirmed", "cancelled"),
        ("completed", "cancelled"),
        ("cancelled", "confirmed"),
    ],
)
def test_allowed_booking_edges(current: str, target: str) -> None:
    assert sm.validate_transition(current, target) == (current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("pending", "completed"),
        ("completed", "confirmed"),
        ("completed", "pending"),
        ("confirmed", "pending"),
        ("cancelled", "completed"),
        ("confirmed", "confirmed"),
    ],
)
def test_disallowed_booking_edges(current: str, target: str) -> None:
    with pytest.raises(InvalidStateTransition) as exc:
        sm.validate_transition(current, target)
    assert exc.value.status_code == 409
    assert exc.value.details["current"] == current
    assert exc.value.details["target"] == target


def test_cancel_of_cancelled_is_accepted_as_noop() -> None:
    assert sm.validate_transition("cancelled", "cancelled") == ("cancelled", "cancelled")
    assert sm.is_idempotent_noop("cancelled", "cancelled")
    assert not sm.is_idempotent_noop("confirmed", "cancelled")


def test_status_matching_is_case_insensitive() -> None:
    assert sm.validate_transition("Confirmed", "CANCELLED") == ("confirmed", "cancelled")
    assert sm.normalize_status(" Pending ") == "pending"
    assert "Confirmed" in sm.stored_variants("confirmed")
    assert "CONFIRMED" in sm.stored_variants("confirmed")


def test_legacy_status_is_unknown_and_never_transitioned() -> None:
    assert sm.display_status("Checked-In") == sm.UNKNOWN
    assert sm.status_label(None) == "Unknown"
    assert sm.status_label("completed") == "Completed"
    with pytest.raises(InvalidStateTransition) as exc:
        sm.validate_transition("Checked-In", "cancelled")
    assert exc.value.code == "unknown_booking_status"


def test_parties_per_edge() -> None:
    assert sm.allowed_parties("pending", "confirmed") == frozenset({"hotel"})
    assert sm.allowed_parties("confirmed", "cancelled") == frozenset({"hotel", "guest"})
    assert sm.allowed_parties("completed", "confirmed") == frozenset()


def test_refund_request_edges() -> None:
    rsm.validate_transition("pending", "approved")
    rsm.validate_transition("pending", "rejected")
    rsm.validate_transition("approved", "processed")

    for current, target in [
        ("pending", "processed"),
        ("rejected", "processed"),
        ("rejected", "approved"),
        ("processed", "approved"),
        ("approved", "rejected"),
    ]:
        with pytest.raises(InvalidStateTransition) as exc:
            rsm.validate_transition(current, target)
        assert exc.value.code == "invalid_refund_state"
