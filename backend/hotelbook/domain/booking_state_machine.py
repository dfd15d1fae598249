from __future__ import annotations

from typing import Any, Optional

from hotelbook.errors import InvalidStateTransition


PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
UNKNOWN = "unknown"

BOOKING_STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED)

# (from, to) -> parties allowed to drive the edge.
_ALLOWED_TRANSITIONS: dict[tuple[str, str], frozenset[str]] = {
    (PENDING, CONFIRMED): frozenset({"hotel"}),
    (CONFIRMED, COMPLETED): frozenset({"hotel"}),
    (PENDING, CANCELLED): frozenset({"hotel", "guest"}),
    (CONFIRMED, CANCELLED): frozenset({"hotel", "guest"}),
    (COMPLETED, CANCELLED): frozenset({"hotel", "guest"}),
    # Reactivation; leaves any processed refundInfo untouched.
    (CANCELLED, CONFIRMED): frozenset({"hotel"}),
}

BOOKING_STATUS_LABELS_EN = {
    PENDING: "Pending",
    CONFIRMED: "Confirmed",
    COMPLETED: "Completed",
    CANCELLED: "Cancelled",
    UNKNOWN: "Unknown",
}


def normalize_status(status: Any) -> Optional[str]:
    """Lower-cased known status, or None for missing/legacy values."""

    value = str(status or "").strip().lower()
    if value in BOOKING_STATUSES:
        return value
    return None


def display_status(status: Any) -> str:
    return normalize_status(status) or UNKNOWN


def status_label(status: Any) -> str:
    return BOOKING_STATUS_LABELS_EN[display_status(status)]


def stored_variants(status: str) -> list[str]:
    """Casings the admin surfaces have written for a status ("Confirmed" etc.)."""

    return [status, status.capitalize(), status.upper()]


def allowed_parties(current: str, target: str) -> frozenset[str]:
    return _ALLOWED_TRANSITIONS.get((current, target), frozenset())


def is_idempotent_noop(current: Optional[str], target: str) -> bool:
    return current == CANCELLED and target == CANCELLED


def validate_transition(current: Any, target: Any) -> tuple[str, str]:
    """Validate that a transition from current -> target is allowed.

    Returns the normalized (current, target) pair. Cancelling an already
    cancelled booking is accepted (idempotent). Unknown or legacy statuses
    are never transitioned from.
    """

    cur = normalize_status(current)
    tgt = normalize_status(target)
    if cur is None or tgt is None:
        raise InvalidStateTransition(
            current=str(current) if current is not None else None,
            target=str(target),
            code="unknown_booking_status",
        )
    if is_idempotent_noop(cur, tgt):
        return cur, tgt
    if not allowed_parties(cur, tgt):
        raise InvalidStateTransition(current=cur, target=tgt)
    return cur, tgt
