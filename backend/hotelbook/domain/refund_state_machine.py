from __future__ import annotations

from hotelbook.errors import InvalidStateTransition


PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
PROCESSED = "processed"

REFUND_REQUEST_STATUSES = (PENDING, APPROVED, REJECTED, PROCESSED)
OPEN_STATUSES = (PENDING, APPROVED)
DECISIONS = (APPROVED, REJECTED)

REFUND_METHODS = ("original_payment_method", "bank_transfer", "upi", "wallet")

# Reconciliation of the two-document "process refund" write.
RECON_CLAIMED = "claimed"
RECON_UNCONFIRMED = "processed-but-unconfirmed"
RECON_CONFIRMED = "confirmed"

_ALLOWED_TRANSITIONS = {
    PENDING: {APPROVED, REJECTED},
    APPROVED: {PROCESSED},
    REJECTED: set(),
    PROCESSED: set(),
}


def validate_transition(current: str, target: str) -> None:
    """Raise InvalidStateTransition unless current -> target is an edge."""

    allowed = _ALLOWED_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidStateTransition(current=current, target=target, code="invalid_refund_state")
