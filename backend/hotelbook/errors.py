from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retryable: Optional[bool] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
        }
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return {"error": payload}


class NotFound(AppError):
    """Referenced booking or refund request does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        *,
        code: str = "not_found",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(status_code=404, code=code, message=message, details=details, retryable=False)


class Forbidden(AppError):
    """Actor fails the ownership or role check."""

    def __init__(
        self,
        message: str = "Not allowed",
        *,
        code: str = "forbidden",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(status_code=403, code=code, message=message, details=details, retryable=False)


class InvalidStateTransition(AppError):
    def __init__(
        self,
        current: Optional[str],
        target: str,
        message: Optional[str] = None,
        *,
        code: str = "invalid_state_transition",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged: Dict[str, Any] = {"current": current, "target": target}
        merged.update(details or {})
        super().__init__(
            status_code=409,
            code=code,
            message=message or f"Invalid state transition: {current} -> {target}",
            details=merged,
            retryable=False,
        )
        self.current = current
        self.target = target


class ValidationError(AppError):
    """Missing/invalid input or an unmet precondition."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "validation_error",
        status_code: int = 422,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(status_code=status_code, code=code, message=message, details=details, retryable=False)


class StoreUnavailable(AppError):
    """Transient document store failure. The only retryable category."""

    def __init__(
        self,
        message: str = "Document store unavailable",
        *,
        code: str = "store_unavailable",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(status_code=503, code=code, message=message, details=details, retryable=True)


class RefundReconciliationPending(StoreUnavailable):
    """Booking refundInfo is written but the refund request could not be advanced.

    The request is left in the `processed-but-unconfirmed` reconciliation
    state; `RefundWorkflowService.reconcile_refund` finishes it.
    """

    def __init__(self, request_id: str, refund_id: str) -> None:
        super().__init__(
            "Refund recorded on booking but request not yet confirmed",
            code="refund_reconciliation_pending",
            details={"request_id": request_id, "refund_id": refund_id},
        )


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }
