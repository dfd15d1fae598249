
"""Application configuration.

Everything is read from the environment once at import time. `server.py`
loads a local `.env` (if present) before this module is imported.
"""

from __future__ import annotations

import os


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Application constants
APP_NAME = "Hotel Marketplace Booking API"
APP_VERSION = "1.0.0"
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

# Document store
MONGO_URL_DEFAULT = "mongodb://localhost:27017"
DB_NAME_DEFAULT = "hotel_marketplace"
BOOKINGS_COLLECTION = "bookings"
REFUND_REQUESTS_COLLECTION = "refundRequests"
HOTELS_COLLECTION = "hotels"
AUDIT_LOGS_COLLECTION = "audit_logs"

# Every store call is bounded; a timeout surfaces as StoreUnavailable.
STORE_TIMEOUT_SECONDS: float = _env_float("STORE_TIMEOUT_SECONDS", 10.0)
# Attempts for the retryable "advance refund request to processed" step.
STORE_RETRY_ATTEMPTS: int = max(1, _env_int("STORE_RETRY_ATTEMPTS", 3))
# Attempts to find a free booking reference before giving up.
REFERENCE_MAX_ATTEMPTS: int = max(1, _env_int("REFERENCE_MAX_ATTEMPTS", 5))

# Feature flags
ENABLE_AUDIT_LOG: bool = _env_flag("ENABLE_AUDIT_LOG", default=True)
ENSURE_INDEXES_ON_STARTUP: bool = _env_flag("ENSURE_INDEXES_ON_STARTUP", default=True)
