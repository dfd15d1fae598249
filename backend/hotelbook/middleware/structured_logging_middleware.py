"""Structured JSON access log.

Every request logs one line:
{
  request_id,
  correlation_id,
  user_id,
  role,
  path,
  method,
  status_code,
  latency_ms
}

request_id is echoed back in the X-Request-Id header.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Tuple

import jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("structured_access")

SLOW_REQUEST_MS = 1000


def _extract_principal(request: Request) -> Tuple[str, str]:
    """(sub, role) from the bearer token without verifying it; logging only."""
    auth = request.headers.get("authorization", "")
    if not auth.lower().startswith("bearer "):
        return "", ""
    token = auth.split(" ", 1)[1]
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return "", ""
    return str(claims.get("sub") or ""), str(claims.get("role") or "")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log structured JSON for every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:12]
        start = time.monotonic()
        request.state.request_id = request_id

        user_id, role = _extract_principal(request)
        log_entry = {
            "request_id": request_id,
            "correlation_id": getattr(request.state, "correlation_id", None),
            "user_id": user_id,
            "role": role,
            "path": request.url.path,
            "method": request.method,
        }

        try:
            response = await call_next(request)
        except Exception:
            log_entry["status_code"] = 500
            log_entry["latency_ms"] = round((time.monotonic() - start) * 1000, 2)
            logger.error(json.dumps(log_entry))
            raise

        latency_ms = round((time.monotonic() - start) * 1000, 2)
        log_entry["status_code"] = response.status_code
        log_entry["latency_ms"] = latency_ms

        if response.status_code >= 500:
            logger.error(json.dumps(log_entry))
        elif response.status_code >= 400 or latency_ms > SLOW_REQUEST_MS:
            logger.warning(json.dumps(log_entry))
        else:
            logger.info(json.dumps(log_entry))

        response.headers["X-Request-Id"] = request_id
        return response
