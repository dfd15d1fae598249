from __future__ import annotations

import logging
import uuid

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from hotelbook.errors import error_response

logger = logging.getLogger(__name__)

HEADER = "X-Correlation-Id"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        incoming = request.headers.get(HEADER)
        if incoming and incoming.strip():
            cid = incoming.strip()
        else:
            cid = str(uuid.uuid4())

        # Exception handlers and loggers read it from request.state
        request.state.correlation_id = cid

        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error escaped handlers cid=%s", cid)
            response = JSONResponse(
                status_code=500,
                content=error_response("internal_error", "Unexpected server error", {"correlation_id": cid}),
            )

        response.headers[HEADER] = cid
        return response
