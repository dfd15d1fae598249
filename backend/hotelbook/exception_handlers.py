from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hotelbook.errors import AppError, StoreUnavailable, error_response

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying a StoreUnavailable response.
RETRY_AFTER_SECONDS = 2


def _with_correlation(request: Request, details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    out = dict(details or {})
    cid = getattr(request.state, "correlation_id", None)
    if cid:
        out.setdefault("correlation_id", cid)
    return out


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:  # type: ignore[override]
        body = exc.to_dict()
        body["error"]["details"] = _with_correlation(request, body["error"]["details"])
        headers = None
        if isinstance(exc, StoreUnavailable):
            headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
            logger.warning("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        details = _with_correlation(request, {"errors": jsonable_encoder(exc.errors())})
        return JSONResponse(
            status_code=422,
            content=error_response("validation_error", "Request validation failed", details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore[override]
        codes = {401: "unauthorized", 403: "forbidden", 404: "not_found"}
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(codes.get(exc.status_code, "http_error"), message, _with_correlation(request, {})),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("internal_error", "Unexpected server error", _with_correlation(request, {})),
        )
