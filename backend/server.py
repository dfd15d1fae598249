from __future__ import annotations

import os
import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent

# Load .env only if exists (development fallback)
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI  # noqa: E402
from pymongo.errors import PyMongoError  # noqa: E402
from starlette.middleware.cors import CORSMiddleware  # noqa: E402

from hotelbook.config import APP_NAME, APP_VERSION, CORS_ORIGINS, ENSURE_INDEXES_ON_STARTUP  # noqa: E402
from hotelbook.db import close_mongo, connect_mongo, get_db  # noqa: E402
from hotelbook.exception_handlers import register_exception_handlers  # noqa: E402
from hotelbook.indexes.booking_indexes import ensure_booking_indexes  # noqa: E402
from hotelbook.middleware.correlation_id import CorrelationIdMiddleware  # noqa: E402
from hotelbook.middleware.structured_logging_middleware import StructuredLoggingMiddleware  # noqa: E402
from hotelbook.routers.bookings import router as bookings_router  # noqa: E402
from hotelbook.routers.checkout import router as checkout_router  # noqa: E402
from hotelbook.routers.refund_requests import router as refund_requests_router  # noqa: E402

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("hotelbook")

app = FastAPI(title=APP_NAME, version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
# Last added runs first: correlation id is set before the access log reads it.
app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Routers (/api prefix is on each router)
app.include_router(checkout_router)
app.include_router(bookings_router)
app.include_router(refund_requests_router)


@app.get("/api/health")
async def health() -> dict[str, Any]:
    """Main health check with database ping"""
    db = await get_db()
    ok = False
    try:
        await db.command("ping")
        ok = True
    except PyMongoError as exc:
        logger.warning("Health ping failed: %s", exc)
    return {"ok": ok, "service": "hotelbook"}


@app.get("/health")
async def deployment_health() -> dict[str, Any]:
    """Liveness only; does not touch the database."""
    return {"ok": True, "service": "hotelbook", "status": "healthy"}


@app.on_event("startup")
async def _startup() -> None:
    await connect_mongo()
    if ENSURE_INDEXES_ON_STARTUP:
        try:
            await ensure_booking_indexes(await get_db())
        except PyMongoError as exc:
            logger.error("Index setup failed: %s", exc)
    logger.info("Startup complete")


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_mongo()
    logger.info("Shutdown complete")
