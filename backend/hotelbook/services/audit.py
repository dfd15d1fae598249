from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from hotelbook.auth import Actor
from hotelbook.config import AUDIT_LOGS_COLLECTION, ENABLE_AUDIT_LOG
from hotelbook.errors import StoreUnavailable
from hotelbook.repositories.base_repository import get_collection, store_call
from hotelbook.utils import now_utc

logger = logging.getLogger(__name__)

MAX_TEXT = 500
MAX_ITEMS = 50

# Never copied into audit entries.
_REDACTED_KEYS = {"cardNumber", "cvv", "number"}


def _compact(v: Any) -> Any:
    """Bounded, BSON-friendly copy of an audit value."""
    if v is None or isinstance(v, (bool, int, float, datetime)):
        return v
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, str):
        return v if len(v) <= MAX_TEXT else v[:MAX_TEXT] + "…"
    if isinstance(v, (list, tuple)):
        return [_compact(x) for x in list(v)[:MAX_ITEMS]]
    if isinstance(v, dict):
        return {
            str(k): _compact(val)
            for k, val in list(v.items())[:MAX_ITEMS]
            if k not in _REDACTED_KEYS
        }
    return _compact(str(v))


def shallow_diff(before: Optional[dict[str, Any]], after: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Top-level fields that changed, as {field: {before, after}}."""
    b = before or {}
    a = after or {}
    return {
        k: {"before": _compact(b.get(k)), "after": _compact(a.get(k))}
        for k in sorted(set(b) | set(a))
        if k != "_id" and b.get(k) != a.get(k)
    }


async def write_audit_log(
    db,
    *,
    actor: Optional[Actor],
    action: str,
    target_type: str,
    target_id: str,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    meta: Optional[dict[str, Any]] = None,
) -> None:
    """Persist one audit entry. A null actor is an anonymous guest (checkout)."""

    doc = {
        "_id": str(uuid.uuid4()),
        "actor": actor.to_audit() if actor else {"actor_type": "guest", "actor_id": None, "roles": []},
        "action": action,
        "target": {"type": target_type, "id": target_id},
        "diff": shallow_diff(before, after),
        "meta": _compact(meta or {}),
        "created_at": now_utc(),
    }
    await store_call(get_collection(db, AUDIT_LOGS_COLLECTION).insert_one(doc), op="audit_logs.insert")


async def record_audit(db, **kwargs: Any) -> None:
    """write_audit_log for engine call sites.

    The audited mutation has already committed, so a failed audit write is
    logged and dropped.
    """

    if not ENABLE_AUDIT_LOG:
        return
    try:
        await write_audit_log(db, **kwargs)
    except (StoreUnavailable, PyMongoError) as exc:
        logger.warning(
            "Audit write failed for %s %s/%s: %s",
            kwargs.get("action"),
            kwargs.get("target_type"),
            kwargs.get("target_id"),
            exc,
        )
