from __future__ import annotations

import math
import secrets
import string
from datetime import date, datetime, timezone
from typing import Any, Optional

from bson import ObjectId


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def serialize_doc(doc: Any) -> Any:
    """Recursively convert MongoDB docs into JSON-serializable structures."""
    if doc is None:
        return None

    if isinstance(doc, ObjectId):
        return str(doc)

    if isinstance(doc, datetime):
        return doc.isoformat()

    if isinstance(doc, list):
        return [serialize_doc(x) for x in doc]

    if isinstance(doc, dict):
        out: dict[str, Any] = {}
        for k, v in doc.items():
            if k == "_id":
                out["id"] = serialize_doc(v)
            else:
                out[k] = serialize_doc(v)
        return out

    return doc


def to_object_id(id_str: str) -> Optional[ObjectId]:
    """Parse a string id; None when it is not a valid ObjectId."""
    if isinstance(id_str, ObjectId):
        return id_str
    if not id_str or not ObjectId.is_valid(str(id_str)):
        return None
    return ObjectId(str(id_str))


def id_variants(x: Any) -> list[Any]:
    """Return the string and ObjectId forms of an id (documents written by
    other surfaces use either)."""
    vals: list[Any] = [str(x)]
    oid = to_object_id(str(x))
    if oid is not None:
        vals.append(oid)
    return vals


def generate_code(prefix: str, length: int = 6) -> str:
    alphabet = string.digits
    return f"{prefix}{''.join(secrets.choice(alphabet) for _ in range(length))}"


def generate_token_id(prefix: str, length: int = 14) -> str:
    alphabet = string.ascii_letters + string.digits
    return f"{prefix}_{''.join(secrets.choice(alphabet) for _ in range(length))}"


def parse_iso_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def nights_between(check_in: Any, check_out: Any) -> int:
    """ceil((checkOut - checkIn) / 1 day); 0 when either date is unusable."""
    s = parse_iso_date(check_in)
    e = parse_iso_date(check_out)
    if s is None or e is None:
        return 0
    seconds = (e - s).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def safe_float(v: Any, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default
