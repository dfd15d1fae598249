from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

bearer_scheme = HTTPBearer(auto_error=False)

ROLE_USER = "user"
ROLE_HOTEL = "hotel"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super-admin"

ALL_ROLES = frozenset({ROLE_USER, ROLE_HOTEL, ROLE_ADMIN, ROLE_SUPER_ADMIN})
HOTEL_ROLES = frozenset({ROLE_HOTEL, ROLE_ADMIN})


@dataclass(frozen=True)
class Actor:
    """Authenticated principal performing an operation.

    Always built from a verified token, never from request bodies.
    """

    id: str
    role: str

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    @property
    def is_hotel_admin(self) -> bool:
        return self.role in HOTEL_ROLES

    def to_audit(self) -> dict[str, Any]:
        return {"actor_type": "user", "actor_id": self.id, "roles": [self.role]}


def _jwt_secret() -> str:
    # Keep in backend env in future; default only for dev/testing.
    return os.environ.get("JWT_SECRET", "dev_jwt_secret_change_me")


def create_access_token(*, subject: str, role: str, minutes: int = 60 * 12) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm="HS256")


def decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def actor_from_claims(payload: dict[str, Any]) -> Actor:
    subject = payload.get("sub")
    role = str(payload.get("role") or "").strip().lower()
    if not subject:
        raise HTTPException(status_code=401, detail="Token has no subject")
    if role not in ALL_ROLES:
        raise HTTPException(status_code=401, detail="Token has no usable role")
    return Actor(id=str(subject), role=role)


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Login required")
    return actor_from_claims(decode_token(credentials.credentials))


async def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Actor]:
    """Actor for endpoints that also serve anonymous guests (checkout)."""
    if credentials is None:
        return None
    return actor_from_claims(decode_token(credentials.credentials))
