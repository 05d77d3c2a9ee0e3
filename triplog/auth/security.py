import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from ..config import settings


http_bearer = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    """Caller identity resolved from the bearer token"""
    user_id: uuid.UUID
    tenant_id: int
    roles: List[str] = []


def _create_token(sub: str, ttl_seconds: int, extra: Optional[dict] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if extra:
        payload.update(extra)
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token


def create_access_token(user_id: str, tenant_id: int, roles: Optional[List[str]] = None) -> str:
    return _create_token(
        str(user_id),
        settings.jwt_ttl_seconds,
        extra={"tenant_id": tenant_id, "roles": roles or []},
    )


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_principal(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Principal:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(creds.credentials)
    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    try:
        tenant_id = int(payload["tenant_id"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid tenant")
    return Principal(user_id=user_uuid, tenant_id=tenant_id, roles=list(payload.get("roles") or []))


def require_roles(*allowed_roles: str):
    """
    Require at least one of the specified roles (OR logic).
    The admin role always passes.
    """
    def _dep(principal: Principal = Depends(get_current_principal)):
        roles = {r.lower() for r in principal.roles}
        if "admin" in roles:
            return principal
        if not roles.intersection(r.lower() for r in allowed_roles):
            raise HTTPException(status_code=403, detail="Forbidden")
        return principal

    return _dep
