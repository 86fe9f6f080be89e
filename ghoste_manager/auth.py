"""
Authentication — Supabase access tokens.

- Frontend: Supabase session JWT. Include: Authorization: Bearer <access_token>
- The owner id for every manager call is the token `sub`; it is never taken
  from the request body or query string.

In development with no SUPABASE_JWT_SECRET set, the caller may identify with
an `X-Owner-Id` header instead, for local dev.
"""

import logging
from typing import Optional
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from ghoste_manager.config import Settings, get_settings
from ghoste_manager.errors import ManagerError, UnauthorizedError
from ghoste_manager.utils import parse_uuid

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

_bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str, settings: Settings) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[ALGORITHM],
            audience=settings.supabase_jwt_audience or None,
        )
    except JWTError:
        return None


async def get_owner_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    x_owner_id: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """Resolve the calling owner's user id."""
    # Dev convenience: no secret configured means no verification possible
    if not settings.supabase_jwt_secret:
        if settings.is_production:
            raise ManagerError("Server misconfiguration: SUPABASE_JWT_SECRET must be set in production.")
        if x_owner_id and parse_uuid(x_owner_id, "X-Owner-Id"):
            return x_owner_id
        raise UnauthorizedError("Missing X-Owner-Id header (development mode, no JWT secret configured).")

    if not credentials:
        raise UnauthorizedError("Missing authorization. Include header: Authorization: Bearer <token>")

    payload = decode_access_token(credentials.credentials, settings)
    if not payload or not payload.get("sub"):
        raise UnauthorizedError("Invalid or expired token. Please log in again.")
    if parse_uuid(payload["sub"], "sub") is None:
        logger.warning("Rejected token with a non-UUID subject")
        raise UnauthorizedError("Invalid or expired token. Please log in again.")
    return str(payload["sub"])
