"""
Authentication and service dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT
authentication and for reaching the Redis-backed stores.
"""

from typing import Any, Dict

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from bustrack.app.core.jwt import decode_access_token
from bustrack.app.core.redis_client import get_redis
from bustrack.app.core.token_revocation import is_token_revoked
from bustrack.app.db.session import get_db
from bustrack.app.services.driver_registry import DriverRegistry
from bustrack.app.services.identity_provider import Identity
from bustrack.app.services.location_store import LocationBroadcastStore
from bustrack.app.services.role_resolution import RoleResolver
from bustrack.app.services.tracking import TrackingRegistry

# HTTP Bearer security scheme
security = HTTPBearer()


async def authenticate_token(token: str, db: AsyncSession) -> Dict[str, Any]:
    """
    Validate a bearer token and resolve the caller's role.

    Security checks:
    1. Validates JWT token signature and expiry
    2. Checks if token has been explicitly revoked (logout)
    3. Resolves the role through the canonical role resolver

    Returns:
        Decoded token payload with `user_type` and `role_source` set from
        the resolved role and the raw `token` attached

    Raises:
        HTTPException: 401 if authentication fails for any reason
    """
    # 1. Decode and validate JWT
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 2. Check if this specific token has been revoked
    if await is_token_revoked(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # 3. Resolve role (stored role first, email rules as fallback)
    identity = Identity(uid=user_id, email=payload.get("email"), display_name=payload.get("name"))
    resolved = await RoleResolver(db).resolve(identity)

    current_user = dict(payload)
    current_user["user_type"] = resolved.user_type.value
    current_user["role_source"] = resolved.source.value
    current_user["token"] = token
    return current_user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Args:
        credentials: HTTP Bearer token from request header
        db: Database session for role resolution

    Returns:
        Decoded token payload containing user information
    """
    return await authenticate_token(credentials.credentials, db)


async def get_location_store(redis=Depends(get_redis)) -> LocationBroadcastStore:
    return LocationBroadcastStore(redis)


async def get_driver_registry(redis=Depends(get_redis)) -> DriverRegistry:
    return DriverRegistry(redis)


def get_tracking_registry(request: Request) -> TrackingRegistry:
    """Tracking sessions are owned by the application instance."""
    return request.app.state.tracking_registry
