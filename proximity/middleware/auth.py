"""
Authentication dependencies for FastAPI.

Tokens are issued by the external auth layer; this module only verifies
them and turns their claims into an Identity.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from proximity.container import get_app_settings
from proximity.middleware.request_id import set_user_id
from proximity.models.proximity_models import Identity
from proximity.providers.settings import ProximitySettings

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


class AuthError(Exception):
    """Authentication error."""

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def get_request_ip(request: Request) -> Optional[str]:
    """
    Best-effort client IP.

    Prefers the first ``X-Forwarded-For`` hop, then ``X-Real-IP``, then the
    socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return None


def _claim(payload: Dict[str, Any], name: str) -> Optional[str]:
    value = payload.get(name)
    if value is None:
        metadata = payload.get("user_metadata")
        if isinstance(metadata, dict):
            value = metadata.get(name)
    return str(value) if value is not None else None


def decode_identity(token: str, settings: ProximitySettings, ip: Optional[str] = None) -> Identity:
    """
    Verify a bearer token and build the caller's Identity.

    Args:
        token: JWT string
        settings: Settings holding the verification secret and algorithm
        ip: Client IP to attach to the identity

    Returns:
        Identity with user id, email, tier and travel-mode claims

    Raises:
        AuthError: If the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token: missing user ID")

    return Identity(
        user_id=str(user_id),
        email=payload.get("email"),
        subscription_tier=_claim(payload, "subscription_tier"),
        default_travel_mode=_claim(payload, "default_travel_mode"),
        ip=ip,
    )


def _identity_from_credentials(
    request: Request,
    credentials: HTTPAuthorizationCredentials,
    settings: ProximitySettings,
) -> Identity:
    try:
        identity = decode_identity(credentials.credentials, settings, ip=get_request_ip(request))
    except AuthError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    set_user_id(identity.user_id)
    return identity


async def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: ProximitySettings = Depends(get_app_settings),
) -> Identity:
    """
    FastAPI dependency returning the authenticated caller.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _identity_from_credentials(request, credentials, settings)


async def get_optional_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: ProximitySettings = Depends(get_app_settings),
) -> Optional[Identity]:
    """
    FastAPI dependency for endpoints that also serve anonymous callers.

    Returns None without a token; a token that is present must be valid.
    """
    if not credentials:
        return None
    return _identity_from_credentials(request, credentials, settings)
