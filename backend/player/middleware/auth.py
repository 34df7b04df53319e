"""Authentication and authorization dependencies for Player.

Provides:
- JWT creation / validation (the token ``sub`` is the user's id)
- ``get_current_user()`` dependency, provisioning unknown users on first sight
- ``get_authorization_service()`` dependency bound to the caller's claims
- ``require_system_permission()`` dependency factory for system-only checks
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from player.config import settings
from player.database import get_db
from player.models import User
from player.services.authorization import AuthorizationService
from player.services.claims_cache import ClaimsCache, get_claims_cache
from player.services.claims_service import UserClaimsService

# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT containing *sub* (user id), optional *name*, and *exp*."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    to_encode.update({"exp": expire})

    # UUIDs are not JSON serialisable
    if "sub" in to_encode and not isinstance(to_encode["sub"], str):
        to_encode["sub"] = str(to_encode["sub"])

    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> tuple[uuid.UUID, str | None]:
    """Return ``(user_id, name)`` from a token.  Raises ``ValueError`` if invalid."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        raise ValueError(str(e)) from e

    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Token has no subject")
    return uuid.UUID(str(subject)), payload.get("name")


# ---------------------------------------------------------------------------
# Bearer scheme
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Current-user dependencies
# ---------------------------------------------------------------------------


def get_cache() -> ClaimsCache:
    return get_claims_cache()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    cache: ClaimsCache = Depends(get_cache),
) -> User:
    """Decode the bearer token and return the matching User.

    Raises ``HTTPException(401)`` when the token is missing or invalid.
    A valid token for an unknown user provisions the User.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        user_id, name = decode_access_token(credentials.credentials)
    except ValueError:
        raise credentials_exception

    return await UserClaimsService(db, cache).ensure_user(user_id, name)


async def get_authorization_service(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: ClaimsCache = Depends(get_cache),
) -> AuthorizationService:
    claims = await UserClaimsService(db, cache).get_claims(user.id)
    return AuthorizationService(db, claims)


# ---------------------------------------------------------------------------
# Permission-checking dependency factory
# ---------------------------------------------------------------------------


def require_system_permission(*permissions: str):
    """Return a FastAPI dependency that ensures the caller holds ANY of the
    given System permissions.

    Usage::

        @router.post("/roles", status_code=201)
        async def create_role(
            body: RoleCreate,
            db: AsyncSession = Depends(get_db),
            auth: AuthorizationService = Depends(
                require_system_permission(SystemPermission.MANAGE_ROLES)
            ),
        ):
            ...
    """

    async def _check_permission(
        auth: AuthorizationService = Depends(get_authorization_service),
    ) -> AuthorizationService:
        await auth.require(system_permissions=permissions)
        return auth

    return _check_permission
