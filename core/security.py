"""
JWT access tokens and role groups.

Tokens are HS256 JWTs whose ``sub`` claim is the user id. Role and branch are
always read from the users table, never trusted from the token.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from core.config import settings
from core.exceptions import AuthenticationError
from models.base import UserRole


ADMIN_ROLES = frozenset({
    UserRole.SUPER_ADMIN,
    UserRole.OPS_ADMIN,
    UserRole.FINANCE_MANAGER,
    UserRole.MARKETING,
    UserRole.BRANCH_ADMIN,
})

SETTINGS_ADMIN_ROLES = frozenset({
    UserRole.SUPER_ADMIN,
    UserRole.OPS_ADMIN,
    UserRole.BRANCH_ADMIN,
})


def create_access_token(
    user_id: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None
) -> str:
    """Issue a signed access token for a user id."""
    now = datetime.now(timezone.utc)
    expires_at = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRES_MINUTES))
    payload: Dict[str, Any] = {
        "sub": user_id,
        "iat": now,
        "exp": expires_at,
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry, returning the claims."""
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expired", original_exception=e) from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {e}", original_exception=e) from e

    if not claims.get("sub"):
        raise AuthenticationError("Token has no subject")
    return claims
