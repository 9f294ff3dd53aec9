"""
FastAPI dependencies: database session, current user and role checks.
"""

from typing import AsyncGenerator, Callable, Iterable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.exceptions import AuthenticationError, PermissionDeniedError
from core.security import decode_access_token
from models.base import UserRole
from models.organization import User

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session per request"""
    async for session in get_session():
        yield session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Resolve the bearer token to an active user, or fail with 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized")

    claims = decode_access_token(credentials.credentials)
    result = await db.execute(select(User).where(User.id == claims["sub"]))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise AuthenticationError("Unauthorized", context={"user_id": claims["sub"]})
    return user


def require_roles(*roles: Iterable[UserRole]) -> Callable:
    """
    Dependency factory allowing only the given roles.

    Accepts roles or collections of roles:
        Depends(require_roles(UserRole.GUIDE))
        Depends(require_roles(ADMIN_ROLES))
    """
    allowed = set()
    for role in roles:
        if isinstance(role, UserRole):
            allowed.add(role)
        else:
            allowed.update(role)

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if UserRole(user.role) not in allowed:
            raise PermissionDeniedError(
                "Forbidden",
                context={"user_id": user.id, "role": UserRole(user.role).value},
            )
        return user

    return dependency
