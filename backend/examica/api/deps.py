from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_async_db
from ..core.errors import AccessDenied, AuthenticationRequired
from ..core.security import decode_access_token
from ..models.user import User, STAFF_ROLES
from ..services.container import ExamServices

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_async_db),
) -> User:
    if credentials is None:
        raise AuthenticationRequired()

    payload = decode_access_token(credentials.credentials)
    user = await db.get(User, payload["sub"])
    if user is None:
        raise AuthenticationRequired()
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    if not current_user.is_active:
        raise AccessDenied("Inactive user")
    return current_user


def require_roles(*roles: str):
    """Dependency factory restricting a route to the given roles"""

    async def role_checker(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in roles:
            raise AccessDenied(f"Requires one of the roles: {', '.join(roles)}")
        return current_user

    return role_checker


get_current_staff_user = require_roles(*STAFF_ROLES)


def get_services(request: Request) -> ExamServices:
    return request.app.state.services
