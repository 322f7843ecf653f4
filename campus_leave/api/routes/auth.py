"""
Authentication Routes
Resolves the caller from a bearer token issued by the identity provider
"""
from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from typing import Callable, Sequence

from campus_leave.api.deps import get_services
from campus_leave.config import settings
from campus_leave.core.database import Services
from campus_leave.core.exceptions import PermissionDenied
from campus_leave.models.user import UserRecord, UserRole


router = APIRouter()

# OAuth2 scheme; tokens come from the identity provider, there is no login route here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=True)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    services: Services = Depends(get_services),
) -> UserRecord:
    """Get current authenticated user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    email = payload.get("email")

    user = None
    if user_id:
        user = await services.users.get_by_id(user_id)
    if user is None and email:
        user = await services.users.get_by_email(email)

    if user is None:
        raise credentials_exception

    return user


def require_roles(roles: Sequence[UserRole]) -> Callable:
    """Dependency factory: current user must hold one of ``roles``"""
    allowed = set(roles)

    async def checker(current_user: UserRecord = Depends(get_current_user)) -> UserRecord:
        if current_user.role not in allowed:
            raise PermissionDenied(
                f"Only {', '.join(sorted(role.value for role in allowed))} can do this"
            )
        return current_user

    return checker


@router.get("/me", response_model=UserRecord)
async def get_me(current_user: UserRecord = Depends(get_current_user)):
    """
    Get current authenticated user, including their leave status
    """
    return current_user
