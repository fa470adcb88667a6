"""
Authentication and role checks for API routes
"""

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.core.error_handling import AuthenticationError, ForbiddenException
from app.core.security import decode_access_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class UserRole(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    PROFESSIONAL = "professional"
    RECEPTIONIST = "receptionist"


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    clinic_id: int
    role: UserRole


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """
    Resolve the caller from the bearer token. The token carries ``sub``,
    ``clinic_id`` and ``role``.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Not authenticated")

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        raise AuthenticationError("Could not validate credentials") from e

    user_id = payload.get("sub")
    clinic_id = payload.get("clinic_id")
    if not user_id or clinic_id is None:
        raise AuthenticationError("Could not validate credentials")

    try:
        role = UserRole(payload.get("role"))
        clinic = int(clinic_id)
    except (TypeError, ValueError) as e:
        raise AuthenticationError("Could not validate credentials") from e

    return CurrentUser(user_id=str(user_id), clinic_id=clinic, role=role)


class RoleChecker:
    """Dependency that only lets the given roles through"""

    def __init__(self, allowed_roles: Iterable[UserRole]):
        self.allowed_roles = frozenset(allowed_roles)

    async def __call__(self, current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in self.allowed_roles:
            raise ForbiddenException(f"Role {current_user.role.value} cannot perform this operation")
        return current_user
