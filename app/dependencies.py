# ================================
# DEPENDENCIES (dependencies.py)
# ================================

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Generator, Optional

from app.core.database import SessionLocal
from app.core.security import CurrentUser, user_from_token
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.models.enums import UserRole

security = HTTPBearer(auto_error=False)

# ================================
# BASIC DEPENDENCIES
# ================================

def get_db() -> Generator[Session, None, None]:
    """Dependency für Database Session pro Request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# ================================
# USER AUTHENTICATION DEPENDENCIES
# ================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> CurrentUser:
    """Dependency für aktuellen User aus dem Bearer Token"""
    if credentials is None:
        raise AuthenticationError("Not authenticated", "NOT_AUTHENTICATED")

    user = user_from_token(credentials.credentials)
    if user is None:
        raise AuthenticationError("Invalid authentication credentials")

    return user

# ================================
# ROLE-BASED DEPENDENCIES
# ================================

def require_role(*roles: UserRole):
    """Factory für Role-basierte Dependencies, Admins haben alle Rollen"""

    def role_dependency(
        current_user: CurrentUser = Depends(get_current_user)
    ) -> CurrentUser:
        if current_user.is_admin or current_user.role in roles:
            return current_user

        raise AuthorizationError(
            f"Role required: {' or '.join(role.value for role in roles)}"
        )

    return role_dependency

get_owner_user = require_role(UserRole.OWNER)
get_admin_user = require_role(UserRole.ADMIN)
