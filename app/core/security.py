# ================================
# SECURITY CORE (core/security.py)
# ================================

from jose import JWTError, jwt
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import uuid

from app.config import settings
from app.models.enums import UserRole

ACCESS_TOKEN_EXPIRE_MINUTES = 30

def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Erstellt einen JWT Access Token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str, expected_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verifiziert einen JWT Token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        if payload.get("type") != expected_type:
            return None
        return payload
    except JWTError:
        return None

@dataclass
class CurrentUser:
    """Authenticated caller as handed over by the auth collaborator"""
    id: uuid.UUID
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_owner(self) -> bool:
        return self.role == UserRole.OWNER

def user_from_token(token: str) -> Optional[CurrentUser]:
    """Maps a verified access token to the calling user"""
    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None
    try:
        return CurrentUser(
            id=uuid.UUID(str(payload["sub"])),
            role=UserRole(payload.get("role", UserRole.USER.value))
        )
    except ValueError:
        return None
