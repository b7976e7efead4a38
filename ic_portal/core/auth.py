"""
Authentication Utility - JWT verification.

Sign-in happens at the external identity provider; it issues HS256
bearer tokens whose `sub` is the user id and `email` the account email.
This module only verifies them and resolves the portal profile.

Provides:
- JWT token creation (local development / tests) and verification
- FastAPI dependencies for protected routes
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ic_portal.api.deps import get_storage
from ic_portal.core.config import get_settings
from ic_portal.core.errors import NotFound
from ic_portal.models import User, UserRole
from ic_portal.services.storage import StorageGateway

# Bearer token extractor
bearer_scheme = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)
) -> dict:
    """
    FastAPI dependency - verified token claims, profile not required.

    Used by the profile-creation route, before a portal profile exists.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    return {"user_id": str(user_id), "email": payload.get("email")}


async def get_current_user(
    identity: dict = Depends(get_current_identity),
    storage: StorageGateway = Depends(get_storage)
) -> User:
    """
    FastAPI dependency - Get current authenticated user's profile.

    Usage:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)):
            return user
    """
    try:
        return storage.get_user(identity["user_id"])
    except NotFound:
        raise HTTPException(status_code=404, detail="Profile not found. Create profile first.")


async def get_current_student(user: User = Depends(get_current_user)) -> User:
    """Dependency - Require student role."""
    if user.role != UserRole.student:
        raise HTTPException(status_code=403, detail="Students only")
    return user


async def get_current_professor(user: User = Depends(get_current_user)) -> User:
    """Dependency - Require professor role."""
    if user.role != UserRole.professor:
        raise HTTPException(status_code=403, detail="Professors only")
    return user
