"""
Security utilities and authentication
"""

import secrets
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import settings
from app.core.errors import AuthenticationError, PermissionDeniedError
from app.models.user import User
from app.services.tokens import validate_token

security = HTTPBearer()

def get_state(request: Request):
    """Application state container built in the lifespan"""
    return request.app.state.unhangout

def verify_admin_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Verify admin authentication token"""
    if not secrets.compare_digest(credentials.credentials, settings.ADMIN_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )
    return credentials.credentials

def get_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> Optional[User]:
    """Resolve who is calling an admin route.

    Returns None for the operator admin token; otherwise the bearer must be
    the socket key of the user named in ``X-User-Id``.
    """
    if secrets.compare_digest(credentials.credentials, settings.ADMIN_TOKEN):
        return None
    user = get_state(request).registry.get_user(user_id)
    if user is None or not validate_token(user, credentials.credentials):
        raise AuthenticationError("Invalid credentials")
    return user

def require(actor: Optional[User], check: Callable[[User], bool], message: str = "Forbidden") -> None:
    """The operator token passes every check"""
    if actor is not None and not check(actor):
        raise PermissionDeniedError(message)
