"""
Authentication helpers for verifying access tokens and resolving the current app User.

Tokens are read from the auth cookie first (what the web client sends), then
from an 'Authorization: Bearer <token>' header.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import decode_access_token
from app.database import get_db
from app.models import User, UserRole

logger = logging.getLogger(__name__)


def _unauthorized(detail: str = "Unauthorized: No token provided") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_token(request: Request) -> str:
    token: Optional[str] = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token

    auth = request.headers.get("Authorization")
    if not auth:
        raise _unauthorized()

    parts = auth.split()
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise _unauthorized("Unauthorized: Invalid Authorization header. Expected 'Bearer <token>'")

    return parts[1]


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    FastAPI dependency: returns the authenticated User (SQLAlchemy object).

    The token's sub claim is the user id. Tokens for users that no longer
    exist are rejected the same way as invalid tokens.
    """
    token = _extract_token(request)
    payload = decode_access_token(token)
    if payload is None:
        raise _unauthorized("Unauthorized: Access is denied")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Unauthorized: Token missing subject")

    user = db.query(User).filter(User.id == str(user_id)).first()
    if not user:
        logger.warning("Token subject %s has no matching user", user_id)
        raise _unauthorized("Unauthorized: Access is denied")

    return user


def require_roles(*roles: UserRole):
    """
    Build a dependency that resolves the current user and checks their role.

    With no roles given, any authenticated user passes.
    """
    allowed = {r.value for r in roles}

    def dependency(user: User = Depends(get_current_user)) -> User:
        role = user.role.value if isinstance(user.role, UserRole) else str(user.role)
        if allowed and role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden: You don't have enough permissions",
            )
        return user

    return dependency


require_user = require_roles(UserRole.USER)
require_admin = require_roles(UserRole.ADMIN)
require_member = require_roles(UserRole.USER, UserRole.ADMIN)
