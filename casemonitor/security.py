"""
Authentication primitives: password hashing, JWT signing and the FastAPI
dependencies that turn a bearer token into an ``Actor`` or a ``User``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.hash import pbkdf2_sha256 as hasher
from sqlalchemy.orm import Session

from .access import Actor
from .config import settings
from .db import get_db
from .models import User, UserRole

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

bearer = HTTPBearer(auto_error=True)


def hash_password(password: str) -> str:
    """Hash password with pbkdf2_sha256"""
    return hasher.hash(password)


def verify_password(password: str, hash: str) -> bool:
    """Verify password against hash"""
    try:
        return hasher.verify(password, hash)
    except Exception:
        return False


def _sign(user: User, typ: str, expire_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role.value if isinstance(user.role, UserRole) else user.role,
        "police_station": user.police_station,
        "typ": typ,
        "iss": settings.JWT_ISSUER,
        "iat": now,
        "exp": now + timedelta(minutes=expire_minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def sign_access_token(user: User) -> str:
    return _sign(user, ACCESS_TOKEN, settings.JWT_EXPIRE_MIN)


def sign_refresh_token(user: User) -> str:
    return _sign(user, REFRESH_TOKEN, settings.JWT_REFRESH_EXPIRE_MIN)


def verify_token(token: str, expected_type: str = ACCESS_TOKEN) -> dict[str, Any]:
    """Verify JWT token and return payload"""
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET, algorithms=["HS256"], issuer=settings.JWT_ISSUER
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )
    if payload.get("typ") != expected_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type"
        )
    return payload


def current_actor(
    creds: Annotated[HTTPAuthorizationCredentials, Depends(bearer)],
) -> Actor:
    """Actor context straight from the access token, no database hit"""
    payload = verify_token(creds.credentials)
    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        logger.warning("Token for %s carries unknown role %r", payload.get("sub"), payload.get("role"))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )
    return Actor(
        role=role,
        home_station=payload.get("police_station"),
        user_id=payload.get("sub"),
    )


def current_user(
    creds: Annotated[HTTPAuthorizationCredentials, Depends(bearer)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    payload = verify_token(creds.credentials)
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled"
        )
    return user


def require_roles(*roles: UserRole) -> Callable[..., Actor]:
    """Dependency factory: the caller's role must be one of ``roles``."""
    allowed = tuple(roles)

    def dependency(actor: Annotated[Actor, Depends(current_actor)]) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. Required role: "
                + " or ".join(r.value for r in allowed),
            )
        return actor

    return dependency
