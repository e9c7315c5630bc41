"""
Login, token refresh and self-service account endpoints
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from .audit import get_client_ip, log_audit
from .db import get_db
from .models import User
from .security import (
    REFRESH_TOKEN,
    current_user,
    hash_password,
    sign_access_token,
    sign_refresh_token,
    verify_password,
    verify_token,
)
from .users import user_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8


class _AuthRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(_AuthRequest):
    username: str | None = None
    password: str | None = None


class RefreshRequest(_AuthRequest):
    refresh_token: str | None = None


class ChangePasswordRequest(_AuthRequest):
    current_password: str | None = None
    new_password: str | None = None


class UpdateProfileRequest(_AuthRequest):
    name: str | None = None
    employee_number: str | None = None


def _token_bundle(user: User) -> dict:
    return {
        "user": user_out(user),
        "access_token": sign_access_token(user),
        "refresh_token": sign_refresh_token(user),
    }


@router.post("/login")
def login(data: LoginRequest, request: Request, db: Session = Depends(get_db)):
    if not data.username or not data.password:
        raise HTTPException(400, "Username and password are required")

    ip = get_client_ip(request)
    user = db.query(User).filter(User.username == data.username.strip()).first()
    if not user:
        log_audit(db, None, "LOGIN_FAILED", "auth", None, f"Invalid username: {data.username}", ip)
        raise HTTPException(401, "Invalid credentials")

    if not verify_password(data.password, user.password_hash):
        log_audit(db, user.id, "LOGIN_FAILED", "auth", None, "Invalid password", ip)
        raise HTTPException(401, "Invalid credentials")

    if not user.is_active:
        log_audit(db, user.id, "LOGIN_FAILED", "auth", None, "Account disabled", ip)
        raise HTTPException(403, "User account is disabled")

    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)

    log_audit(db, user.id, "LOGIN_SUCCESS", "auth", None, None, ip)
    logger.info("User %s logged in", user.username)
    return {"success": True, "data": _token_bundle(user)}


@router.post("/logout")
def logout(
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    """Tokens are stateless; this only records the event"""
    log_audit(db, user.id, "LOGOUT", "auth", None, None, get_client_ip(request))
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me")
def me(user: User = Depends(current_user)):
    return {"success": True, "data": user_out(user)}


@router.post("/refresh")
def refresh(data: RefreshRequest, db: Session = Depends(get_db)):
    if not data.refresh_token:
        raise HTTPException(400, "Refresh token required")

    try:
        payload = verify_token(data.refresh_token, expected_type=REFRESH_TOKEN)
    except HTTPException:
        raise HTTPException(401, "Invalid or expired refresh token")

    try:
        user = db.get(User, UUID(str(payload.get("sub"))))
    except ValueError:
        user = None
    if not user:
        raise HTTPException(401, "User no longer exists")
    if not user.is_active:
        raise HTTPException(403, "User account is disabled")

    return {"success": True, "data": _token_bundle(user)}


@router.put("/password")
def change_password(
    data: ChangePasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    if not data.current_password or not data.new_password:
        raise HTTPException(400, "Current password and new password are required")
    if len(data.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            400, f"New password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if not verify_password(data.current_password, user.password_hash):
        raise HTTPException(401, "Current password is incorrect")

    user.password_hash = hash_password(data.new_password)
    db.commit()

    log_audit(db, user.id, "PASSWORD_CHANGED", "user", user.id, None, get_client_ip(request))
    return {"success": True, "message": "Password changed successfully"}


@router.put("/profile")
def update_profile(
    data: UpdateProfileRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    if not data.name or not data.name.strip():
        raise HTTPException(400, "Name is required")

    user.name = data.name.strip()
    if data.employee_number is not None:
        user.employee_number = data.employee_number.strip() or None
    db.commit()
    db.refresh(user)

    log_audit(db, user.id, "PROFILE_UPDATED", "user", user.id, None, get_client_ip(request))
    return {"success": True, "data": user_out(user)}
