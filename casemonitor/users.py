"""
User Management API Endpoints
Account administration for the Superintendent of Police
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from .access import Actor
from .audit import get_client_ip, log_audit
from .db import get_db
from .models import User, UserRole
from .security import hash_password, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

require_sp = require_roles(UserRole.SP)


class UserOut(BaseModel):
    id: str
    username: str
    name: str
    role: str
    police_station: str | None = None
    employee_number: str | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None


class _UserRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateUserRequest(_UserRequest):
    username: str | None = None
    password: str | None = None
    name: str | None = None
    role: str | None = None
    police_station: str | None = None
    employee_number: str | None = None


class UpdateUserRequest(_UserRequest):
    name: str | None = None
    role: str | None = None
    police_station: str | None = None
    employee_number: str | None = None
    is_active: bool | None = None


def user_out(user: User) -> UserOut:
    return UserOut(
        id=str(user.id),
        username=user.username,
        name=user.name,
        role=user.role.value,
        police_station=user.police_station,
        employee_number=user.employee_number,
        is_active=user.is_active,
        created_at=user.created_at,
        updated_at=user.updated_at,
        last_login_at=user.last_login_at,
    )


def parse_user_role(role: str) -> UserRole:
    try:
        return UserRole(str(role).strip())
    except ValueError:
        raise HTTPException(400, "Invalid role. Must be Writer, SHO, or SP")


def _load_user(db: Session, user_id: str) -> User:
    try:
        user_uuid = UUID(user_id)
    except ValueError:
        raise HTTPException(400, "invalid user id")
    user = db.get(User, user_uuid)
    if not user:
        raise HTTPException(404, "User not found")
    return user


@router.get("")
def list_users(db: Session = Depends(get_db), _: Actor = Depends(require_sp)):
    users = db.query(User).order_by(User.created_at.desc()).all()
    return {"success": True, "data": [user_out(u) for u in users]}


@router.get("/{user_id}")
def get_user(
    user_id: str, db: Session = Depends(get_db), _: Actor = Depends(require_sp)
):
    return {"success": True, "data": user_out(_load_user(db, user_id))}


@router.post("", status_code=201)
def create_user(
    data: CreateUserRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_sp),
):
    """Create a new account; every field is mandatory"""
    required = (
        data.username,
        data.password,
        data.name,
        data.role,
        data.police_station,
        data.employee_number,
    )
    if not all(v and str(v).strip() for v in required):
        raise HTTPException(400, "All fields are required")

    role = parse_user_role(data.role)
    username = data.username.strip()
    if db.query(User).filter(User.username == username).first():
        raise HTTPException(409, "Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(data.password),
        name=data.name.strip(),
        role=role,
        police_station=data.police_station.strip(),
        employee_number=data.employee_number.strip(),
        is_active=True,
    )
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create user: {e}")
        raise HTTPException(status_code=500, detail="Failed to create user")

    logger.info("User %s (%s) created by %s", user.username, role.value, actor.user_id)
    log_audit(
        db,
        actor.user_id,
        "USER_CREATED",
        "user",
        user.id,
        f"Created user: {user.username}",
        get_client_ip(request),
    )
    return {"success": True, "data": user_out(user)}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    data: UpdateUserRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_sp),
):
    user = _load_user(db, user_id)

    if data.role:
        user.role = parse_user_role(data.role)
    if data.name:
        user.name = data.name.strip()
    if data.police_station:
        user.police_station = data.police_station.strip()
    if data.employee_number:
        user.employee_number = data.employee_number.strip()
    if data.is_active is not None:
        if str(user.id) == actor.user_id and data.is_active is False:
            raise HTTPException(400, "cannot deactivate your own account")
        user.is_active = data.is_active

    db.commit()
    db.refresh(user)

    log_audit(
        db,
        actor.user_id,
        "USER_UPDATED",
        "user",
        user.id,
        f"Updated user: {user.username}",
        get_client_ip(request),
    )
    return {"success": True, "data": user_out(user)}


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_sp),
):
    user = _load_user(db, user_id)
    if str(user.id) == actor.user_id:
        raise HTTPException(400, "Cannot delete your own account")

    username = user.username
    db.delete(user)
    db.commit()

    log_audit(
        db,
        actor.user_id,
        "USER_DELETED",
        "user",
        user_id,
        f"Deleted user: {username}",
        get_client_ip(request),
    )
    return {"success": True, "message": "User deleted successfully"}
