"""Audit trail helpers"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str | None:
    """Client address, preferring the first hop of X-Forwarded-For"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def log_audit(
    db: Session,
    user_id: uuid.UUID | str | None,
    action: str,
    resource_type: str,
    resource_id: Any = None,
    details: dict[str, Any] | str | None = None,
    ip_address: str | None = None,
) -> None:
    """Write an audit row. Failures are logged and swallowed."""
    try:
        if isinstance(user_id, str):
            user_id = uuid.UUID(user_id)
        if isinstance(details, dict):
            details = json.dumps(details, default=str)
        db.add(
            AuditLog(
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                details=details,
                ip_address=ip_address,
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("Failed to write audit log %s for %s: %s", action, resource_id, e)
