"""Station-scoped access rules.

Every case belongs to one police station. The Superintendent of Police sees
the whole district; Station House Officers and Writers see only the station
they are posted to. The predicate here is shared by the single-record
endpoints (which turn a denial into a 403) and the bulk reconciler (which
turns it into a per-row error).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import Case, UserRole

TOP_RANK = UserRole.SP


class AccessConfigurationError(RuntimeError):
    """Raised when an actor cannot be evaluated at all (unknown role)."""


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as seen by the authorization rules."""

    role: UserRole
    home_station: str | None = None
    user_id: str | None = None

    @property
    def is_district_wide(self) -> bool:
        return self.role == TOP_RANK


def can_access(actor: Actor, target_station: str | None) -> bool:
    """Return True when ``actor`` may read or write records of ``target_station``.

    Exact, case-sensitive comparison. A non-SP actor without a home station
    matches nothing.
    """

    if actor.role == TOP_RANK:
        return True
    if not actor.home_station:
        return False
    return target_station == actor.home_station


def ensure_actor(actor: Any) -> Actor:
    """Validate an actor before a batch starts; misconfiguration is fatal."""

    if not isinstance(actor, Actor):
        raise AccessConfigurationError("no actor context supplied")
    if not isinstance(actor.role, UserRole):
        try:
            role = UserRole(actor.role)
        except ValueError:
            raise AccessConfigurationError(f"unknown role: {actor.role!r}")
        return Actor(role=role, home_station=actor.home_station, user_id=actor.user_id)
    return actor


def scope_case_query(query: Any, actor: Actor):
    """Restrict a ``Case`` query to the stations the actor may see."""

    if actor.is_district_wide:
        return query
    return query.filter(Case.police_station == (actor.home_station or ""))
