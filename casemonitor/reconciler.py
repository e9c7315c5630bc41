"""
Bulk upsert of case rows against a case store.

Rows are handled one at a time in the order given. Each row is validated,
checked against the caller's station scope, then matched on
(police_station, crime_number): a match is updated with the row's non-blank
fields, anything else is inserted as a new draft. A failing row is recorded
with its 1-based row number and the batch carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from .access import Actor, can_access, ensure_actor
from .case_schemas import (
    IDENTITY_FIELDS,
    CaseFields,
    CasePatch,
    default_json_fields,
    is_blank,
)
from .models import CaseStatus
from .store import CaseStore

logger = logging.getLogger(__name__)

MISSING_KEY_ERROR = "Police station and crime number are required"
STORE_ERROR = "Database error"


class EmptyBatchError(ValueError):
    """The upload was not a non-empty list of rows."""

    def __init__(self, message: str = "No cases provided"):
        super().__init__(message)


class RowStatus(str, Enum):
    PENDING = "pending"
    REJECTED = "rejected"
    INSERTED = "inserted"
    UPDATED = "updated"


@dataclass
class RowOutcome:
    row: int
    status: RowStatus = RowStatus.PENDING
    case_id: str | None = None
    police_station: str | None = None
    crime_number: str | None = None
    error: str | None = None


@dataclass
class BatchResult:
    total: int
    rows: list[RowOutcome] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return sum(1 for r in self.rows if r.status is RowStatus.INSERTED)

    @property
    def updated(self) -> int:
        return sum(1 for r in self.rows if r.status is RowStatus.UPDATED)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return [
            {"row": r.row, "error": r.error}
            for r in self.rows
            if r.status is RowStatus.REJECTED
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "errors": self.errors,
            "total": self.total,
        }


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(p) for p in first.get("loc", ())) or "row"
    return f"Invalid value for {location}: {first.get('msg', 'invalid')}"


def _reject(outcome: RowOutcome, message: str) -> RowOutcome:
    outcome.status = RowStatus.REJECTED
    outcome.error = message
    return outcome


def reconcile_row(
    actor: Actor,
    row_number: int,
    raw: Any,
    store: CaseStore,
    created_by: Any = None,
) -> RowOutcome:
    """Process a single row; never raises for row-level problems."""

    outcome = RowOutcome(row=row_number)

    if not isinstance(raw, Mapping):
        return _reject(outcome, MISSING_KEY_ERROR)

    try:
        fields = CaseFields.model_validate(dict(raw))
    except ValidationError as e:
        return _reject(outcome, _describe_validation_error(e))

    station = fields.police_station
    crime_number = fields.crime_number
    outcome.police_station = station
    outcome.crime_number = crime_number
    if is_blank(station) or is_blank(crime_number):
        return _reject(outcome, MISSING_KEY_ERROR)

    if not can_access(actor, station):
        return _reject(outcome, f"Cannot access police station: {station}")

    patch = CasePatch.from_fields(fields, blank_is_absent=True).without(*IDENTITY_FIELDS)

    try:
        existing = store.find_by_natural_key(station, crime_number)
        if existing is not None:
            # Re-uploads keep the stored status
            record = store.update_fields(existing.id, patch.without("status"))
            outcome.status = RowStatus.UPDATED
        else:
            values: dict[str, Any] = default_json_fields()
            values["status"] = CaseStatus.DRAFT.value
            values.update(patch.values)
            values["police_station"] = station
            values["crime_number"] = crime_number
            if created_by is not None:
                values["created_by"] = created_by
            record = store.insert(values)
            outcome.status = RowStatus.INSERTED
    except Exception as e:
        logger.error(
            "Bulk upload row %s (%s / %s) failed: %s", row_number, station, crime_number, e
        )
        return _reject(outcome, STORE_ERROR)

    outcome.case_id = str(record.id)
    return outcome


def reconcile(
    actor: Actor,
    incoming: Sequence[Any],
    store: CaseStore,
    created_by: Any = None,
) -> BatchResult:
    """Upsert ``incoming`` rows into ``store`` on behalf of ``actor``.

    Raises ``EmptyBatchError`` when ``incoming`` is not a non-empty list and
    ``AccessConfigurationError`` when the actor's role is unknown; both are
    raised before any row is touched.
    """

    if not isinstance(incoming, (list, tuple)) or not incoming:
        raise EmptyBatchError()
    actor = ensure_actor(actor)

    result = BatchResult(total=len(incoming))
    for index, raw in enumerate(incoming, start=1):
        result.rows.append(reconcile_row(actor, index, raw, store, created_by))

    logger.info(
        "Bulk upload by %s (%s): %d inserted, %d updated, %d errors of %d",
        actor.user_id or "unknown",
        actor.role.value,
        result.inserted,
        result.updated,
        len(result.errors),
        result.total,
    )
    return result
