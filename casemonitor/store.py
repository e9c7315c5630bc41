"""
Case persistence used by the bulk reconciler.

``SqlCaseStore`` commits each write on its own so one failing row cannot
take earlier rows of the same upload down with it. ``InMemoryCaseStore``
has the same surface and backs unit tests and dry runs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .case_schemas import CasePatch
from .models import Case

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A read or write against the case store failed."""


class CaseStore(Protocol):
    def find_by_natural_key(self, police_station: str, crime_number: str) -> Any | None:
        ...

    def insert(self, values: dict[str, Any]) -> Any:
        ...

    def update_fields(self, case_id: Any, patch: CasePatch) -> Any:
        ...


class SqlCaseStore:
    def __init__(self, db: Session):
        self.db = db

    def find_by_natural_key(self, police_station: str, crime_number: str) -> Case | None:
        try:
            return (
                self.db.query(Case)
                .filter(
                    Case.police_station == police_station,
                    Case.crime_number == crime_number,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"lookup failed: {e}") from e

    def insert(self, values: dict[str, Any]) -> Case:
        case = Case(**values)
        try:
            self.db.add(case)
            self.db.commit()
            self.db.refresh(case)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"insert failed: {e}") from e
        return case

    def update_fields(self, case_id: uuid.UUID, patch: CasePatch) -> Case:
        try:
            case = self.db.get(Case, case_id)
            if case is None:
                raise StoreError(f"case {case_id} disappeared during update")
            patch.apply_to(case)
            self.db.commit()
            self.db.refresh(case)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"update failed: {e}") from e
        return case


@dataclass
class StoredCase:
    id: str
    values: dict[str, Any] = field(default_factory=dict)

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["values"][name]
        except KeyError:
            raise AttributeError(name) from None


class InMemoryCaseStore:
    """Dict-backed store keyed on (police_station, crime_number)."""

    def __init__(self, fail_on: set[str] | None = None):
        self._by_key: dict[tuple[str, str], StoredCase] = {}
        self._by_id: dict[str, StoredCase] = {}
        # Crime numbers whose writes should fail, for exercising error paths
        self.fail_on = fail_on or set()

    def __len__(self) -> int:
        return len(self._by_id)

    def all(self) -> list[StoredCase]:
        return list(self._by_id.values())

    def find_by_natural_key(self, police_station: str, crime_number: str) -> StoredCase | None:
        return self._by_key.get((police_station, crime_number))

    def insert(self, values: dict[str, Any]) -> StoredCase:
        key = (values["police_station"], values["crime_number"])
        if values["crime_number"] in self.fail_on:
            raise StoreError("simulated insert failure")
        if key in self._by_key:
            raise StoreError("duplicate natural key")
        record = StoredCase(id=str(uuid.uuid4()), values=dict(values))
        self._by_key[key] = record
        self._by_id[record.id] = record
        return record

    def update_fields(self, case_id: str, patch: CasePatch) -> StoredCase:
        record = self._by_id.get(case_id)
        if record is None:
            raise StoreError(f"case {case_id} not found")
        if record.values.get("crime_number") in self.fail_on:
            raise StoreError("simulated update failure")
        patch.apply_to(record.values)
        return record
