"""
Pydantic schemas for case records plus the sparse-update patch type.

Input schemas accept both snake_case keys and the camelCase keys the
browser and spreadsheet uploader send (``policeStation``, ``crimeNumber``).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import CaseStatus

IDENTITY_FIELDS: tuple[str, ...] = ("police_station", "crime_number")

DATE_FIELDS: tuple[str, ...] = (
    "date_of_charge_sheet",
    "next_hearing_date",
    "date_of_framing_charges",
    "date_of_judgment",
)

COUNT_FIELDS: tuple[str, ...] = (
    "total_accused",
    "accused_in_judicial_custody",
    "accused_on_bail",
    "total_witnesses",
    "total_accused_convicted",
)

def normalize_date(value: Any) -> str | None:
    """Coerce a date-ish value to ISO ``YYYY-MM-DD``; blank stays blank."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return ""
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        pass
    # Registers write day first (05/03/2024 is 5 March)
    try:
        return date_parser.parse(text, dayfirst=True).date().isoformat()
    except (ValueError, OverflowError):
        raise ValueError(f"unrecognised date: {text}")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class WitnessCount(_CamelModel):
    supported: int = 0
    hostile: int = 0


class WitnessDetails(_CamelModel):
    complainant_witness: WitnessCount = Field(default_factory=WitnessCount)
    mahazar_seizure_witness: WitnessCount = Field(default_factory=WitnessCount)
    io_witness: WitnessCount = Field(default_factory=WitnessCount)
    eye_witness: WitnessCount = Field(default_factory=WitnessCount)
    other_witness: WitnessCount = Field(default_factory=WitnessCount)


class Hearing(_CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    date: str
    stage_of_trial: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, v: Any) -> Any:
        return normalize_date(v)


class AccusedConviction(_CamelModel):
    name: str
    sentence: str | None = None


class HigherCourtDetails(_CamelModel):
    proceedings_pending: bool = False
    proceeding_type: str | None = None  # REV, REW, APP, CP, WP
    court_name: str | None = None
    petitioner_party: str | None = None
    petition_number: str | None = None
    date_of_filing: str | None = None
    petition_status: str | None = None  # Pending, Disposed
    nature_of_disposal: str | None = None
    action_after_disposal: str | None = None


def default_json_fields() -> dict[str, Any]:
    """Empty shapes for the JSON sub-records of a freshly inserted case."""
    return {
        "witness_details": WitnessDetails().model_dump(),
        "hearings": [],
        "accused_convictions": [],
        "higher_court_details": HigherCourtDetails().model_dump(),
    }


class CaseFields(_CamelModel):
    """Every writable case attribute; all optional so it doubles as a patch."""

    sl_no: str | None = None
    police_station: str | None = None
    crime_number: str | None = None
    sections_of_law: str | None = None
    investigating_officer: str | None = None
    public_prosecutor: str | None = None
    date_of_charge_sheet: str | None = None
    cc_no_sc_no: str | None = None
    court_name: str | None = None
    total_accused: int | None = None
    accused_names: str | None = None
    accused_in_judicial_custody: int | None = None
    accused_on_bail: int | None = None
    total_witnesses: int | None = None
    witness_details: WitnessDetails | None = None
    hearings: list[Hearing] | None = None
    next_hearing_date: str | None = None
    current_stage_of_trial: str | None = None
    date_of_framing_charges: str | None = None
    date_of_judgment: str | None = None
    judgment_result: str | None = None
    reason_for_acquittal: str | None = None
    total_accused_convicted: int | None = None
    accused_convictions: list[AccusedConviction] | None = None
    fine_amount: str | None = None
    victim_compensation: str | None = None
    higher_court_details: HigherCourtDetails | None = None
    status: CaseStatus | None = None

    @field_validator(*DATE_FIELDS, mode="before")
    @classmethod
    def _dates(cls, v: Any) -> Any:
        return normalize_date(v)

    @field_validator(*COUNT_FIELDS, mode="before")
    @classmethod
    def _counts(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, float) and v.is_integer():
            return int(v)
        return v


class CaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sl_no: str | None = None
    police_station: str
    crime_number: str
    sections_of_law: str | None = None
    investigating_officer: str | None = None
    public_prosecutor: str | None = None
    date_of_charge_sheet: str | None = None
    cc_no_sc_no: str | None = None
    court_name: str | None = None
    total_accused: int = 0
    accused_names: str | None = None
    accused_in_judicial_custody: int = 0
    accused_on_bail: int = 0
    total_witnesses: int = 0
    witness_details: WitnessDetails = Field(default_factory=WitnessDetails)
    hearings: list[Hearing] = Field(default_factory=list)
    next_hearing_date: str | None = None
    current_stage_of_trial: str | None = None
    date_of_framing_charges: str | None = None
    date_of_judgment: str | None = None
    judgment_result: str | None = None
    reason_for_acquittal: str | None = None
    total_accused_convicted: int = 0
    accused_convictions: list[AccusedConviction] = Field(default_factory=list)
    fine_amount: str | None = None
    victim_compensation: str | None = None
    higher_court_details: HigherCourtDetails = Field(default_factory=HigherCourtDetails)
    status: str = CaseStatus.DRAFT.value
    created_by: uuid.UUID | None = None
    approved_by: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator(*COUNT_FIELDS, mode="before")
    @classmethod
    def _zero_counts(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator(
        "witness_details", "hearings", "accused_convictions", "higher_court_details",
        mode="before",
    )
    @classmethod
    def _json_defaults(cls, v: Any, info) -> Any:
        if v is None:
            return default_json_fields()[info.field_name]
        return v


class HearingCreate(_CamelModel):
    date: str
    stage_of_trial: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, v: Any) -> Any:
        normalized = normalize_date(v)
        if not normalized:
            raise ValueError("hearing date is required")
        return normalized


@dataclass(frozen=True)
class CasePatch:
    """Fields to write onto an existing case; anything absent is left alone.

    ``None`` always means "not provided". Blank values (empty string, empty
    list/dict) are dropped too unless the patch was built with
    ``blank_is_absent=False``, in which case they clear the stored value.
    """

    values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_fields(
        cls, fields: CaseFields, *, blank_is_absent: bool = True
    ) -> "CasePatch":
        data = fields.model_dump(exclude_unset=True, exclude_none=True, mode="json")
        if blank_is_absent:
            data = {k: v for k, v in data.items() if not is_blank(v)}
        return cls(data)

    def without(self, *names: str) -> "CasePatch":
        return CasePatch({k: v for k, v in self.values.items() if k not in names})

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def __bool__(self) -> bool:
        return bool(self.values)

    def apply_to(self, record: Any) -> list[str]:
        """Write the patch onto ``record`` (ORM object or dict); return changed names."""
        changed: list[str] = []
        for name, value in self.values.items():
            if name in DATE_FIELDS and value == "":
                value = None
            if isinstance(record, dict):
                current = record.get(name)
                record[name] = value
            else:
                current = getattr(record, name)
                setattr(record, name, value)
            if current != value:
                changed.append(name)
        return changed
