from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from .db import Base


class UserRole(str, PyEnum):
    """
    Role hierarchy (highest to lowest):
    - SP: Superintendent of Police - district-wide, every station
    - SHO: Station House Officer - own station, may delete cases
    - WRITER: station writer - own station, create and edit only
    """

    SP = "SP"
    SHO = "SHO"
    WRITER = "Writer"


class CaseStatus(str, PyEnum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"


class JudgmentResult(str, PyEnum):
    CONVICTED = "Convicted"
    ACQUITTED = "Acquitted"
    PARTLY = "Partly"


class User(Base):
    __tablename__ = "users"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(
            UserRole,
            name="user_role",
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=False,
        default=UserRole.WRITER,
    )
    police_station: Mapped[str | None] = mapped_column(String(255), nullable=True)
    employee_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )


class Case(Base):
    """Criminal case file owned by one police station"""

    __tablename__ = "cases"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Step 1: basic case details
    sl_no: Mapped[str | None] = mapped_column(String(50))
    police_station: Mapped[str] = mapped_column(String(255), nullable=False)
    crime_number: Mapped[str] = mapped_column(String(100), nullable=False)
    sections_of_law: Mapped[str | None] = mapped_column(Text)
    investigating_officer: Mapped[str | None] = mapped_column(String(255))
    public_prosecutor: Mapped[str | None] = mapped_column(String(255))

    # Step 2: charge sheet and court. Dates are ISO YYYY-MM-DD strings.
    date_of_charge_sheet: Mapped[str | None] = mapped_column(String(10))
    cc_no_sc_no: Mapped[str | None] = mapped_column(String(100))
    court_name: Mapped[str | None] = mapped_column(String(255))

    # Step 3: accused
    total_accused: Mapped[int | None] = mapped_column(Integer, default=0)
    accused_names: Mapped[str | None] = mapped_column(Text)
    accused_in_judicial_custody: Mapped[int | None] = mapped_column(Integer, default=0)
    accused_on_bail: Mapped[int | None] = mapped_column(Integer, default=0)

    # Step 4: witnesses
    total_witnesses: Mapped[int | None] = mapped_column(Integer, default=0)
    witness_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Step 5: trial and hearings
    hearings: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    next_hearing_date: Mapped[str | None] = mapped_column(String(10), index=True)
    current_stage_of_trial: Mapped[str | None] = mapped_column(String(255))
    date_of_framing_charges: Mapped[str | None] = mapped_column(String(10))
    date_of_judgment: Mapped[str | None] = mapped_column(String(10))

    # Step 6: judgment
    judgment_result: Mapped[str | None] = mapped_column(
        String(50), index=True
    )  # Convicted, Acquitted, Partly
    reason_for_acquittal: Mapped[str | None] = mapped_column(Text)
    total_accused_convicted: Mapped[int | None] = mapped_column(Integer, default=0)
    accused_convictions: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON, nullable=True
    )
    fine_amount: Mapped[str | None] = mapped_column(String(100))
    victim_compensation: Mapped[str | None] = mapped_column(Text)

    # Step 7: higher court
    higher_court_details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), default="draft"
    )  # draft, pending_approval, approved
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "police_station", "crime_number", name="ux_cases_station_crime_number"
        ),
        Index("ix_cases_police_station", "police_station"),
    )


class AuditLog(Base):
    """Who did what to which record, written by every mutating endpoint"""

    __tablename__ = "audit_logs"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
