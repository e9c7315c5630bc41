"""
Case register endpoints

Every read is limited to the caller's station unless the caller is the SP.
Single-record writes answer 403 outside that scope; the bulk upload reports
the same refusal per row instead.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .access import AccessConfigurationError, Actor, can_access, scope_case_query
from .audit import get_client_ip, log_audit
from .case_schemas import (
    IDENTITY_FIELDS,
    CaseFields,
    CaseOut,
    CasePatch,
    Hearing,
    HearingCreate,
    default_json_fields,
    is_blank,
)
from .config import settings
from .db import get_db
from .models import Case, CaseStatus, JudgmentResult, UserRole
from .reconciler import BatchResult, EmptyBatchError, RowStatus, reconcile
from .security import current_actor, require_roles
from .spreadsheet import SpreadsheetError, parse_case_workbook
from .store import SqlCaseStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cases", tags=["cases"])

require_case_editor = require_roles(UserRole.WRITER, UserRole.SHO, UserRole.SP)
require_case_admin = require_roles(UserRole.SHO, UserRole.SP)


class BulkUploadRequest(BaseModel):
    cases: Any = None


def _actor_uuid(actor: Actor) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(actor.user_id)) if actor.user_id else None
    except ValueError:
        return None


def _case_out(case: Case) -> dict[str, Any]:
    # Dump by field name; the nested input models carry camelCase aliases
    return CaseOut.model_validate(case).model_dump(mode="json")


def _load_case(db: Session, case_id: str) -> Case:
    try:
        case_uuid = uuid.UUID(case_id)
    except ValueError:
        raise HTTPException(404, "Case not found")
    case = db.get(Case, case_uuid)
    if not case:
        raise HTTPException(404, "Case not found")
    return case


def _ensure_access(actor: Actor, station: str | None) -> None:
    if not can_access(actor, station):
        raise HTTPException(403, "Access denied to this police station")


def _find_by_key(db: Session, police_station: str, crime_number: str) -> Case | None:
    return (
        db.query(Case)
        .filter(Case.police_station == police_station, Case.crime_number == crime_number)
        .first()
    )


def summarize_cases(rows: Iterable[tuple[str, str | None]]) -> dict[str, Any]:
    """Totals over (police_station, judgment_result) pairs, overall and per station"""

    def empty() -> dict[str, int]:
        return {"total": 0, "pending": 0, "convicted": 0, "acquitted": 0}

    overall = empty()
    per_station: dict[str, dict[str, int]] = defaultdict(empty)
    for station, result in rows:
        for bucket in (overall, per_station[station]):
            bucket["total"] += 1
            if not result:
                bucket["pending"] += 1
            elif result in (JudgmentResult.CONVICTED.value, JudgmentResult.PARTLY.value):
                bucket["convicted"] += 1
            elif result == JudgmentResult.ACQUITTED.value:
                bucket["acquitted"] += 1

    def finish(bucket: dict[str, int]) -> dict[str, Any]:
        disposed = bucket["convicted"] + bucket["acquitted"]
        rate = round(bucket["convicted"] / disposed * 100) if disposed else 0
        return {**bucket, "disposed": disposed, "conviction_rate": rate}

    summary = finish(overall)
    summary["by_station"] = [
        {"police_station": name, **finish(bucket)}
        for name, bucket in sorted(per_station.items())
    ]
    return summary


@router.get("")
def list_cases(
    station: str | None = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    """Newest first. The SP may narrow to one station with ?station="""
    query = scope_case_query(db.query(Case), actor)
    if station and actor.is_district_wide:
        query = query.filter(Case.police_station == station)
    cases = query.order_by(Case.created_at.desc()).all()
    return {"success": True, "data": [_case_out(c) for c in cases]}


@router.get("/search")
def search_cases(
    q: str | None = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    if not q or not q.strip():
        raise HTTPException(400, "Search query is required")

    pattern = f"%{q.strip()}%"
    query = scope_case_query(db.query(Case), actor).filter(
        or_(
            Case.crime_number.ilike(pattern),
            Case.accused_names.ilike(pattern),
            Case.sections_of_law.ilike(pattern),
            Case.investigating_officer.ilike(pattern),
        )
    )
    cases = query.order_by(Case.created_at.desc()).limit(settings.SEARCH_RESULT_LIMIT).all()
    return {"success": True, "data": [_case_out(c) for c in cases]}


@router.get("/hearings/upcoming")
def upcoming_hearings(
    days: int | None = Query(None, ge=0, le=366),
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    window = settings.UPCOMING_HEARING_DAYS if days is None else days
    today = date.today()
    until = today + timedelta(days=window)

    cases = (
        scope_case_query(db.query(Case), actor)
        .filter(
            Case.next_hearing_date.isnot(None),
            Case.next_hearing_date >= today.isoformat(),
            Case.next_hearing_date <= until.isoformat(),
        )
        .order_by(Case.next_hearing_date.asc())
        .all()
    )

    data = []
    for case in cases:
        remaining = (date.fromisoformat(case.next_hearing_date) - today).days
        data.append(
            {
                **_case_out(case),
                "days_until_hearing": remaining,
                "urgent": remaining <= settings.URGENT_HEARING_DAYS,
            }
        )
    return {"success": True, "data": data}


@router.get("/stats")
def case_stats(db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    rows = scope_case_query(
        db.query(Case.police_station, Case.judgment_result), actor
    ).all()
    return {"success": True, "data": summarize_cases(rows)}


@router.post("/bulk-upload")
def bulk_upload(
    data: BulkUploadRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_case_editor),
):
    """Upsert a list of case rows keyed on (police_station, crime_number)"""
    result = _run_bulk(data.cases, request, db, actor)
    return {"success": True, "data": result.to_dict()}


@router.post("/bulk-upload/file")
async def bulk_upload_file(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_case_editor),
):
    """Same as /bulk-upload, reading rows from an .xlsx register"""
    filename = (file.filename or "").lower()
    if not filename.endswith(".xlsx"):
        raise HTTPException(400, "Only .xlsx files are supported")

    content = await file.read()
    try:
        rows = parse_case_workbook(content)
    except SpreadsheetError as e:
        raise HTTPException(400, str(e))

    result = _run_bulk(rows, request, db, actor)
    return {"success": True, "data": result.to_dict()}


def _run_bulk(rows: Any, request: Request, db: Session, actor: Actor) -> BatchResult:
    if isinstance(rows, list) and len(rows) > settings.BULK_UPLOAD_MAX_ROWS:
        raise HTTPException(
            413, f"Too many cases in one upload (max {settings.BULK_UPLOAD_MAX_ROWS})"
        )

    try:
        result = reconcile(actor, rows, SqlCaseStore(db), created_by=_actor_uuid(actor))
    except EmptyBatchError as e:
        raise HTTPException(400, str(e))
    except AccessConfigurationError as e:
        logger.error(f"Bulk upload rejected: {e}")
        raise HTTPException(403, "Access denied")

    ip = get_client_ip(request)
    for outcome in result.rows:
        if outcome.status is RowStatus.INSERTED:
            action, verb = "CASE_BULK_CREATED", "Bulk created"
        elif outcome.status is RowStatus.UPDATED:
            action, verb = "CASE_BULK_UPDATED", "Bulk updated"
        else:
            continue
        log_audit(
            db,
            actor.user_id,
            action,
            "case",
            outcome.case_id,
            f"{verb} case: {outcome.crime_number}",
            ip,
        )
    return result


@router.get("/{case_id}")
def get_case(
    case_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)
):
    case = _load_case(db, case_id)
    _ensure_access(actor, case.police_station)
    return {"success": True, "data": _case_out(case)}


@router.post("", status_code=201)
def create_case(
    data: CaseFields,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_case_editor),
):
    station = data.police_station
    crime_number = data.crime_number
    if is_blank(station) or is_blank(crime_number):
        raise HTTPException(400, "Police station and crime number are required")
    _ensure_access(actor, station)
    if _find_by_key(db, station, crime_number):
        raise HTTPException(409, "A case with this crime number already exists for this station")

    values = default_json_fields()
    values["status"] = CaseStatus.DRAFT.value
    values.update(CasePatch.from_fields(data).without(*IDENTITY_FIELDS).values)
    case = Case(
        **values,
        police_station=station,
        crime_number=crime_number,
        created_by=_actor_uuid(actor),
    )
    try:
        db.add(case)
        db.commit()
        db.refresh(case)
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "A case with this crime number already exists for this station")

    log_audit(
        db,
        actor.user_id,
        "CASE_CREATED",
        "case",
        case.id,
        f"Created case: {crime_number}",
        get_client_ip(request),
    )
    return {"success": True, "data": _case_out(case)}


@router.put("/{case_id}")
def update_case(
    case_id: str,
    data: CaseFields,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_case_editor),
):
    """Sparse update: omitted or null fields are kept, "" clears a field"""
    case = _load_case(db, case_id)
    _ensure_access(actor, case.police_station)

    patch = CasePatch.from_fields(data, blank_is_absent=False)
    # Identity can be corrected but never blanked
    blank_identity = [f for f in IDENTITY_FIELDS if f in patch.values and is_blank(patch.get(f))]
    patch = patch.without(*blank_identity)
    if not patch:
        return {"success": True, "data": _case_out(case)}

    new_station = patch.get("police_station", case.police_station)
    new_crime_number = patch.get("crime_number", case.crime_number)
    if new_station != case.police_station:
        _ensure_access(actor, new_station)
    if (new_station, new_crime_number) != (case.police_station, case.crime_number):
        clash = _find_by_key(db, new_station, new_crime_number)
        if clash is not None and clash.id != case.id:
            raise HTTPException(409, "A case with this crime number already exists for this station")

    changed = patch.apply_to(case)
    try:
        db.commit()
        db.refresh(case)
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "A case with this crime number already exists for this station")

    log_audit(
        db,
        actor.user_id,
        "CASE_UPDATED",
        "case",
        case.id,
        {"crime_number": case.crime_number, "fields": changed},
        get_client_ip(request),
    )
    return {"success": True, "data": _case_out(case)}


@router.delete("/{case_id}")
def delete_case(
    case_id: str,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_case_admin),
):
    case = _load_case(db, case_id)
    _ensure_access(actor, case.police_station)

    crime_number = case.crime_number
    db.delete(case)
    db.commit()

    log_audit(
        db,
        actor.user_id,
        "CASE_DELETED",
        "case",
        case_id,
        f"Deleted case: {crime_number}",
        get_client_ip(request),
    )
    return {"success": True, "message": "Case deleted successfully"}


@router.post("/{case_id}/hearings", status_code=201)
def add_hearing(
    case_id: str,
    data: HearingCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_case_editor),
):
    case = _load_case(db, case_id)
    _ensure_access(actor, case.police_station)

    hearing = Hearing(date=data.date, stage_of_trial=data.stage_of_trial)
    # Reassign so the JSON column is flagged dirty
    case.hearings = [*(case.hearings or []), hearing.model_dump()]
    case.next_hearing_date = hearing.date
    if data.stage_of_trial:
        case.current_stage_of_trial = data.stage_of_trial
    db.commit()
    db.refresh(case)

    log_audit(
        db,
        actor.user_id,
        "CASE_UPDATED",
        "case",
        case.id,
        f"Added hearing {hearing.date} to case: {case.crime_number}",
        get_client_ip(request),
    )
    return {"success": True, "data": _case_out(case)}


@router.delete("/{case_id}/hearings/{hearing_id}")
def remove_hearing(
    case_id: str,
    hearing_id: str,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_case_editor),
):
    case = _load_case(db, case_id)
    _ensure_access(actor, case.police_station)

    hearings = list(case.hearings or [])
    remaining = [h for h in hearings if h.get("id") != hearing_id]
    if len(remaining) == len(hearings):
        raise HTTPException(404, "Hearing not found")

    case.hearings = remaining
    dates = [h["date"] for h in remaining if h.get("date")]
    case.next_hearing_date = max(dates) if dates else None
    db.commit()
    db.refresh(case)

    log_audit(
        db,
        actor.user_id,
        "CASE_UPDATED",
        "case",
        case.id,
        f"Removed hearing from case: {case.crime_number}",
        get_client_ip(request),
    )
    return {"success": True, "data": _case_out(case)}
