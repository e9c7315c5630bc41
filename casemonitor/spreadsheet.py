"""
Read case rows out of an uploaded Excel register.

The first worksheet is used. Row 1 holds the column headers the upload
template ships with; every following non-empty row becomes one dict keyed
by case field name, ready for the bulk reconciler.
"""

from __future__ import annotations

import io
import logging
from datetime import date, datetime
from typing import Any

import openpyxl

logger = logging.getLogger(__name__)

COLUMN_MAPPING: dict[str, str] = {
    "Sl No": "sl_no",
    "Police Station": "police_station",
    "Crime Number": "crime_number",
    "Sections of Law": "sections_of_law",
    "Investigating Officer": "investigating_officer",
    "Public Prosecutor": "public_prosecutor",
    "Date of Charge Sheet": "date_of_charge_sheet",
    "CC No / SC No": "cc_no_sc_no",
    "Court Name": "court_name",
    "Total Accused": "total_accused",
    "Accused Names": "accused_names",
    "Accused in Custody": "accused_in_judicial_custody",
    "Accused on Bail": "accused_on_bail",
    "Total Witnesses": "total_witnesses",
    "Next Hearing Date": "next_hearing_date",
    "Current Stage": "current_stage_of_trial",
    "Date of Framing Charges": "date_of_framing_charges",
    "Date of Judgment": "date_of_judgment",
    "Judgment Result": "judgment_result",
    "Reason for Acquittal": "reason_for_acquittal",
    "Fine Amount": "fine_amount",
    "Victim Compensation": "victim_compensation",
}

DATE_COLUMNS = {
    "date_of_charge_sheet",
    "next_hearing_date",
    "date_of_framing_charges",
    "date_of_judgment",
}

NUMBER_COLUMNS = {
    "total_accused",
    "accused_in_judicial_custody",
    "accused_on_bail",
    "total_witnesses",
}


class SpreadsheetError(ValueError):
    """The upload could not be read as a case register."""


def _cell_value(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field in DATE_COLUMNS:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return str(value).strip()
    if field in NUMBER_COLUMNS:
        if isinstance(value, (int, float)):
            return int(value)
        text = str(value).strip()
        if not text:
            return None
        try:
            return int(float(text))
        except ValueError:
            # Leave it for row validation to report
            return text
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def parse_case_workbook(content: bytes) -> list[dict[str, Any]]:
    """Parse an ``.xlsx`` upload into case dicts; unknown columns are ignored."""

    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), data_only=True, read_only=True)
    except Exception as e:
        raise SpreadsheetError(f"Invalid Excel file: {e}") from e

    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        if ws is None:
            raise SpreadsheetError("Invalid Excel file: no worksheet found")

        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            raise SpreadsheetError("Excel file is empty")

        columns: dict[int, str] = {}
        for idx, title in enumerate(header):
            if isinstance(title, str) and title.strip() in COLUMN_MAPPING:
                columns[idx] = COLUMN_MAPPING[title.strip()]
        if not columns:
            raise SpreadsheetError("No recognised column headers in the first row")

        cases: list[dict[str, Any]] = []
        for row in rows:
            if row is None or all(c is None or str(c).strip() == "" for c in row):
                continue
            record: dict[str, Any] = {}
            for idx, field in columns.items():
                if idx >= len(row):
                    continue
                value = _cell_value(field, row[idx])
                if value is not None and value != "":
                    record[field] = value
            cases.append(record)
    finally:
        wb.close()

    if not cases:
        raise SpreadsheetError("Excel file has no data rows")
    logger.info("Parsed %d case rows from workbook", len(cases))
    return cases
