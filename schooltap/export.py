import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

import pandas as pd
from openpyxl import load_workbook
from openpyxl.styles import PatternFill, Alignment, Font, Border, Side
from openpyxl.utils import get_column_letter

from schooltap.constants import CSV_REQUIRED_COLUMNS, EXPORTS_FOLDER
from schooltap.errors import CsvImportError
from schooltap.logic import is_valid_phone
from schooltap.models import LastEvent, Student, from_millis

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    imported: List[Student] = field(default_factory=list)
    skipped: int = 0


# ==================================================
# CSV import
# ==================================================

def _cell(row, column):
    value = row.get(column, "")
    return value.strip() if isinstance(value, str) else ""


def _parse_last_event(raw, rfid):
    if not raw:
        return None
    try:
        return LastEvent.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Failed to parse lastEvent for student %s: %s", rfid, e)
        return None


def row_to_student(row):
    rfid = _cell(row, "rfid")
    if not all(_cell(row, column) for column in CSV_REQUIRED_COLUMNS):
        logger.warning("Skipping invalid row: %s", row)
        return None

    phone2 = _cell(row, "parentPhone2") or None
    phones = [_cell(row, "parentPhone")] + ([phone2] if phone2 else [])
    if not all(is_valid_phone(p) for p in phones):
        logger.warning("Skipping row %s: parent phone must be 10 digits", rfid)
        return None

    return Student(
        rfid=rfid,
        name=_cell(row, "name"),
        admission_number=_cell(row, "admissionNumber"),
        parent_phone=phones[0],
        parent_phone2=phone2,
        last_event=_parse_last_event(_cell(row, "lastEvent"), rfid),
    )


def import_students_csv(store, filepath):
    try:
        df = pd.read_csv(filepath, dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise CsvImportError(f"Failed to parse CSV file: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    missing = [c for c in CSV_REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise CsvImportError(f"CSV file is missing columns: {', '.join(missing)}")

    report = ImportReport()
    seen = {s.rfid for s in store.list_students()}

    for row in df.to_dict(orient="records"):
        student = row_to_student(row)
        if student is None:
            report.skipped += 1
            continue
        if student.rfid in seen:
            logger.warning("Duplicate RFID found: %s. Skipping this student.", student.rfid)
            report.skipped += 1
            continue
        seen.add(student.rfid)
        report.imported.append(student)

    if report.imported:
        store.add_students(report.imported)
    logger.info("CSV import from %s: %d imported, %d skipped",
                filepath, len(report.imported), report.skipped)
    return report


# ==================================================
# Excel export
# ==================================================

def _format_timestamp(timestamp):
    return from_millis(timestamp).strftime("%Y-%m-%d %I:%M %p")


def _style_sheet(file_path):
    wb = load_workbook(file_path)
    ws = wb.active

    header_fill = PatternFill("solid", start_color="D3D3D3")
    data_fill = PatternFill("solid", start_color="F0F8FF")
    header_font = Font(bold=True, size=12)
    data_font = Font(size=11)

    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)

    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = border

    for row in ws.iter_rows(min_row=2, max_row=ws.max_row, max_col=ws.max_column):
        for cell in row:
            cell.font = data_font
            cell.fill = data_fill
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = border

    for col_idx, column in enumerate(ws.iter_cols(min_row=1, max_row=ws.max_row), start=1):
        width = max(len(str(cell.value or "")) for cell in column)
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max(width + 2, 8), 60)

    ws.freeze_panes = "A2"
    wb.save(file_path)


def _write_sheet(rows, columns, folder, kind, sheet_name, day=None):
    os.makedirs(folder, exist_ok=True)
    stamp = (day or datetime.now().date()).isoformat()
    file_path = os.path.join(folder, f"{kind}_{stamp}.xlsx")

    df = pd.DataFrame(rows, columns=columns)
    df.to_excel(file_path, index=False, sheet_name=sheet_name, engine="openpyxl")
    _style_sheet(file_path)
    logger.info("Exported %d %s rows to %s", len(rows), kind, file_path)
    return file_path


def export_students(store, folder=EXPORTS_FOLDER):
    columns = ["rfid", "name", "admissionNumber", "parentPhone", "parentPhone2", "lastEvent", "lastEventTime"]
    rows = [
        [
            s.rfid,
            s.name,
            s.admission_number,
            s.parent_phone,
            s.parent_phone2 or "",
            s.last_event.event if s.last_event else "",
            _format_timestamp(s.last_event.timestamp) if s.last_event else "",
        ]
        for s in sorted(store.list_students(), key=lambda s: s.name)
    ]
    return _write_sheet(rows, columns, folder, "students", "Students")


def export_attendance(store, folder=EXPORTS_FOLDER, day=None):
    columns = ["rfid", "studentName", "event", "time", "manual"]
    logs = sorted(store.list_attendance(day), key=lambda log: log.timestamp)
    rows = [
        [
            log.rfid,
            log.student_name or "",
            log.event,
            _format_timestamp(log.timestamp),
            "yes" if log.manual else "no",
        ]
        for log in logs
    ]
    return _write_sheet(rows, columns, folder, "attendance", "Attendance", day)


def export_messages(store, folder=EXPORTS_FOLDER):
    columns = ["rfid", "studentName", "phoneNumber", "status", "time", "message"]
    logs = sorted(store.list_messages(), key=lambda log: log.timestamp)
    rows = [
        [
            log.rfid,
            log.student_name,
            log.phone_number,
            log.status.value,
            _format_timestamp(log.timestamp),
            log.message,
        ]
        for log in logs
    ]
    return _write_sheet(rows, columns, folder, "messages", "Messages")
