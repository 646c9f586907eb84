"""
Excel import/export for grades (openpyxl).

Three workbook shapes:
  - class grade template: one subject, one row per student
  - individual grade template: one student, one row per subject
  - class summary: averages and ranks for every student plus per-student sheets
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.utils import get_column_letter

from grade_validation import (
    ImportValidation,
    REGULAR_COMPONENTS,
    parse_grade_value,
    validate_grade_rows,
)

logger = logging.getLogger(__name__)

THIN = Side(style="thin")
BORDER = Border(top=THIN, bottom=THIN, left=THIN, right=THIN)
TITLE_FONT = Font(bold=True, size=14)
TITLE_FILL = PatternFill("solid", fgColor="E3F2FD")
INFO_FILL = PatternFill("solid", fgColor="F5F5F5")
HEADER_FILL = PatternFill("solid", fgColor="BBDEFB")
SEPARATOR_FILL = PatternFill("solid", fgColor="FFFACD")
CENTER = Alignment(horizontal="center", vertical="center")
LEFT = Alignment(horizontal="left", vertical="center")

INDIVIDUAL_HEADERS = ["STT", "Môn học", "Điểm giữa kì", "Điểm cuối kì", "Ghi chú"]
INDIVIDUAL_HEADER_ROW = 6
INDIVIDUAL_SEPARATOR_ROW = 7
INDIVIDUAL_FIRST_DATA_ROW = 8
SEPARATOR_TEXT = "--- NHẬP ĐIỂM TỪ DÒNG NÀY ---"

INSTRUCTIONS = [
    "HƯỚNG DẪN NHẬP ĐIỂM CÁ NHÂN",
    "",
    "1. Điểm số: nhập số từ 0 đến 10, tối đa 1 chữ số thập phân (ví dụ: 8.5)",
    "2. Điểm giữa kì: điểm kiểm tra giữa học kì",
    "3. Điểm cuối kì: điểm kiểm tra cuối học kì",
    "4. Ghi chú: có thể để trống",
    "5. Không thay đổi cấu trúc bảng (thêm/xóa cột, hàng tiêu đề)",
    "6. Không thay đổi thông tin học sinh và môn học",
    "7. Lưu file và import lại vào hệ thống",
]

MAX_SHEET_NAME = 31
SUMMARY_STUDENT_SHEETS = 10
_INVALID_SHEET_CHARS = re.compile(r"[\\/*?:\[\]]")


class WorkbookError(ValueError):
    """The uploaded file could not be read as a grade workbook."""


@dataclass
class IndividualParseResult:
    entries: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def _to_bytes(wb: Workbook) -> bytes:
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _open(data: bytes):
    try:
        return load_workbook(io.BytesIO(data), data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as e:
        logger.warning("Unreadable workbook upload: %s", e)
        raise WorkbookError(f"Could not read Excel file: {e}") from e


def _set_widths(ws, widths: list[int]) -> None:
    for i, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _title_block(ws, lines: list[str], width: int) -> None:
    for row, text in enumerate(lines, start=1):
        ws.cell(row=row, column=1, value=text)
        ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=width)
        cell = ws.cell(row=row, column=1)
        if row == 1:
            cell.font, cell.fill, cell.alignment = TITLE_FONT, TITLE_FILL, CENTER
        else:
            cell.font, cell.fill, cell.alignment = Font(bold=True), INFO_FILL, LEFT


def _header_row(ws, row: int, headers: list[str]) -> None:
    for col, text in enumerate(headers, start=1):
        cell = ws.cell(row=row, column=col, value=text)
        cell.font, cell.fill, cell.alignment, cell.border = Font(bold=True), HEADER_FILL, CENTER, BORDER


# ── Class grade template ───────────────────────────────────


def class_template_headers(regular_count: int = 4) -> list[str]:
    return (["STT", "Mã học sinh", "Họ và tên"]
            + [f"Điểm TX {i}" for i in range(1, regular_count + 1)]
            + ["Điểm giữa kì", "Điểm cuối kì", "Điểm tổng kết", "Ghi chú"])


def create_class_grade_template(class_name: str, subject_name: str, academic_year: str,
                                semester: str, students: list[dict], regular_count: int = 4) -> bytes:
    """Blank grade sheet for one subject with one row per active student."""
    regular_count = max(1, min(regular_count, len(REGULAR_COMPONENTS)))
    headers = class_template_headers(regular_count)
    wb = Workbook()
    ws = wb.active
    ws.title = "Bảng điểm"
    _title_block(ws, [
        f"BẢNG ĐIỂM {subject_name.upper()}",
        f"Lớp: {class_name}",
        f"Năm học: {academic_year} - {semester}",
    ], len(headers))
    _header_row(ws, 5, headers)
    for i, student in enumerate(students, start=1):
        row = 5 + i
        values = [i, student["student_id"], student["full_name"]]
        for col, value in enumerate(values, start=1):
            ws.cell(row=row, column=col, value=value)
        for col in range(1, len(headers) + 1):
            cell = ws.cell(row=row, column=col)
            cell.border = BORDER
            cell.alignment = LEFT if col == 3 else CENTER
    _set_widths(ws, [6, 15, 30] + [10] * regular_count + [14, 14, 14, 25])
    ws.freeze_panes = "D6"
    return _to_bytes(wb)


def parse_class_grade_workbook(data: bytes) -> ImportValidation:
    wb = _open(data)
    ws = wb.worksheets[0]
    rows = [tuple(r) for r in ws.iter_rows(values_only=True)]
    return validate_grade_rows(rows)


# ── Individual grade template ──────────────────────────────


def create_individual_grade_template(student: dict, class_name: str, academic_year: str,
                                     semester: str, subjects: list[dict]) -> bytes:
    """Per-student sheet: info rows 1-4, headers on row 6, separator row 7, subjects from row 8."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Bảng điểm"
    width = len(INDIVIDUAL_HEADERS)
    _title_block(ws, [
        "BẢNG ĐIỂM CÁ NHÂN",
        f"Học sinh: {student['full_name']} ({student.get('student_id') or ''})",
        f"Lớp: {class_name}",
        f"Năm học: {academic_year} - {semester}",
    ], width)
    _header_row(ws, INDIVIDUAL_HEADER_ROW, INDIVIDUAL_HEADERS)

    separator = ["---", SEPARATOR_TEXT, "---", "---", "---"]
    for col, text in enumerate(separator, start=1):
        cell = ws.cell(row=INDIVIDUAL_SEPARATOR_ROW, column=col, value=text)
        cell.font = Font(italic=True, color="666666")
        cell.fill, cell.alignment = SEPARATOR_FILL, CENTER

    for i, subject in enumerate(subjects):
        row = INDIVIDUAL_FIRST_DATA_ROW + i
        ws.cell(row=row, column=1, value=i + 1)
        ws.cell(row=row, column=2, value=subject["name_vietnamese"])
        for col in range(1, width + 1):
            cell = ws.cell(row=row, column=col)
            cell.border = BORDER
            cell.alignment = LEFT if col == 2 else CENTER
    _set_widths(ws, [5, 30, 15, 15, 25])

    guide = wb.create_sheet("Hướng dẫn")
    for row, text in enumerate(INSTRUCTIONS, start=1):
        guide.cell(row=row, column=1, value=text)
    guide["A1"].font = Font(bold=True)
    guide.column_dimensions["A"].width = 80
    return _to_bytes(wb)


def _skip_subject_cell(number: Any, name: str) -> bool:
    if not name or name in ("Môn học", "STT") or "---" in name or "NHẬP ĐIỂM" in name:
        return True
    try:
        float(name)
        return True
    except ValueError:
        pass
    return isinstance(number, (int, float)) and len(name) < 3


def parse_individual_grade_excel(data: bytes, expected_subjects: list[dict]) -> IndividualParseResult:
    """Read grades from row 8 on. Only rows carrying a grade or a note become entries."""
    result = IndividualParseResult()
    wb = _open(data)
    ws = wb.worksheets[0]
    by_name = {s["name_vietnamese"]: s for s in expected_subjects}

    for row_number, row in enumerate(
        ws.iter_rows(min_row=INDIVIDUAL_FIRST_DATA_ROW, max_col=len(INDIVIDUAL_HEADERS), values_only=True),
        start=INDIVIDUAL_FIRST_DATA_ROW,
    ):
        row = tuple(row) + (None,) * (len(INDIVIDUAL_HEADERS) - len(row))
        number, name_cell, midterm_cell, final_cell, notes_cell = row[:5]
        name = str(name_cell or "").strip()
        if _skip_subject_cell(number, name):
            continue

        subject = by_name.get(name)
        if subject is None:
            available = ", ".join(by_name)
            result.errors.append(f'Row {row_number}: subject "{name}" not found. Available subjects: {available}')
            continue

        grades: dict[str, float | None] = {}
        for key, raw, label in (("midterm", midterm_cell, "Midterm"), ("final", final_cell, "Final")):
            try:
                grades[key] = parse_grade_value(raw, f"Row {row_number}, {name}: {label}")
            except ValueError as e:
                result.errors.append(str(e))
                grades[key] = None
        notes = str(notes_cell).strip() if notes_cell is not None else ""

        if grades["midterm"] is not None or grades["final"] is not None or notes:
            result.entries.append({
                "subject_id": subject["id"],
                "subject_name": name,
                "midterm": grades["midterm"],
                "final": grades["final"],
                "notes": notes,
            })
    return result


# ── Class summary ──────────────────────────────────────────


def safe_sheet_name(name: str, taken: set[str]) -> str:
    """Excel sheet name: no reserved characters, at most 31 chars, unique in the workbook."""
    base = _INVALID_SHEET_CHARS.sub("", name).strip() or "Sheet"
    candidate = base[:MAX_SHEET_NAME]
    n = 2
    while candidate.lower() in {t.lower() for t in taken}:
        suffix = f" ({n})"
        candidate = base[:MAX_SHEET_NAME - len(suffix)] + suffix
        n += 1
    taken.add(candidate)
    return candidate


def create_class_summary_workbook(summary: dict, school_name: str = "") -> bytes:
    """Workbook from the class summary data built by actions.grades.class_summary_data."""
    subjects = summary["subjects"]
    students = summary["students"]
    headers = ["STT", "Mã học sinh", "Họ và tên"] + [s["name_vietnamese"] for s in subjects] + ["TB chung", "Xếp hạng"]

    wb = Workbook()
    ws = wb.active
    taken: set[str] = set()
    ws.title = safe_sheet_name("Tổng hợp", taken)
    title_lines = [
        f"BẢNG ĐIỂM TỔNG HỢP LỚP {summary['class']['name']}",
        f"{summary['period']['name']} - {summary['period']['academic_year_name']}",
    ]
    if school_name:
        title_lines.append(school_name)
    _title_block(ws, title_lines, len(headers))
    header_row = len(title_lines) + 2
    _header_row(ws, header_row, headers)

    for i, student in enumerate(students, start=1):
        values = [i, student["student_id"], student["full_name"]]
        values += [student["averages"].get(s["id"]) for s in subjects]
        values += [student["overall_average"], student["rank"]]
        for col, value in enumerate(values, start=1):
            cell = ws.cell(row=header_row + i, column=col, value=value)
            cell.border = BORDER
            cell.alignment = LEFT if col == 3 else CENTER
    _set_widths(ws, [6, 15, 30] + [12] * len(subjects) + [10, 10])

    for i, student in enumerate(students[:SUMMARY_STUDENT_SHEETS], start=1):
        sheet = wb.create_sheet(safe_sheet_name(f"{i}. {student['full_name']}", taken))
        _title_block(sheet, [
            f"{student['full_name']} ({student['student_id']})",
            f"Lớp: {summary['class']['name']}",
        ], 4)
        _header_row(sheet, 4, ["Môn học", "Điểm giữa kì", "Điểm cuối kì", "Trung bình"])
        for row, subject in enumerate(subjects, start=5):
            components = student["components"].get(subject["id"], {})
            values = [subject["name_vietnamese"], components.get("midterm"), components.get("final"),
                      student["averages"].get(subject["id"])]
            for col, value in enumerate(values, start=1):
                cell = sheet.cell(row=row, column=col, value=value)
                cell.border = BORDER
        _set_widths(sheet, [30, 14, 14, 14])
    return _to_bytes(wb)
